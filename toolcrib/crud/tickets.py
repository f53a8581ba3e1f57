from __future__ import annotations

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from ..models.ticket import Ticket
from .items import utc_now_iso


def list_tickets(db: Session) -> list[Ticket]:
    """Every ticket in the ledger, newest first."""

    stmt = select(Ticket).order_by(desc(Ticket.date), desc(Ticket.created_at))
    return list(db.execute(stmt).scalars().all())


def list_tickets_for(db: Session, item_id: str, username: str) -> list[Ticket]:
    """All tickets one user has recorded against one item, in no set order."""

    stmt = select(Ticket).where(Ticket.item_id == item_id, Ticket.username == username)
    return list(db.execute(stmt).scalars().all())


def append_ticket(db: Session, payload: dict) -> Ticket:
    """Stage a new ledger entry. The ledger is append-only: there is no update or delete."""

    data = payload.copy()
    now = utc_now_iso()
    data.setdefault("date", now)
    data.setdefault("created_at", now)
    ticket = Ticket(**data)
    db.add(ticket)
    db.flush()
    return ticket
