"""Catalog store helpers.

Reads return ORM rows. Writes only ``flush`` so the caller decides when the
unit of work commits; the ledger commits the quantity change and its ticket
together.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..models.item import Item


def utc_now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def get_item(db: Session, item_id: str) -> Item | None:
    return db.get(Item, item_id)


def item_exists(db: Session, item_id: str) -> bool:
    stmt = select(Item.id).where(Item.id == item_id)
    return db.execute(stmt).first() is not None


def list_items(db: Session) -> list[Item]:
    stmt = select(Item).order_by(Item.name, Item.id)
    return list(db.execute(stmt).scalars().all())


def create_item(db: Session, payload: dict) -> Item:
    """Stage a new item built from an already-normalized payload."""

    data = payload.copy()
    now = utc_now_iso()
    data.setdefault("created_at", now)
    data.setdefault("updated_at", now)
    obj = Item(**data)
    db.add(obj)
    db.flush()
    return obj


def adjust_quantity(db: Session, item_id: str, change: int) -> bool:
    """Apply ``change`` to the stored quantity in a single UPDATE statement.

    Negative changes only apply while the shelf still holds enough units, so
    two concurrent takes can never drive the quantity below zero. Returns
    ``False`` when no row matched (unknown item or not enough stock).
    """

    stmt = (
        update(Item)
        .where(Item.id == item_id)
        .values(quantity=Item.quantity + change, updated_at=utc_now_iso())
        .execution_options(synchronize_session=False)
    )
    if change < 0:
        stmt = stmt.where(Item.quantity >= -change)
    result = db.execute(stmt)
    return result.rowcount == 1
