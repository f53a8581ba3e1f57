from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from ..db.session import get_db
from ..services.ledger import LedgerService
from ..services.locks import ItemLockRegistry
from ..services.notifications import NotificationBroker


def get_broker(request: Request) -> NotificationBroker:
    return request.app.state.notifications


def get_ledger(request: Request, db: Session = Depends(get_db)) -> LedgerService:
    """Build a ledger service for this request from the app-wide collaborators."""

    state = request.app.state
    locks: ItemLockRegistry = state.item_locks
    hooks = [state.notifications.broadcast] if state.settings.NOTIFICATIONS_ENABLED else []
    return LedgerService(db, locks=locks, hooks=hooks)
