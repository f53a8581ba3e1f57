"""Ledger balance engine for the tool crib.

WHAT: Validates and applies take/return tickets and registers new items.
WHEN: Called by the API routers once a request body has been parsed.
WHY: Balances are never stored. A user's outstanding quantity for an item is
always replayed from their ticket history, so there is nothing that can
drift out of sync with the ledger.
HOW: Each mutation runs under the item's lock, writes the quantity change and
the new ticket in one commit, then runs the post-commit hooks (normally the
notification broker's ``broadcast``).
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import (
    InsufficientBalanceError,
    InsufficientStockError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from ..core.ids import derive_item_code, derive_item_id, disambiguate, generate_ticket_id
from ..core.ticket_types import (
    MAX_QUANTITY,
    TICKET_TYPE_RETURN,
    TICKET_TYPE_TAKE,
    TOPIC_ITEMS_CHANGED,
    TOPIC_TICKETS_CHANGED,
    signed_quantity,
)
from ..crud import items as items_crud
from ..crud import tickets as tickets_crud
from ..models.item import Item
from ..models.ticket import Ticket
from .locks import ItemLockRegistry

logger = logging.getLogger(__name__)

CommitHook = Callable[[str], None]


def net_quantity(tickets: Iterable[Any]) -> int:
    """Sum ``+qty`` for takes and ``-qty`` for returns.

    Addition is commutative, so the order of ``tickets`` never matters. The
    result is not clamped: inconsistent data shows up as a negative balance.
    """

    return sum(signed_quantity(ticket.type, int(ticket.qty or 0)) for ticket in tickets)


def _clean_text(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def _is_positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value <= MAX_QUANTITY


class LedgerService:
    def __init__(
        self,
        db: Session,
        *,
        locks: ItemLockRegistry | None = None,
        hooks: Sequence[CommitHook] = (),
    ) -> None:
        self.db = db
        self.locks = locks if locks is not None else ItemLockRegistry()
        self._hooks: list[CommitHook] = list(hooks)

    def on_commit(self, hook: CommitHook) -> None:
        """Register ``hook(topic)`` to run after every successful commit."""

        self._hooks.append(hook)

    # ---- queries

    def compute_user_balance(self, item_id: str, username: str) -> int:
        return net_quantity(tickets_crud.list_tickets_for(self.db, item_id, username))

    def list_items(self) -> list[Item]:
        return items_crud.list_items(self.db)

    def list_tickets(self) -> list[Ticket]:
        return tickets_crud.list_tickets(self.db)

    def get_item(self, item_id: str) -> Item:
        item = items_crud.get_item(self.db, item_id)
        if item is None:
            raise NotFoundError("Item not found", details={"itemId": item_id})
        return item

    # ---- mutations

    def create_item(self, payload: Mapping[str, Any]) -> Item:
        name = _clean_text(payload.get("name"))
        brand = _clean_text(payload.get("brand"))
        if not name or not brand:
            raise ValidationError("name and brand are required")

        candidate = _clean_text(payload.get("id")) or derive_item_id(name)
        item_id = disambiguate(candidate, lambda value: items_crud.item_exists(self.db, value))
        code = _clean_text(payload.get("code")) or derive_item_code(item_id)
        quantity = payload.get("quantity") or 0
        if not isinstance(quantity, int) or isinstance(quantity, bool) or not 0 <= quantity <= MAX_QUANTITY:
            raise ValidationError(f"quantity must be an integer between 0 and {MAX_QUANTITY}")

        item = self._commit(
            lambda: items_crud.create_item(
                self.db,
                {
                    "id": item_id,
                    "name": name,
                    "code": code,
                    "brand": brand,
                    "quantity": quantity,
                    "type": _clean_text(payload.get("type")),
                },
            )
        )
        self.db.refresh(item)
        logger.info(
            "item.created",
            extra={"extra_data": {"item_id": item.id, "requested_id": candidate, "quantity": item.quantity}},
        )
        self._run_hooks(TOPIC_ITEMS_CHANGED)
        return item

    def apply_take(
        self,
        item_id: str,
        username: str,
        qty: int,
        destination: str | None = None,
        signature: str | None = None,
    ) -> Ticket:
        self._validate(item_id, username, qty, signature)
        with self.locks.hold(item_id):
            item = self.get_item(item_id)
            if qty > item.quantity:
                self._reject("take", item_id, username, qty, reason="insufficient_stock")
                raise InsufficientStockError(
                    "Not enough quantity available",
                    details={"itemId": item_id, "available": item.quantity, "requested": qty},
                )

            def write() -> Ticket:
                if not items_crud.adjust_quantity(self.db, item_id, -qty):
                    raise InsufficientStockError(
                        "Not enough quantity available",
                        details={"itemId": item_id, "requested": qty},
                    )
                return tickets_crud.append_ticket(
                    self.db,
                    {
                        "id": generate_ticket_id(),
                        "type": TICKET_TYPE_TAKE,
                        "item_id": item_id,
                        "username": username,
                        "qty": qty,
                        "destination": destination or "",
                        "signature": signature,
                    },
                )

            ticket = self._commit(write)
        self._accept(ticket)
        self._run_hooks(TOPIC_ITEMS_CHANGED, TOPIC_TICKETS_CHANGED)
        return ticket

    def apply_return(
        self,
        item_id: str,
        username: str,
        qty: int,
        destination: str | None = None,
        signature: str | None = None,
        force: bool = False,
    ) -> Ticket:
        self._validate(item_id, username, qty, signature)
        with self.locks.hold(item_id):
            self.get_item(item_id)
            user_taken = self.compute_user_balance(item_id, username)
            if not force and qty > user_taken:
                self._reject("return", item_id, username, qty, reason="insufficient_balance")
                raise InsufficientBalanceError(
                    "User does not hold that quantity to return",
                    details={"itemId": item_id, "username": username, "held": user_taken, "requested": qty},
                )

            def write() -> Ticket:
                if not items_crud.adjust_quantity(self.db, item_id, qty):
                    raise NotFoundError("Item not found", details={"itemId": item_id})
                return tickets_crud.append_ticket(
                    self.db,
                    {
                        "id": generate_ticket_id(),
                        "type": TICKET_TYPE_RETURN,
                        "item_id": item_id,
                        "username": username,
                        "qty": qty,
                        "destination": destination or "",
                        "signature": signature,
                        "forced_return": bool(force),
                        "original_user_taken": user_taken,
                    },
                )

            ticket = self._commit(write)
        self._accept(ticket)
        self._run_hooks(TOPIC_ITEMS_CHANGED, TOPIC_TICKETS_CHANGED)
        return ticket

    # ---- internals

    def _validate(self, item_id: object, username: object, qty: object, signature: object) -> None:
        if not _clean_text(item_id) or not _clean_text(username) or not _is_positive_int(qty):
            raise ValidationError(
                f"Incomplete data: itemId, username and a qty between 1 and {MAX_QUANTITY} are required"
            )
        if not _clean_text(signature):
            raise ValidationError("Signature is required")

    def _commit(self, write: Callable[[], Any]) -> Any:
        """Run ``write`` and commit; roll back on any failure."""

        try:
            record = write()
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError("Storage failure") from exc
        except Exception:
            self.db.rollback()
            raise
        return record

    def _run_hooks(self, *topics: str) -> None:
        for topic in topics:
            for hook in self._hooks:
                try:
                    hook(topic)
                except Exception:
                    logger.warning(
                        "ledger.hook_failed",
                        exc_info=True,
                        extra={"extra_data": {"topic": topic, "hook": getattr(hook, "__qualname__", repr(hook))}},
                    )

    def _accept(self, ticket: Ticket) -> None:
        logger.info(
            "ticket.recorded",
            extra={
                "extra_data": {
                    "ticket_id": ticket.id,
                    "type": ticket.type,
                    "item_id": ticket.item_id,
                    "username": ticket.username,
                    "qty": ticket.qty,
                    "forced_return": bool(ticket.forced_return),
                }
            },
        )

    def _reject(self, kind: str, item_id: str, username: str, qty: int, *, reason: str) -> None:
        logger.warning(
            "ticket.rejected",
            extra={"extra_data": {"type": kind, "item_id": item_id, "username": username, "qty": qty, "reason": reason}},
        )
