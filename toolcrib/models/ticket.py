from __future__ import annotations

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Index, Integer, Text

from ..core.ticket_types import TICKET_TYPE_CHOICES
from ..db.session import Base

_TYPE_LIST = ", ".join(f"'{choice}'" for choice in TICKET_TYPE_CHOICES)


class Ticket(Base):
    """An immutable take or return record.

    Return tickets also keep ``original_user_taken``: the user's balance at
    the moment of the return, which later history cannot reproduce.
    """

    __tablename__ = "tickets"
    __table_args__ = (
        CheckConstraint(f"type IN ({_TYPE_LIST})", name="ck_tickets_type"),
        CheckConstraint("qty > 0", name="ck_tickets_qty_positive"),
        Index("ix_tickets_item_user", "item_id", "username"),
    )

    id = Column(Text, primary_key=True)
    type = Column(Text, nullable=False)
    item_id = Column(Text, ForeignKey("items.id"), nullable=False, index=True)
    username = Column(Text, nullable=False)
    qty = Column(Integer, nullable=False)
    destination = Column(Text, nullable=True, default="")
    signature = Column(Text, nullable=False)
    date = Column(Text, nullable=False)
    forced_return = Column(Boolean, nullable=False, default=False)
    original_user_taken = Column(Integer, nullable=True)
    created_at = Column(Text, nullable=False)
