"""Beginner-friendly overview for this module.

WHAT: The ``items`` table, one row per stocked catalog entry.
WHEN: Loaded whenever the catalog is listed or a take/return is applied.
WHY: ``quantity`` is the shelf count the ledger checks takes against.
HOW: Plain SQLAlchemy declarative model keyed by the external item id.
"""


from __future__ import annotations

from sqlalchemy import CheckConstraint, Column, Integer, Text

from ..db.session import Base


class Item(Base):
    __tablename__ = "items"
    __table_args__ = (CheckConstraint("quantity >= 0", name="ck_items_quantity_non_negative"),)

    id = Column(Text, primary_key=True)
    name = Column(Text, nullable=False)
    code = Column(Text, nullable=True)
    brand = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False, default=0)
    type = Column(Text, nullable=True, default="")
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<Item {self.id} {self.name!r} qty={self.quantity}>"
