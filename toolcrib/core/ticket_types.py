"""Shared ticket type constants and notification topics."""

TICKET_TYPE_TAKE = "take"
TICKET_TYPE_RETURN = "return"

TICKET_TYPE_CHOICES = (
    TICKET_TYPE_TAKE,
    TICKET_TYPE_RETURN,
)

# Topics broadcast to connected clients after a successful mutation.
TOPIC_ITEMS_CHANGED = "items:update"
TOPIC_TICKETS_CHANGED = "tickets:update"

# Largest quantity a single ticket or item may carry (signed 32-bit column range).
MAX_QUANTITY = 2**31 - 1


def signed_quantity(ticket_type: str, qty: int) -> int:
    """Return ``+qty`` for takes and ``-qty`` for returns."""

    if ticket_type == TICKET_TYPE_TAKE:
        return qty
    if ticket_type == TICKET_TYPE_RETURN:
        return -qty
    raise ValueError(f"unknown ticket type: {ticket_type!r}")


__all__ = [
    "MAX_QUANTITY",
    "TICKET_TYPE_CHOICES",
    "TICKET_TYPE_RETURN",
    "TICKET_TYPE_TAKE",
    "TOPIC_ITEMS_CHANGED",
    "TOPIC_TICKETS_CHANGED",
    "signed_quantity",
]
