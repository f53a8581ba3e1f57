"""External identifier helpers for items and tickets.

Ids are short and human friendly rather than globally unique: a time based
part plus a random part. Callers that persist them still rely on the
database primary key to reject the rare duplicate.
"""

from __future__ import annotations

import random
import re
import time
from typing import Callable

BASE36_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
TICKET_ID_PREFIX = "t"
ITEM_ID_LETTERS = 4

_NON_LETTERS = re.compile(r"[^a-zA-Z]")


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def _epoch_millis() -> int:
    return int(time.time() * 1000)


def generate_id(prefix: str = "") -> str:
    """``prefix`` + base36 epoch millis + base36 random number in 1000-9999."""

    return prefix + to_base36(_epoch_millis()) + to_base36(random.randint(1000, 9999))


def generate_ticket_id() -> str:
    return generate_id(TICKET_ID_PREFIX)


def derive_item_id(name: str) -> str:
    """Build an item id such as ``HAMM4821`` from the item name."""

    letters = _NON_LETTERS.sub("", name or "").upper()[:ITEM_ID_LETTERS]
    letters = letters.ljust(ITEM_ID_LETTERS, "X")
    return f"{letters}{random.randint(1000, 9999)}"


def derive_item_code(item_id: str) -> str:
    return f"{item_id[:ITEM_ID_LETTERS]}-{item_id[ITEM_ID_LETTERS:]}"


def disambiguate(candidate: str, exists: Callable[[str], bool]) -> str:
    """Return ``candidate`` or a suffixed variant that ``exists`` rejects.

    The first fallback appends the current epoch millis. Should that also be
    taken, a running counter is appended until a free id is found.
    """

    if not exists(candidate):
        return candidate
    stamped = f"{candidate}-{_epoch_millis()}"
    if not exists(stamped):
        return stamped
    counter = 1
    while exists(f"{stamped}-{counter}"):
        counter += 1
    return f"{stamped}-{counter}"
