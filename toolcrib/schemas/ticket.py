"""Request and response shapes for the take/return ledger.

Incoming bodies keep the camelCase names existing clients send (``itemId``)
and are validated strictly: ``"3"`` is not a quantity and ``"yes"`` is not a
boolean.
"""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ..core.ticket_types import MAX_QUANTITY


class TakeRequest(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore")

    item_id: str = Field(validation_alias=AliasChoices("itemId", "item_id"))
    username: str
    qty: int = Field(gt=0, le=MAX_QUANTITY)
    destination: Optional[str] = None
    signature: str


class ReturnRequest(TakeRequest):
    # null is treated like an absent flag
    force: Optional[bool] = None


class TicketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    item_id: str = Field(validation_alias=AliasChoices("item_id", "itemId"), serialization_alias="itemId")
    username: str
    qty: int
    destination: Optional[str] = None
    signature: str
    date: str
    forced_return: bool = Field(
        default=False,
        validation_alias=AliasChoices("forced_return", "forcedReturn"),
        serialization_alias="forcedReturn",
    )
    original_user_taken: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("original_user_taken", "originalUserTaken"),
        serialization_alias="originalUserTaken",
    )


class TicketList(BaseModel):
    tickets: list[TicketOut]


class TicketCreated(BaseModel):
    ok: bool = True
    ticket: TicketOut
