from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ..core.ticket_types import MAX_QUANTITY


class ItemCreate(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore")

    id: Optional[str] = None
    name: str
    code: Optional[str] = None
    brand: str
    quantity: int = Field(default=0, ge=0, le=MAX_QUANTITY)
    type: Optional[str] = None


class ItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    code: Optional[str] = None
    brand: Optional[str] = None
    quantity: int
    type: Optional[str] = None
    created_at: str = Field(validation_alias=AliasChoices("created_at", "createdAt"), serialization_alias="createdAt")
    updated_at: str = Field(validation_alias=AliasChoices("updated_at", "updatedAt"), serialization_alias="updatedAt")


class ItemList(BaseModel):
    items: list[ItemOut]


class ItemCreated(BaseModel):
    ok: bool = True
    item: ItemOut


class UserBalance(BaseModel):
    item_id: str = Field(validation_alias=AliasChoices("item_id", "itemId"), serialization_alias="itemId")
    username: str
    balance: int
