from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..deps.services import get_ledger
from ..middlewares import add_log_context
from ..schemas.item import ItemCreate, ItemCreated, ItemList, ItemOut, UserBalance
from ..services.ledger import LedgerService

router = APIRouter(prefix="/api/items", tags=["items"])


@router.get("", response_model=ItemList)
def api_list_items(ledger: LedgerService = Depends(get_ledger)):
    items = [ItemOut.model_validate(item) for item in ledger.list_items()]
    return ItemList(items=items)


@router.post("", response_model=ItemCreated, status_code=201)
def api_create_item(request: Request, payload: ItemCreate, ledger: LedgerService = Depends(get_ledger)):
    item = ledger.create_item(payload.model_dump())
    add_log_context(request, item_id=item.id)
    return ItemCreated(item=ItemOut.model_validate(item))


@router.get("/{item_id}", response_model=ItemOut)
def api_get_item(request: Request, item_id: str, ledger: LedgerService = Depends(get_ledger)):
    add_log_context(request, item_id=item_id)
    return ItemOut.model_validate(ledger.get_item(item_id))


@router.get("/{item_id}/balance/{username}", response_model=UserBalance)
def api_user_balance(request: Request, item_id: str, username: str, ledger: LedgerService = Depends(get_ledger)):
    add_log_context(request, item_id=item_id, username=username)
    ledger.get_item(item_id)
    return UserBalance(item_id=item_id, username=username, balance=ledger.compute_user_balance(item_id, username))
