"""Take/return endpoints plus the ledger listing.

Handlers only parse the body and hand it to :class:`LedgerService`; every
failure is a :class:`~toolcrib.core.errors.LedgerError` that the app-level
handler turns into the JSON error envelope.
"""


from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..deps.services import get_ledger
from ..middlewares import add_log_context
from ..schemas.ticket import ReturnRequest, TakeRequest, TicketCreated, TicketList, TicketOut
from ..services.ledger import LedgerService

router = APIRouter(prefix="/api", tags=["tickets"])


@router.get("/tickets", response_model=TicketList)
def api_list_tickets(ledger: LedgerService = Depends(get_ledger)):
    return TicketList(tickets=[TicketOut.model_validate(ticket) for ticket in ledger.list_tickets()])


@router.post("/take", response_model=TicketCreated)
def api_take(request: Request, payload: TakeRequest, ledger: LedgerService = Depends(get_ledger)):
    add_log_context(request, ticket_type="take", item_id=payload.item_id, username=payload.username, qty=payload.qty)
    ticket = ledger.apply_take(
        payload.item_id,
        payload.username,
        payload.qty,
        destination=payload.destination,
        signature=payload.signature,
    )
    add_log_context(request, ticket_id=ticket.id)
    return TicketCreated(ticket=TicketOut.model_validate(ticket))


@router.post("/return", response_model=TicketCreated)
def api_return(request: Request, payload: ReturnRequest, ledger: LedgerService = Depends(get_ledger)):
    add_log_context(
        request,
        ticket_type="return",
        item_id=payload.item_id,
        username=payload.username,
        qty=payload.qty,
        force=bool(payload.force),
    )
    ticket = ledger.apply_return(
        payload.item_id,
        payload.username,
        payload.qty,
        destination=payload.destination,
        signature=payload.signature,
        force=bool(payload.force),
    )
    add_log_context(request, ticket_id=ticket.id)
    return TicketCreated(ticket=TicketOut.model_validate(ticket))
