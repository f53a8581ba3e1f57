from __future__ import annotations

import asyncio
import queue
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from ..deps.services import get_broker
from ..services.notifications import (
    NotificationBroker,
    connected_message,
    keepalive_message,
    topic_message,
)

router = APIRouter(prefix="/api", tags=["events"])


async def _event_generator(
    request: Request,
    broker: NotificationBroker,
    keepalive_seconds: float,
) -> AsyncGenerator[str, None]:
    q = broker.subscribe()
    try:
        yield connected_message()
        while True:
            if await request.is_disconnected():
                break
            try:
                topic = await asyncio.to_thread(q.get, True, keepalive_seconds)
                yield topic_message(topic)
            except queue.Empty:
                yield keepalive_message()
    finally:
        broker.unsubscribe(q)


@router.get("/events")
async def stream_events(
    request: Request,
    broker: NotificationBroker = Depends(get_broker),
) -> StreamingResponse:
    keepalive = request.app.state.settings.EVENTS_KEEPALIVE_SECONDS
    return StreamingResponse(
        _event_generator(request, broker, keepalive),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )
