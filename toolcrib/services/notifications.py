"""In-process fan-out of "something changed" signals to connected clients.

The broker never stores a message for later: subscribers only see topics
broadcast while they are subscribed. Each subscriber owns a bounded queue and
a slow reader loses its oldest pending topic rather than blocking writers.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
import time
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

EVENT_CONNECTED = "connected"
EVENT_HEARTBEAT = "heartbeat"


class NotificationBroker:
    def __init__(self, queue_size: int = 100) -> None:
        self._subscribers: set[queue.Queue[str]] = set()
        self._lock = threading.Lock()
        self._queue_size = queue_size

    def subscribe(self) -> queue.Queue[str]:
        q: queue.Queue[str] = queue.Queue(maxsize=self._queue_size)
        with self._lock:
            self._subscribers.add(q)
        return q

    def unsubscribe(self, q: queue.Queue[str]) -> None:
        with self._lock:
            self._subscribers.discard(q)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def broadcast(self, topic: str) -> None:
        with self._lock:
            subscribers: Iterable[queue.Queue[str]] = list(self._subscribers)
        delivered = 0
        for q in subscribers:
            try:
                q.put_nowait(topic)
            except queue.Full:
                try:
                    q.get_nowait()
                    q.put_nowait(topic)
                except (queue.Empty, queue.Full):
                    continue
            delivered += 1
        logger.debug("notification.broadcast", extra={"extra_data": {"topic": topic, "subscribers": delivered}})


def format_sse(data: str, event: Optional[str] = None, event_id: Optional[str] = None) -> str:
    lines = []
    if event_id:
        lines.append(f"id: {event_id}")
    if event:
        lines.append(f"event: {event}")
    for chunk in data.splitlines():
        lines.append(f"data: {chunk}")
    lines.append("")
    return "\n".join(lines) + "\n"


def topic_message(topic: str) -> str:
    return format_sse(json.dumps({"topic": topic}), event=topic)


def connected_message() -> str:
    return format_sse(json.dumps({"msg": "welcome"}), event=EVENT_CONNECTED)


def keepalive_message() -> str:
    return format_sse(json.dumps({"type": EVENT_HEARTBEAT, "ts": time.time()}), event=EVENT_HEARTBEAT)
