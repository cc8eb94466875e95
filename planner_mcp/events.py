"""Server-Sent-Events fan-out of task change notifications.

The broadcaster knows nothing about HTTP: a subscriber is any object with a
``write(frame)`` method (and optionally ``close()``). ``format_sse_frame``
produces the ``text/event-stream`` wire text.
"""

import asyncio
import json
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from .helpers import utc_timestamp

logger = logging.getLogger("planner_mcp")


class EventKind(str, Enum):
    CONNECTED = "connected"
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_DELETED = "task_deleted"
    ERROR = "error"


TASK_EVENT_KINDS = (EventKind.TASK_CREATED, EventKind.TASK_UPDATED, EventKind.TASK_DELETED)


def format_sse_frame(kind: str, data: Any) -> str:
    """Serialize one event as a text/event-stream block.

    ``json.dumps`` never emits raw newlines, so the payload always fits on a
    single ``data:`` line.
    """
    return f"event: {kind}\ndata: {json.dumps(data, default=str)}\n\n"


@dataclass(frozen=True)
class Event:
    kind: EventKind
    payload: Any
    timestamp: str = field(default_factory=utc_timestamp)

    def to_data(self) -> Dict[str, Any]:
        """JSON body of the ``data:`` line.

        A mapping payload is flattened into the body; ``type`` and
        ``timestamp`` are reserved and always carry the event's own values.
        """
        if isinstance(self.payload, Mapping):
            data = dict(self.payload)
        else:
            data = {"data": self.payload}
        data["type"] = self.kind.value
        data["timestamp"] = self.timestamp
        return data

    def to_frame(self) -> str:
        return format_sse_frame(self.kind.value, self.to_data())


@dataclass(frozen=True)
class SubscriberHandle:
    id: str
    writer: Any


class QueueWriter:
    """Buffers frames for one streaming HTTP response.

    ``write`` never blocks: a full queue or a closed stream raises, which the
    broadcaster treats as a dead connection.
    """

    def __init__(self, maxsize: int = 256):
        self.queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def write(self, frame: str) -> None:
        if self.closed:
            raise ConnectionError("event stream is closed")
        self.queue.put_nowait(frame)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # The end-of-stream marker must fit even when the reader is behind.
        if self.queue.full():
            self.queue.get_nowait()
        self.queue.put_nowait(None)

    async def frames(self):
        while True:
            frame = await self.queue.get()
            if frame is None:
                return
            yield frame


class EventBroadcaster:
    """Registry of open event streams with best-effort delivery to each."""

    def __init__(self):
        self._subscribers: Dict[str, SubscriberHandle] = {}
        self._lock = threading.Lock()
        self._last_id = 0

    def _next_id(self) -> str:
        # Creation time in nanoseconds, bumped when two subscribers arrive in
        # the same tick so ids stay unique and increasing.
        with self._lock:
            self._last_id = max(time.time_ns(), self._last_id + 1)
            return str(self._last_id)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscriber_ids(self) -> List[str]:
        with self._lock:
            return list(self._subscribers)

    def subscribe(self, writer) -> SubscriberHandle:
        """Register a stream and greet it with a ``connected`` event."""
        handle = SubscriberHandle(id=self._next_id(), writer=writer)
        with self._lock:
            self._subscribers[handle.id] = handle

        hello = Event(
            EventKind.CONNECTED,
            {"clientId": handle.id, "message": "Connected to planner event stream"},
        )
        try:
            writer.write(hello.to_frame())
        except Exception:
            self.unsubscribe(handle.id)
            raise
        logger.info(f"Event client {handle.id} connected ({self.subscriber_count} open)")
        return handle

    def unsubscribe(self, subscriber_id: str) -> None:
        with self._lock:
            handle = self._subscribers.pop(subscriber_id, None)
        if handle is not None:
            logger.info(f"Event client {subscriber_id} disconnected")

    def broadcast(self, kind: Union[EventKind, str], payload: Any) -> Event:
        """Send an event to every open stream; dead streams are dropped."""
        event = Event(EventKind(kind), payload)
        frame = event.to_frame()

        with self._lock:
            targets = list(self._subscribers.values())

        for handle in targets:
            try:
                handle.writer.write(frame)
            except Exception as e:
                logger.warning(f"Dropping event client {handle.id}: {type(e).__name__}: {e}")
                self._close_writer(handle)
                self.unsubscribe(handle.id)
        return event

    def broadcast_task_event(self, kind: Union[EventKind, str], task: Mapping[str, Any]) -> Event:
        kind = EventKind(kind)
        if kind not in TASK_EVENT_KINDS:
            raise ValueError(f"'{kind.value}' is not a task event")
        return self.broadcast(kind, dict(task, eventType=kind.value))

    def close(self) -> None:
        """Close every stream and empty the registry."""
        with self._lock:
            handles = list(self._subscribers.values())
            self._subscribers.clear()
        for handle in handles:
            self._close_writer(handle)

    @staticmethod
    def _close_writer(handle: SubscriberHandle) -> None:
        close = getattr(handle.writer, "close", None)
        if close is None:
            return
        try:
            close()
        except Exception as e:
            logger.warning(f"Error closing event client {handle.id}: {e}")
