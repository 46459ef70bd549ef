"""Connection management for server-sent notification streams."""

from __future__ import annotations

import asyncio
import json
from collections import defaultdict
from typing import Any, AsyncIterator, DefaultDict, Mapping, Set

from serverlister.logging import get_logger


PING_FRAME = ": ping\n\n"


def format_sse(event: str, data: Any) -> str:
    """Render one SSE frame carrying *data* as JSON."""

    payload = json.dumps(data, default=str, separators=(",", ":"))
    return f"event: {event}\ndata: {payload}\n\n"


class SSEConnectionManager:
    """Track live SSE streams grouped by user.

    Each stream owns a bounded queue of rendered frames. Publishing is safe
    from worker threads: frames are handed to the event loop that opened the
    stream.
    """

    def __init__(self, *, ping_interval: float = 30.0, max_queue_size: int = 100) -> None:
        self._connections: DefaultDict[str, Set[asyncio.Queue[str]]] = defaultdict(set)
        self._ping_interval = ping_interval
        self._max_queue_size = max_queue_size
        self._loop: asyncio.AbstractEventLoop | None = None
        self._logger = get_logger(__name__)

    def connect(self, user_id: str) -> asyncio.Queue[str]:
        """Register a new stream for *user_id*; call from the event loop."""

        self._loop = asyncio.get_running_loop()
        queue: asyncio.Queue[str] = asyncio.Queue(maxsize=self._max_queue_size)
        self._connections[user_id].add(queue)
        self._logger.info(
            "sse.connection.opened",
            user_id=user_id,
            streams=len(self._connections[user_id]),
        )
        return queue

    def disconnect(self, user_id: str, queue: asyncio.Queue[str]) -> None:
        """Remove *queue* from the streams of *user_id*."""

        connections = self._connections.get(user_id)
        if connections is None:
            return
        connections.discard(queue)
        if not connections:
            self._connections.pop(user_id, None)
        self._logger.info("sse.connection.closed", user_id=user_id)

    def is_connected(self, user_id: str) -> bool:
        return bool(self._connections.get(user_id))

    def publish(self, user_id: str, event: str, data: Mapping[str, Any] | Any) -> bool:
        """Queue *event* for every stream of *user_id*.

        Returns ``False`` when the user has no live stream.
        """

        connections = list(self._connections.get(user_id, ()))
        if not connections:
            return False
        frame = format_sse(event, data)
        for queue in connections:
            self._hand_over(user_id, queue, frame)
        return True

    def status(self) -> dict[str, Any]:
        """Diagnostic snapshot of the open streams."""

        return {
            "active_connections": sum(len(streams) for streams in self._connections.values()),
            "user_ids": sorted(self._connections),
        }

    async def stream(self, user_id: str, queue: asyncio.Queue[str]) -> AsyncIterator[str]:
        """Yield frames for one stream, pinging while idle, until cancelled."""

        try:
            yield format_sse("connected", {"connected": True})
            while True:
                try:
                    frame = await asyncio.wait_for(queue.get(), timeout=self._ping_interval)
                except asyncio.TimeoutError:
                    yield PING_FRAME
                    continue
                yield frame
        finally:
            self.disconnect(user_id, queue)

    def _hand_over(self, user_id: str, queue: asyncio.Queue[str], frame: str) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if self._loop is None or running is self._loop or self._loop.is_closed():
            self._offer(user_id, queue, frame)
        else:
            self._loop.call_soon_threadsafe(self._offer, user_id, queue, frame)

    def _offer(self, user_id: str, queue: asyncio.Queue[str], frame: str) -> None:
        try:
            queue.put_nowait(frame)
        except asyncio.QueueFull:
            self._logger.warning("sse.frame.dropped", user_id=user_id, reason="queue_full")


__all__ = ["PING_FRAME", "SSEConnectionManager", "format_sse"]
