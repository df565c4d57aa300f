"""
Outbound delivery for one connection.

- send(frame) never blocks: the frame is serialised and queued, or dropped and
  counted when the connection is not open or the queue is full.
- A sender task per connection drains the queue; a failed send only loses that
  frame (it races with disconnect) and is never raised to the caller.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Protocol

from fastapi.websockets import WebSocket, WebSocketState

logger = logging.getLogger("topicast.dispatch")


class Transport(Protocol):
    @property
    def is_open(self) -> bool: ...

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class WebSocketTransport:
    """Transport over a FastAPI WebSocket."""

    def __init__(self, websocket: WebSocket):
        self._ws = websocket

    @property
    def is_open(self) -> bool:
        return (
            self._ws.application_state == WebSocketState.CONNECTED
            and self._ws.client_state == WebSocketState.CONNECTED
        )

    async def send_text(self, data: str) -> None:
        await self._ws.send_text(data)

    async def close(self, code: int = 1000) -> None:
        await self._ws.close(code=code)


class Dispatcher:
    def __init__(self, transport: Transport, queue_maxsize: int = 256, label: str = "-"):
        self._transport = transport
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_maxsize)
        self._task: Optional[asyncio.Task[None]] = None
        self._label = label
        self._dropped = 0
        self._failed = 0

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._send_loop(), name=f"send-{self._label}")

    def send(self, frame: Dict[str, Any]) -> bool:
        """Queue one frame. Returns False when it was dropped."""
        if not self._transport.is_open:
            self._dropped += 1
            return False
        payload = json.dumps(frame, ensure_ascii=False)
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            self._dropped += 1
            logger.debug("send queue full for %s; frame dropped", self._label)
            return False
        return True

    async def flush(self) -> None:
        """Wait until every queued frame has been handed to the transport."""
        await self._queue.join()

    async def close(self, code: Optional[int] = None) -> None:
        """Stop the sender task; with ``code``, also close the transport."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        if code is not None and self._transport.is_open:
            try:
                await self._transport.close(code)
            except Exception as exc:
                logger.debug("close failed for %s: %s", self._label, exc)

    async def _send_loop(self) -> None:
        while True:
            payload = await self._queue.get()
            try:
                if self._transport.is_open:
                    await self._transport.send_text(payload)
                else:
                    self._dropped += 1
            except Exception as exc:
                self._failed += 1
                logger.debug("send failed for %s: %s", self._label, exc)
            finally:
                self._queue.task_done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def dropped(self) -> int:
        return self._dropped

    @property
    def failed(self) -> int:
        return self._failed
