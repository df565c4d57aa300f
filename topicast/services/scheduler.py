"""
Broadcast scheduler: one recurring timer for every subscribed session.

- start()/stop() are idempotent; at most one timer task exists at a time.
- Each tick takes one sample per (session, topic) pair and hands the frame to
  that session's dispatcher. A failing session or topic never stops the tick.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from topicast.services.feeds import FeedRegistry
from topicast.services.protocol import make_broadcast_frame
from topicast.services.registry import SubscriptionRegistry

logger = logging.getLogger("topicast.scheduler")

TIMER_TASK_NAME = "broadcast-timer"


class BroadcastScheduler:
    def __init__(self, registry: SubscriptionRegistry, feeds: FeedRegistry, interval_sec: float):
        self._registry = registry
        self._feeds = feeds
        self._interval = interval_sec
        self._task: Optional[asyncio.Task[None]] = None
        self.ticks = 0
        self.frames_queued = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Start the timer. Returns False if it was already running."""
        if self.is_running:
            logger.debug("Broadcast timer already running")
            return False
        self._task = asyncio.get_running_loop().create_task(self._run(), name=TIMER_TASK_NAME)
        logger.info("Broadcast timer started (every %.0f ms)", self._interval * 1000)
        return True

    def stop(self) -> bool:
        """Stop the timer. Returns False if it was not running."""
        task, self._task = self._task, None
        if task is None or task.done():
            return False
        task.cancel()
        logger.info("Broadcast timer stopped after %d ticks", self.ticks)
        return True

    async def aclose(self) -> None:
        task = self._task
        self.stop()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.tick()
            except Exception:
                logger.exception("Broadcast tick failed")

    async def tick(self) -> int:
        """Broadcast once to every active session. Returns frames queued."""
        sessions = self._registry.active_sessions()
        if not sessions:
            return 0

        self.ticks += 1
        subscribers = len(sessions)
        queued = 0
        for position, session in enumerate(sessions, start=1):
            try:
                async with session.lock:
                    counter, samples = session.advance(self._feeds)
            except Exception:
                logger.exception("Failed to advance %s", session.id)
                continue
            for topic, value in samples:
                frame = make_broadcast_frame(topic, value, counter, subscribers)
                try:
                    accepted = session.dispatcher.send(frame)
                except Exception as exc:
                    logger.debug("dispatch to %s failed: %s", session.id, exc)
                    continue
                if accepted:
                    queued += 1
                logger.debug(
                    "-> client #%d (%s) topic=%s counter=%d data=%s",
                    position,
                    session.id,
                    topic,
                    counter,
                    value,
                )
        self.frames_queued += queued
        return queued
