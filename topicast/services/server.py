"""
Push server: the one object the transport layer talks to.

Owns the feeds, the subscription registry and the broadcast scheduler, and
wires registry transitions to timer start/stop.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, Optional, Union

from topicast.core.config import Settings
from topicast.services.dispatch import Dispatcher, Transport
from topicast.services.feeds import FeedRegistry, default_feeds
from topicast.services.protocol import (
    NOT_SUBSCRIBED,
    SUBSCRIBED,
    UNSUBSCRIBED,
    EmptySubscribeTopic,
    ProtocolError,
    SubscribeMessage,
    make_error_frame,
    make_info_frame,
    parse_control_message,
)
from topicast.services.registry import SessionNotFound, SubscriptionRegistry
from topicast.services.scheduler import BroadcastScheduler
from topicast.services.session import (
    ClientSession,
    SubscribeResult,
    UnsubscribeResult,
    new_session_id,
)

logger = logging.getLogger("topicast.server")

_PROCESS_STARTED = time.monotonic()

GOING_AWAY = 1001


class PushServer:
    def __init__(self, settings: Settings, feeds: Optional[FeedRegistry] = None):
        self.settings = settings
        self.feeds = feeds if feeds is not None else default_feeds()
        self.registry = SubscriptionRegistry(on_active=self._on_active, on_idle=self._on_idle)
        self.scheduler = BroadcastScheduler(
            self.registry, self.feeds, settings.broadcast_interval_sec
        )

    def _on_active(self) -> None:
        self.scheduler.start()

    def _on_idle(self) -> None:
        self.scheduler.stop()

    async def connect(self, transport: Transport) -> ClientSession:
        """Register a new connection. Raises CapacityExceeded at MAX_CLIENTS."""
        session_id = new_session_id()
        dispatcher = Dispatcher(
            transport, queue_maxsize=self.settings.SEND_QUEUE_SIZE, label=session_id
        )
        session = ClientSession(session_id, dispatcher)
        await self.registry.add(session, limit=self.settings.MAX_CLIENTS)
        dispatcher.start()
        logger.info("Client connected: %s (%d total)", session_id, len(self.registry))
        return session

    async def handle_message(self, session: ClientSession, raw: Union[str, bytes]) -> None:
        async with session.lock:
            session.touch()
        try:
            message = parse_control_message(raw)
        except ProtocolError as exc:
            logger.warning("Rejected message from %s: %s", session.id, exc)
            session.dispatcher.send(make_error_frame(exc.client_message))
            return

        try:
            if isinstance(message, SubscribeMessage):
                await self.subscribe(session, message.topics)
            else:
                await self.unsubscribe(session, message.topics)
        except SessionNotFound:
            logger.debug("Message for removed session %s ignored", session.id)

    async def subscribe(
        self, session: ClientSession, topics: Iterable[str]
    ) -> Optional[SubscribeResult]:
        try:
            result = await self.registry.subscribe(session, topics)
        except EmptySubscribeTopic as exc:
            logger.warning("Rejected subscribe from %s: %s", session.id, exc)
            session.dispatcher.send(make_error_frame(exc.client_message))
            return None

        unknown = [topic for topic in result.added if topic not in self.feeds]
        if unknown:
            logger.warning("Client %s subscribed to topics without a feed: %s", session.id, unknown)
        if result.added:
            logger.info("Client %s subscribed to %s", session.id, list(result.added))
        else:
            logger.info("Client %s already subscribed to %s", session.id, list(result.topics))
        session.dispatcher.send(make_info_frame(SUBSCRIBED, topics=list(result.topics)))
        return result

    async def unsubscribe(
        self, session: ClientSession, topics: Optional[Iterable[str]] = None
    ) -> UnsubscribeResult:
        result = await self.registry.unsubscribe(session, topics)
        if not result.was_subscribed:
            logger.info("Client %s is not subscribed", session.id)
            session.dispatcher.send(make_info_frame(NOT_SUBSCRIBED))
            return result

        logger.info(
            "Client %s unsubscribed from %s (remaining %s)",
            session.id,
            list(result.removed),
            list(result.topics),
        )
        session.dispatcher.send(make_info_frame(UNSUBSCRIBED, topics=list(result.topics)))
        return result

    async def disconnect(self, session_id: str, code: Optional[int] = None) -> None:
        """Drop a session and all of its state. Unknown ids are ignored."""
        session = await self.registry.remove(session_id)
        if session is None:
            return
        await session.dispatcher.close(code)
        logger.info("Client disconnected: %s (%d total)", session_id, len(self.registry))

    def status(self) -> Dict[str, Any]:
        return {
            "total_sessions": len(self.registry),
            "active_session_count": self.registry.active_count(),
            "is_broadcasting": self.scheduler.is_running,
            "process_uptime": round(time.monotonic() - _PROCESS_STARTED, 3),
            "broadcast_interval": self.settings.BROADCAST_INTERVAL,
            "ticks": self.scheduler.ticks,
            "frames_queued": self.scheduler.frames_queued,
        }

    async def shutdown(self) -> None:
        """Stop broadcasting and close every session."""
        await self.scheduler.aclose()
        sessions = self.registry.sessions()
        for session in sessions:
            await self.disconnect(session.id, code=GOING_AWAY)
        logger.info("Push server stopped (%d sessions closed)", len(sessions))
