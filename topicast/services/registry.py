"""
Subscription registry: every connected session, and the subset with topics.

Client-originated subscribe/unsubscribe calls run under the registry lock and
then the session lock. Active-set transitions fire ``on_active`` (0 -> 1) and
``on_idle`` (1 -> 0) while the registry lock is still held, so start/stop
decisions never interleave.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Optional

from topicast.services.session import ClientSession, SubscribeResult, UnsubscribeResult

logger = logging.getLogger("topicast.registry")


class SessionNotFound(LookupError):
    """Session was removed (disconnected) before the operation ran."""


class CapacityExceeded(Exception):
    """No room for another session."""


class SubscriptionRegistry:
    def __init__(
        self,
        on_active: Optional[Callable[[], None]] = None,
        on_idle: Optional[Callable[[], None]] = None,
    ):
        self._sessions: Dict[str, ClientSession] = {}
        self._active: Dict[str, ClientSession] = {}
        self._lock = asyncio.Lock()
        self._on_active = on_active
        self._on_idle = on_idle

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Optional[ClientSession]:
        return self._sessions.get(session_id)

    def active_count(self) -> int:
        return len(self._active)

    def active_sessions(self) -> List[ClientSession]:
        """Snapshot of subscribed sessions, in activation order."""
        return list(self._active.values())

    def sessions(self) -> List[ClientSession]:
        return list(self._sessions.values())

    def for_each_active(self, fn: Callable[[ClientSession], None]) -> None:
        for session in self.active_sessions():
            fn(session)

    async def add(self, session: ClientSession, limit: Optional[int] = None) -> None:
        async with self._lock:
            if session.id in self._sessions:
                raise ValueError(f"session {session.id} is already registered")
            if limit is not None and len(self._sessions) >= limit:
                raise CapacityExceeded(f"{len(self._sessions)} sessions (limit {limit})")
            self._sessions[session.id] = session
            self._set_active(session, session.is_subscribed)
        logger.debug("registry add %s total=%d", session.id, len(self._sessions))

    async def remove(self, session_id: str) -> Optional[ClientSession]:
        """Forget a session. Unknown ids are ignored."""
        async with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                return None
            self._set_active(session, False)
        logger.debug(
            "registry remove %s total=%d active=%d",
            session_id,
            len(self._sessions),
            len(self._active),
        )
        return session

    async def subscribe(self, session: ClientSession, topics: Iterable[str]) -> SubscribeResult:
        async with self._lock:
            self._require(session)
            async with session.lock:
                result = session.subscribe(topics)
            self._set_active(session, session.is_subscribed)
        return result

    async def unsubscribe(
        self, session: ClientSession, topics: Optional[Iterable[str]] = None
    ) -> UnsubscribeResult:
        async with self._lock:
            self._require(session)
            async with session.lock:
                result = session.unsubscribe(topics)
            self._set_active(session, session.is_subscribed)
        return result

    def _require(self, session: ClientSession) -> None:
        if self._sessions.get(session.id) is not session:
            raise SessionNotFound(session.id)

    def _set_active(self, session: ClientSession, active: bool) -> None:
        if active:
            if session.id in self._active:
                return
            self._active[session.id] = session
            if len(self._active) == 1 and self._on_active is not None:
                self._on_active()
        else:
            if self._active.pop(session.id, None) is None:
                return
            if not self._active and self._on_idle is not None:
                self._on_idle()
