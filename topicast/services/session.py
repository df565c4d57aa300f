"""
Per-connection subscription state.

A session is either unsubscribed (no topics) or subscribed (one or more topics,
each with its own rotation cursor). Topics and cursors live in one ordered
mapping, so a cursor exists exactly while its topic is subscribed.

Mutations come from two places: the connection's own control messages and the
broadcast tick. Both go through ``session.lock``.
"""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple

from topicast.services.protocol import EmptySubscribeTopic

if TYPE_CHECKING:
    from topicast.services.dispatch import Dispatcher
    from topicast.services.feeds import FeedRegistry

logger = logging.getLogger("topicast.session")

def new_session_id() -> str:
    return f"client_{int(time.time() * 1000)}_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class SubscribeResult:
    added: Tuple[str, ...]
    topics: Tuple[str, ...]
    activated: bool


@dataclass(frozen=True)
class UnsubscribeResult:
    removed: Tuple[str, ...]
    topics: Tuple[str, ...]
    was_subscribed: bool
    deactivated: bool


def _unique(topics: Iterable[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(topics))


class ClientSession:
    def __init__(self, session_id: str, dispatcher: "Dispatcher"):
        self.id = session_id
        self.dispatcher = dispatcher
        self.lock = asyncio.Lock()
        self.connected_at = time.time()
        self.last_activity = self.connected_at
        self.message_counter = 0
        self._cursors: Dict[str, int] = {}

    def __repr__(self) -> str:
        return f"ClientSession(id={self.id!r}, topics={list(self._cursors)!r})"

    @property
    def subscribed_topics(self) -> Tuple[str, ...]:
        return tuple(self._cursors)

    @property
    def cursors(self) -> Dict[str, int]:
        return dict(self._cursors)

    @property
    def is_subscribed(self) -> bool:
        return bool(self._cursors)

    def touch(self) -> None:
        self.last_activity = time.time()

    def subscribe(self, topics: Iterable[str]) -> SubscribeResult:
        """Add topics (set union). Already-subscribed topics keep their cursor."""
        names = _unique(topics)
        if not names:
            raise EmptySubscribeTopic()
        activated = not self._cursors
        if activated:
            self.message_counter = 0
        added = tuple(name for name in names if name not in self._cursors)
        for name in added:
            self._cursors[name] = 0
        return SubscribeResult(added=added, topics=self.subscribed_topics, activated=activated)

    def unsubscribe(self, topics: Optional[Iterable[str]] = None) -> UnsubscribeResult:
        """Drop the given topics, or all of them when ``topics`` is None.

        Emptying the topic set resets the message counter.
        """
        if not self._cursors:
            return UnsubscribeResult(removed=(), topics=(), was_subscribed=False, deactivated=False)

        if topics is None:
            removed = self.subscribed_topics
            self._cursors.clear()
        else:
            removed = tuple(
                name for name in _unique(topics) if self._cursors.pop(name, None) is not None
            )

        deactivated = not self._cursors
        if deactivated:
            self.message_counter = 0
        return UnsubscribeResult(
            removed=removed,
            topics=self.subscribed_topics,
            was_subscribed=True,
            deactivated=deactivated,
        )

    def advance(self, feeds: "FeedRegistry") -> Tuple[int, List[Tuple[str, Any]]]:
        """Take this tick's sample for every subscribed topic.

        Bumps the message counter once and moves each topic's cursor by one.
        Topics without a feed, or whose feed raises, yield None and keep their
        cursor.
        """
        if not self._cursors:
            return self.message_counter, []
        self.message_counter += 1
        samples: List[Tuple[str, Any]] = []
        for topic in list(self._cursors):
            feed = feeds.get(topic)
            if feed is None:
                samples.append((topic, None))
                continue
            cursor = self._cursors[topic]
            try:
                value = feed.value_at(cursor)
                size = len(feed)
            except Exception:
                logger.warning(
                    "Feed %r failed at cursor %d for %s", topic, cursor, self.id, exc_info=True
                )
                samples.append((topic, None))
                continue
            samples.append((topic, value))
            self._cursors[topic] = (cursor + 1) % size
        return self.message_counter, samples
