"""
Topic feeds: fixed sample sequences served by cursor.

- A feed never changes after registration; callers keep their own cursor.
- Cursors wrap modulo the feed length.
- Unknown topic names resolve to None; the scheduler turns that into a null frame.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Protocol


class TopicFeed(Protocol):
    name: str

    def __len__(self) -> int: ...

    def value_at(self, cursor: int) -> Any: ...


@dataclass(frozen=True)
class CyclicFeed:
    """Feed that repeats ``samples`` in order forever."""

    name: str
    samples: tuple

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("feed name must not be empty")
        object.__setattr__(self, "samples", tuple(self.samples))
        if not self.samples:
            raise ValueError(f"feed {self.name!r} has no samples")

    def __len__(self) -> int:
        return len(self.samples)

    def value_at(self, cursor: int) -> Any:
        return self.samples[cursor % len(self.samples)]


class FeedRegistry:
    """Topic name -> feed. Read-only once the server is running."""

    def __init__(self, feeds: Iterable[TopicFeed] = ()):
        self._feeds: Dict[str, TopicFeed] = {}
        for feed in feeds:
            self.register(feed)

    def register(self, feed: TopicFeed) -> None:
        if feed.name in self._feeds:
            raise ValueError(f"feed {feed.name!r} is already registered")
        self._feeds[feed.name] = feed

    def get(self, name: str) -> Optional[TopicFeed]:
        return self._feeds.get(name)

    def value_at(self, name: str, cursor: int) -> Any:
        feed = self._feeds.get(name)
        if feed is None:
            return None
        return feed.value_at(cursor)

    def names(self) -> tuple[str, ...]:
        return tuple(self._feeds)

    def __contains__(self, name: object) -> bool:
        return name in self._feeds

    def __len__(self) -> int:
        return len(self._feeds)


# Test route around a single block; headings follow the legs of the same loop.
NAVSATFIX_SAMPLES: tuple[dict[str, float], ...] = (
    {"lat": 40.046992, "lng": 116.28626},
    {"lat": 40.046992, "lng": 116.286496},
    {"lat": 40.047483, "lng": 116.286615},
    {"lat": 40.047276, "lng": 116.286094},
)
COMPASS_HDG_SAMPLES: tuple[float, ...] = (90.0, 10.5, 242.6, 155.9)


def default_feeds() -> FeedRegistry:
    return FeedRegistry(
        [
            CyclicFeed("navsatfix", NAVSATFIX_SAMPLES),
            CyclicFeed("compass_hdg", COMPASS_HDG_SAMPLES),
        ]
    )
