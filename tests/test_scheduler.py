"""Tests for topicast.services.scheduler: ticks, cursors and timer lifecycle."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from topicast.services.dispatch import Dispatcher
from topicast.services.feeds import COMPASS_HDG_SAMPLES, NAVSATFIX_SAMPLES, default_feeds
from topicast.services.registry import SubscriptionRegistry
from topicast.services.scheduler import TIMER_TASK_NAME, BroadcastScheduler
from topicast.services.session import ClientSession, new_session_id


class _GlitchingFeed:
    def __init__(self, name: str) -> None:
        self.name = name

    def __len__(self) -> int:
        return 3

    def value_at(self, cursor: int) -> Any:
        raise RuntimeError("sensor glitch")


def _live_timers() -> list[asyncio.Task]:
    return [t for t in asyncio.all_tasks() if t.get_name() == TIMER_TASK_NAME and not t.done()]


class TestTick:
    @pytest.mark.asyncio
    async def test_single_topic_cycles_in_order(self, harness) -> None:
        session, transport = await harness.connect()
        await harness.registry.subscribe(session, ["navsatfix"])

        await harness.ticks(5)

        values = [f["data"]["data"] for f in transport.topic_frames()]
        assert values == list(NAVSATFIX_SAMPLES) + [NAVSATFIX_SAMPLES[0]]
        assert [f["data"]["counter"] for f in transport.topic_frames()] == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_two_topics_two_frames_per_tick(self, harness) -> None:
        session, transport = await harness.connect()
        await harness.registry.subscribe(session, ["compass_hdg", "navsatfix"])

        await harness.ticks(3)

        frames = transport.topic_frames()
        assert len(frames) == 6
        assert [f["data"]["data"] for f in transport.topic_frames("navsatfix")] == list(
            NAVSATFIX_SAMPLES[:3]
        )
        assert [f["data"]["data"] for f in transport.topic_frames("compass_hdg")] == list(
            COMPASS_HDG_SAMPLES[:3]
        )
        assert session.message_counter == 3
        # one counter value per tick, shared by both frames of that tick
        assert [f["data"]["counter"] for f in frames] == [1, 1, 2, 2, 3, 3]

    @pytest.mark.asyncio
    async def test_sessions_do_not_share_cursors(self, harness) -> None:
        a, ta = await harness.connect()
        b, tb = await harness.connect()
        await harness.registry.subscribe(a, ["navsatfix"])
        await harness.ticks(2)
        await harness.registry.subscribe(b, ["navsatfix"])
        await harness.ticks(1)

        assert [f["data"]["data"] for f in ta.topic_frames()] == list(NAVSATFIX_SAMPLES[:3])
        assert [f["data"]["data"] for f in tb.topic_frames()] == [NAVSATFIX_SAMPLES[0]]
        assert a.cursors == {"navsatfix": 3}
        assert b.cursors == {"navsatfix": 1}

    @pytest.mark.asyncio
    async def test_missing_feed_sends_null_and_keeps_going(self, harness) -> None:
        session, transport = await harness.connect()
        await harness.registry.subscribe(session, ["ghost", "compass_hdg"])

        await harness.ticks(1)

        ghost = transport.topic_frames("ghost")
        assert len(ghost) == 1
        assert ghost[0]["data"]["data"] is None
        assert transport.topic_frames("compass_hdg")[0]["data"]["data"] == COMPASS_HDG_SAMPLES[0]

    @pytest.mark.asyncio
    async def test_resubscribe_does_not_reset_cursor(self, harness) -> None:
        session, transport = await harness.connect()
        await harness.registry.subscribe(session, ["navsatfix"])
        await harness.ticks(2)
        await harness.registry.subscribe(session, ["navsatfix"])
        await harness.ticks(1)

        assert transport.topic_frames()[-1]["data"]["data"] == NAVSATFIX_SAMPLES[2]
        assert session.message_counter == 3

    @pytest.mark.asyncio
    async def test_closed_connection_does_not_abort_tick(self, harness) -> None:
        a, ta = await harness.connect()
        b, tb = await harness.connect()
        await harness.registry.subscribe(a, ["navsatfix"])
        await harness.registry.subscribe(b, ["navsatfix"])
        ta.open = False

        sent = await harness.scheduler.tick()
        await harness.ticks(0)

        assert sent == 1
        assert ta.sent == []
        assert len(tb.topic_frames()) == 1

    @pytest.mark.asyncio
    async def test_failing_send_does_not_affect_others(self, harness) -> None:
        a, ta = await harness.connect()
        b, tb = await harness.connect()
        await harness.registry.subscribe(a, ["navsatfix", "compass_hdg"])
        await harness.registry.subscribe(b, ["compass_hdg"])
        ta.fail = True

        await harness.ticks(2)

        assert a.dispatcher.failed == 4
        assert len(tb.topic_frames()) == 2

    @pytest.mark.asyncio
    async def test_raising_feed_yields_null_and_keeps_tick_going(self, harness) -> None:
        harness.feeds.register(_GlitchingFeed("sonar"))
        a, ta = await harness.connect()
        b, tb = await harness.connect()
        await harness.registry.subscribe(a, ["compass_hdg", "sonar"])
        await harness.registry.subscribe(b, ["compass_hdg"])

        await harness.ticks(2)

        a_frames = ta.topic_frames()
        assert [f["data"]["topic"] for f in a_frames] == ["compass_hdg", "sonar"] * 2
        assert [f["data"]["data"] for f in ta.topic_frames("sonar")] == [None, None]
        assert [f["data"]["data"] for f in ta.topic_frames("compass_hdg")] == list(
            COMPASS_HDG_SAMPLES[:2]
        )
        assert a.cursors == {"compass_hdg": 2, "sonar": 0}
        assert a.message_counter == 2
        assert [f["data"]["data"] for f in tb.topic_frames()] == list(COMPASS_HDG_SAMPLES[:2])

    @pytest.mark.asyncio
    async def test_frames_carry_subscriber_count(self, harness) -> None:
        a, ta = await harness.connect()
        b, tb = await harness.connect()
        await harness.connect()
        await harness.registry.subscribe(a, ["navsatfix"])
        await harness.registry.subscribe(b, ["compass_hdg"])

        await harness.ticks(1)

        for frame in ta.topic_frames() + tb.topic_frames():
            assert frame["data"]["subscribedClientsCount"] == 2

    @pytest.mark.asyncio
    async def test_no_active_sessions_is_noop(self, harness) -> None:
        await harness.connect()
        assert await harness.scheduler.tick() == 0
        assert harness.scheduler.ticks == 0

    @pytest.mark.asyncio
    async def test_counters(self, harness) -> None:
        session, _ = await harness.connect()
        await harness.registry.subscribe(session, ["navsatfix", "compass_hdg"])
        await harness.ticks(2)
        assert harness.scheduler.ticks == 2
        assert harness.scheduler.frames_queued == 4


class TestTimerLifecycle:
    @pytest.mark.asyncio
    async def test_start_stop_idempotent(self) -> None:
        scheduler = BroadcastScheduler(SubscriptionRegistry(), default_feeds(), 0.1)
        assert scheduler.start() is True
        assert scheduler.start() is False
        assert len(_live_timers()) == 1
        assert scheduler.is_running
        assert scheduler.stop() is True
        assert scheduler.stop() is False
        assert not scheduler.is_running
        await asyncio.sleep(0.01)
        assert _live_timers() == []

    @pytest.mark.asyncio
    async def test_timer_follows_active_count(self, make_transport) -> None:
        feeds = default_feeds()
        holder: dict = {}
        registry = SubscriptionRegistry(
            on_active=lambda: holder["scheduler"].start(),
            on_idle=lambda: holder["scheduler"].stop(),
        )
        scheduler = BroadcastScheduler(registry, feeds, 0.1)
        holder["scheduler"] = scheduler

        sessions = [ClientSession(new_session_id(), Dispatcher(make_transport())) for _ in range(4)]
        for s in sessions:
            await registry.add(s)

        async def churn(s: ClientSession) -> None:
            for _ in range(10):
                await registry.subscribe(s, ["navsatfix"])
                await asyncio.sleep(0)
                await registry.unsubscribe(s)

        await asyncio.gather(*(churn(s) for s in sessions))
        await asyncio.sleep(0.01)
        assert not scheduler.is_running
        assert _live_timers() == []

        await registry.subscribe(sessions[0], ["navsatfix"])
        await registry.subscribe(sessions[1], ["compass_hdg"])
        await asyncio.sleep(0.01)
        assert scheduler.is_running
        assert len(_live_timers()) == 1

        await registry.remove(sessions[0].id)
        assert scheduler.is_running
        await registry.remove(sessions[1].id)
        await asyncio.sleep(0.01)
        assert not scheduler.is_running
        assert _live_timers() == []

    @pytest.mark.asyncio
    async def test_running_timer_delivers_frames(self, harness) -> None:
        session, transport = await harness.connect()
        await harness.registry.subscribe(session, ["navsatfix"])
        harness.scheduler.start()

        await asyncio.sleep(0.35)
        await harness.scheduler.aclose()
        await session.dispatcher.flush()

        values = [f["data"]["data"] for f in transport.topic_frames()]
        assert len(values) >= 1
        assert values == [NAVSATFIX_SAMPLES[i % 4] for i in range(len(values))]
