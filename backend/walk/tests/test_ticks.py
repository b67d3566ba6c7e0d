import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from walk.mirror import EphemeralSessionView
from walk.services import tick_for
from walk.ticks import TickLoop, TickRegistry


def make_view(clock, stake=1000):
    return EphemeralSessionView(
        session_id="s-1",
        user_id=1,
        stake=stake,
        started_at=clock().isoformat(),
        hazard_second=7,
        status="ACTIVE",
    )


def test_tick_for_reports_elapsed_second(cfg, clock):
    view = make_view(clock)
    event = tick_for(view, clock.now + timedelta(seconds=5, milliseconds=900), cfg)
    assert event.second == 5
    assert event.preview_payout == 970
    assert event.next_second_hazard_risk == Decimal("0.03")


def test_tick_for_caps_at_horizon(cfg, clock):
    view = make_view(clock)
    event = tick_for(view, clock.now + timedelta(minutes=5), cfg)
    assert event.second == cfg.max_duration
    assert event.next_second_hazard_risk == Decimal("0.10")


def test_tick_for_before_start(cfg, clock):
    event = tick_for(make_view(clock), clock.now - timedelta(seconds=3), cfg)
    assert event.second == 0
    assert event.preview_payout == 0


def test_tick_for_first_second(cfg, clock):
    event = tick_for(make_view(clock), clock.now + timedelta(seconds=1), cfg)
    assert event.second == 1
    assert event.preview_payout == 930


class ScriptedPoll:
    def __init__(self, *payloads, repeat_last=False):
        self.payloads = list(payloads)
        self.repeat_last = repeat_last
        self.calls = 0

    async def __call__(self, session_id):
        self.calls += 1
        if len(self.payloads) > 1 or not self.repeat_last:
            return self.payloads.pop(0)
        return self.payloads[0]


def test_loop_stops_after_result():
    sent = []

    async def send(payload):
        sent.append(payload)

    async def scenario():
        poll = ScriptedPoll({"type": "tick", "second": 1}, {"type": "tick", "second": 2}, {"type": "result"})
        loop = TickLoop("s-1", poll, send, interval=0)
        loop.attach("observer")
        await loop.wait()
        return loop

    loop = asyncio.run(scenario())
    assert [p["type"] for p in sent] == ["tick", "tick", "result"]
    assert loop.finished
    assert not loop.running


def test_loop_stops_when_last_observer_leaves():
    sent = []

    async def send(payload):
        sent.append(payload)

    async def scenario():
        loop = TickLoop("s-1", ScriptedPoll({"type": "tick"}, repeat_last=True), send, interval=0.01)
        loop.attach("a")
        loop.attach("b")
        await asyncio.sleep(0.05)
        assert loop.detach("a") is False
        assert loop.running
        assert loop.detach("b") is True
        await loop.wait()
        return loop

    loop = asyncio.run(scenario())
    assert not loop.running
    assert not loop.finished
    assert sent


def test_loop_reports_poll_error_and_stops(caplog):
    sent = []

    async def poll(session_id):
        raise RuntimeError("db gone")

    async def send(payload):
        sent.append(payload)

    async def scenario():
        loop = TickLoop("s-1", poll, send, interval=0)
        loop.attach("a")
        await loop.wait()
        return loop

    loop = asyncio.run(scenario())
    assert not loop.running
    assert loop.finished
    assert sent == [{"type": "error", "session_id": "s-1", "code": "tick_unavailable"}]
    assert "tick poll failed" in caplog.text


def test_loop_stops_on_send_error(caplog):
    poll = ScriptedPoll({"type": "tick"}, repeat_last=True)

    async def send(payload):
        raise ConnectionError("layer gone")

    async def scenario():
        loop = TickLoop("s-1", poll, send, interval=0)
        loop.attach("a")
        await loop.wait()
        return loop

    loop = asyncio.run(scenario())
    assert not loop.running
    assert loop.finished
    assert poll.calls == 1
    assert "tick send failed" in caplog.text


def test_loop_stops_on_hazard_payload():
    sent = []

    async def send(payload):
        sent.append(payload)

    async def scenario():
        poll = ScriptedPoll({"type": "tick"}, {"type": "hazard", "outcome": "LOSS"})
        loop = TickLoop("s-1", poll, send, interval=0)
        loop.attach("a")
        await loop.wait()
        return loop

    loop = asyncio.run(scenario())
    assert [p["type"] for p in sent] == ["tick", "hazard"]
    assert loop.finished


def test_registry_shares_one_loop_per_session():
    async def send(payload):
        pass

    async def scenario():
        registry = TickRegistry()
        poll = ScriptedPoll({"type": "tick"}, repeat_last=True)
        first = registry.attach("s-1", "a", poll, send, 0.01)
        second = registry.attach("s-1", "b", poll, send, 0.01)
        assert first is second

        registry.detach("s-1", "a")
        assert "s-1" in registry.loops
        registry.detach("s-1", "b")
        assert "s-1" not in registry.loops
        await first.wait()

    asyncio.run(scenario())


def test_registry_replaces_finished_loop():
    async def send(payload):
        pass

    async def scenario():
        registry = TickRegistry()
        done = registry.attach("s-1", "a", ScriptedPoll({"type": "result"}), send, 0)
        await done.wait()
        assert done.finished

        fresh = registry.attach("s-1", "b", ScriptedPoll({"type": "result"}), send, 0)
        assert fresh is not done
        await fresh.wait()

    asyncio.run(scenario())
