# walk/ticks.py
from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)


class TickLoop:
    """
    Fixed-cadence broadcaster for one session.

    ``poll`` is an async callable returning the next payload (see
    ``WalkEngine.poll_tick``); ``send`` relays it to observers. The loop
    runs while at least one observer is attached and stops on its own after
    relaying the first non-tick payload. A failed poll is relayed as a final
    ``error`` payload; a failed send ends the loop.
    """

    def __init__(self, session_id: str, poll, send, interval: float = 1.0):
        self.session_id = str(session_id)
        self.poll = poll
        self.send = send
        self.interval = interval
        self.observers = set()
        self._task = None
        self.finished = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def attach(self, observer) -> None:
        self.observers.add(observer)
        if not self.running and not self.finished:
            self._task = asyncio.ensure_future(self._run())

    def detach(self, observer) -> bool:
        """Returns True once nobody is watching and the loop is cancelled."""
        self.observers.discard(observer)
        if self.observers:
            return False
        if self.running:
            self._task.cancel()
        return True

    async def wait(self) -> None:
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_at = loop.time()
        while self.observers:
            try:
                payload = await self.poll(self.session_id)
            except Exception:
                logger.exception("tick poll failed for session %s", self.session_id)
                payload = {
                    "type": "error",
                    "session_id": self.session_id,
                    "code": "tick_unavailable",
                }

            try:
                await self.send(payload)
            except Exception:
                logger.exception("tick send failed for session %s", self.session_id)
                self.finished = True
                break

            if payload.get("type") != "tick":
                self.finished = True
                break

            # fixed cadence: sleep to the next slot, not for a full interval
            next_at += self.interval
            await asyncio.sleep(max(next_at - loop.time(), 0))


class TickRegistry:
    """One loop per session per process."""

    def __init__(self):
        self.loops = {}

    def attach(self, session_id, observer, poll, send, interval: float) -> TickLoop:
        key = str(session_id)
        tick_loop = self.loops.get(key)
        if tick_loop is None or tick_loop.finished:
            tick_loop = TickLoop(key, poll, send, interval)
            self.loops[key] = tick_loop
        tick_loop.attach(observer)
        return tick_loop

    def detach(self, session_id, observer) -> None:
        key = str(session_id)
        tick_loop = self.loops.get(key)
        if tick_loop is not None and tick_loop.detach(observer):
            self.loops.pop(key, None)
