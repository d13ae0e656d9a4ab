"""Fixed-step game loop over a BattleSession.

All state changes happen synchronously inside ``session.step()``. The
ticker only decides when to call it, then publishes the events that step
produced on a queue for presentation code to animate at its own pace.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from battlesim.engine import BattleResult
from battlesim.session import BattleSession
from battlesim.units import BattleEncounter

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class Ticker:
    def __init__(
        self,
        session: BattleSession,
        interval_ms: int | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.session = session
        self.interval = (interval_ms if interval_ms is not None else session.config.tick_interval_ms) / 1000
        self.queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self.ticks = 0
        self._sleep = sleep
        self._stopped = False
        self._encounter: BattleEncounter | None = None
        self._published = 0

    def stop(self) -> None:
        self._stopped = True

    def _publish(self) -> None:
        encounter = self.session.encounter
        if encounter is not self._encounter:
            self._encounter = encounter
            self._published = 0
        for event in encounter.events[self._published:]:
            self.queue.put_nowait(event)
        self._published = len(encounter.events)

    async def run(self, max_ticks: int | None = None) -> BattleResult | None:
        """Drive the session until it completes, is stopped, or max_ticks elapse.

        Paused sessions keep the loop alive without advancing state.
        """
        self._publish()
        try:
            while not self._stopped and not self.session.is_complete:
                if max_ticks is not None and self.ticks >= max_ticks:
                    break
                self.ticks += 1
                if self.session.step():
                    self._publish()
                await self._sleep(self.interval)
        finally:
            self.queue.put_nowait(None)
        logger.debug("Ticker finished after %d ticks", self.ticks)
        return self.session.result

    async def events(self) -> AsyncIterator[dict[str, Any]]:
        """Yield published events until the loop finishes."""
        while True:
            event = await self.queue.get()
            if event is None:
                return
            yield event
