from __future__ import annotations

import asyncio

from battlesim.engine import BattleEngine
from battlesim.session import BattleSession
from battlesim.ticker import Ticker
from battlesim.units import Outcome
from tests.helpers.builders import easy_roster, hopeless_roster


async def _no_sleep(_: float) -> None:
    return None


def test_ticker_drives_session_and_publishes_every_event() -> None:
    session = BattleSession.simulate(hopeless_roster())
    ticker = Ticker(session, sleep=_no_sleep)

    async def scenario():
        result = await ticker.run()
        published = [event async for event in ticker.events()]
        return result, published

    result, published = asyncio.run(scenario())

    assert result.outcome is Outcome.DEFEAT
    assert ticker.ticks == 50
    assert published == result.events


def test_ticker_sleeps_the_configured_interval() -> None:
    slept: list[float] = []

    async def record_sleep(seconds: float) -> None:
        slept.append(seconds)

    session = BattleSession.simulate(easy_roster())
    asyncio.run(Ticker(session, sleep=record_sleep).run(max_ticks=3))

    assert slept == [0.3, 0.3, 0.3]


def test_max_ticks_stops_an_unfinished_battle() -> None:
    session = BattleSession.simulate(easy_roster())
    ticker = Ticker(session, interval_ms=0, sleep=_no_sleep)

    result = asyncio.run(ticker.run(max_ticks=10))

    assert result is None
    assert ticker.ticks == 10
    assert session.encounter.tick_count == 10


def test_paused_session_keeps_loop_alive_without_state_changes() -> None:
    session = BattleSession.simulate(easy_roster())
    session.pause()
    ticker = Ticker(session, sleep=_no_sleep)

    asyncio.run(ticker.run(max_ticks=5))

    assert ticker.ticks == 5
    assert session.encounter.tick_count == 0


def test_replay_session_publishes_log_through_ticker() -> None:
    events = BattleEngine.from_roster(hopeless_roster()).run().events
    session = BattleSession.replay(events, playback_speed=2)
    ticker = Ticker(session, sleep=_no_sleep)

    async def scenario():
        await ticker.run()
        return [event async for event in ticker.events()]

    published = asyncio.run(scenario())

    assert [e["type"] for e in published] == [e["type"] for e in events]
    assert session.result.outcome is Outcome.DEFEAT
