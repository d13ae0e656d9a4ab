"""Battle session: one battle view over either a live simulation or a replay."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from battlesim.config import DEFAULT_CONFIG, EngineConfig
from battlesim.engine import BattleCompleteCallback, BattleEngine, BattleResult, StageClearedCallback
from battlesim.replay import ReplayEngine
from battlesim.roster import RosterSpec, snapshot
from battlesim.rules import DEFAULT_RULES, RuleTable
from battlesim.units import BattleEncounter, BattleMode

logger = logging.getLogger(__name__)


class SessionClosedError(RuntimeError):
    pass


class BattleSession:
    """Steps a battle from whichever source the mode selects.

    Simulate mode advances a BattleEngine by one tick per step. Replay mode
    applies ``playback_speed`` log events per step, so speed changes feel the
    same in both modes under a fixed-interval driver.
    """

    def __init__(
        self,
        mode: BattleMode,
        roster: RosterSpec | dict[str, Any] | None = None,
        events: Sequence[Any] | None = None,
        match_seed: int = 42,
        rules: RuleTable = DEFAULT_RULES,
        config: EngineConfig = DEFAULT_CONFIG,
        playback_speed: int = 1,
        on_stage_cleared: StageClearedCallback | None = None,
        on_battle_complete: BattleCompleteCallback | None = None,
    ) -> None:
        self.mode = mode
        self.config = config
        self.playback_speed = config.validate_speed(playback_speed)
        self.paused = False
        self.closed = False
        self._engine: BattleEngine | None = None
        self._replay: ReplayEngine | None = None

        if mode is BattleMode.SIMULATE:
            if roster is None:
                raise ValueError("Simulate mode needs a roster")
            self._engine = BattleEngine.from_roster(
                roster,
                match_seed=match_seed,
                rules=rules,
                config=config,
                playback_speed=playback_speed,
                on_stage_cleared=on_stage_cleared,
                on_battle_complete=on_battle_complete,
            )
        else:
            if events is None:
                raise ValueError("Replay mode needs an event log")
            self._replay = ReplayEngine(
                events,
                config=config,
                on_stage_cleared=on_stage_cleared,
                on_battle_complete=on_battle_complete,
            )

    @classmethod
    def simulate(cls, roster: RosterSpec | dict[str, Any], **kwargs: Any) -> BattleSession:
        return cls(BattleMode.SIMULATE, roster=roster, **kwargs)

    @classmethod
    def replay(cls, events: Sequence[Any], **kwargs: Any) -> BattleSession:
        return cls(BattleMode.REPLAY, events=events, **kwargs)

    # -- State -------------------------------------------------------------------

    @property
    def encounter(self) -> BattleEncounter:
        if self._engine is not None:
            return self._engine.encounter
        return self._replay.encounter

    @property
    def result(self) -> BattleResult | None:
        if self._engine is not None:
            return self._engine.result
        return self._replay.result

    @property
    def is_complete(self) -> bool:
        if self._engine is not None:
            return self._engine.is_complete
        return self._replay.is_complete

    @property
    def skipped(self) -> int:
        """Replay events dropped as malformed (always 0 when simulating)."""
        return self._replay.skipped if self._replay is not None else 0

    @property
    def action_log(self) -> list[str]:
        return self.encounter.action_log

    def units(self) -> list[dict[str, Any]]:
        return [snapshot(u) for u in self.encounter.units()]

    # -- Controls ----------------------------------------------------------------

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def set_playback_speed(self, speed: int) -> None:
        self.playback_speed = self.config.validate_speed(speed)
        if self._engine is not None:
            self._engine.set_playback_speed(speed)

    def step(self) -> bool:
        """Advance by one tick. Returns False when nothing advanced."""
        if self.closed:
            raise SessionClosedError("Battle session is closed")
        if self.paused or self.is_complete:
            return False
        if self._engine is not None:
            return self._engine.tick()
        advanced = False
        for _ in range(self.playback_speed):
            if not self._replay.step():
                break
            advanced = True
        return advanced

    def run(self) -> BattleResult | None:
        """Step until the battle ends or the session is paused."""
        while self.step():
            pass
        return self.result

    def close(self) -> None:
        """Drop all battle-local state; the session cannot be stepped again."""
        if self._engine is not None:
            self._engine.reset()
        else:
            self._replay.reset()
        self.paused = False
        self.closed = True
        logger.debug("Closed %s session", self.mode.value)
