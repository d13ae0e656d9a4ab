"""Battle engine: the simulate-mode tick loop.

Each tick fills every living unit's action meter. Units whose meter fills
start their turn by ticking their own status effects, then act through the
ActionResolver. After every DoT tick and every action the lifecycle check
runs, so a kill can clear a stage or end the battle before the next queued
unit moves.

Everything that happens is recorded on the encounter both as a human-readable
line and as a tagged event; the event list can be fed back through
ReplayEngine to reproduce the battle.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from battlesim.config import DEFAULT_CONFIG, EngineConfig
from battlesim.lifecycle import Rewards, advance_stage, check_transition, compute_rewards
from battlesim.resolver import ActionResolver, TurnResult
from battlesim.roster import RosterSpec, build_roster, snapshot
from battlesim.rules import DEFAULT_RULES, RuleTable
from battlesim.scheduler import advance_meters
from battlesim.status import tick_effects
from battlesim.units import (
    EFFECT_LABELS,
    BattleEncounter,
    BattleMode,
    CombatUnit,
    Outcome,
)

logger = logging.getLogger(__name__)


@dataclass
class BattleResult:
    outcome: Outcome
    stage_index: int
    completed_stages: int
    total_stages: int
    ticks: int
    turns: int
    rewards: Rewards
    seed: int | None
    allies: list[dict[str, Any]] = field(default_factory=list)
    enemies: list[dict[str, Any]] = field(default_factory=list)
    action_log: list[str] = field(default_factory=list)
    events: list[dict[str, Any]] = field(default_factory=list)

    @property
    def victory(self) -> bool:
        return self.outcome is Outcome.VICTORY

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "victory": self.victory,
            "stageIndex": self.stage_index,
            "completedStages": self.completed_stages,
            "totalStages": self.total_stages,
            "ticks": self.ticks,
            "turns": self.turns,
            "rewards": self.rewards.to_dict(),
            "seed": self.seed,
            "allies": self.allies,
            "enemies": self.enemies,
            "actionLog": self.action_log,
            "events": self.events,
        }


StageClearedCallback = Callable[[int, Rewards], None]
BattleCompleteCallback = Callable[[BattleResult], None]


class BattleEngine:
    """Live combat simulation over one dungeon run."""

    def __init__(
        self,
        allies: list[CombatUnit],
        enemies: list[CombatUnit],
        match_seed: int = 42,
        rules: RuleTable = DEFAULT_RULES,
        config: EngineConfig = DEFAULT_CONFIG,
        playback_speed: int = 1,
        on_stage_cleared: StageClearedCallback | None = None,
        on_battle_complete: BattleCompleteCallback | None = None,
        notices: list[str] | None = None,
    ) -> None:
        if not allies or not enemies:
            raise ValueError("A battle needs at least one ally and one enemy")
        self.match_seed = match_seed
        self.config = config
        self.resolver = ActionResolver(rules, config)
        self.playback_speed = config.validate_speed(playback_speed)
        self.on_stage_cleared = on_stage_cleared
        self.on_battle_complete = on_battle_complete
        self.paused = False
        self._initial_allies = copy.deepcopy(allies)
        self._initial_enemies = copy.deepcopy(enemies)
        self._notices = list(notices or [])
        self.result: BattleResult | None = None
        self.encounter = self._new_encounter()

    @classmethod
    def from_roster(
        cls,
        roster: RosterSpec | dict[str, Any],
        **kwargs: Any,
    ) -> BattleEngine:
        """Build an engine straight from a JSON-shaped roster payload."""
        config = kwargs.get("config", DEFAULT_CONFIG)
        notices: list[str] = []
        allies, enemies = build_roster(roster, BattleMode.SIMULATE, config, notices)
        return cls(allies, enemies, notices=notices, **kwargs)

    # -- Controls ----------------------------------------------------------------

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def set_playback_speed(self, speed: int) -> None:
        """Change speed; the new multiplier applies from the next tick."""
        self.playback_speed = self.config.validate_speed(speed)

    def reset(self) -> None:
        """Restart the same roster from scratch."""
        self.paused = False
        self.result = None
        self.encounter = self._new_encounter()

    @property
    def is_complete(self) -> bool:
        return self.encounter.is_complete

    def units(self) -> list[dict[str, Any]]:
        return [snapshot(u) for u in self.encounter.units()]

    # -- Loop --------------------------------------------------------------------

    def tick(self) -> bool:
        """Advance one tick. Returns False when paused or already finished."""
        enc = self.encounter
        if self.paused or enc.is_complete:
            return False

        enc.tick_count += 1
        if enc.tick_count > self.config.max_ticks:
            enc.tick_count = self.config.max_ticks
            enc.system_message(
                f"Battle stopped after {self.config.max_ticks} ticks without a result."
            )
            logger.warning("Tick limit %d reached, ending as defeat", self.config.max_ticks)
            enc.outcome = Outcome.DEFEAT
            self._finish()
            return True

        stage = enc.stage_index
        ready = advance_meters(enc.units(), self.playback_speed, self.config)
        for unit in ready:
            if enc.is_complete or enc.stage_index != stage:
                break
            if not unit.is_alive:
                continue
            self._take_turn(unit)
        return True

    def run(self) -> BattleResult | None:
        """Tick until the battle ends. Returns None if paused before the end."""
        while not self.encounter.is_complete:
            if not self.tick():
                break
        return self.result

    # -- Turn handling -----------------------------------------------------------

    def _take_turn(self, unit: CombatUnit) -> TurnResult | None:
        if self._tick_unit_effects(unit):
            return None
        if not unit.is_alive:
            return None
        result = self.resolver.resolve_turn(self.encounter, unit, self.match_seed)
        if result is not None:
            self._check_lifecycle()
        return result

    def _tick_unit_effects(self, unit: CombatUnit) -> bool:
        """Tick unit's own effects. Returns True when that ended the stage or battle."""
        if not unit.status_effects:
            return False
        enc = self.encounter
        was_alive = unit.is_alive
        for tick in tick_effects(unit):
            label = EFFECT_LABELS[tick.kind]
            if tick.damage > 0:
                source = enc.find_unit(tick.source_id) if tick.source_id else None
                if source is not None:
                    source.damage_dealt += tick.damage
                enc.record(
                    {
                        "type": "dot",
                        "target": unit.id,
                        "source": tick.source_id,
                        "effect": tick.kind.value,
                        "damage": tick.damage,
                        "hp_remaining": unit.hp,
                    },
                    f"{unit.name} takes {tick.damage} damage from {label}!",
                )
            if tick.expired:
                enc.record(
                    {"type": "effect_expired", "target": unit.id, "effect": tick.kind.value},
                    f"{label} has worn off from {unit.name}!",
                )
        if was_alive and not unit.is_alive:
            enc.record({"type": "defeat", "target": unit.id}, f"{unit.name} has been defeated!")
            return self._check_lifecycle()
        return False

    def _check_lifecycle(self) -> bool:
        """Run the wipe/clear check. Returns True if the stage or battle ended."""
        outcome = check_transition(self.encounter)
        if outcome is Outcome.STAGE_CLEARED:
            self._clear_stage()
            return True
        if outcome.is_terminal:
            self._finish()
            return True
        return False

    def _clear_stage(self) -> None:
        enc = self.encounter
        cleared = enc.stage_index
        rewards = compute_rewards(cleared, self.config)
        new_enemies = advance_stage(enc, self.config)
        survivors = [u for u in enc.allies if u.is_alive]
        enc.record(
            {
                "type": "stage_progress",
                "stage": enc.stage_index + 1,
                "totalStages": enc.total_stages,
                "aliveAllies": [u.id for u in survivors],
                "enemies": [snapshot(u) for u in new_enemies],
            },
            f"Stage {cleared + 1} cleared! Advancing to stage {enc.stage_index + 1} of {enc.total_stages}.",
        )
        if self.on_stage_cleared is not None:
            self.on_stage_cleared(cleared, rewards)

    def _finish(self) -> None:
        enc = self.encounter
        rewards = compute_rewards(enc.stage_index, self.config)
        victory = enc.outcome is Outcome.VICTORY
        completed = enc.total_stages if victory else enc.stage_index
        survivors = [u for u in enc.allies if u.is_alive]
        if victory:
            message = f"Victory! All {enc.total_stages} stages cleared."
        else:
            message = f"Defeat on stage {enc.stage_index + 1} of {enc.total_stages}."
        enc.record(
            {
                "type": "battle_end",
                "victory": victory,
                "stage": enc.stage_index + 1,
                "completedStages": completed,
                "totalStages": enc.total_stages,
                "survivingAllies": [u.id for u in survivors],
                "rewards": rewards.to_dict(),
            },
            message,
        )
        logger.info(
            "Battle finished: %s at stage %d after %d ticks, %d turns",
            enc.outcome.value, enc.stage_index + 1, enc.tick_count, enc.turn_counter,
        )
        self.result = BattleResult(
            outcome=enc.outcome,
            stage_index=enc.stage_index,
            completed_stages=completed,
            total_stages=enc.total_stages,
            ticks=enc.tick_count,
            turns=enc.turn_counter,
            rewards=rewards,
            seed=self.match_seed,
            allies=[snapshot(u) for u in enc.allies],
            enemies=[snapshot(u) for u in enc.enemies],
            action_log=list(enc.action_log),
            events=list(enc.events),
        )
        if self.on_battle_complete is not None:
            self.on_battle_complete(self.result)

    # -- Setup -------------------------------------------------------------------

    def _new_encounter(self) -> BattleEncounter:
        allies = copy.deepcopy(self._initial_allies)
        enemies = copy.deepcopy(self._initial_enemies)
        enc = BattleEncounter(
            allies=allies,
            enemies=enemies,
            total_stages=self.config.total_stages,
            enemy_templates=copy.deepcopy(enemies),
        )
        for notice in self._notices:
            enc.system_message(notice)
        enc.record(
            {
                "type": "battle_start",
                "stage": 1,
                "totalStages": enc.total_stages,
                "seed": self.match_seed,
                "allies": [snapshot(u) for u in allies],
                "enemies": [snapshot(u) for u in enemies],
            },
            f"Battle started! Stage 1 of {enc.total_stages}.",
        )
        return enc
