"""Replay engine: drives the battle model from a pre-computed event log.

Accepts the events BattleEngine records as well as the looser shapes a game
server sends (``init`` for ``battle_start``, ``round`` events bundling
several actions, actions nested under ``data``, 1-based stage numbers).
Each event is validated on its own; anything malformed is logged and
skipped so one bad entry never aborts the replay.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from battlesim.config import DEFAULT_CONFIG, EngineConfig
from battlesim.engine import BattleCompleteCallback, BattleResult, StageClearedCallback
from battlesim.lifecycle import compute_rewards
from battlesim.roster import UnitSpec, build_units, coerce_number, parse_effect_kind, snapshot
from battlesim.status import apply_effect, remove_effect, strip_negative_effects
from battlesim.units import (
    EFFECT_LABELS,
    BattleEncounter,
    BattleMode,
    CombatUnit,
    Outcome,
    Side,
    StatusEffect,
)

logger = logging.getLogger(__name__)


class ReplayError(ValueError):
    """An event that cannot be applied to the current battle state."""


def _text(v: Any) -> str | None:
    if v is None or isinstance(v, bool):
        return None
    text = str(v).strip()
    return text or None


def _number(v: Any) -> float | None:
    return coerce_number(v)


class ReplayEvent(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, allow_inf_nan=False)

    types: ClassVar[tuple[str, ...]] = ()

    type: str
    message: str | None = None


class BattleStartEvent(ReplayEvent):
    types = ("battle_start", "init")

    allies: list[dict[str, Any]] = Field(default_factory=list)
    enemies: list[dict[str, Any]] = Field(default_factory=list)
    stage: int = 1
    total_stages: int | None = Field(default=None, alias="totalStages")

    @model_validator(mode="before")
    @classmethod
    def unwrap_data(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = {**data["data"], **{k: v for k, v in data.items() if k != "data"}}
        return data

    @field_validator("allies", "enemies", mode="before")
    @classmethod
    def only_objects(cls, v: Any) -> list[dict[str, Any]]:
        if not isinstance(v, list):
            raise ValueError("unit list must be an array")
        return [u for u in v if isinstance(u, dict)]


class ActionEvent(ReplayEvent):
    types = ("action",)

    actor: str | None = None
    target: str | None = None
    skill: str | None = None
    damage: float = 0
    healing: float = 0
    is_critical: bool = Field(default=False, alias="isCritical")
    hp_remaining: float | None = None
    turn: int | None = None

    @model_validator(mode="before")
    @classmethod
    def flatten(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            raise ValueError("action must be an object")
        merged = dict(data)
        nested = merged.pop("data", None)
        if isinstance(nested, dict):
            merged = {**nested, **merged}
        merged.setdefault("type", "action")
        if "actor" not in merged:
            merged["actor"] = merged.get("source", merged.get("attacker"))
        for key in ("damage", "healing"):
            number = _number(merged.get(key))
            merged[key] = number if number is not None and number > 0 else 0
        merged["hp_remaining"] = _number(merged.get("hp_remaining", merged.get("targetHp")))
        return merged

    @field_validator("actor", "target", "skill", mode="before")
    @classmethod
    def as_text(cls, v: Any) -> str | None:
        return _text(v)


class RoundEvent(ReplayEvent):
    types = ("round",)

    round: int | None = None
    actions: list[dict[str, Any]]

    @field_validator("actions", mode="before")
    @classmethod
    def action_list(cls, v: Any) -> list[Any]:
        if not isinstance(v, list):
            raise ValueError("round actions must be an array")
        return v


class StatusEvent(ReplayEvent):
    types = ("status",)

    target: str
    effect: str
    magnitude: float = 0
    turns: int = 1
    source: str | None = None
    applied: bool = True

    @model_validator(mode="before")
    @classmethod
    def flatten(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = {**data["data"], **{k: v for k, v in data.items() if k != "data"}}
        return data

    @model_validator(mode="after")
    def applied_needs_turns(self) -> StatusEvent:
        if self.applied and self.turns < 1:
            raise ValueError(f"applied effect needs at least 1 turn, got {self.turns}")
        return self

    @field_validator("target", "source", mode="before")
    @classmethod
    def as_text(cls, v: Any) -> str | None:
        return _text(v)


class DotEvent(ReplayEvent):
    types = ("dot",)

    target: str
    damage: float
    effect: str | None = None
    source: str | None = None
    hp_remaining: float | None = None

    @field_validator("target", "source", mode="before")
    @classmethod
    def as_text(cls, v: Any) -> str | None:
        return _text(v)


class HealEvent(ReplayEvent):
    types = ("heal",)

    source: str | None = None
    target: str
    healing: float
    hp_remaining: float | None = None

    @field_validator("target", "source", mode="before")
    @classmethod
    def as_text(cls, v: Any) -> str | None:
        return _text(v)


class EffectRemovedEvent(ReplayEvent):
    types = ("cleanse", "effect_expired")

    source: str | None = None
    target: str
    effect: str

    @field_validator("target", "source", mode="before")
    @classmethod
    def as_text(cls, v: Any) -> str | None:
        return _text(v)


class MeterPushEvent(ReplayEvent):
    types = ("meter_push",)

    source: str | None = None
    target: str
    meter: float = 0

    @field_validator("target", "source", mode="before")
    @classmethod
    def as_text(cls, v: Any) -> str | None:
        return _text(v)


class DefeatEvent(ReplayEvent):
    types = ("defeat",)

    target: str

    @model_validator(mode="before")
    @classmethod
    def target_from_actor(cls, data: Any) -> Any:
        if isinstance(data, dict) and "target" not in data:
            data = {**data, "target": data.get("actor") or data.get("unit")}
        return data

    @field_validator("target", mode="before")
    @classmethod
    def as_text(cls, v: Any) -> str | None:
        return _text(v)


class StageEvent(ReplayEvent):
    types = ("stage_progress", "stage_start", "stage", "stage_complete")

    stage: int
    total_stages: int | None = Field(default=None, alias="totalStages")
    enemies: list[dict[str, Any]] | None = None

    @model_validator(mode="before")
    @classmethod
    def normalise(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if isinstance(data.get("data"), dict):
            data = {**data.pop("data"), **data}
        if "stage" not in data:
            data["stage"] = data.get("currentStage")
        if data.get("enemies") is None and data.get("newEnemies") is not None:
            data["enemies"] = data["newEnemies"]
        if data.get("enemies") is not None and not isinstance(data["enemies"], list):
            raise ValueError("enemies must be an array")
        return data

    @field_validator("stage")
    @classmethod
    def positive_stage(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"stage numbers start at 1, got {v}")
        return v


class SystemMessageEvent(ReplayEvent):
    types = ("system_message",)

    message: str

    @model_validator(mode="before")
    @classmethod
    def message_alias(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("message"):
            data = {**data, "message": data.get("system_message")}
        return data


class BattleEndEvent(ReplayEvent):
    types = ("battle_end", "victory")

    victory: bool
    stage: int | None = None

    @model_validator(mode="before")
    @classmethod
    def normalise(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "victory" not in data:
            data["victory"] = data.get("type") == "victory"
        if data.get("stage") is None:
            data["stage"] = data.get("currentStage")
        return data


_EVENT_MODELS: dict[str, type[ReplayEvent]] = {}
for _model in (
    BattleStartEvent,
    ActionEvent,
    RoundEvent,
    StatusEvent,
    DotEvent,
    HealEvent,
    EffectRemovedEvent,
    MeterPushEvent,
    DefeatEvent,
    StageEvent,
    SystemMessageEvent,
    BattleEndEvent,
):
    for _name in _model.types:
        _EVENT_MODELS[_name] = _model


def parse_event(raw: Any) -> ReplayEvent:
    """Validate one raw event dict into its typed model.

    Raises ReplayError for unknown types and pydantic ValidationError for
    bad shapes.
    """
    if not isinstance(raw, dict):
        raise ReplayError(f"event must be an object, got {type(raw).__name__}")
    event_type = raw.get("type")
    if event_type == "defeat" and ("victory" in raw or "currentStage" in raw):
        # Whole-battle defeat in the server dialect, not a unit defeat.
        return BattleEndEvent.model_validate({**raw, "victory": False})
    model = _EVENT_MODELS.get(event_type) if isinstance(event_type, str) else None
    if model is None:
        raise ReplayError(f"unknown event type {event_type!r}")
    return model.model_validate(raw)


class ReplayEngine:
    """Plays an immutable event sequence into a BattleEncounter, one event per step."""

    def __init__(
        self,
        events: Sequence[Any],
        config: EngineConfig = DEFAULT_CONFIG,
        on_stage_cleared: StageClearedCallback | None = None,
        on_battle_complete: BattleCompleteCallback | None = None,
    ) -> None:
        self.events: tuple[Any, ...] = tuple(events)
        self.config = config
        self.on_stage_cleared = on_stage_cleared
        self.on_battle_complete = on_battle_complete
        self.position = 0
        self.skipped = 0
        self.result: BattleResult | None = None
        self.encounter = BattleEncounter(allies=[], enemies=[], total_stages=config.total_stages)

    @property
    def is_complete(self) -> bool:
        return self.encounter.is_complete or self.position >= len(self.events)

    def reset(self) -> None:
        self.position = 0
        self.skipped = 0
        self.result = None
        self.encounter = BattleEncounter(allies=[], enemies=[], total_stages=self.config.total_stages)

    def step(self) -> bool:
        """Apply the next event. Returns False once the log is exhausted or the battle ended."""
        if self.is_complete:
            return False
        raw = self.events[self.position]
        self.position += 1
        self.encounter.tick_count = self.position
        try:
            event = parse_event(raw)
            self._apply(event)
        except (ValidationError, ReplayError) as e:
            self.skipped += 1
            logger.warning("Skipping replay event #%d: %s", self.position, e)
        return True

    def run(self) -> BattleResult | None:
        while self.step():
            pass
        return self.result

    # -- Dispatch ----------------------------------------------------------------

    def _apply(self, event: ReplayEvent) -> None:
        if isinstance(event, BattleStartEvent):
            self._battle_start(event)
        elif isinstance(event, ActionEvent):
            self._action(event)
        elif isinstance(event, RoundEvent):
            self._round(event)
        elif isinstance(event, StatusEvent):
            self._status(event)
        elif isinstance(event, DotEvent):
            self._dot(event)
        elif isinstance(event, HealEvent):
            self._heal(event)
        elif isinstance(event, EffectRemovedEvent):
            self._effect_removed(event)
        elif isinstance(event, MeterPushEvent):
            self._meter_push(event)
        elif isinstance(event, DefeatEvent):
            self._defeat(event)
        elif isinstance(event, StageEvent):
            self._stage(event)
        elif isinstance(event, SystemMessageEvent):
            self.encounter.system_message(event.message)
        elif isinstance(event, BattleEndEvent):
            self._battle_end(event)

    def _unit(self, key: str | None, required: bool = True) -> CombatUnit | None:
        if key is None:
            if required:
                raise ReplayError("event names no unit")
            return None
        unit = self.encounter.find_unit(key)
        if unit is None and required:
            raise ReplayError(f"unknown unit {key!r}")
        return unit

    @staticmethod
    def _set_hp(unit: CombatUnit, hp_remaining: float | None, delta: float) -> int:
        """Move unit's HP to the logged value (or by delta). Returns HP lost (negative for gains)."""
        before = unit.hp
        if hp_remaining is not None:
            unit.hp = max(0, min(unit.max_hp, int(hp_remaining)))
            if unit.hp < before:
                unit.damage_received += before - unit.hp
            elif unit.hp > before:
                unit.healing_received += unit.hp - before
        elif delta >= 0:
            unit.take_damage(int(delta))
        else:
            unit.heal(int(-delta))
        return before - unit.hp

    def _stage_total(self, total: int | None) -> int:
        """Stage count from the log, never above the configured run length."""
        if total is None:
            return self.config.total_stages
        if not 1 <= total <= self.config.total_stages:
            raise ReplayError(f"total stages must be 1-{self.config.total_stages}, got {total}")
        return total

    @staticmethod
    def _stage_index(stage: int, total: int) -> int:
        if not 1 <= stage <= total:
            raise ReplayError(f"stage {stage} is outside 1-{total}")
        return stage - 1

    # -- Handlers ----------------------------------------------------------------

    def _battle_start(self, event: BattleStartEvent) -> None:
        if not event.allies or not event.enemies:
            raise ReplayError("battle_start needs allies and enemies")
        notices: list[str] = []
        taken: set[str] = set()
        allies = build_units(
            [UnitSpec.model_validate(u) for u in event.allies],
            Side.ALLY, BattleMode.REPLAY, self.config, notices, taken,
        )
        enemies = build_units(
            [UnitSpec.model_validate(u) for u in event.enemies],
            Side.ENEMY, BattleMode.REPLAY, self.config, notices, taken,
        )
        total = self._stage_total(event.total_stages or None)
        stage_index = self._stage_index(max(1, event.stage), total)
        enc = self.encounter
        enc.allies = allies
        enc.enemies = enemies
        enc.total_stages = total
        enc.stage_index = stage_index
        enc.turn_counter = 0
        for notice in notices:
            enc.system_message(notice)
        enc.record(
            {
                "type": "battle_start",
                "stage": event.stage,
                "totalStages": total,
                "allies": [snapshot(u) for u in allies],
                "enemies": [snapshot(u) for u in enemies],
            },
            event.message or f"Battle started! Stage {event.stage} of {total}.",
        )

    def _action(self, event: ActionEvent) -> None:
        enc = self.encounter
        actor = self._unit(event.actor, required=False)
        target = self._unit(event.target, required=event.message is None)
        # Multi-target skills log one action per hit under the same turn number.
        if event.turn is not None:
            enc.turn_counter = max(enc.turn_counter, event.turn)
        else:
            enc.turn_counter += 1
        turn = event.turn or enc.turn_counter
        dealt = 0
        healed = 0
        if target is not None:
            if event.healing > 0:
                healed = -self._set_hp(target, event.hp_remaining, -event.healing)
            else:
                dealt = self._set_hp(target, event.hp_remaining, event.damage)
        if actor is not None:
            actor.damage_dealt += max(0, dealt)
            actor.healing_done += max(0, healed)
            if event.skill:
                actor.attack_count += 1

        actor_name = actor.name if actor else (event.actor or "Unknown")
        target_name = target.name if target else (event.target or "Unknown")
        if event.message:
            line = event.message
        elif healed > 0:
            line = f"Turn {turn}: {actor_name} used {event.skill} on {target_name} and healed {healed} HP!"
        else:
            crit = " Critical hit!" if event.is_critical else ""
            line = f"Turn {turn}: {actor_name} used {event.skill} on {target_name} for {dealt} damage!{crit}"
        enc.record(
            {
                "type": "action",
                "turn": turn,
                "actor": actor.id if actor else event.actor,
                "skill": event.skill,
                "target": target.id if target else event.target,
                "damage": dealt,
                "healing": healed,
                "hp_remaining": target.hp if target else None,
            },
            line,
        )

    def _round(self, event: RoundEvent) -> None:
        for i, raw in enumerate(event.actions):
            try:
                if isinstance(raw, dict) and raw.get("type") == "defeat":
                    self._defeat(DefeatEvent.model_validate(raw))
                else:
                    self._action(ActionEvent.model_validate(raw))
            except (ValidationError, ReplayError) as e:
                self.skipped += 1
                logger.warning("Skipping action %d of round %s: %s", i, event.round, e)

    def _status(self, event: StatusEvent) -> None:
        kind = parse_effect_kind(event.effect)
        if kind is None:
            raise ReplayError(f"unknown status effect {event.effect!r}")
        target = self._unit(event.target)
        source = self._unit(event.source, required=False)
        label = EFFECT_LABELS[kind]
        if source is not None:
            source.counters_for(kind).attempts += 1
        # The log is authoritative: an applied effect replaces whatever is there.
        applied = event.applied
        if applied:
            remove_effect(target, kind)
            apply_effect(
                target,
                StatusEffect(kind, event.magnitude, event.turns, source.id if source else event.source),
            )
        if applied and source is not None:
            source.counters_for(kind).successes += 1
        if event.message:
            line = event.message
        elif applied:
            line = f"{target.name} is {label} by {source.name if source else 'an unknown source'}!"
        else:
            line = f"{target.name} resisted {label}!"
        self.encounter.record(
            {
                "type": "status",
                "source": source.id if source else event.source,
                "target": target.id,
                "effect": kind.value,
                "magnitude": event.magnitude,
                "turns": event.turns,
                "applied": applied,
            },
            line,
        )

    def _dot(self, event: DotEvent) -> None:
        target = self._unit(event.target)
        source = self._unit(event.source, required=False)
        lost = self._set_hp(target, event.hp_remaining, event.damage)
        if source is not None:
            source.damage_dealt += max(0, lost)
        kind = parse_effect_kind(event.effect)
        what = EFFECT_LABELS[kind] if kind else (event.effect or "an effect")
        self.encounter.record(
            {
                "type": "dot",
                "target": target.id,
                "source": source.id if source else event.source,
                "effect": kind.value if kind else event.effect,
                "damage": lost,
                "hp_remaining": target.hp,
            },
            event.message or f"{target.name} takes {lost} damage from {what}!",
        )

    def _heal(self, event: HealEvent) -> None:
        target = self._unit(event.target)
        source = self._unit(event.source, required=False)
        healed = -self._set_hp(target, event.hp_remaining, -event.healing)
        if source is not None:
            source.healing_done += max(0, healed)
        self.encounter.record(
            {
                "type": "heal",
                "source": source.id if source else event.source,
                "target": target.id,
                "healing": healed,
                "hp_remaining": target.hp,
            },
            event.message or f"{source.name if source else 'Someone'} healed {target.name} for {healed} HP!",
        )

    def _effect_removed(self, event: EffectRemovedEvent) -> None:
        kind = parse_effect_kind(event.effect)
        if kind is None:
            raise ReplayError(f"unknown status effect {event.effect!r}")
        target = self._unit(event.target)
        remove_effect(target, kind)
        label = EFFECT_LABELS[kind]
        if event.type == "cleanse":
            source = self._unit(event.source, required=False)
            default = f"{source.name if source else 'Someone'} cleansed {label} from {target.name}!"
        else:
            default = f"{label} has worn off from {target.name}!"
        self.encounter.record(
            {"type": event.type, "source": event.source, "target": target.id, "effect": kind.value},
            event.message or default,
        )

    def _meter_push(self, event: MeterPushEvent) -> None:
        target = self._unit(event.target)
        source = self._unit(event.source, required=False)
        target.action_meter = max(0.0, event.meter)
        self.encounter.record(
            {"type": "meter_push", "source": event.source, "target": target.id, "meter": target.action_meter},
            event.message
            or f"{source.name if source else 'Someone'} pushed back {target.name}'s action meter!",
        )

    def _defeat(self, event: DefeatEvent) -> None:
        target = self._unit(event.target)
        if target.hp > 0:
            target.damage_received += target.hp
            target.hp = 0
        self.encounter.record(
            {"type": "defeat", "target": target.id},
            event.message or f"{target.name} has been defeated!",
        )

    def _stage(self, event: StageEvent) -> None:
        enc = self.encounter
        total = self._stage_total(event.total_stages) if event.total_stages else enc.total_stages
        new_index = self._stage_index(event.stage, total)
        enc.total_stages = total
        cleared = enc.stage_index
        advanced = new_index > cleared
        if advanced:
            enc.stage_index = new_index
            for ally in enc.allies:
                strip_negative_effects(ally)
            if self.on_stage_cleared is not None:
                self.on_stage_cleared(cleared, compute_rewards(cleared, self.config))
        if event.enemies:
            enc.enemies = build_units(
                [UnitSpec.model_validate(u) for u in event.enemies if isinstance(u, dict)],
                Side.ENEMY, BattleMode.REPLAY, self.config,
                taken={u.id for u in enc.allies},
            )
        line = f"Advancing to stage {event.stage} of {enc.total_stages}."
        if advanced:
            line = f"Stage {cleared + 1} cleared! {line}"
        enc.record(
            {
                "type": "stage_progress",
                "stage": event.stage,
                "totalStages": enc.total_stages,
                "enemies": [snapshot(u) for u in enc.enemies],
            },
            event.message or line,
        )

    def _battle_end(self, event: BattleEndEvent) -> None:
        enc = self.encounter
        if event.stage is not None and event.stage >= 1:
            enc.stage_index = self._stage_index(event.stage, enc.total_stages)
        enc.outcome = Outcome.VICTORY if event.victory else Outcome.DEFEAT
        rewards = compute_rewards(enc.stage_index, self.config)
        completed = enc.total_stages if event.victory else enc.stage_index
        if event.victory:
            default = f"Victory! All {enc.total_stages} stages cleared."
        else:
            default = f"Defeat on stage {enc.stage_index + 1} of {enc.total_stages}."
        enc.record(
            {
                "type": "battle_end",
                "victory": event.victory,
                "stage": enc.stage_index + 1,
                "completedStages": completed,
                "totalStages": enc.total_stages,
                "rewards": rewards.to_dict(),
            },
            event.message or default,
        )
        logger.info("Replay finished: %s at stage %d", enc.outcome.value, enc.stage_index + 1)
        self.result = BattleResult(
            outcome=enc.outcome,
            stage_index=enc.stage_index,
            completed_stages=completed,
            total_stages=enc.total_stages,
            ticks=self.position,
            turns=enc.turn_counter,
            rewards=rewards,
            seed=None,
            allies=[snapshot(u) for u in enc.allies],
            enemies=[snapshot(u) for u in enc.enemies],
            action_log=list(enc.action_log),
            events=list(enc.events),
        )
        if self.on_battle_complete is not None:
            self.on_battle_complete(self.result)

