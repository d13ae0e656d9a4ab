"""Roster input models and conversion into combat units.

Incoming unit data is JSON-shaped and frequently incomplete. All of the
defaulting happens here, once, so the engine only ever sees finite stats
and positive HP.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from battlesim.config import DEFAULT_CONFIG, EngineConfig
from battlesim.lifecycle import derive_max_hp
from battlesim.units import (
    AuraBonus,
    BattleMode,
    CombatUnit,
    EffectKind,
    Side,
    Skill,
    SkillKit,
    SkillTier,
    StatusEffect,
)

logger = logging.getLogger(__name__)

DEFAULT_STAT = 10
DEFAULT_SKILL_NAME = "Attack"
DEFAULT_SKILL_MULTIPLIER = 1.0

_EFFECT_ALIASES: dict[str, EffectKind] = {
    "burn": EffectKind.BURN,
    "burning": EffectKind.BURN,
    "poison": EffectKind.POISON,
    "poisoned": EffectKind.POISON,
    "reduceatk": EffectKind.REDUCE_ATTACK,
    "reduceattack": EffectKind.REDUCE_ATTACK,
    "reduce_attack": EffectKind.REDUCE_ATTACK,
    "weakness": EffectKind.REDUCE_ATTACK,
    "reducespd": EffectKind.REDUCE_SPEED,
    "reducespeed": EffectKind.REDUCE_SPEED,
    "reduce_speed": EffectKind.REDUCE_SPEED,
    "slow": EffectKind.REDUCE_SPEED,
}


class RosterError(ValueError):
    """Roster payload cannot be turned into a battle."""


def coerce_number(value: Any) -> float | None:
    """Best-effort float conversion. Returns None for anything non-finite."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_effect_kind(name: Any) -> EffectKind | None:
    if isinstance(name, EffectKind):
        return name
    if not isinstance(name, str):
        return None
    key = name.strip().lower().replace(" ", "")
    return _EFFECT_ALIASES.get(key) or _EFFECT_ALIASES.get(key.replace("-", "_"))


def _dict_or_empty(value: Any) -> Any:
    return value if isinstance(value, dict) else {}


class StatsSpec(BaseModel):
    model_config = ConfigDict(extra="ignore")

    attack: float | None = None
    vitality: float | None = None
    speed: float | None = None

    @field_validator("attack", "vitality", "speed", mode="before")
    @classmethod
    def number_or_none(cls, v: Any) -> float | None:
        return coerce_number(v)


class AuraBonusSpec(BaseModel):
    model_config = ConfigDict(extra="ignore")

    attack: float = 0.0
    speed: float = 0.0
    vitality: float = 0.0

    @field_validator("attack", "speed", "vitality", mode="before")
    @classmethod
    def number_or_zero(cls, v: Any) -> float:
        number = coerce_number(v)
        return number if number is not None else 0.0


class SkillSpec(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = DEFAULT_SKILL_NAME
    damage: float | None = Field(default=None, description="Multiplier on attack, e.g. 0.8")
    cooldown: int = 0

    @field_validator("name", mode="before")
    @classmethod
    def name_or_default(cls, v: Any) -> str:
        if not isinstance(v, str) or not v.strip():
            return DEFAULT_SKILL_NAME
        return v.strip()

    @field_validator("damage", mode="before")
    @classmethod
    def damage_number(cls, v: Any) -> float | None:
        return coerce_number(v)

    @field_validator("cooldown", mode="before")
    @classmethod
    def cooldown_int(cls, v: Any) -> int:
        number = coerce_number(v)
        return int(number) if number is not None and number > 0 else 0


class SkillsSpec(BaseModel):
    model_config = ConfigDict(extra="ignore")

    basic: SkillSpec | None = None
    advanced: SkillSpec | None = None
    ultimate: SkillSpec | None = None

    @field_validator("basic", "advanced", "ultimate", mode="before")
    @classmethod
    def drop_non_objects(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else None


class StatusEffectSpec(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    kind: str | None = None
    magnitude: float = 0
    remaining_turns: int = Field(default=0, alias="remainingTurns")
    source_id: str | None = Field(default=None, alias="sourceUnitId")

    @model_validator(mode="before")
    @classmethod
    def accept_short_names(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        kind = data.get("kind") or data.get("type") or data.get("name")
        turns = coerce_number(
            data.get("remainingTurns", data.get("remaining_turns", data.get("turns", data.get("duration"))))
        )
        magnitude = coerce_number(data.get("magnitude", data.get("value", data.get("damage"))))
        source = data.get("sourceUnitId", data.get("source_id", data.get("source")))
        return {
            "kind": kind if isinstance(kind, str) else None,
            "magnitude": magnitude if magnitude is not None else 0,
            "remainingTurns": int(turns) if turns is not None else 0,
            "sourceUnitId": str(source) if source is not None else None,
        }


class UnitSpec(BaseModel):
    """One unit as supplied by the host application or a replay log."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str | None = None
    name: str | None = None
    hp: float | None = None
    max_hp: float | None = Field(default=None, alias="maxHp")
    stats: StatsSpec = Field(default_factory=StatsSpec)
    aura_bonus: AuraBonusSpec = Field(default_factory=AuraBonusSpec, alias="auraBonus")
    skills: SkillsSpec = Field(default_factory=SkillsSpec)
    status_effects: list[StatusEffectSpec] = Field(default_factory=list, alias="statusEffects")

    @model_validator(mode="before")
    @classmethod
    def lift_flat_stats(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        stats = dict(_dict_or_empty(data.get("stats")))
        for key in ("attack", "vitality", "speed"):
            if key not in stats and key in data:
                stats[key] = data[key]
        data["stats"] = stats
        for key in ("auraBonus", "aura_bonus", "skills"):
            if key in data:
                data[key] = _dict_or_empty(data[key])
        effects = data.pop("status_effects", data.get("statusEffects"))
        if not isinstance(effects, list):
            effects = []
        data["statusEffects"] = [e for e in effects if isinstance(e, dict)]
        return data

    @field_validator("id", "name", mode="before")
    @classmethod
    def text_or_none(cls, v: Any) -> str | None:
        if v is None or isinstance(v, bool):
            return None
        text = str(v).strip()
        return text or None

    @field_validator("hp", "max_hp", mode="before")
    @classmethod
    def hp_number(cls, v: Any) -> float | None:
        return coerce_number(v)


class RosterSpec(BaseModel):
    model_config = ConfigDict(extra="ignore")

    allies: list[UnitSpec] = Field(default_factory=list)
    enemies: list[UnitSpec] = Field(default_factory=list)


# -- Conversion -------------------------------------------------------------------


def _stat(value: float | None, label: str, unit_name: str) -> int:
    if value is None or value <= 0:
        logger.warning("%s has invalid %s (%r), using %d", unit_name, label, value, DEFAULT_STAT)
        return DEFAULT_STAT
    return max(1, int(value))


def _skill(spec: SkillSpec | None, tier: SkillTier, unit_name: str) -> Skill | None:
    if spec is None:
        return None
    multiplier = spec.damage
    if multiplier is None or multiplier < 0:
        logger.warning(
            "%s skill %r has invalid damage multiplier (%r), using %.1f",
            unit_name, spec.name, multiplier, DEFAULT_SKILL_MULTIPLIER,
        )
        multiplier = DEFAULT_SKILL_MULTIPLIER
    return Skill(name=spec.name, damage_multiplier=multiplier, tier=tier, cooldown=spec.cooldown)


def build_unit(
    spec: UnitSpec,
    side: Side,
    index: int,
    mode: BattleMode = BattleMode.SIMULATE,
    config: EngineConfig = DEFAULT_CONFIG,
    notices: list[str] | None = None,
) -> CombatUnit:
    """Turn a validated UnitSpec into a CombatUnit with every field defaulted.

    In simulate mode max HP is always derived from vitality and aura. Replay
    mode keeps a supplied positive max HP, since it mirrors a server's numbers.
    Missing or non-finite HP means "full HP". A supplied HP below 1 is a data
    error: it is also set to full and reported through ``notices``.
    """
    unit_id = spec.id or f"{side.value}-{index + 1}"
    name = spec.name or f"{side.value.title()} {index + 1}"

    attack = _stat(spec.stats.attack, "attack", name)
    vitality = _stat(spec.stats.vitality, "vitality", name)
    speed = _stat(spec.stats.speed, "speed", name)
    aura = AuraBonus(
        attack=spec.aura_bonus.attack,
        speed=spec.aura_bonus.speed,
        vitality=spec.aura_bonus.vitality,
    )

    max_hp = derive_max_hp(vitality, aura.vitality, config)
    if mode is BattleMode.REPLAY and spec.max_hp is not None and spec.max_hp > 0:
        max_hp = int(spec.max_hp)

    if spec.hp is None:
        hp = max_hp
    elif spec.hp < 1:
        hp = max_hp
        message = f"Fixed invalid HP for {name}: {spec.hp:g} -> {hp}"
        logger.warning("%s", message)
        if notices is not None:
            notices.append(message)
    else:
        hp = min(int(spec.hp), max_hp)

    basic = _skill(spec.skills.basic, SkillTier.BASIC, name)
    if basic is None:
        basic = Skill(name=DEFAULT_SKILL_NAME, damage_multiplier=DEFAULT_SKILL_MULTIPLIER)
    kit = SkillKit(
        basic=basic,
        advanced=_skill(spec.skills.advanced, SkillTier.ADVANCED, name),
        ultimate=_skill(spec.skills.ultimate, SkillTier.ULTIMATE, name),
    )

    effects: list[StatusEffect] = []
    for effect_spec in spec.status_effects:
        kind = parse_effect_kind(effect_spec.kind)
        if kind is None or effect_spec.remaining_turns <= 0:
            logger.warning("%s: dropping unusable status effect %r", name, effect_spec.kind)
            continue
        if any(e.kind is kind for e in effects):
            continue
        effects.append(StatusEffect(kind, effect_spec.magnitude, effect_spec.remaining_turns, effect_spec.source_id))

    return CombatUnit(
        id=unit_id,
        name=name,
        side=side,
        hp=hp,
        max_hp=max_hp,
        attack=attack,
        vitality=vitality,
        speed=speed,
        kit=kit,
        aura=aura,
        status_effects=effects,
    )


def build_units(
    specs: list[UnitSpec],
    side: Side,
    mode: BattleMode = BattleMode.SIMULATE,
    config: EngineConfig = DEFAULT_CONFIG,
    notices: list[str] | None = None,
    taken: set[str] | None = None,
) -> list[CombatUnit]:
    """Build one side's units with ids unique among themselves and ``taken``.

    A repeated id gets the first free ``-2``, ``-3``, ... suffix. ``taken`` is
    updated in place so the other side can be built against it.
    """
    taken = set() if taken is None else taken
    units = [build_unit(s, side, i, mode, config, notices) for i, s in enumerate(specs)]
    for unit in units:
        if unit.id in taken:
            base = unit.id
            n = 2
            while f"{base}-{n}" in taken:
                n += 1
            unit.id = f"{base}-{n}"
        taken.add(unit.id)
    return units


def build_roster(
    roster: RosterSpec | dict[str, Any],
    mode: BattleMode = BattleMode.SIMULATE,
    config: EngineConfig = DEFAULT_CONFIG,
    notices: list[str] | None = None,
) -> tuple[list[CombatUnit], list[CombatUnit]]:
    """Validate a roster payload and return (allies, enemies).

    Raises RosterError when either side is empty.
    """
    if not isinstance(roster, RosterSpec):
        roster = RosterSpec.model_validate(roster)
    if not roster.allies:
        raise RosterError("Roster needs at least one ally")
    if not roster.enemies:
        raise RosterError("Roster needs at least one enemy")
    taken: set[str] = set()
    allies = build_units(roster.allies, Side.ALLY, mode, config, notices, taken)
    enemies = build_units(roster.enemies, Side.ENEMY, mode, config, notices, taken)
    return allies, enemies


def snapshot(unit: CombatUnit) -> dict[str, Any]:
    """JSON-shaped view of a unit, readable back through UnitSpec."""
    kit = unit.kit

    def skill_dict(skill: Skill | None) -> dict[str, Any] | None:
        if skill is None:
            return None
        data: dict[str, Any] = {"name": skill.name, "damage": skill.damage_multiplier}
        if skill.cooldown:
            data["cooldown"] = skill.cooldown
        return data

    return {
        "id": unit.id,
        "name": unit.name,
        "side": unit.side.value,
        "hp": unit.hp,
        "maxHp": unit.max_hp,
        "stats": {"attack": unit.attack, "vitality": unit.vitality, "speed": unit.speed},
        "auraBonus": {
            "attack": unit.aura.attack,
            "speed": unit.aura.speed,
            "vitality": unit.aura.vitality,
        },
        "skills": {
            "basic": skill_dict(kit.basic),
            "advanced": skill_dict(kit.advanced),
            "ultimate": skill_dict(kit.ultimate),
        },
        "actionMeter": round(unit.action_meter, 4),
        "statusEffects": [
            {
                "kind": e.kind.value,
                "magnitude": e.magnitude,
                "remainingTurns": e.remaining_turns,
                "sourceUnitId": e.source_id,
            }
            for e in unit.status_effects
        ],
    }
