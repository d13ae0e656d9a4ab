"""Skill rule table: per-skill effect chances, multi-target and support behaviour.

Named skills carry their own chance/effect pair. Advanced and ultimate skills
without an entry get an effect inferred from their name.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from battlesim.units import EffectKind, Skill, SkillTier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EffectRule:
    """A chance to inflict one status effect.

    ``kind=None`` means "pick attack-down or speed-down at random"; the
    magnitude/turns of the generic debuffs then come from the rule table.
    """

    chance: float
    kind: EffectKind | None
    magnitude: float = 0
    turns: int = 0


@dataclass(frozen=True)
class SkillRule:
    effect: EffectRule | None = None
    # Additional opposite-side targets struck at the same damage.
    extra_targets: int = 0
    bonus_target_chance: float = 0.0
    cleanse_chance: float = 0.0
    heal_percent: int = 0
    meter_push_chance: float = 0.0
    meter_push: float = 0.0


_NO_RULE = SkillRule()

_FIRE_WORDS = ("burn", "fire", "flame")
_POISON_WORDS = ("poison", "venom", "toxic")


@dataclass(frozen=True)
class RuleTable:
    skills: Mapping[str, SkillRule] = field(default_factory=dict)
    inferred_chance: float = 0.30
    burn: EffectRule = EffectRule(0.30, EffectKind.BURN, 5, 3)
    poison: EffectRule = EffectRule(0.30, EffectKind.POISON, 5, 3)
    attack_down: EffectRule = EffectRule(0.30, EffectKind.REDUCE_ATTACK, 10, 2)
    speed_down: EffectRule = EffectRule(0.30, EffectKind.REDUCE_SPEED, 20, 2)

    def rule_for(self, skill: Skill) -> SkillRule:
        return self.skills.get(skill.name.strip().lower(), _NO_RULE)

    def effect_for(self, skill: Skill) -> EffectRule | None:
        """The effect roll a skill makes, or None for no secondary effect."""
        rule = self.rule_for(skill)
        if rule.effect is not None:
            return rule.effect
        if skill.tier is SkillTier.BASIC:
            return None
        name = skill.name.lower()
        if any(word in name for word in _FIRE_WORDS):
            return EffectRule(self.inferred_chance, EffectKind.BURN, self.burn.magnitude, self.burn.turns)
        if any(word in name for word in _POISON_WORDS):
            return EffectRule(self.inferred_chance, EffectKind.POISON, self.poison.magnitude, self.poison.turns)
        return EffectRule(self.inferred_chance, None)

    def generic_debuffs(self) -> tuple[EffectRule, EffectRule]:
        return self.attack_down, self.speed_down


DEFAULT_SKILL_RULES: dict[str, SkillRule] = {
    "gust": SkillRule(effect=EffectRule(0.50, EffectKind.REDUCE_SPEED, 20, 1)),
    "stone slam": SkillRule(effect=EffectRule(0.20, EffectKind.REDUCE_ATTACK, 10, 2)),
    "ember": SkillRule(effect=EffectRule(0.10, EffectKind.BURN, 2, 2)),
    "breeze": SkillRule(meter_push_chance=0.15, meter_push=20),
    "wildfire": SkillRule(extra_targets=1, bonus_target_chance=0.25),
    "dust spikes": SkillRule(extra_targets=1),
    "cleansing tide": SkillRule(cleanse_chance=0.10),
    "soothing current": SkillRule(heal_percent=5),
}

DEFAULT_RULES = RuleTable(skills=DEFAULT_SKILL_RULES)

_RULE_FIELDS: dict[str, type] = {
    "extra_targets": int,
    "bonus_target_chance": float,
    "cleanse_chance": float,
    "heal_percent": int,
    "meter_push_chance": float,
    "meter_push": float,
}


def _number(value: Any, cast: type, label: str) -> Any:
    if isinstance(value, bool):
        raise ValueError(f"{label} must be a number, got {value!r}")
    number = cast(value)
    if not math.isfinite(number):
        raise ValueError(f"{label} must be finite, got {value!r}")
    return number


def _parse_effect(data: Mapping[str, Any]) -> EffectRule:
    kind_name = data.get("kind")
    kind = EffectKind(kind_name) if kind_name else None
    return EffectRule(
        chance=_number(data.get("chance", 0.0), float, "chance"),
        kind=kind,
        magnitude=_number(data.get("magnitude", 0), float, "magnitude"),
        turns=_number(data.get("turns", 0), int, "turns"),
    )


def load_rules(data: Mapping[str, Any], base: RuleTable = DEFAULT_RULES) -> RuleTable:
    """Build a rule table from JSON-shaped data, layered over ``base``.

    Expected shape::

        {"inferred_chance": 0.3,
         "skills": {"Gust": {"effect": {"chance": 0.5, "kind": "reduce_speed",
                                        "magnitude": 20, "turns": 1}},
                    "Wildfire": {"extra_targets": 1, "bonus_target_chance": 0.25}}}

    Raises ValueError on unknown effect kinds, unknown rule fields or
    values that are not numbers.
    """
    skills = dict(base.skills)
    for name, raw in (data.get("skills") or {}).items():
        if not isinstance(raw, Mapping):
            raise ValueError(f"Invalid rule for skill {name!r}: expected an object")
        raw = dict(raw)
        effect = raw.pop("effect", None)
        try:
            unknown = sorted(set(raw) - set(_RULE_FIELDS))
            if unknown:
                raise ValueError(f"unknown fields {unknown}")
            if effect is not None and not isinstance(effect, Mapping):
                raise ValueError("effect must be an object")
            rule = SkillRule(
                effect=_parse_effect(effect) if effect else None,
                **{key: _number(value, _RULE_FIELDS[key], key) for key, value in raw.items()},
            )
        except (TypeError, ValueError, OverflowError) as e:
            raise ValueError(f"Invalid rule for skill {name!r}: {e}") from e
        skills[name.strip().lower()] = rule
        logger.debug("Loaded rule for %s: %s", name, rule)

    return RuleTable(
        skills=skills,
        inferred_chance=_number(data.get("inferred_chance", base.inferred_chance), float, "inferred_chance"),
        burn=base.burn,
        poison=base.poison,
        attack_down=base.attack_down,
        speed_down=base.speed_down,
    )
