"""Status effect engine: application, per-turn ticking and stat modifiers."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from battlesim.units import CombatUnit, EffectKind, StatusEffect

logger = logging.getLogger(__name__)


@dataclass
class EffectTick:
    """What happened to one effect when its bearer's turn started."""

    kind: EffectKind
    damage: int
    source_id: str | None
    expired: bool


def floor_value(value: float) -> int:
    # Round away float noise first so 100 * 0.9 * 0.8 lands on 72, not 71.
    return math.floor(round(value, 9))


def scale_percent(value: float, percent: float) -> int:
    """floor(value * (1 + percent/100)), clamped at zero."""
    return max(0, floor_value(value * (100 + percent) / 100))


def apply_effect(target: CombatUnit, effect: StatusEffect) -> bool:
    """Attach effect to target, merging with an existing effect of the same kind.

    An existing effect is replaced when the new one is stronger OR lasts
    longer. Anything else is resisted and leaves the target untouched.
    Returns True when the effect landed.
    """
    if effect.remaining_turns <= 0:
        return False
    for i, existing in enumerate(target.status_effects):
        if existing.kind is not effect.kind:
            continue
        if (
            effect.magnitude > existing.magnitude
            or effect.remaining_turns > existing.remaining_turns
        ):
            target.status_effects[i] = StatusEffect(
                kind=effect.kind,
                magnitude=effect.magnitude,
                remaining_turns=effect.remaining_turns,
                source_id=effect.source_id,
            )
            return True
        logger.debug("%s resisted %s on %s", target.name, effect.kind.value, target.id)
        return False
    target.status_effects.append(
        StatusEffect(
            kind=effect.kind,
            magnitude=effect.magnitude,
            remaining_turns=effect.remaining_turns,
            source_id=effect.source_id,
        )
    )
    return True


def tick_effects(unit: CombatUnit) -> list[EffectTick]:
    """Advance every effect on unit by one of its own turns.

    DoT effects deal their magnitude now, then every effect loses one turn
    and effects reaching zero are dropped.
    """
    ticks: list[EffectTick] = []
    kept: list[StatusEffect] = []
    for effect in unit.status_effects:
        damage = 0
        if effect.kind.is_dot and unit.is_alive:
            damage = unit.take_damage(floor_value(effect.magnitude))
        effect.remaining_turns -= 1
        expired = effect.remaining_turns <= 0
        if not expired:
            kept.append(effect)
        ticks.append(EffectTick(effect.kind, damage, effect.source_id, expired))
    unit.status_effects = kept
    return ticks


def _reduced(value: int, unit: CombatUnit, kind: EffectKind) -> int:
    for effect in unit.status_effects:
        if effect.kind is kind:
            value = scale_percent(value, -effect.magnitude)
    return value


def effective_attack(unit: CombatUnit) -> int:
    value = scale_percent(unit.attack, unit.aura.attack)
    return _reduced(value, unit, EffectKind.REDUCE_ATTACK)


def effective_speed(unit: CombatUnit) -> int:
    value = scale_percent(unit.speed, unit.aura.speed)
    return _reduced(value, unit, EffectKind.REDUCE_SPEED)


def strip_negative_effects(unit: CombatUnit) -> list[StatusEffect]:
    removed = unit.negative_effects()
    unit.status_effects = [e for e in unit.status_effects if not e.kind.is_negative]
    return removed


def remove_effect(unit: CombatUnit, kind: EffectKind) -> StatusEffect | None:
    effect = unit.find_effect(kind)
    if effect is not None:
        unit.status_effects.remove(effect)
    return effect


def remove_negative_effect(unit: CombatUnit, index: int) -> StatusEffect | None:
    """Remove the index-th negative effect on unit (by position among negatives)."""
    negatives = unit.negative_effects()
    if not negatives:
        return None
    effect = negatives[index % len(negatives)]
    unit.status_effects.remove(effect)
    return effect
