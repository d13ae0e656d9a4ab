from __future__ import annotations

from battlesim.status import (
    apply_effect,
    effective_attack,
    effective_speed,
    remove_negative_effect,
    strip_negative_effects,
    tick_effects,
)
from battlesim.units import AuraBonus, EffectKind, StatusEffect
from tests.helpers.builders import make_unit


def _effect(kind: EffectKind, magnitude: float, turns: int, source: str = "e1") -> StatusEffect:
    return StatusEffect(kind=kind, magnitude=magnitude, remaining_turns=turns, source_id=source)


def test_apply_effect_adds_new_kind() -> None:
    unit = make_unit()

    assert apply_effect(unit, _effect(EffectKind.BURN, 5, 3)) is True
    assert apply_effect(unit, _effect(EffectKind.REDUCE_SPEED, 20, 1)) is True
    assert [e.kind for e in unit.status_effects] == [EffectKind.BURN, EffectKind.REDUCE_SPEED]


def test_stronger_but_shorter_effect_overwrites() -> None:
    unit = make_unit()
    apply_effect(unit, _effect(EffectKind.BURN, 2, 5))

    assert apply_effect(unit, _effect(EffectKind.BURN, 10, 1)) is True
    burn = unit.find_effect(EffectKind.BURN)
    assert (burn.magnitude, burn.remaining_turns) == (10, 1)


def test_longer_but_weaker_effect_overwrites() -> None:
    unit = make_unit()
    apply_effect(unit, _effect(EffectKind.POISON, 10, 1))

    assert apply_effect(unit, _effect(EffectKind.POISON, 2, 4)) is True
    poison = unit.find_effect(EffectKind.POISON)
    assert (poison.magnitude, poison.remaining_turns) == (2, 4)


def test_weaker_or_equal_effect_is_resisted_and_changes_nothing() -> None:
    unit = make_unit()
    apply_effect(unit, _effect(EffectKind.REDUCE_ATTACK, 10, 2, source="e1"))

    assert apply_effect(unit, _effect(EffectKind.REDUCE_ATTACK, 10, 2, source="e2")) is False
    assert apply_effect(unit, _effect(EffectKind.REDUCE_ATTACK, 5, 1, source="e2")) is False

    assert len(unit.status_effects) == 1
    existing = unit.status_effects[0]
    assert (existing.magnitude, existing.remaining_turns, existing.source_id) == (10, 2, "e1")


def test_never_more_than_one_effect_per_kind() -> None:
    unit = make_unit()
    for magnitude, turns in [(1, 1), (3, 1), (2, 5), (9, 2), (1, 1)]:
        apply_effect(unit, _effect(EffectKind.BURN, magnitude, turns))

    assert sum(1 for e in unit.status_effects if e.kind is EffectKind.BURN) == 1


def test_burn_deals_damage_on_own_turn_then_expires() -> None:
    unit = make_unit(hp=50, max_hp=200)
    apply_effect(unit, _effect(EffectKind.BURN, 10, 1))

    ticks = tick_effects(unit)

    assert unit.hp == 40
    assert unit.status_effects == []
    assert len(ticks) == 1
    assert ticks[0].damage == 10
    assert ticks[0].expired is True
    assert ticks[0].source_id == "e1"


def test_tick_decrements_every_effect_exactly_once() -> None:
    unit = make_unit()
    apply_effect(unit, _effect(EffectKind.POISON, 3, 3))
    apply_effect(unit, _effect(EffectKind.REDUCE_SPEED, 20, 2))

    tick_effects(unit)

    assert unit.hp == 97
    assert [e.remaining_turns for e in unit.status_effects] == [2, 1]

    tick_effects(unit)

    assert [e.kind for e in unit.status_effects] == [EffectKind.POISON]
    assert unit.status_effects[0].remaining_turns == 1


def test_dot_damage_floors_hp_at_zero() -> None:
    unit = make_unit(hp=4)
    apply_effect(unit, _effect(EffectKind.BURN, 10, 2))

    ticks = tick_effects(unit)

    assert unit.hp == 0
    assert ticks[0].damage == 4


def test_effective_attack_applies_aura_then_reductions() -> None:
    unit = make_unit(attack=100, aura=AuraBonus(attack=10))
    assert effective_attack(unit) == 110

    apply_effect(unit, _effect(EffectKind.REDUCE_ATTACK, 10, 2))

    assert effective_attack(unit) == 99


def test_effective_speed_floors_each_step() -> None:
    unit = make_unit(speed=33, aura=AuraBonus(speed=10))
    assert effective_speed(unit) == 36

    apply_effect(unit, _effect(EffectKind.REDUCE_SPEED, 20, 1))

    assert effective_speed(unit) == 28


def test_attack_reduction_does_not_touch_speed() -> None:
    unit = make_unit(attack=50, speed=40)
    apply_effect(unit, _effect(EffectKind.REDUCE_ATTACK, 50, 2))

    assert effective_attack(unit) == 25
    assert effective_speed(unit) == 40


def test_strip_negative_effects_clears_debuffs() -> None:
    unit = make_unit()
    apply_effect(unit, _effect(EffectKind.BURN, 5, 3))
    apply_effect(unit, _effect(EffectKind.REDUCE_ATTACK, 10, 2))

    removed = strip_negative_effects(unit)

    assert {e.kind for e in removed} == {EffectKind.BURN, EffectKind.REDUCE_ATTACK}
    assert unit.status_effects == []


def test_remove_negative_effect_picks_by_index() -> None:
    unit = make_unit()
    apply_effect(unit, _effect(EffectKind.BURN, 5, 3))
    apply_effect(unit, _effect(EffectKind.POISON, 5, 3))

    removed = remove_negative_effect(unit, 1)

    assert removed.kind is EffectKind.POISON
    assert [e.kind for e in unit.status_effects] == [EffectKind.BURN]
    assert remove_negative_effect(make_unit(), 0) is None
