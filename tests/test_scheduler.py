from __future__ import annotations

from battlesim.scheduler import advance_meters, meter_increase
from battlesim.status import apply_effect
from battlesim.units import AuraBonus, EffectKind, StatusEffect
from tests.helpers.builders import make_enemy, make_unit


def _ticks_until_ready(unit, playback_speed: int = 1, limit: int = 1000) -> int:
    for tick in range(1, limit + 1):
        if advance_meters([unit], playback_speed):
            return tick
    raise AssertionError("unit never became ready")


def test_speed_40_fills_one_point_per_tick() -> None:
    unit = make_unit(speed=40)
    assert meter_increase(unit) == 1.0


def test_speed_40_unit_acts_after_exactly_100_ticks() -> None:
    unit = make_unit(speed=40)

    for _ in range(99):
        assert advance_meters([unit]) == []
    assert unit.action_meter == 99.0

    assert advance_meters([unit]) == [unit]
    assert unit.action_meter == 0.0


def test_playback_speed_scales_meter_gain() -> None:
    assert _ticks_until_ready(make_unit(speed=40), playback_speed=2) == 50
    assert _ticks_until_ready(make_unit(speed=40), playback_speed=8) == 13


def test_surplus_over_threshold_is_discarded() -> None:
    unit = make_unit(speed=60)

    assert _ticks_until_ready(unit) == 67
    assert unit.action_meter == 0.0
    assert _ticks_until_ready(unit) == 67


def test_speed_debuff_and_aura_change_fill_rate() -> None:
    slowed = make_unit(speed=40)
    apply_effect(slowed, StatusEffect(EffectKind.REDUCE_SPEED, 50, 5))
    hasted = make_unit(speed=40, aura=AuraBonus(speed=100))

    assert meter_increase(slowed) == 0.5
    assert meter_increase(hasted) == 2.0


def test_dead_units_do_not_gain_meter() -> None:
    dead = make_enemy(hp=0)
    dead.action_meter = 99.5

    assert advance_meters([dead]) == []
    assert dead.action_meter == 99.5


def test_ready_units_keep_roster_order() -> None:
    slow_first = make_unit("a1", speed=40)
    fast_second = make_unit("a2", speed=80)
    enemy = make_enemy("e1", speed=40)
    slow_first.action_meter = 99.0
    fast_second.action_meter = 98.0
    enemy.action_meter = 99.0

    ready = advance_meters([slow_first, fast_second, enemy])

    assert [u.id for u in ready] == ["a1", "a2", "e1"]
