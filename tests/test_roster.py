from __future__ import annotations

import pytest

from battlesim.roster import (
    RosterError,
    UnitSpec,
    build_roster,
    build_unit,
    coerce_number,
    parse_effect_kind,
    snapshot,
)
from battlesim.units import BattleMode, EffectKind, Side


def _build(data: dict, mode: BattleMode = BattleMode.SIMULATE, notices: list[str] | None = None):
    return build_unit(UnitSpec.model_validate(data), Side.ALLY, 0, mode, notices=notices)


def test_coerce_number_rejects_non_finite_and_junk() -> None:
    assert coerce_number("12.5") == 12.5
    assert coerce_number(7) == 7.0
    for junk in (None, True, "abc", float("nan"), float("inf"), [1]):
        assert coerce_number(junk) is None


def test_parse_effect_kind_accepts_server_names() -> None:
    assert parse_effect_kind("ReduceAtk") is EffectKind.REDUCE_ATTACK
    assert parse_effect_kind("reduce-speed") is EffectKind.REDUCE_SPEED
    assert parse_effect_kind("Burning") is EffectKind.BURN
    assert parse_effect_kind("poison") is EffectKind.POISON
    assert parse_effect_kind("frozen") is None
    assert parse_effect_kind(3) is None


def test_flat_stats_are_lifted_and_hp_derived_from_vitality_and_aura() -> None:
    unit = _build({"name": "Ranger", "attack": 25, "vitality": 10, "speed": 48, "auraBonus": {"vitality": 50}})

    assert (unit.attack, unit.vitality, unit.speed) == (25, 10, 48)
    assert unit.max_hp == 120
    assert unit.hp == 120


def test_missing_stats_fall_back_to_defaults() -> None:
    unit = _build({"name": "Blank", "stats": {"attack": "lots", "speed": -4}})

    assert (unit.attack, unit.vitality, unit.speed) == (10, 10, 10)
    assert unit.max_hp == 80
    assert unit.id == "ally-1"
    assert unit.kit.basic.name == "Attack"
    assert unit.kit.basic.damage_multiplier == 1.0


def test_missing_hp_means_full_without_notice() -> None:
    notices: list[str] = []
    unit = _build({"name": "Fresh", "stats": {"vitality": 5}}, notices=notices)

    assert unit.hp == unit.max_hp == 40
    assert notices == []


def test_non_positive_hp_is_corrected_and_reported() -> None:
    notices: list[str] = []
    zero = _build({"name": "Zero", "hp": 0, "stats": {"vitality": 5}}, notices=notices)
    negative = _build({"name": "Negative", "hp": -5, "stats": {"vitality": 5}}, notices=notices)

    assert zero.hp == 40
    assert negative.hp == 40
    assert notices == [
        "Fixed invalid HP for Zero: 0 -> 40",
        "Fixed invalid HP for Negative: -5 -> 40",
    ]


def test_hp_is_capped_at_max_hp() -> None:
    unit = _build({"name": "Overfull", "hp": 9999, "stats": {"vitality": 5}})
    assert unit.hp == 40


def test_replay_mode_keeps_supplied_max_hp() -> None:
    data = {"name": "Boss", "hp": 300, "maxHp": 500, "stats": {"vitality": 5}}

    assert _build(data, BattleMode.REPLAY).max_hp == 500
    assert _build(data, BattleMode.SIMULATE).max_hp == 40


def test_skills_parse_with_defaults_and_cooldowns() -> None:
    unit = _build({
        "name": "Caster",
        "skills": {
            "basic": {"name": "Zap", "damage": 0.8},
            "advanced": {"name": "Arc", "damage": None, "cooldown": 2},
            "ultimate": "not a skill",
        },
    })

    assert (unit.kit.basic.name, unit.kit.basic.damage_multiplier) == ("Zap", 0.8)
    assert (unit.kit.advanced.damage_multiplier, unit.kit.advanced.cooldown) == (1.0, 2)
    assert unit.kit.ultimate is None


def test_status_effects_are_normalised_and_deduplicated() -> None:
    unit = _build({
        "name": "Cursed",
        "statusEffects": [
            {"type": "ReduceAtk", "duration": 2, "value": 10, "source": "e1"},
            {"kind": "burn", "remainingTurns": 3, "magnitude": 4},
            {"kind": "burning", "remainingTurns": 9, "magnitude": 9},
            {"kind": "frozen", "remainingTurns": 2},
            {"kind": "poison", "remainingTurns": 0, "magnitude": 5},
            "junk",
        ],
    })

    kinds = [e.kind for e in unit.status_effects]
    assert kinds == [EffectKind.REDUCE_ATTACK, EffectKind.BURN]
    weakness = unit.status_effects[0]
    assert (weakness.magnitude, weakness.remaining_turns, weakness.source_id) == (10, 2, "e1")
    assert unit.status_effects[1].magnitude == 4


def test_roster_needs_both_sides() -> None:
    with pytest.raises(RosterError):
        build_roster({"allies": [], "enemies": [{"name": "Bat"}]})
    with pytest.raises(RosterError):
        build_roster({"allies": [{"name": "Knight"}]})


def test_duplicate_ids_are_made_unique() -> None:
    allies, enemies = build_roster({
        "allies": [{"id": "x", "name": "One"}, {"id": "x", "name": "Two"}, {"id": "x", "name": "Three"}],
        "enemies": [{"id": "x", "name": "Four"}, {"id": "x-2", "name": "Five"}],
    })

    ids = [u.id for u in [*allies, *enemies]]
    assert ids[:3] == ["x", "x-2", "x-3"]
    assert len(set(ids)) == len(ids) == 5
    assert enemies[0].side is Side.ENEMY


def test_snapshot_reads_back_into_the_same_unit() -> None:
    original = _build({
        "id": "k1",
        "name": "Knight",
        "hp": 50,
        "stats": {"attack": 30, "vitality": 12, "speed": 44},
        "skills": {"basic": {"name": "Slash", "damage": 1.1}, "ultimate": {"name": "Smite", "damage": 2.0, "cooldown": 4}},
        "statusEffects": [{"kind": "poison", "remainingTurns": 2, "magnitude": 3, "sourceUnitId": "e9"}],
    })

    data = snapshot(original)
    again = _build(data, BattleMode.REPLAY)

    assert data["side"] == "ally"
    assert data["maxHp"] == 96
    assert (again.id, again.name, again.hp, again.max_hp) == ("k1", "Knight", 50, 96)
    assert again.kit == original.kit
    assert again.status_effects == original.status_effects
