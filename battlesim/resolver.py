"""Action resolver: one unit's turn, from skill pick to secondary effects."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from battlesim.config import DEFAULT_CONFIG, EngineConfig
from battlesim.rules import DEFAULT_RULES, EffectRule, RuleTable, SkillRule
from battlesim.seed import RollStream
from battlesim.status import (
    apply_effect,
    effective_attack,
    floor_value,
    remove_negative_effect,
)
from battlesim.units import (
    EFFECT_LABELS,
    BattleEncounter,
    CombatUnit,
    Skill,
    StatusEffect,
)

logger = logging.getLogger(__name__)


@dataclass
class Hit:
    target_id: str
    damage: int
    defeated: bool


@dataclass
class TurnResult:
    actor_id: str
    skill: Skill
    turn: int
    hits: list[Hit] = field(default_factory=list)

    @property
    def any_defeated(self) -> bool:
        return any(h.defeated for h in self.hits)


def _cooldown(skill: Skill, default: int) -> int:
    return skill.cooldown if skill.cooldown > 0 else default


def select_skill(unit: CombatUnit, config: EngineConfig = DEFAULT_CONFIG) -> Skill:
    """Bump the unit's attack count and pick the skill that count unlocks."""
    unit.attack_count += 1
    kit = unit.kit
    if kit.ultimate is not None:
        if unit.attack_count % _cooldown(kit.ultimate, config.default_ultimate_cooldown) == 0:
            return kit.ultimate
    if kit.advanced is not None:
        if unit.attack_count % _cooldown(kit.advanced, config.default_advanced_cooldown) == 0:
            return kit.advanced
    return kit.basic


def compute_damage(attacker: CombatUnit, skill: Skill) -> int:
    return max(0, floor_value(effective_attack(attacker) * skill.damage_multiplier))


class ActionResolver:
    def __init__(
        self,
        rules: RuleTable = DEFAULT_RULES,
        config: EngineConfig = DEFAULT_CONFIG,
    ) -> None:
        self.rules = rules
        self.config = config

    def resolve_turn(
        self,
        encounter: BattleEncounter,
        actor: CombatUnit,
        match_seed: int,
    ) -> TurnResult | None:
        """Execute actor's turn against the encounter.

        Returns None when there is nothing to hit; the turn is then skipped
        without touching the actor.
        """
        opponents = encounter.living(actor.side.opposite)
        if not actor.is_alive or not opponents:
            logger.debug("%s has no target, skipping turn", actor.name)
            return None

        encounter.turn_counter += 1
        turn = encounter.turn_counter
        rolls = RollStream(match_seed, turn)

        skill = select_skill(actor, self.config)
        rule = self.rules.rule_for(skill)
        targets = self._pick_targets(opponents, rule, rolls)
        damage = compute_damage(actor, skill)

        result = TurnResult(actor_id=actor.id, skill=skill, turn=turn)
        for target in targets:
            result.hits.append(self._strike(encounter, actor, target, skill, damage, turn))

        primary = targets[0]
        effect_rule = self.rules.effect_for(skill)
        if effect_rule is not None and primary.is_alive:
            self._roll_effect(encounter, actor, primary, effect_rule, rolls)
        if rule.cleanse_chance > 0 and rolls.chance(rule.cleanse_chance):
            self._cleanse(encounter, actor, rolls)
        if rule.heal_percent > 0:
            self._heal_lowest(encounter, actor, rule)
        if rule.meter_push_chance > 0 and primary.is_alive and rolls.chance(rule.meter_push_chance):
            self._push_meter(encounter, actor, primary, rule)
        return result

    # -- Targeting -------------------------------------------------------------

    def _pick_targets(
        self,
        opponents: list[CombatUnit],
        rule: SkillRule,
        rolls: RollStream,
    ) -> list[CombatUnit]:
        pool = list(opponents)
        primary = pool.pop(rolls.index(len(pool)))
        targets = [primary]

        extra = rule.extra_targets
        if rule.bonus_target_chance > 0 and rolls.chance(rule.bonus_target_chance):
            extra += 1
        while extra > 0 and pool:
            targets.append(pool.pop(rolls.index(len(pool))))
            extra -= 1
        return targets

    # -- Effects of the action -------------------------------------------------

    def _strike(
        self,
        encounter: BattleEncounter,
        actor: CombatUnit,
        target: CombatUnit,
        skill: Skill,
        damage: int,
        turn: int,
    ) -> Hit:
        was_alive = target.is_alive
        dealt = target.take_damage(damage)
        actor.damage_dealt += dealt
        encounter.record(
            {
                "type": "action",
                "turn": turn,
                "actor": actor.id,
                "skill": skill.name,
                "tier": skill.tier.value,
                "target": target.id,
                "damage": dealt,
                "hp_remaining": target.hp,
            },
            f"Turn {turn}: {actor.name} used {skill.name} on {target.name} for {dealt} damage!",
        )
        defeated = was_alive and not target.is_alive
        if defeated:
            encounter.record(
                {"type": "defeat", "target": target.id},
                f"{target.name} has been defeated!",
            )
        return Hit(target_id=target.id, damage=dealt, defeated=defeated)

    def _roll_effect(
        self,
        encounter: BattleEncounter,
        actor: CombatUnit,
        target: CombatUnit,
        effect_rule: EffectRule,
        rolls: RollStream,
    ) -> None:
        chance = effect_rule.chance
        if effect_rule.kind is None:
            effect_rule = rolls.choice(self.rules.generic_debuffs())
        kind = effect_rule.kind
        counters = actor.counters_for(kind)
        counters.attempts += 1
        if not rolls.chance(chance):
            return
        effect = StatusEffect(
            kind=kind,
            magnitude=effect_rule.magnitude,
            remaining_turns=effect_rule.turns,
            source_id=actor.id,
        )
        applied = apply_effect(target, effect)
        label = EFFECT_LABELS[kind]
        if applied:
            counters.successes += 1
            message = f"{target.name} is {label} by {actor.name}!"
        else:
            message = f"{target.name} resisted {label}!"
        encounter.record(
            {
                "type": "status",
                "source": actor.id,
                "target": target.id,
                "effect": kind.value,
                "magnitude": effect.magnitude,
                "turns": effect.remaining_turns,
                "applied": applied,
            },
            message,
        )

    def _cleanse(self, encounter: BattleEncounter, actor: CombatUnit, rolls: RollStream) -> None:
        candidates = [u for u in encounter.living(actor.side) if u.negative_effects()]
        if not candidates:
            return
        target = rolls.choice(candidates)
        removed = remove_negative_effect(target, rolls.index(len(target.negative_effects())))
        if removed is None:
            return
        encounter.record(
            {
                "type": "cleanse",
                "source": actor.id,
                "target": target.id,
                "effect": removed.kind.value,
            },
            f"{actor.name} cleansed {EFFECT_LABELS[removed.kind]} from {target.name}!",
        )

    def _heal_lowest(self, encounter: BattleEncounter, actor: CombatUnit, rule: SkillRule) -> None:
        candidates = [u for u in encounter.living(actor.side) if u.hp < u.max_hp]
        if not candidates:
            return
        target = min(candidates, key=lambda u: u.hp_ratio)
        amount = actor.max_hp * rule.heal_percent // 100
        healed = target.heal(amount)
        actor.healing_done += healed
        encounter.record(
            {
                "type": "heal",
                "source": actor.id,
                "target": target.id,
                "healing": healed,
                "hp_remaining": target.hp,
            },
            f"{actor.name} healed {target.name} for {healed} HP!",
        )

    def _push_meter(
        self,
        encounter: BattleEncounter,
        actor: CombatUnit,
        target: CombatUnit,
        rule: SkillRule,
    ) -> None:
        target.action_meter = max(0.0, target.action_meter - rule.meter_push)
        encounter.record(
            {
                "type": "meter_push",
                "source": actor.id,
                "target": target.id,
                "amount": rule.meter_push,
                "meter": target.action_meter,
            },
            f"{actor.name} pushed back {target.name}'s action meter!",
        )
