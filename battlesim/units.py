"""Core types for the battle engine.

Units, skills, status effects and the encounter aggregate. Everything here
is plain data plus the small amount of bookkeeping that has to stay
consistent (HP clamping, one effect per kind).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Side(Enum):
    ALLY = "ally"
    ENEMY = "enemy"

    @property
    def opposite(self) -> Side:
        return Side.ENEMY if self is Side.ALLY else Side.ALLY


class SkillTier(Enum):
    BASIC = "basic"
    ADVANCED = "advanced"
    ULTIMATE = "ultimate"


class EffectKind(Enum):
    BURN = "burn"
    POISON = "poison"
    REDUCE_ATTACK = "reduce_attack"
    REDUCE_SPEED = "reduce_speed"

    @property
    def is_dot(self) -> bool:
        return self in DOT_EFFECTS

    @property
    def is_negative(self) -> bool:
        return self in NEGATIVE_EFFECTS


DOT_EFFECTS = frozenset({EffectKind.BURN, EffectKind.POISON})

NEGATIVE_EFFECTS = frozenset({
    EffectKind.BURN,
    EffectKind.POISON,
    EffectKind.REDUCE_ATTACK,
    EffectKind.REDUCE_SPEED,
})

# Display names used in combat log lines.
EFFECT_LABELS: dict[EffectKind, str] = {
    EffectKind.BURN: "Burning",
    EffectKind.POISON: "Poisoned",
    EffectKind.REDUCE_ATTACK: "Weakened",
    EffectKind.REDUCE_SPEED: "Slowed",
}


class Outcome(Enum):
    IN_PROGRESS = "in_progress"
    STAGE_CLEARED = "stage_cleared"
    VICTORY = "victory"
    DEFEAT = "defeat"

    @property
    def is_terminal(self) -> bool:
        return self in (Outcome.VICTORY, Outcome.DEFEAT)


class BattleMode(Enum):
    SIMULATE = "simulate"
    REPLAY = "replay"


@dataclass(frozen=True)
class Skill:
    name: str
    damage_multiplier: float
    tier: SkillTier = SkillTier.BASIC
    cooldown: int = 0


@dataclass(frozen=True)
class SkillKit:
    basic: Skill
    advanced: Skill | None = None
    ultimate: Skill | None = None


@dataclass(frozen=True)
class AuraBonus:
    """Percentage modifiers granted by an equipped aura."""

    attack: float = 0.0
    speed: float = 0.0
    vitality: float = 0.0


@dataclass
class StatusEffect:
    kind: EffectKind
    magnitude: float
    remaining_turns: int
    source_id: str | None = None


@dataclass
class EffectCounters:
    attempts: int = 0
    successes: int = 0


@dataclass
class CombatUnit:
    id: str
    name: str
    side: Side
    hp: int
    max_hp: int
    attack: int
    vitality: int
    speed: int
    kit: SkillKit
    aura: AuraBonus = field(default_factory=AuraBonus)
    action_meter: float = 0.0
    attack_count: int = 0
    status_effects: list[StatusEffect] = field(default_factory=list)
    # Running totals, display only
    damage_dealt: int = 0
    damage_received: int = 0
    healing_done: int = 0
    healing_received: int = 0
    effect_counters: dict[EffectKind, EffectCounters] = field(default_factory=dict)

    @property
    def is_alive(self) -> bool:
        return self.hp > 0

    @property
    def hp_ratio(self) -> float:
        return self.hp / self.max_hp if self.max_hp > 0 else 0.0

    def find_effect(self, kind: EffectKind) -> StatusEffect | None:
        for effect in self.status_effects:
            if effect.kind is kind:
                return effect
        return None

    def negative_effects(self) -> list[StatusEffect]:
        return [e for e in self.status_effects if e.kind.is_negative]

    def take_damage(self, amount: int) -> int:
        """Lower HP by amount, floored at 0. Returns the HP actually lost."""
        lost = min(self.hp, max(0, amount))
        self.hp -= lost
        self.damage_received += lost
        return lost

    def heal(self, amount: int) -> int:
        """Raise HP by amount, capped at max_hp. Returns the HP actually gained."""
        gained = min(self.max_hp - self.hp, max(0, amount))
        self.hp += gained
        self.healing_received += gained
        return gained

    def counters_for(self, kind: EffectKind) -> EffectCounters:
        return self.effect_counters.setdefault(kind, EffectCounters())


@dataclass
class BattleEncounter:
    """One dungeon run: up to ``total_stages`` waves of enemies."""

    allies: list[CombatUnit]
    enemies: list[CombatUnit]
    total_stages: int = 8
    stage_index: int = 0
    outcome: Outcome = Outcome.IN_PROGRESS
    turn_counter: int = 0
    tick_count: int = 0
    action_log: list[str] = field(default_factory=list)
    events: list[dict[str, Any]] = field(default_factory=list)
    # Stage-0 enemy roster; later stages are scaled copies of these.
    enemy_templates: list[CombatUnit] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.outcome.is_terminal

    def units(self) -> list[CombatUnit]:
        return [*self.allies, *self.enemies]

    def side_of(self, side: Side) -> list[CombatUnit]:
        return self.allies if side is Side.ALLY else self.enemies

    def living(self, side: Side) -> list[CombatUnit]:
        return [u for u in self.side_of(side) if u.is_alive]

    def find_unit(self, key: str) -> CombatUnit | None:
        """Look a unit up by id, falling back to display name."""
        for unit in self.units():
            if unit.id == key:
                return unit
        for unit in self.units():
            if unit.name == key:
                return unit
        return None

    def record(self, event: dict[str, Any], message: str | None = None) -> None:
        """Append an event (and optionally a log line) to the battle history."""
        self.events.append({"tick": self.tick_count, **event})
        if message is not None:
            self.action_log.append(message)

    def system_message(self, message: str) -> None:
        self.record({"type": "system_message", "message": message}, f"System: {message}")
