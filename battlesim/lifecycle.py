"""Battle and stage lifecycle: wipe/clear detection, enemy re-scaling, rewards."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass

from battlesim.config import DEFAULT_CONFIG, EngineConfig
from battlesim.status import scale_percent, strip_negative_effects
from battlesim.units import BattleEncounter, CombatUnit, Outcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rewards:
    rogue_credits: int
    forge_tokens: int

    def to_dict(self) -> dict[str, int]:
        return {"rogueCredits": self.rogue_credits, "forgeTokens": self.forge_tokens}


def compute_rewards(stage_index: int, config: EngineConfig = DEFAULT_CONFIG) -> Rewards:
    """floor(50 * 1.2^s) and floor(15 * 1.3^s), computed in exact integers."""
    s = max(0, stage_index)
    primary = config.reward_base * config.reward_growth_pct**s // 100**s
    secondary = config.secondary_reward_base * config.secondary_reward_growth_pct**s // 100**s
    return Rewards(rogue_credits=primary, forge_tokens=secondary)


def derive_max_hp(vitality: int, aura_vitality: float, config: EngineConfig = DEFAULT_CONFIG) -> int:
    return max(1, scale_percent(vitality, aura_vitality) * config.hp_per_vitality)


def scale_enemy(
    template: CombatUnit,
    cleared_stage: int,
    config: EngineConfig = DEFAULT_CONFIG,
) -> CombatUnit:
    """Fresh copy of a stage-0 enemy for the stage after ``cleared_stage``."""
    stat_pct = cleared_stage * config.stage_stat_scaling_pct
    speed_pct = cleared_stage * config.stage_speed_scaling_pct
    attack = max(1, template.attack * (100 + stat_pct) // 100)
    vitality = max(1, template.vitality * (100 + stat_pct) // 100)
    speed = max(1, template.speed * (100 + speed_pct) // 100)
    max_hp = derive_max_hp(vitality, template.aura.vitality, config)
    stage_number = cleared_stage + 2  # 1-based number of the new stage
    return dataclasses.replace(
        template,
        id=f"{template.id}-s{stage_number}",
        name=f"{template.name} (Stage {stage_number})",
        attack=attack,
        vitality=vitality,
        speed=speed,
        hp=max_hp,
        max_hp=max_hp,
        action_meter=0.0,
        attack_count=0,
        status_effects=[],
        damage_dealt=0,
        damage_received=0,
        healing_done=0,
        healing_received=0,
        effect_counters={},
    )


def check_transition(encounter: BattleEncounter) -> Outcome:
    """Classify the encounter right now. Sets the terminal outcome when reached."""
    if encounter.is_complete:
        return encounter.outcome
    if not any(u.is_alive for u in encounter.allies):
        encounter.outcome = Outcome.DEFEAT
        return Outcome.DEFEAT
    if not any(u.is_alive for u in encounter.enemies):
        if encounter.stage_index >= encounter.total_stages - 1:
            encounter.outcome = Outcome.VICTORY
            return Outcome.VICTORY
        return Outcome.STAGE_CLEARED
    return Outcome.IN_PROGRESS


def advance_stage(encounter: BattleEncounter, config: EngineConfig = DEFAULT_CONFIG) -> list[CombatUnit]:
    """Regenerate the enemy roster for the next stage.

    Allies keep their HP and meters; only their negative effects go.
    """
    cleared = encounter.stage_index
    templates = encounter.enemy_templates or encounter.enemies
    encounter.enemies = [scale_enemy(t, cleared, config) for t in templates]
    encounter.stage_index = cleared + 1
    for ally in encounter.allies:
        strip_negative_effects(ally)
    logger.info(
        "Stage %d cleared, advancing to stage %d/%d",
        cleared + 1, encounter.stage_index + 1, encounter.total_stages,
    )
    return encounter.enemies
