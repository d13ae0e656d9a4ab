"""Speed scheduler: fills action meters and decides who acts this tick."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from battlesim.config import DEFAULT_CONFIG, EngineConfig
from battlesim.status import effective_speed
from battlesim.units import CombatUnit

logger = logging.getLogger(__name__)


def meter_increase(
    unit: CombatUnit,
    playback_speed: int = 1,
    config: EngineConfig = DEFAULT_CONFIG,
) -> float:
    return effective_speed(unit) / config.speed_reference * playback_speed


def advance_meters(
    units: Iterable[CombatUnit],
    playback_speed: int = 1,
    config: EngineConfig = DEFAULT_CONFIG,
) -> list[CombatUnit]:
    """Fill every living unit's meter once and return the units that filled.

    Ready units come back in the order given and have their meter reset to 0;
    any surplus over the threshold is discarded.
    """
    ready: list[CombatUnit] = []
    for unit in units:
        if not unit.is_alive:
            continue
        unit.action_meter += meter_increase(unit, playback_speed, config)
        if unit.action_meter >= config.meter_threshold:
            logger.debug("%s ready (meter %.2f)", unit.name, unit.action_meter)
            unit.action_meter = 0.0
            ready.append(unit)
    return ready
