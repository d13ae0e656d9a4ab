"""Engine tuning constants, loaded from the bundled config.json."""

from __future__ import annotations

import dataclasses
import hashlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).parent / "config.json"


@dataclass(frozen=True)
class EngineConfig:
    tick_interval_ms: int = 300
    meter_threshold: int = 100
    speed_reference: int = 40
    total_stages: int = 8
    stage_stat_scaling_pct: int = 12
    stage_speed_scaling_pct: int = 5
    hp_per_vitality: int = 8
    reward_base: int = 50
    reward_growth_pct: int = 120
    secondary_reward_base: int = 15
    secondary_reward_growth_pct: int = 130
    max_ticks: int = 200_000
    playback_speeds: tuple[int, ...] = (1, 2, 4, 8)
    default_advanced_cooldown: int = 3
    default_ultimate_cooldown: int = 5

    def __post_init__(self) -> None:
        if self.total_stages < 1:
            raise ValueError(f"total_stages must be >= 1, got {self.total_stages}")
        if self.speed_reference <= 0:
            raise ValueError(f"speed_reference must be > 0, got {self.speed_reference}")
        if self.meter_threshold <= 0:
            raise ValueError(f"meter_threshold must be > 0, got {self.meter_threshold}")
        if not self.playback_speeds:
            raise ValueError("playback_speeds cannot be empty")

    def validate_speed(self, speed: int) -> int:
        if speed not in self.playback_speeds:
            valid = ", ".join(str(s) for s in self.playback_speeds)
            raise ValueError(f"Playback speed must be one of {valid}, got {speed}")
        return speed


def load_config(path: Path | str | None = None, **overrides: Any) -> EngineConfig:
    """Read a config JSON file and apply keyword overrides on top."""
    config_path = Path(path) if path is not None else CONFIG_PATH
    data: dict[str, Any] = {}
    if config_path.exists():
        data = json.loads(config_path.read_text(encoding="utf-8"))
    else:
        logger.warning("Config file %s not found, using defaults", config_path)

    known = {f.name for f in dataclasses.fields(EngineConfig)}
    values: dict[str, Any] = {}
    for key, value in {**data, **overrides}.items():
        if key not in known:
            logger.warning("Ignoring unknown config key %r", key)
            continue
        values[key] = value
    if "playback_speeds" in values:
        values["playback_speeds"] = tuple(int(s) for s in values["playback_speeds"])
    return EngineConfig(**values)


def config_hash(path: Path | str | None = None) -> str:
    """Return first 8 chars of the config file's SHA-256."""
    config_path = Path(path) if path is not None else CONFIG_PATH
    if not config_path.exists():
        return "unknown"
    return hashlib.sha256(config_path.read_bytes()).hexdigest()[:8]


DEFAULT_CONFIG = load_config()
