"""Deterministic seed derivation for the battle engine.

All random events must go through these functions. Never use random.random() directly.
Seed chain: match_seed -> turn_seed -> roll_seed -> seeded_random()
"""

from __future__ import annotations

import hashlib
import struct
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")


def derive_turn_seed(match_seed: int, turn_index: int) -> int:
    """Derive a turn-specific seed from match seed and turn index."""
    data = struct.pack(">QI", match_seed & 0xFFFFFFFFFFFFFFFF, turn_index & 0xFFFFFFFF)
    h = hashlib.sha256(data).digest()
    return struct.unpack(">I", h[:4])[0]


def derive_roll_seed(match_seed: int, turn_index: int, roll_index: int) -> int:
    """Derive a seed for the n-th random roll made during one turn."""
    turn_seed = derive_turn_seed(match_seed, turn_index)
    data = struct.pack(">II", turn_seed, roll_index & 0xFFFFFFFF)
    h = hashlib.sha256(data).digest()
    return struct.unpack(">I", h[:4])[0]


def seeded_random(seed: int, min_val: float = 0.0, max_val: float = 1.0) -> float:
    """Generate a deterministic random float in [min_val, max_val) from a seed."""
    seed = seed & 0xFFFFFFFF
    data = struct.pack(">I", seed)
    h = hashlib.sha256(data).digest()
    raw = struct.unpack(">Q", h[:8])[0]
    normalized = raw / (2**64)
    return min_val + normalized * (max_val - min_val)


def seeded_bool(seed: int, probability: float) -> bool:
    """Return True with given probability, deterministically from seed."""
    if probability <= 0.0:
        return False
    if probability >= 1.0:
        return True
    return seeded_random(seed) < probability


def seeded_index(seed: int, length: int) -> int:
    """Pick a uniform index in [0, length) from a seed."""
    if length <= 0:
        raise ValueError(f"Cannot pick from an empty sequence (length={length})")
    return min(int(seeded_random(seed) * length), length - 1)


@dataclass
class RollStream:
    """Sequence of independent rolls for one resolved turn.

    Each call consumes the next roll index, so the same (match_seed, turn)
    pair always replays the same decisions in the same order.
    """

    match_seed: int
    turn_index: int
    rolls: int = 0

    def next_seed(self) -> int:
        self.rolls += 1
        return derive_roll_seed(self.match_seed, self.turn_index, self.rolls)

    def chance(self, probability: float) -> bool:
        return seeded_bool(self.next_seed(), probability)

    def index(self, length: int) -> int:
        return seeded_index(self.next_seed(), length)

    def choice(self, items: Sequence[T]) -> T:
        return items[self.index(len(items))]
