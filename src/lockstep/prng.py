from __future__ import annotations

import random
from typing import Sequence, TypeVar

Seed = tuple[int, int, int, int]

T = TypeVar("T")

_MASK64 = (1 << 64) - 1
_MULTIPLIER = 0x5D588B656C078965
_INCREMENT = 0x269EC3


class PRNG:
    """Pokemon Showdown's Gen 5 64-bit LCG.

    Matches:
      state = state * 0x5D588B656C078965 + 0x269EC3  (mod 2**64)
      next(n) = ((state >> 32) * n) >> 32

    The state is exposed as four u16 chunks, most significant first, which is the shape Showdown
    uses for seeds in input logs and battle snapshots.
    """

    __slots__ = ("_state",)

    def __init__(self, seed: Sequence[int]) -> None:
        self._state = seed_to_int(seed)

    @classmethod
    def from_int(cls, value: int) -> "PRNG":
        return cls(seed_from_int(value))

    @classmethod
    def generate(cls) -> "PRNG":
        rng = random.SystemRandom()
        return cls(tuple(rng.randrange(0x10000) for _ in range(4)))

    @property
    def state(self) -> int:
        return self._state

    @property
    def seed(self) -> Seed:
        return seed_from_int(self._state)

    def _advance(self) -> int:
        self._state = (self._state * _MULTIPLIER + _INCREMENT) & _MASK64
        return self._state >> 32

    def next(self, lo: int | None = None, hi: int | None = None) -> int:
        """`next()` is the raw upper 32 bits, `next(n)` is in `[0, n)`, `next(lo, hi)` is in `[lo, hi)`."""
        value = self._advance()
        if lo is None:
            return value
        if hi is None:
            return (value * int(lo)) >> 32
        return int(lo) + ((value * (int(hi) - int(lo))) >> 32)

    def random_chance(self, numerator: int, denominator: int) -> bool:
        return self.next(denominator) < int(numerator)

    def sample(self, items: Sequence[T]) -> T:
        if not items:
            raise ValueError("cannot sample an empty sequence")
        return items[self.next(len(items))]

    def clone(self) -> "PRNG":
        return PRNG(self.seed)


def new_seed(prng: PRNG) -> Seed:
    """Derive a sub-seed; advances `prng` exactly four times."""
    return (prng.next(0x10000), prng.next(0x10000), prng.next(0x10000), prng.next(0x10000))


def seed_to_int(seed: Sequence[int]) -> int:
    values = tuple(int(v) for v in seed)
    if len(values) != 4 or any(not 0 <= v <= 0xFFFF for v in values):
        raise ValueError(f"seed must be four u16 values, got {tuple(seed)!r}")
    return (values[0] << 48) | (values[1] << 32) | (values[2] << 16) | values[3]


def seed_from_int(value: int) -> Seed:
    value = int(value)
    if not 0 <= value <= _MASK64:
        raise ValueError(f"seed out of u64 range: {value}")
    return ((value >> 48) & 0xFFFF, (value >> 32) & 0xFFFF, (value >> 16) & 0xFFFF, value & 0xFFFF)


def seed_hex(seed: Sequence[int]) -> str:
    return f"0x{seed_to_int(seed):X}"


class BattleSeeds:
    """Sub-seeds for one battle, derived from the root generator in a fixed order."""

    __slots__ = ("battle", "p1_team", "p2_team", "p1_player", "p2_player")

    def __init__(self, root: PRNG) -> None:
        self.battle: Seed = root.seed
        self.p1_team: Seed = new_seed(root)
        self.p2_team: Seed = new_seed(root)
        self.p1_player: Seed = new_seed(root)
        self.p2_player: Seed = new_seed(root)

    def __repr__(self) -> str:
        return f"BattleSeeds(battle={seed_hex(self.battle)})"
