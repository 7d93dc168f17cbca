"""Seeded pseudo-random stream used for board generation.

Mulberry32 is small, fast, and easy to reimplement, which matters because a
verifier in any language must be able to reproduce a board from its seed.
The arithmetic below is bit-compatible with the common JavaScript version.
"""
import hashlib
from typing import Callable, List, TypeVar, Union

MASK32 = 0xFFFFFFFF
GOLDEN_GAMMA = 0x6D2B79F5

SeedLike = Union[int, bytes, str]
T = TypeVar("T")


def _imul(a: int, b: int) -> int:
    """32-bit integer multiply, like Math.imul."""
    return (a * b) & MASK32


def seed_to_int(seed: SeedLike) -> int:
    """Reduce a seed to an unsigned 32-bit integer.

    Integers are masked, bytes use their first four bytes big-endian, and
    strings are SHA-256 hashed first.
    """
    if isinstance(seed, bool):
        raise TypeError("seed must be int, bytes or str")
    if isinstance(seed, int):
        return seed & MASK32
    if isinstance(seed, str):
        seed = hashlib.sha256(seed.encode("utf-8")).digest()
    if isinstance(seed, (bytes, bytearray)):
        if len(seed) < 4:
            raise ValueError("seed bytes must be at least 4 bytes long")
        return int.from_bytes(seed[:4], "big")
    raise TypeError("seed must be int, bytes or str")


def mulberry32(seed: int) -> Callable[[], float]:
    """Return a generator of floats in [0, 1) seeded by a 32-bit integer."""
    state = seed & MASK32

    def next_float() -> float:
        nonlocal state
        state = (state + GOLDEN_GAMMA) & MASK32
        t = state
        t = _imul(t ^ (t >> 15), t | 1)
        t ^= (t + _imul(t ^ (t >> 7), t | 61)) & MASK32
        return ((t ^ (t >> 14)) & MASK32) / 4294967296

    return next_float


class SeededRandom:
    """Convenience wrapper around a Mulberry32 stream."""

    def __init__(self, seed: SeedLike):
        self.seed = seed_to_int(seed)
        self._next = mulberry32(self.seed)

    def random(self) -> float:
        return self._next()

    def randbelow(self, n: int) -> int:
        """Uniform integer in [0, n)."""
        if n <= 0:
            raise ValueError("n must be positive")
        return int(self._next() * n)

    def choice(self, items: List[T]) -> T:
        if not items:
            raise IndexError("cannot choose from an empty list")
        return items[self.randbelow(len(items))]

    def shuffle(self, items: List[T]) -> None:
        """Fisher-Yates shuffle in place, walking from the end."""
        for i in range(len(items) - 1, 0, -1):
            j = self.randbelow(i + 1)
            items[i], items[j] = items[j], items[i]
