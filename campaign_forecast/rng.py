"""Seeded pseudo-random source and triangular sampling.

A non-empty string seed is hashed with xmur3 and drives a mulberry32
generator, so the same seed yields the same sequence on every platform.
An empty seed falls back to numpy's entropy-seeded generator.
"""

import math
from typing import Callable, Optional

import numpy as np

Rng = Callable[[], float]

_MASK32 = 0xFFFFFFFF


def _imul(a: int, b: int) -> int:
    return (a * b) & _MASK32


def xmur3(seed: str) -> Callable[[], int]:
    """Return a 32-bit hash stream for ``seed`` (UTF-16 code units)."""
    units = seed.encode("utf-16-le")
    h = (1779033703 ^ (len(units) // 2)) & _MASK32
    for i in range(0, len(units), 2):
        code = units[i] | (units[i + 1] << 8)
        h = _imul(h ^ code, 3432918353)
        h = ((h << 13) | (h >> 19)) & _MASK32

    def next_hash() -> int:
        nonlocal h
        h = _imul(h ^ (h >> 16), 2246822507)
        h = _imul(h ^ (h >> 13), 3266489909)
        h = (h ^ (h >> 16)) & _MASK32
        return h

    return next_hash


class Mulberry32:
    """32-bit generator returning uniform draws in [0, 1)."""

    def __init__(self, state: int):
        self.state = state & _MASK32

    def __call__(self) -> float:
        a = (self.state + 0x6D2B79F5) & _MASK32
        self.state = a
        t = _imul(a ^ (a >> 15), 1 | a)
        t = ((t + _imul(t ^ (t >> 7), 61 | t)) & _MASK32) ^ t
        return ((t ^ (t >> 14)) & _MASK32) / 4294967296.0


def make_rng(seed: Optional[str] = None) -> Rng:
    if not seed:
        return np.random.default_rng().random
    return Mulberry32(xmur3(str(seed))())


def tri_sample(lo: float, mode: float, hi: float, rng: Rng) -> float:
    """Inverse-CDF draw from triangular(lo, mode, hi) using one uniform."""
    u = rng()
    span = hi - lo
    c = (mode - lo) / (span or 1)
    if u < c:
        return lo + math.sqrt(u * span * (mode - lo))
    return hi - math.sqrt((1 - u) * span * (hi - mode))
