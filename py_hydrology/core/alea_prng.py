"""
Seedable Alea PRNG used for every random draw in a hydrology run.

Based on Johannes Baagøe's Alea algorithm. A single instance is created per
run from the run seed and handed to the stages that need randomness, so two
runs with the same seed and inputs produce identical output.
"""

from typing import Union

Seed = Union[int, str]

_TWO_POW_32 = 0x100000000
_TWO_POW_NEG_32 = 2.3283064365386963e-10


def _uint32(n) -> int:
    """Convert to unsigned 32-bit integer."""
    return int(n) & 0xFFFFFFFF


class _Mash:
    """Alea's string hashing function, stateful across calls."""

    def __init__(self):
        self.n = 0xEFC8249D

    def __call__(self, data) -> float:
        n = self.n
        for char in str(data):
            n += ord(char)
            h = 0.02519603282416938 * n
            n = _uint32(h)
            h -= n
            h *= n
            n = _uint32(h)
            h -= n
            n += h * _TWO_POW_32
        self.n = n
        return _uint32(n) * _TWO_POW_NEG_32


class AleaPRNG:
    """
    Alea generator producing floats in [0, 1).

    Args:
        seed: Integer or string seed. Integers and their decimal string form
            produce the same sequence.
    """

    def __init__(self, seed: Seed = "hydrology"):
        self.seed = seed
        self.call_count = 0

        mash = _Mash()
        self.s0 = mash(" ")
        self.s1 = mash(" ")
        self.s2 = mash(" ")
        self.c = 1

        self.s0 -= mash(seed)
        if self.s0 < 0:
            self.s0 += 1
        self.s1 -= mash(seed)
        if self.s1 < 0:
            self.s1 += 1
        self.s2 -= mash(seed)
        if self.s2 < 0:
            self.s2 += 1

    def random(self) -> float:
        """Generate next random number in [0, 1)."""
        self.call_count += 1
        t = 2091639 * self.s0 + self.c * _TWO_POW_NEG_32
        self.s0 = self.s1
        self.s1 = self.s2
        self.c = int(t)
        self.s2 = t - self.c
        return self.s2

    def uniform(self, low: float, high: float) -> float:
        """Float in [low, high)."""
        return low + (high - low) * self.random()
