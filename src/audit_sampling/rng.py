"""Seeded pseudo-random source shared by every selection algorithm."""

from __future__ import annotations

MULTIPLIER = 9301
INCREMENT = 49297
MODULUS = 233280


class SeededRandom:
    """Linear congruential generator ``x = (x * 9301 + 49297) mod 233280``.

    The sequence is not statistically strong; it exists so that a plan can be
    regenerated exactly from its recorded seed. Python integers keep the state
    update exact for any non-negative seed.
    """

    def __init__(self, seed: int) -> None:
        if seed < 0:
            raise ValueError("seed must be non-negative")
        self.seed = seed
        self._state = seed

    def random(self) -> float:
        """Advance the generator and return a float in ``[0, 1)``."""

        self._state = (self._state * MULTIPLIER + INCREMENT) % MODULUS
        return self._state / MODULUS

    def randbelow(self, n: int) -> int:
        """Return ``floor(random() * n)``, an integer in ``[0, n)``."""

        return int(self.random() * n)
