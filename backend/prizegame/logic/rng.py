"""Randomness sources for prize selection."""
import random
import secrets
from abc import ABC, abstractmethod
from typing import Sequence, TypeVar

T = TypeVar("T")


class RNGBase(ABC):
    """Abstract RNG interface used by the selectors."""

    @abstractmethod
    def random(self) -> float:
        """Return random float in [0, 1)."""
        pass

    @abstractmethod
    def randint(self, a: int, b: int) -> int:
        """Return random int in [a, b] inclusive."""
        pass

    def choice(self, items: Sequence[T]) -> T:
        """Uniform pick from a non-empty sequence."""
        if not items:
            raise IndexError("Cannot choose from an empty sequence")
        return items[self.randint(0, len(items) - 1)]

    def shuffled(self, items: Sequence[T]) -> list[T]:
        """Return a uniformly shuffled copy (Fisher-Yates)."""
        result = list(items)
        for i in range(len(result) - 1, 0, -1):
            j = self.randint(0, i)
            result[i], result[j] = result[j], result[i]
        return result


class ProductionRNG(RNGBase):
    """
    Production RNG.

    Backed by the OS entropy source, no fixed seed.
    """

    def random(self) -> float:
        return secrets.randbelow(2**32) / (2**32)

    def randint(self, a: int, b: int) -> int:
        return secrets.randbelow(b - a + 1) + a


class SeededRNG(RNGBase):
    """
    Test/Simulation RNG.

    Deterministic, fully controlled by seed.
    """

    def __init__(self, seed: int):
        self._rng = random.Random(seed)
        self.seed = seed

    def random(self) -> float:
        return self._rng.random()

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)
