"""
Seedable random sources.

Everything random in a game (first player, special tiles, effect rolls, card
draws) goes through a ``RandomSource`` so a game can be replayed from a seed
and tests can script the exact sequence of rolls.
"""

from typing import List, MutableSequence, Optional, Sequence, TypeVar

import numpy as np

T = TypeVar("T")


class RandomSource:
    """
    Base random source. Subclasses provide ``random()``; the helpers below
    are all derived from it so a scripted sequence drives every decision.
    """

    def random(self) -> float:
        """Float in [0, 1)."""
        raise NotImplementedError

    def randint(self, low: int, high: int) -> int:
        """Integer in [low, high] inclusive."""
        if high < low:
            raise ValueError(f"Empty range [{low}, {high}]")
        span = high - low + 1
        return low + min(int(self.random() * span), span - 1)

    def uniform(self, low: float, high: float) -> float:
        return low + (high - low) * self.random()

    def choice(self, items: Sequence[T]) -> T:
        if not items:
            raise ValueError("Cannot choose from an empty sequence")
        return items[self.randint(0, len(items) - 1)]

    def shuffle(self, items: MutableSequence[T]) -> None:
        """In-place Fisher-Yates shuffle."""
        for i in range(len(items) - 1, 0, -1):
            j = self.randint(0, i)
            items[i], items[j] = items[j], items[i]

    def token(self, length: int = 6) -> str:
        alphabet = "abcdefghijklmnopqrstuvwxyz0123456789"
        return "".join(alphabet[self.randint(0, len(alphabet) - 1)] for _ in range(length))


class SeededRandom(RandomSource):
    """Production source backed by numpy's RandomState."""

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self.rng = np.random.RandomState(seed)

    def random(self) -> float:
        return float(self.rng.random_sample())

    def set_seed(self, seed: int) -> None:
        self.seed = seed
        self.rng = np.random.RandomState(seed)


class SequenceRandom(RandomSource):
    """
    Replays a fixed list of floats, cycling when exhausted.

    ``SequenceRandom([0.0])`` always picks the first option; ``0.99`` the last.
    """

    def __init__(self, values: List[float]):
        if not values:
            raise ValueError("SequenceRandom needs at least one value")
        for value in values:
            if not 0.0 <= value < 1.0:
                raise ValueError(f"Sequence values must be in [0, 1), got {value}")
        self.values = list(values)
        self.index = 0

    def random(self) -> float:
        value = self.values[self.index % len(self.values)]
        self.index += 1
        return value
