"""RNG utilities for deterministic recording and replay.

Every randomized decision in a recorded simulation must go through one of
the RNGs defined here. Each draw carries a human-readable label and is
appended to a call log, so a replay that drifts can be localized to the
subsystem whose draws differ.

The seeded generator is Mulberry32. It is small, has a good distribution
for simulation use, and (unlike ``random.Random``) produces the same
sequence in any language that implements 32-bit unsigned arithmetic, which
keeps recorded sessions portable between builds.
"""

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, TypeVar, Union

from replay.exceptions import UnseededRNGError

T = TypeVar("T")

_MASK32 = 0xFFFFFFFF
_GOLDEN = 0x6D2B79F5
_TWO_POW_32 = 4294967296.0
MAX_SEED = 2147483647


@dataclass(frozen=True)
class DrawRecord:
    """One labelled draw from an RNG.

    Attributes:
        label: Why the draw was made (for diagnostics only; never affects value)
        value: The drawn float in [0, 1)
        index: Position of the draw in the RNG's call log
    """

    label: str
    value: float
    index: int


def _imul(a: int, b: int) -> int:
    return (a * b) & _MASK32


class _LoggingRNG(ABC):
    """Shared draw bookkeeping for the seeded and live generators."""

    def __init__(self) -> None:
        self._call_log: List[DrawRecord] = []

    @abstractmethod
    def _next_value(self) -> float:
        """Produce the next raw value in [0, 1)."""

    def random(self, label: Optional[str] = None) -> float:
        """Draw a float in [0, 1) and log it under ``label``."""
        value = self._next_value()
        self._call_log.append(
            DrawRecord(label=label or "random", value=value, index=len(self._call_log))
        )
        return value

    def pick_random(self, items: Sequence[T], label: Optional[str] = None) -> T:
        """Pick one element of ``items`` using a single draw.

        Raises:
            ValueError: If ``items`` is empty
        """
        if len(items) == 0:
            raise ValueError("Cannot pick from empty sequence")
        return items[int(self.random(label or "pickRandom") * len(items))]

    def random_in_range(self, low: float, high: float, label: Optional[str] = None) -> float:
        return low + self.random(label or "randomInRange") * (high - low)

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def get_call_count(self) -> int:
        return len(self._call_log)

    def get_call_log(self) -> List[DrawRecord]:
        """Return a copy of every draw made so far, in order."""
        return list(self._call_log)


class SeededRNG(_LoggingRNG):
    """Reproducible Mulberry32 generator.

    Two instances built from the same seed and driven with the same sequence
    of calls yield identical values, whatever labels the calls carry.

    Example:
        rng = SeededRNG(42)
        roll = rng.random("attention_check")
        part = rng.pick_random(["p1", "p2"], "grievance_target")
    """

    def __init__(self, seed: int) -> None:
        super().__init__()
        self._initial_seed = int(seed) & _MASK32
        self._state = self._initial_seed

    @property
    def initial_seed(self) -> int:
        return self._initial_seed

    def _next_value(self) -> float:
        self._state = (self._state + _GOLDEN) & _MASK32
        t = self._state
        t = _imul(t ^ (t >> 15), t | 1)
        t ^= (t + _imul(t ^ (t >> 7), t | 61)) & _MASK32
        return ((t ^ (t >> 14)) & _MASK32) / _TWO_POW_32

    def reset(self) -> None:
        """Rewind to the initial seed and forget all previous draws."""
        self._state = self._initial_seed
        self._call_log = []

    def __repr__(self) -> str:
        return f"SeededRNG(seed={self._initial_seed}, calls={self.call_count})"


class SystemRNG(_LoggingRNG):
    """Live, non-reproducible generator for normal (unrecorded) use."""

    def __init__(self) -> None:
        super().__init__()
        self._source = random.SystemRandom()

    def _next_value(self) -> float:
        return self._source.random()

    def __repr__(self) -> str:
        return f"SystemRNG(calls={self.call_count})"


ModelRNG = Union[SeededRNG, SystemRNG]


def create_model_rng(seed: Optional[int] = None) -> ModelRNG:
    """Create the RNG a simulation model draws from.

    Args:
        seed: Seed for a reproducible generator, or None for a live one
    """
    if seed is not None:
        return SeededRNG(seed)
    return SystemRNG()


def generate_seed() -> int:
    """Pick a fresh seed for a recording that was started on a live RNG."""
    return random.SystemRandom().randrange(MAX_SEED)


def require_seeded_rng(rng: Any, context: str = "unknown") -> SeededRNG:
    """Validate that ``rng`` is reproducible, failing loudly if not.

    Recording needs a seeded generator: a live one would make the session
    impossible to replay, and we want to know immediately rather than at
    the first failed verification.

    Args:
        rng: The RNG that should be seeded
        context: Description of where this is called from (for error messages)

    Returns:
        The validated RNG

    Raises:
        UnseededRNGError: If rng is None or not a SeededRNG
    """
    if not isinstance(rng, SeededRNG):
        kind = "None" if rng is None else type(rng).__name__
        raise UnseededRNGError(
            f"Seeded RNG required: {context} (got {kind}). "
            "Recording is only reproducible with a SeededRNG."
        )
    return rng
