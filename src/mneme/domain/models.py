"""
Domain models for spaced-repetition scheduling.

These are pure data structures with no I/O or external dependencies.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any

from .constants import (
    DEFAULT_DESIRED_RETENTION,
    DEFAULT_LEARNING_STEPS,
    DEFAULT_RELEARNING_STEPS,
    DEFAULT_WEIGHTS,
    EASY_INTERVAL_DAYS,
    GRADUATING_INTERVAL_DAYS,
    MAX_DIFFICULTY,
    MAXIMUM_INTERVAL_DAYS,
    MIN_DIFFICULTY,
    MINIMUM_INTERVAL_DAYS,
    PARAMETER_COUNT,
    RELEARNING_STABILITY_PENALTY,
)
from .errors import InvalidInput


class Rating(IntEnum):
    """
    The single rating scale used by every component.

    Success subset: GOOD and EASY. Lapse subset: AGAIN.
    HARD is a pass with effort: stability still grows (with a penalty),
    but the analyzer does not count it as a success.
    """

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4

    @property
    def is_success(self) -> bool:
        return self in (Rating.GOOD, Rating.EASY)

    @property
    def is_lapse(self) -> bool:
        return self is Rating.AGAIN

    @classmethod
    def parse(cls, value: Any) -> "Rating":
        """Accept a Rating, an int in 1..4, or a case-insensitive name."""
        if isinstance(value, Rating):
            return value
        if isinstance(value, str):
            name = value.strip().upper()
            if name in cls.__members__:
                return cls[name]
            if name.isdigit():
                value = int(name)
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                pass
        raise InvalidInput(f"Unknown rating: {value!r}")


class CardState(str, Enum):
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"


class ParameterIndex(IntEnum):
    """Named roles of the weights the optimizer adjusts."""

    INITIAL_STABILITY = 2
    DIFFICULTY_IMPACT = 6
    DIFFICULTY_DECAY = 7
    SUCCESS_BONUS = 8
    STABILITY_FACTOR = 10
    EASY_BONUS = 16


@dataclass(frozen=True)
class ParameterVector:
    """
    Ordered, fixed-length weight set w0..w16.

    Attributes:
        weights: Exactly PARAMETER_COUNT floats.
    """

    weights: tuple[float, ...] = DEFAULT_WEIGHTS

    def __post_init__(self):
        weights = tuple(float(w) for w in self.weights)
        if len(weights) != PARAMETER_COUNT:
            raise InvalidInput(
                f"Parameter vector needs {PARAMETER_COUNT} weights, got {len(weights)}"
            )
        object.__setattr__(self, "weights", weights)

    def __getitem__(self, index: int) -> float:
        return self.weights[index]

    def __len__(self) -> int:
        return len(self.weights)

    def __iter__(self):
        return iter(self.weights)

    def with_updates(self, updates: dict[int, float]) -> "ParameterVector":
        """Return a copy with the given components replaced."""
        weights = list(self.weights)
        for index, value in updates.items():
            weights[index] = value
        return ParameterVector(tuple(weights))

    def as_dict(self) -> dict[str, float]:
        return {f"w{i}": w for i, w in enumerate(self.weights)}


@dataclass(frozen=True)
class ParameterSet:
    """
    A learner's complete scheduling configuration: the weight vector plus
    the learning-step and interval settings the state machine needs.
    """

    weights: ParameterVector = field(default_factory=ParameterVector)
    desired_retention: float = DEFAULT_DESIRED_RETENTION
    learning_steps: tuple[float, ...] = DEFAULT_LEARNING_STEPS  # minutes
    relearning_steps: tuple[float, ...] = DEFAULT_RELEARNING_STEPS  # minutes
    graduating_interval_days: int = GRADUATING_INTERVAL_DAYS
    easy_interval_days: int = EASY_INTERVAL_DAYS
    minimum_interval_days: int = MINIMUM_INTERVAL_DAYS
    maximum_interval_days: int = MAXIMUM_INTERVAL_DAYS
    relearning_stability_penalty: float = RELEARNING_STABILITY_PENALTY
    easy_skips_learning: bool = True

    def with_weights(self, weights: ParameterVector) -> "ParameterSet":
        return ParameterSet(
            weights=weights,
            desired_retention=self.desired_retention,
            learning_steps=self.learning_steps,
            relearning_steps=self.relearning_steps,
            graduating_interval_days=self.graduating_interval_days,
            easy_interval_days=self.easy_interval_days,
            minimum_interval_days=self.minimum_interval_days,
            maximum_interval_days=self.maximum_interval_days,
            relearning_stability_penalty=self.relearning_stability_penalty,
            easy_skips_learning=self.easy_skips_learning,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "weights": list(self.weights.weights),
            "desired_retention": self.desired_retention,
            "learning_steps": list(self.learning_steps),
            "relearning_steps": list(self.relearning_steps),
            "graduating_interval_days": self.graduating_interval_days,
            "easy_interval_days": self.easy_interval_days,
            "minimum_interval_days": self.minimum_interval_days,
            "maximum_interval_days": self.maximum_interval_days,
            "relearning_stability_penalty": self.relearning_stability_penalty,
            "easy_skips_learning": self.easy_skips_learning,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ParameterSet":
        """Build from a stored mapping; missing keys fall back to defaults."""
        defaults = cls()
        weights = data.get("weights")
        return cls(
            weights=ParameterVector(tuple(weights)) if weights else defaults.weights,
            desired_retention=data.get("desired_retention", defaults.desired_retention),
            learning_steps=tuple(data.get("learning_steps", defaults.learning_steps)),
            relearning_steps=tuple(data.get("relearning_steps", defaults.relearning_steps)),
            graduating_interval_days=data.get(
                "graduating_interval_days", defaults.graduating_interval_days
            ),
            easy_interval_days=data.get("easy_interval_days", defaults.easy_interval_days),
            minimum_interval_days=data.get(
                "minimum_interval_days", defaults.minimum_interval_days
            ),
            maximum_interval_days=data.get(
                "maximum_interval_days", defaults.maximum_interval_days
            ),
            relearning_stability_penalty=data.get(
                "relearning_stability_penalty", defaults.relearning_stability_penalty
            ),
            easy_skips_learning=data.get("easy_skips_learning", defaults.easy_skips_learning),
        )


@dataclass(frozen=True)
class VersionedParameters:
    """
    A learner's committed parameters with the version used for compare-and-swap.

    Version 0 with updated_at=None means nothing was ever stored (defaults).
    """

    parameters: ParameterSet
    version: int = 0
    updated_at: datetime | None = None


@dataclass
class CardMemoryState:
    """
    Memory state of one card for one learner.

    Attributes:
        stability: Days until recall probability decays to the desired retention.
            None only while the card is NEW.
        difficulty: Resistance to stability growth, in [1, 10]. None only while NEW.
        step: Index into the current learning or relearning steps.
        scheduled_days: Interval (days) assigned at the last review.
    """

    learner_id: str
    card_id: str
    state: CardState = CardState.NEW
    stability: float | None = None
    difficulty: float | None = None
    due_at: datetime | None = None
    step: int = 0
    last_review: datetime | None = None
    scheduled_days: float = 0.0
    reps: int = 0
    lapses: int = 0

    def __post_init__(self):
        self.state = CardState(self.state)
        if self.state is CardState.NEW:
            return
        if self.stability is None or not math.isfinite(self.stability) or self.stability <= 0:
            raise InvalidInput(f"Card {self.card_id}: stability must be > 0, got {self.stability}")
        if self.difficulty is None or not (MIN_DIFFICULTY <= self.difficulty <= MAX_DIFFICULTY):
            raise InvalidInput(
                f"Card {self.card_id}: difficulty must be in [1, 10], got {self.difficulty}"
            )


@dataclass(frozen=True)
class ReviewEvent:
    """
    An immutable review log entry.

    Before-values of a card's first exposure are 0.0.
    """

    learner_id: str
    card_id: str
    rating: Rating
    reviewed_at: datetime
    elapsed_days: float = 0.0
    scheduled_days: float = 0.0
    stability_before: float = 0.0
    stability_after: float = 0.0
    difficulty_before: float = 0.0
    difficulty_after: float = 0.0
    response_time_ms: int = 0
    state_before: CardState = CardState.NEW
    state_after: CardState = CardState.NEW

    def __post_init__(self):
        object.__setattr__(self, "rating", Rating.parse(self.rating))
        object.__setattr__(self, "state_before", CardState(self.state_before))
        object.__setattr__(self, "state_after", CardState(self.state_after))
        if math.isnan(self.elapsed_days) or self.elapsed_days < 0:
            raise InvalidInput(f"elapsed_days must be >= 0, got {self.elapsed_days}")
        if math.isnan(self.scheduled_days) or self.scheduled_days < 0:
            raise InvalidInput(f"scheduled_days must be >= 0, got {self.scheduled_days}")
