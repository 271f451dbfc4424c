"""
Forgetting-curve model.

Pure functions mapping a card's memory state to a probability of recall and
to the next stability/difficulty after a review. No I/O, no shared state:
safe to call from any thread.

Out-of-domain input raises InvalidInput instead of being clamped, since a
silently clamped elapsed time would mis-schedule the card.
"""

import math

from .constants import DECAY, FACTOR, MAX_DIFFICULTY, MIN_DIFFICULTY, MIN_STABILITY
from .errors import InvalidInput
from .models import ParameterVector, Rating

DEFAULT_PARAMETERS = ParameterVector()


def _check_number(name: str, value: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInput(f"{name} must be a number, got {value!r}")
    try:
        value = float(value)
    except OverflowError:
        raise InvalidInput(f"{name} is too large to represent as a float") from None
    if math.isnan(value):
        raise InvalidInput(f"{name} must not be NaN")
    return value


def _check_stability(stability: float) -> float:
    stability = _check_number("stability", stability)
    if not math.isfinite(stability) or stability <= 0:
        raise InvalidInput(f"stability must be a finite value > 0, got {stability}")
    return stability


def _check_difficulty(difficulty: float) -> float:
    difficulty = _check_number("difficulty", difficulty)
    if not (MIN_DIFFICULTY <= difficulty <= MAX_DIFFICULTY):
        raise InvalidInput(f"difficulty must be in [1, 10], got {difficulty}")
    return difficulty


def _clamp_difficulty(difficulty: float) -> float:
    return min(max(difficulty, MIN_DIFFICULTY), MAX_DIFFICULTY)


def retrievability(elapsed_days: float, stability: float) -> float:
    """
    Probability of recall after `elapsed_days` for a memory of `stability`.

    R(t) = (1 + FACTOR * t / S) ** DECAY, which equals 0.9 when t == S.
    """
    elapsed_days = _check_number("elapsed_days", elapsed_days)
    if elapsed_days < 0:
        raise InvalidInput(f"elapsed_days must be >= 0, got {elapsed_days}")
    stability = _check_stability(stability)

    if elapsed_days == 0:
        return 1.0
    if math.isinf(elapsed_days):
        return 0.0
    return min(1.0, max(0.0, (1 + FACTOR * elapsed_days / stability) ** DECAY))


def next_interval(
    stability: float,
    desired_retention: float,
    minimum_days: int = 1,
    maximum_days: int = 36500,
) -> int:
    """
    Days until retrievability falls to `desired_retention` (inverse of retrievability).

    I = S / FACTOR * (r ** (1 / DECAY) - 1), rounded and clamped to [minimum, maximum].
    """
    stability = _check_stability(stability)
    desired_retention = _check_number("desired_retention", desired_retention)
    if not (0 < desired_retention < 1):
        raise InvalidInput(f"desired_retention must be in (0, 1), got {desired_retention}")

    interval = stability / FACTOR * (desired_retention ** (1 / DECAY) - 1)
    return int(min(max(minimum_days, round(interval)), maximum_days))


def initial_stability(rating: Rating, weights: ParameterVector = DEFAULT_PARAMETERS) -> float:
    """Seed stability for a card's first review: w0..w3 selected by rating."""
    rating = Rating.parse(rating)
    return max(MIN_STABILITY, weights[rating - 1])


def initial_difficulty(rating: Rating, weights: ParameterVector = DEFAULT_PARAMETERS) -> float:
    """Seed difficulty for a card's first review: w4 - (G - 3) * w5, clamped to [1, 10]."""
    rating = Rating.parse(rating)
    return _clamp_difficulty(weights[4] - (rating - 3) * weights[5])


def update_difficulty(
    rating: Rating,
    difficulty: float,
    weights: ParameterVector = DEFAULT_PARAMETERS,
) -> float:
    """
    Move difficulty opposite to rating quality, then revert toward the baseline w4.

    D' = w7 * w4 + (1 - w7) * (D - w6 * (G - 3)), clamped to [1, 10].
    """
    rating = Rating.parse(rating)
    difficulty = _check_difficulty(difficulty)

    shifted = difficulty - weights[6] * (rating - 3)
    reverted = weights[7] * weights[4] + (1 - weights[7]) * shifted
    return _clamp_difficulty(reverted)


def update_stability(
    rating: Rating,
    stability: float,
    difficulty: float,
    retrievability: float,
    weights: ParameterVector = DEFAULT_PARAMETERS,
) -> float:
    """
    Stability after a review, in one of two regimes.

    Recall (Hard/Good/Easy): S * (1 + e^w8 * (11 - D) * S^-w9 * (e^(w10 * (1 - R)) - 1)
    * hard_penalty * easy_bonus). Growth is larger for low retrievability,
    low stability and low difficulty; it is never negative. Because of the
    (11 - D) factor an easy card gains more stability from a successful
    review than a hard card does, not less.

    Lapse (Again): w11 * D^-w12 * ((S + 1)^w13 - 1) * e^(w14 * (1 - R)), capped at S.
    """
    rating = Rating.parse(rating)
    stability = _check_stability(stability)
    difficulty = _check_difficulty(difficulty)
    r = _check_number("retrievability", retrievability)
    if not (0 <= r <= 1):
        raise InvalidInput(f"retrievability must be in [0, 1], got {r}")

    if rating.is_lapse:
        forgotten = (
            weights[11]
            * difficulty ** -weights[12]
            * ((stability + 1) ** weights[13] - 1)
            * math.exp(weights[14] * (1 - r))
        )
        return max(min(stability, forgotten), min(stability, MIN_STABILITY))

    hard_penalty = weights[15] if rating is Rating.HARD else 1.0
    easy_bonus = weights[16] if rating is Rating.EASY else 1.0
    growth = (
        math.exp(weights[8])
        * (11 - difficulty)
        * stability ** -weights[9]
        * (math.exp(weights[10] * (1 - r)) - 1)
        * hard_penalty
        * easy_bonus
    )
    return stability * (1 + max(0.0, growth))
