"""
Card scheduling state machine.

NEW -> LEARNING -> REVIEW <-> RELEARNING, driven only by ratings.
Stability and difficulty come from the forgetting-curve model; learning and
relearning steps are short fixed delays that leave them untouched.

This is a pure computation module with no I/O.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from mneme.domain import fsrs
from mneme.domain.constants import MIN_STABILITY
from mneme.domain.errors import InvalidInput
from mneme.domain.models import CardMemoryState, CardState, ParameterSet, Rating, ReviewEvent

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class ReviewOutcome:
    card: CardMemoryState
    event: ReviewEvent


def elapsed_days(since: datetime | None, now: datetime) -> float:
    """Days between two instants; 0.0 when there is no previous review."""
    if since is None:
        return 0.0
    days = (now - since).total_seconds() / SECONDS_PER_DAY
    if days < 0:
        raise InvalidInput(f"Review time {now.isoformat()} precedes last review {since.isoformat()}")
    return days


class Scheduler:
    """
    Decides the next state and due date of a card after each rating.

    Stateless apart from the learner's parameter set, so one instance can be
    shared freely.
    """

    def __init__(self, parameters: ParameterSet | None = None):
        self.params = parameters or ParameterSet()

    def review(
        self,
        card: CardMemoryState,
        rating: Rating,
        now: datetime,
        response_time_ms: int = 0,
    ) -> ReviewOutcome:
        """
        Apply a rating to a card.

        Returns:
            The updated card (a new object; the input is not mutated) and the
            ReviewEvent describing the transition.
        """
        rating = Rating.parse(rating)
        elapsed = elapsed_days(card.last_review, now)

        if card.state is CardState.NEW:
            updated = self._review_new(card, rating, now)
        elif card.state is CardState.LEARNING:
            updated = self._review_steps(card, rating, now, self.params.learning_steps)
        elif card.state is CardState.RELEARNING:
            updated = self._review_steps(card, rating, now, self.params.relearning_steps)
        else:
            updated = self._review_long_term(card, rating, now, elapsed)

        updated = replace(updated, last_review=now, reps=card.reps + 1)

        event = ReviewEvent(
            learner_id=card.learner_id,
            card_id=card.card_id,
            rating=rating,
            reviewed_at=now,
            elapsed_days=elapsed,
            scheduled_days=card.scheduled_days,
            stability_before=card.stability or 0.0,
            stability_after=updated.stability or 0.0,
            difficulty_before=card.difficulty or 0.0,
            difficulty_after=updated.difficulty or 0.0,
            response_time_ms=response_time_ms,
            state_before=card.state,
            state_after=updated.state,
        )
        logger.debug(
            f"Card {card.card_id}: {card.state.value} -> {updated.state.value} "
            f"({rating.name}), due {updated.due_at}"
        )
        return ReviewOutcome(card=updated, event=event)

    def preview(self, card: CardMemoryState, now: datetime) -> dict[Rating, datetime]:
        """Due date each rating would produce, without changing the card."""
        return {rating: self.review(card, rating, now).card.due_at for rating in Rating}

    def current_retrievability(self, card: CardMemoryState, now: datetime) -> float | None:
        """Recall probability right now; None for cards that were never reviewed."""
        if card.state is CardState.NEW or card.stability is None:
            return None
        return fsrs.retrievability(elapsed_days(card.last_review, now), card.stability)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _review_new(self, card: CardMemoryState, rating: Rating, now: datetime) -> CardMemoryState:
        weights = self.params.weights
        seeded = replace(
            card,
            stability=fsrs.initial_stability(rating, weights),
            difficulty=fsrs.initial_difficulty(rating, weights),
        )
        if rating is Rating.EASY and self.params.easy_skips_learning:
            return self._graduate(seeded, now, self.params.easy_interval_days)

        entering = replace(seeded, state=CardState.LEARNING, step=0)
        return self._review_steps(entering, rating, now, self.params.learning_steps)

    def _review_steps(
        self,
        card: CardMemoryState,
        rating: Rating,
        now: datetime,
        steps: tuple[float, ...],
    ) -> CardMemoryState:
        if not steps:
            return self._finish_steps(card, rating, now)

        if rating is Rating.AGAIN:
            step = 0
        elif rating is Rating.HARD:
            step = min(card.step, len(steps) - 1)
        elif rating is Rating.GOOD:
            step = card.step + 1
            if step >= len(steps):
                return self._finish_steps(card, rating, now)
        else:
            return self._finish_steps(card, rating, now)

        return replace(
            card,
            step=step,
            due_at=now + timedelta(minutes=steps[step]),
            scheduled_days=0.0,
        )

    def _finish_steps(self, card: CardMemoryState, rating: Rating, now: datetime) -> CardMemoryState:
        if card.state is CardState.RELEARNING:
            penalized = max(
                card.stability * self.params.relearning_stability_penalty,
                min(card.stability, MIN_STABILITY),
            )
            return self._graduate(
                replace(card, stability=penalized), now, self.params.minimum_interval_days
            )

        floor = (
            self.params.easy_interval_days
            if rating is Rating.EASY
            else self.params.graduating_interval_days
        )
        return self._graduate(card, now, floor)

    def _graduate(self, card: CardMemoryState, now: datetime, floor_days: int) -> CardMemoryState:
        interval = max(floor_days, self._interval(card.stability))
        return replace(
            card,
            state=CardState.REVIEW,
            step=0,
            scheduled_days=float(interval),
            due_at=now + timedelta(days=interval),
        )

    def _review_long_term(
        self,
        card: CardMemoryState,
        rating: Rating,
        now: datetime,
        elapsed: float,
    ) -> CardMemoryState:
        weights = self.params.weights
        r = fsrs.retrievability(elapsed, card.stability)
        stability = fsrs.update_stability(rating, card.stability, card.difficulty, r, weights)
        difficulty = fsrs.update_difficulty(rating, card.difficulty, weights)
        updated = replace(card, stability=stability, difficulty=difficulty)

        if rating.is_lapse:
            relearning = replace(
                updated,
                state=CardState.RELEARNING,
                step=0,
                lapses=card.lapses + 1,
            )
            steps = self.params.relearning_steps
            if not steps:
                return self._finish_steps(relearning, rating, now)
            return replace(
                relearning,
                due_at=now + timedelta(minutes=steps[0]),
                scheduled_days=0.0,
            )

        interval = self._interval(stability)
        return replace(
            updated,
            scheduled_days=float(interval),
            due_at=now + timedelta(days=interval),
        )

    def _interval(self, stability: float) -> int:
        return fsrs.next_interval(
            stability,
            self.params.desired_retention,
            self.params.minimum_interval_days,
            self.params.maximum_interval_days,
        )
