"""
Performance analyzer for deriving optimization inputs from a review log.

This is a pure computation module with no I/O. The log is taken in
chronological order (oldest first); trends compare the later half of the
window against the earlier half, so a positive stability trend means
stability grew over time.
"""

import math

from mneme.domain import fsrs
from mneme.domain.constants import (
    EFFECTIVENESS_WEIGHTS,
    EFFICIENCY_FOR_FULL_SCORE,
    KEY_DIFFERENCE_PERCENT,
    MAX_DIFFICULTY,
    MIN_DIFFICULTY,
    MIN_PREDICTION_SAMPLES,
    MIN_REVIEWS_FOR_OPTIMIZATION,
    PERSONALIZATION_THRESHOLD,
)
from mneme.domain.errors import InsufficientData
from mneme.domain.models import CardState, ParameterVector, Rating, ReviewEvent
from mneme.domain.optimization.models import (
    AnalysisReport,
    EffectivenessReport,
    PerformanceMetrics,
    PredictionAnalysis,
    Recommendation,
)

FLAT_SERIES_EPSILON = 1e-12


def mean(values: list[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def variance(values: list[float]) -> float:
    """Population variance; 0.0 for an empty list."""
    if not values:
        return 0.0
    m = mean(values)
    return sum((v - m) ** 2 for v in values) / len(values)


def pearson_correlation(xs: list[float], ys: list[float]) -> float:
    """Pearson correlation coefficient; 0.0 when either series has (numerically) no variance."""
    n = len(xs)
    if n == 0 or n != len(ys):
        return 0.0

    mean_x = mean(xs)
    mean_y = mean(ys)
    dx = [x - mean_x for x in xs]
    dy = [y - mean_y for y in ys]

    ss_x = sum(d * d for d in dx)
    ss_y = sum(d * d for d in dy)
    if ss_x <= FLAT_SERIES_EPSILON or ss_y <= FLAT_SERIES_EPSILON:
        return 0.0
    return sum(a * b for a, b in zip(dx, dy)) / math.sqrt(ss_x * ss_y)


def relative_change(earlier: float, later: float) -> float:
    if earlier == 0:
        return 0.0
    return (later - earlier) / earlier


class PerformanceAnalyzer:
    """
    Computes PerformanceMetrics and PredictionAnalysis from ReviewEvents.

    Stateless and side-effect free: the same log always yields equal results.
    """

    def __init__(
        self,
        min_reviews: int = MIN_REVIEWS_FOR_OPTIMIZATION,
        min_prediction_samples: int = MIN_PREDICTION_SAMPLES,
    ):
        self.min_reviews = min_reviews
        self.min_prediction_samples = min_prediction_samples

    def analyze(self, events: list[ReviewEvent]) -> AnalysisReport:
        """
        Analyze a learner's review window.

        Raises:
            InsufficientData: Fewer than `min_reviews` events.
        """
        if len(events) < self.min_reviews:
            raise InsufficientData(self.min_reviews, len(events))

        return AnalysisReport(
            metrics=self.performance_metrics(events),
            prediction=self.prediction_accuracy(events),
        )

    def performance_metrics(self, events: list[ReviewEvent]) -> PerformanceMetrics:
        if not events:
            return PerformanceMetrics(total_reviews=0)

        total = len(events)
        distribution = {rating: 0 for rating in Rating}
        for event in events:
            distribution[event.rating] += 1

        stability_trend, difficulty_trend = self._compute_trends(events)

        return PerformanceMetrics(
            total_reviews=total,
            correct_rate=sum(1 for e in events if e.rating.is_success) / total,
            average_response_time_ms=mean([e.response_time_ms for e in events]),
            rating_distribution=distribution,
            stability_trend=stability_trend,
            difficulty_trend=difficulty_trend,
            retention_rate=self._compute_retention_rate(events),
            learning_efficiency=self._compute_learning_efficiency(events),
        )

    def prediction_accuracy(self, events: list[ReviewEvent]) -> PredictionAnalysis:
        """
        Compare predicted retrievability against actual recall.

        Only reviews with elapsed_days > 0 and a known prior stability count.
        Below `min_prediction_samples` the neutral (all-zero) analysis is returned.
        """
        samples = [e for e in events if e.elapsed_days > 0 and e.stability_before > 0]
        if len(samples) < self.min_prediction_samples:
            return PredictionAnalysis.neutral(len(samples))

        predictions = [fsrs.retrievability(e.elapsed_days, e.stability_before) for e in samples]
        actuals = [1.0 if e.rating.is_success else 0.0 for e in samples]

        errors = [abs(p - a) for p, a in zip(predictions, actuals)]
        bias = mean([p - a for p, a in zip(predictions, actuals)])

        return PredictionAnalysis(
            sample_size=len(samples),
            average_error=mean(errors),
            correlation=pearson_correlation(predictions, actuals),
            overestimation_bias=bias if bias > 0 else 0.0,
            underestimation_bias=-bias if bias < 0 else 0.0,
            consistency_score=1 / (1 + variance(errors)),
        )

    def _compute_trends(self, events: list[ReviewEvent]) -> tuple[float, float]:
        """
        Relative change of mean stability/difficulty after review.

        Earlier half is events[:n // 2], later half the rest.
        """
        midpoint = len(events) // 2
        earlier, later = events[:midpoint], events[midpoint:]
        if not earlier or not later:
            return 0.0, 0.0

        stability = relative_change(
            mean([e.stability_after for e in earlier]),
            mean([e.stability_after for e in later]),
        )
        difficulty = relative_change(
            mean([e.difficulty_after for e in earlier]),
            mean([e.difficulty_after for e in later]),
        )
        return stability, difficulty

    def _compute_retention_rate(self, events: list[ReviewEvent]) -> float:
        scheduled = [e for e in events if e.elapsed_days > 0 and e.scheduled_days > 0]
        if not scheduled:
            return 0.0
        return sum(1 for e in scheduled if e.rating.is_success) / len(scheduled)

    def _compute_learning_efficiency(self, events: list[ReviewEvent]) -> float:
        return mean([max(0.0, e.stability_after - e.stability_before) for e in events])

    # ------------------------------------------------------------------
    # Effectiveness
    # ------------------------------------------------------------------

    def replay_errors(self, events: list[ReviewEvent], weights: ParameterVector) -> list[float]:
        """
        Prediction errors from replaying each card's history under `weights`.

        A card's first review seeds stability and difficulty from `weights`;
        a card whose history starts before the window is seeded from the
        logged state instead. Only long-term reviews (state_before REVIEW,
        elapsed_days > 0) are predicted, then the replayed memory is updated.
        """
        memory: dict[str, tuple[float, float]] = {}
        errors: list[float] = []

        for event in events:
            state = memory.get(event.card_id)
            if event.state_before is CardState.NEW:
                memory[event.card_id] = (
                    fsrs.initial_stability(event.rating, weights),
                    fsrs.initial_difficulty(event.rating, weights),
                )
                continue
            if state is None:
                if event.stability_before <= 0:
                    continue
                difficulty = min(max(event.difficulty_before, MIN_DIFFICULTY), MAX_DIFFICULTY)
                state = (event.stability_before, difficulty)
                memory[event.card_id] = state
            if event.state_before is not CardState.REVIEW or event.elapsed_days <= 0:
                continue

            stability, difficulty = state
            r = fsrs.retrievability(event.elapsed_days, stability)
            errors.append(abs(r - (1.0 if event.rating.is_success else 0.0)))
            memory[event.card_id] = (
                fsrs.update_stability(event.rating, stability, difficulty, r, weights),
                fsrs.update_difficulty(event.rating, difficulty, weights),
            )
        return errors

    def effectiveness(
        self, events: list[ReviewEvent], weights: ParameterVector
    ) -> EffectivenessReport:
        """Score `weights` against the defaults on the same log. Works on any log size."""
        defaults = ParameterVector()
        personalized = self.replay_errors(events, weights)
        baseline = self.replay_errors(events, defaults)
        personalized_error = mean(personalized)
        default_error = mean(baseline)
        advantage = -relative_change(default_error, personalized_error)

        if advantage > PERSONALIZATION_THRESHOLD:
            recommendation = Recommendation.KEEP_PERSONALIZED
        elif advantage < -PERSONALIZATION_THRESHOLD:
            recommendation = Recommendation.CONSIDER_RESET
        else:
            recommendation = Recommendation.MAINTAIN

        key_differences = {}
        for i, (current, default) in enumerate(zip(weights, defaults)):
            percent = relative_change(default, current) * 100
            if abs(percent) > KEY_DIFFERENCE_PERCENT:
                key_differences[i] = percent

        return EffectivenessReport(
            total_reviews=len(events),
            sample_size=len(personalized),
            personalized_error=personalized_error,
            default_error=default_error,
            personalized_advantage=advantage,
            recommendation=recommendation,
            key_differences=key_differences,
            overall_score=self._overall_score(events, personalized),
        )

    def _overall_score(self, events: list[ReviewEvent], errors: list[float]) -> float:
        if not events:
            return 0.0
        metrics = self.performance_metrics(events)
        consistency = self.prediction_accuracy(events).consistency_score
        accuracy = 1 - mean(errors) if errors else 0.0
        parts = {
            "success": metrics.correct_rate,
            "retention": metrics.retention_rate,
            "efficiency": min(metrics.learning_efficiency / EFFICIENCY_FOR_FULL_SCORE, 1.0),
            "consistency": consistency,
            "accuracy": accuracy,
        }
        return sum(EFFECTIVENESS_WEIGHTS[name] * value for name, value in parts.items())
