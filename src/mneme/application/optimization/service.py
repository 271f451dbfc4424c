"""
Optimization Service — Application layer orchestrator.

Decides whether a learner's parameters are due for optimization, runs the
analyzer and optimizer, validates the candidate and commits it with
compare-and-swap, then writes an audit record.
"""

import logging
import math
from dataclasses import dataclass

from ulid import ULID

from mneme.domain.constants import (
    FULL_CONFIDENCE_REVIEWS,
    MIN_REVIEWS_FOR_OPTIMIZATION,
    NEXT_MILESTONE_STEP,
    OPTIMIZATION_MILESTONES,
    REVIEW_WINDOW,
    STALE_AFTER_DAYS,
)
from mneme.domain.errors import ConcurrentOptimization, InsufficientData, ValidationFailed
from mneme.domain.optimization.models import (
    EffectivenessReport,
    OptimizationOutcome,
    OptimizationResult,
    OptimizationRun,
    OptimizationStatus,
    PerformanceMetrics,
    PredictionAnalysis,
)
from mneme.domain.ports import AuditSink, Clock, ParameterRepository, ReviewRepository
from mneme.domain.validation import ensure_valid

from .analyzer import PerformanceAnalyzer
from .optimizer import ParameterOptimizer, describe_improvements, summarize_changes

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class OptimizationSettings:
    """Cadence and windowing knobs for the orchestrator."""

    min_reviews: int = MIN_REVIEWS_FOR_OPTIMIZATION
    milestones: tuple[int, ...] = OPTIMIZATION_MILESTONES
    stale_after_days: float = STALE_AFTER_DAYS
    review_window: int | None = REVIEW_WINDOW
    full_confidence_reviews: int = FULL_CONFIDENCE_REVIEWS
    conservative: bool = True


def _finite_or_zero(value: float) -> float:
    if isinstance(value, (int, float)) and math.isfinite(value):
        return float(value)
    return 0.0


class OptimizationService:
    """
    Runs the per-learner optimization lifecycle.

    Holds no mutable state: every decision is recomputed from the injected
    repositories and clock, so one instance can serve all learners.
    """

    def __init__(
        self,
        reviews: ReviewRepository,
        parameters: ParameterRepository,
        audit: AuditSink,
        clock: Clock,
        analyzer: PerformanceAnalyzer | None = None,
        optimizer: ParameterOptimizer | None = None,
        settings: OptimizationSettings | None = None,
    ):
        self._reviews = reviews
        self._parameters = parameters
        self._audit = audit
        self._clock = clock
        self.settings = settings or OptimizationSettings()
        self._analyzer = analyzer or PerformanceAnalyzer(min_reviews=self.settings.min_reviews)
        self._optimizer = optimizer or ParameterOptimizer()

    # ------------------------------------------------------------------
    # Cadence
    # ------------------------------------------------------------------

    def should_optimize(self, total_reviews: int, days_since_last_update: float) -> bool:
        return total_reviews >= self.settings.min_reviews and (
            total_reviews in self.settings.milestones
            or days_since_last_update >= self.settings.stale_after_days
        )

    def next_milestone(self, total_reviews: int) -> int:
        for milestone in self.settings.milestones:
            if milestone > total_reviews:
                return milestone
        return total_reviews + NEXT_MILESTONE_STEP

    def optimization_reason(self, total_reviews: int, days_since_last_update: float) -> str:
        if total_reviews < self.settings.min_reviews:
            return f"Need {self.settings.min_reviews - total_reviews} more reviews"
        if total_reviews in self.settings.milestones:
            return f"Reached {total_reviews} review milestone"
        if days_since_last_update >= self.settings.stale_after_days:
            if math.isinf(days_since_last_update):
                return "Parameters have never been optimized"
            return f"{round(days_since_last_update)} days since last optimization"
        return "No optimization needed"

    async def check(self, learner_id: str) -> OptimizationStatus:
        """Report whether the learner is due for optimization and why."""
        total = await self._reviews.count_reviews(learner_id)
        versioned = await self._parameters.get_parameters(learner_id)

        if versioned.updated_at is None:
            days = math.inf
        else:
            days = (self._clock.now() - versioned.updated_at).total_seconds() / SECONDS_PER_DAY

        return OptimizationStatus(
            total_reviews=total,
            days_since_update=days,
            should_optimize=self.should_optimize(total, days),
            next_milestone=self.next_milestone(total),
            reason=self.optimization_reason(total, days),
        )

    def confidence(
        self,
        total_reviews: int,
        metrics: PerformanceMetrics,
        prediction: PredictionAnalysis,
    ) -> float:
        """(min(n / 200, 1) + (retention_rate + consistency) / 2) / 2; NaN parts count as 0."""
        base = min(total_reviews / self.settings.full_confidence_reviews, 1.0)
        quality = (
            _finite_or_zero(metrics.retention_rate) + _finite_or_zero(prediction.consistency_score)
        ) / 2
        return (base + quality) / 2

    # ------------------------------------------------------------------
    # Optimization
    # ------------------------------------------------------------------

    async def optimize(self, learner_id: str, conservative: bool | None = None) -> OptimizationResult:
        """
        Run one optimization pass for a learner.

        Insufficient data and failed validation return a non-committed result
        and leave the stored parameters untouched.

        Raises:
            ConcurrentOptimization: The parameters changed while this pass ran.
        """
        if conservative is None:
            conservative = self.settings.conservative

        versioned = await self._parameters.get_parameters(learner_id)
        events = await self._reviews.list_reviews(learner_id, window=self.settings.review_window)

        try:
            report = self._analyzer.analyze(events)
        except InsufficientData as e:
            logger.info(f"Skipping optimization for {learner_id}: {e}")
            return OptimizationResult(
                learner_id=learner_id,
                outcome=OptimizationOutcome.SKIPPED,
                reason=str(e),
            )

        confidence = self.confidence(len(events), report.metrics, report.prediction)
        suggestions = self._optimizer.suggest(report.metrics, report.prediction)
        if not suggestions.adjustments:
            logger.info(f"No adjustments suggested for {learner_id}")
            return OptimizationResult(
                learner_id=learner_id,
                outcome=OptimizationOutcome.SKIPPED,
                reason="No adjustments suggested",
                confidence=confidence,
            )

        previous = versioned.parameters.weights
        proposed = self._optimizer.apply_suggestions(previous, suggestions, conservative)
        candidate = versioned.parameters.with_weights(proposed)

        try:
            ensure_valid(candidate)
        except ValidationFailed as e:
            logger.warning(f"Optimized parameters for {learner_id} failed validation: {e}")
            return OptimizationResult(
                learner_id=learner_id,
                outcome=OptimizationOutcome.REJECTED,
                reason="Optimized parameters failed validation",
                confidence=confidence,
                validation_errors=e.errors,
            )

        committed = await self._parameters.compare_and_set_parameters(
            learner_id, versioned.version, candidate
        )
        if not committed:
            logger.warning(f"Lost parameter commit race for {learner_id} at v{versioned.version}")
            raise ConcurrentOptimization(learner_id, versioned.version)

        run = OptimizationRun(
            run_id=str(ULID()),
            learner_id=learner_id,
            previous=previous,
            proposed=proposed,
            metrics=report.metrics,
            prediction=report.prediction,
            suggestions=suggestions,
            confidence=confidence,
            previous_version=versioned.version,
            new_version=versioned.version + 1,
            created_at=self._clock.now(),
        )
        logger.info(
            f"Optimization applied for {learner_id} (v{run.new_version}, "
            f"{len(events)} reviews, confidence {confidence:.2f}): "
            f"{summarize_changes(previous, proposed)}"
        )

        try:
            await self._audit.record_optimization_run(run)
        except Exception as e:
            logger.warning(f"Failed to record optimization run {run.run_id}: {e}")

        return OptimizationResult(
            learner_id=learner_id,
            outcome=OptimizationOutcome.COMMITTED,
            reason="; ".join(suggestions.reasons),
            confidence=confidence,
            run=run,
            improvements=describe_improvements(previous, proposed),
        )

    async def optimize_with_retry(
        self, learner_id: str, conservative: bool | None = None
    ) -> OptimizationResult:
        """Retry the whole pass once if another run committed first."""
        try:
            return await self.optimize(learner_id, conservative)
        except ConcurrentOptimization:
            logger.info(f"Retrying optimization for {learner_id} after concurrent commit")
            return await self.optimize(learner_id, conservative)

    async def analyze(self, learner_id: str):
        """Analysis and suggestions without committing anything."""
        events = await self._reviews.list_reviews(learner_id, window=self.settings.review_window)
        report = self._analyzer.analyze(events)
        suggestions = self._optimizer.suggest(report.metrics, report.prediction)
        confidence = self.confidence(len(events), report.metrics, report.prediction)
        return report, suggestions, confidence

    async def effectiveness(self, learner_id: str) -> EffectivenessReport:
        """Committed weights against the defaults over the learner's review window."""
        events = await self._reviews.list_reviews(learner_id, window=self.settings.review_window)
        versioned = await self._parameters.get_parameters(learner_id)
        return self._analyzer.effectiveness(events, versioned.parameters.weights)
