"""
Rule-based parameter optimizer.

Turns analyzer output into bounded parameter deltas. Rules are declarative
(predicate, adjustments, reason) rows evaluated uniformly; adding a rule
never touches control flow.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from mneme.domain.constants import CONSERVATIVE_SCALE, MAX_PARAM_CHANGE, PARAMETER_COUNT
from mneme.domain.models import ParameterIndex, ParameterVector
from mneme.domain.optimization.models import (
    OptimizationSuggestions,
    PerformanceMetrics,
    PredictionAnalysis,
    Priority,
)

logger = logging.getLogger(__name__)

Predicate = Callable[[PerformanceMetrics, PredictionAnalysis], bool]


@dataclass(frozen=True)
class SuggestionRule:
    name: str
    predicate: Predicate
    adjustments: dict[int, float]
    reason: str
    expected_improvement: str | None = None


@dataclass(frozen=True)
class OptimizerSettings:
    """
    Attributes:
        conservative_scale: Factor applied to every delta in conservative mode.
        max_param_change: Largest magnitude a single component may move per run.
    """

    conservative_scale: float = CONSERVATIVE_SCALE
    max_param_change: float = MAX_PARAM_CHANGE


DEFAULT_RULES: tuple[SuggestionRule, ...] = (
    SuggestionRule(
        name="low_correct_rate",
        predicate=lambda m, p: m.correct_rate < 0.80,
        adjustments={
            ParameterIndex.DIFFICULTY_IMPACT: -0.05,
            ParameterIndex.DIFFICULTY_DECAY: 0.02,
        },
        reason="Low success rate detected - reducing difficulty impact",
        expected_improvement="Higher success rate on reviews",
    ),
    SuggestionRule(
        name="high_correct_rate",
        predicate=lambda m, p: m.correct_rate > 0.95,
        adjustments={
            ParameterIndex.DIFFICULTY_IMPACT: 0.03,
            ParameterIndex.EASY_BONUS: -0.10,
        },
        reason="Very high success rate - increasing challenge",
        expected_improvement="More optimal learning intervals",
    ),
    SuggestionRule(
        name="overestimation",
        predicate=lambda m, p: p.overestimation_bias > 0.20,
        adjustments={
            ParameterIndex.SUCCESS_BONUS: -0.05,
            ParameterIndex.EASY_BONUS: -0.10,
        },
        reason="Overestimating performance - being more conservative",
    ),
    SuggestionRule(
        name="underestimation",
        predicate=lambda m, p: p.underestimation_bias > 0.20,
        adjustments={
            ParameterIndex.SUCCESS_BONUS: 0.05,
            ParameterIndex.STABILITY_FACTOR: 0.02,
        },
        reason="Underestimating performance - being more aggressive",
    ),
    SuggestionRule(
        name="slow_learning",
        predicate=lambda m, p: m.learning_efficiency < 0.10,
        adjustments={
            ParameterIndex.INITIAL_STABILITY: 0.05,
            ParameterIndex.SUCCESS_BONUS: 0.08,
        },
        reason="Slow learning detected - boosting stability gains",
        expected_improvement="Faster learning progression",
    ),
)


def clamp(value: float, limit: float) -> float:
    return max(-limit, min(limit, value))


def priority_for(triggered: int) -> Priority:
    if triggered >= 3:
        return Priority.HIGH
    if triggered <= 1:
        return Priority.LOW
    return Priority.MEDIUM


class ParameterOptimizer:
    """
    Suggests and applies parameter deltas.

    Stateless; rules and limits are fixed at construction.
    """

    def __init__(
        self,
        settings: OptimizerSettings | None = None,
        rules: tuple[SuggestionRule, ...] = DEFAULT_RULES,
    ):
        self.settings = settings or OptimizerSettings()
        self.rules = rules

    def suggest(
        self, metrics: PerformanceMetrics, prediction: PredictionAnalysis
    ) -> OptimizationSuggestions:
        """
        Evaluate every rule against the analysis.

        Deltas from several rules on the same index are summed, then clamped
        to ±max_param_change.
        """
        adjustments: dict[int, float] = {}
        reasons: list[str] = []
        improvements: list[str] = []

        for rule in self.rules:
            if not rule.predicate(metrics, prediction):
                continue
            logger.debug(f"Rule triggered: {rule.name}")
            for index, delta in rule.adjustments.items():
                adjustments[int(index)] = adjustments.get(int(index), 0.0) + delta
            reasons.append(rule.reason)
            if rule.expected_improvement:
                improvements.append(rule.expected_improvement)

        limit = self.settings.max_param_change
        return OptimizationSuggestions(
            adjustments={index: clamp(delta, limit) for index, delta in adjustments.items()},
            reasons=reasons,
            expected_improvements=improvements,
            priority=priority_for(len(reasons)),
        )

    def apply_suggestions(
        self,
        current: ParameterVector,
        suggestions: OptimizationSuggestions,
        conservative: bool = True,
    ) -> ParameterVector:
        """
        Add each suggested delta to the current vector.

        In conservative mode deltas are scaled by `conservative_scale` first.
        Every delta is clamped to ±max_param_change. Unknown indices are ignored.
        """
        updates: dict[int, float] = {}
        for index, delta in suggestions.adjustments.items():
            if not isinstance(index, int) or not (0 <= index < PARAMETER_COUNT):
                logger.debug(f"Ignoring adjustment for unknown parameter index {index!r}")
                continue
            scaled = delta * self.settings.conservative_scale if conservative else delta
            updates[index] = current[index] + clamp(scaled, self.settings.max_param_change)

        return current.with_updates(updates)


def summarize_changes(old: ParameterVector, new: ParameterVector) -> dict[str, str]:
    """Relative change per weight, keeping only changes above 1 %."""
    changes: dict[str, str] = {}
    for i, (before, after) in enumerate(zip(old, new)):
        if before == after or before == 0:
            continue
        percent = (after - before) / before * 100
        if abs(percent) > 1:
            changes[f"w{i}"] = f"{percent:.1f}%"
    return changes


def describe_improvements(old: ParameterVector, new: ParameterVector) -> list[str]:
    improvements = []
    if new[ParameterIndex.INITIAL_STABILITY] > old[ParameterIndex.INITIAL_STABILITY]:
        improvements.append("Faster initial learning for new cards")
    if new[ParameterIndex.SUCCESS_BONUS] > old[ParameterIndex.SUCCESS_BONUS]:
        improvements.append("Better retention after successful reviews")
    if new[ParameterIndex.DIFFICULTY_IMPACT] < old[ParameterIndex.DIFFICULTY_IMPACT]:
        improvements.append("Reduced difficulty impact for struggling cards")
    return improvements
