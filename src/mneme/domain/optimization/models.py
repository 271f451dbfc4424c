"""
Domain models for parameter optimization.

Metrics and analyses are projections recomputed from the review log on
every run; only OptimizationRun is persisted (write-once, by the audit sink).
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from ..models import ParameterVector, Rating


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class OptimizationOutcome(str, Enum):
    COMMITTED = "committed"
    SKIPPED = "skipped"
    REJECTED = "rejected"


@dataclass(frozen=True)
class PerformanceMetrics:
    """
    Aggregate review performance over one analysis window.

    Attributes:
        stability_trend: Relative change of mean stability_after, later half vs earlier half.
        difficulty_trend: Same for difficulty_after.
        retention_rate: Success fraction among reviews with elapsed and scheduled days > 0.
        learning_efficiency: Mean positive stability gain per review.
    """

    total_reviews: int
    correct_rate: float = 0.0
    average_response_time_ms: float = 0.0
    rating_distribution: dict[Rating, int] = field(default_factory=dict)
    stability_trend: float = 0.0
    difficulty_trend: float = 0.0
    retention_rate: float = 0.0
    learning_efficiency: float = 0.0


@dataclass(frozen=True)
class PredictionAnalysis:
    """How well predicted retrievability matched actual recall."""

    sample_size: int = 0
    average_error: float = 0.0
    correlation: float = 0.0
    overestimation_bias: float = 0.0
    underestimation_bias: float = 0.0
    consistency_score: float = 0.0

    @classmethod
    def neutral(cls, sample_size: int = 0) -> "PredictionAnalysis":
        return cls(sample_size=sample_size)


@dataclass(frozen=True)
class AnalysisReport:
    metrics: PerformanceMetrics
    prediction: PredictionAnalysis


@dataclass(frozen=True)
class OptimizationSuggestions:
    """Sparse parameter deltas produced by the rule table."""

    adjustments: dict[int, float] = field(default_factory=dict)
    reasons: list[str] = field(default_factory=list)
    expected_improvements: list[str] = field(default_factory=list)
    priority: Priority = Priority.LOW


@dataclass(frozen=True)
class OptimizationRun:
    """Write-once audit record of a committed optimization."""

    run_id: str
    learner_id: str
    previous: ParameterVector
    proposed: ParameterVector
    metrics: PerformanceMetrics
    prediction: PredictionAnalysis
    suggestions: OptimizationSuggestions
    confidence: float
    previous_version: int
    new_version: int
    created_at: datetime


@dataclass(frozen=True)
class OptimizationStatus:
    total_reviews: int
    days_since_update: float
    should_optimize: bool
    next_milestone: int
    reason: str


@dataclass(frozen=True)
class OptimizationResult:
    learner_id: str
    outcome: OptimizationOutcome
    reason: str = ""
    confidence: float = 0.0
    run: OptimizationRun | None = None
    validation_errors: list[str] = field(default_factory=list)
    improvements: list[str] = field(default_factory=list)

    @property
    def committed(self) -> bool:
        return self.outcome is OptimizationOutcome.COMMITTED


class Recommendation(str, Enum):
    KEEP_PERSONALIZED = "keep_personalized"
    MAINTAIN = "maintain"
    CONSIDER_RESET = "consider_reset"


@dataclass(frozen=True)
class EffectivenessReport:
    """
    How well the committed weights explain a learner's log, next to the defaults.

    Attributes:
        personalized_error: Mean |predicted R - recall| replaying the log with committed weights.
        default_error: The same replay with the default weights.
        personalized_advantage: Relative error reduction, (default - personalized) / default.
        key_differences: Weight index -> percent change from default, for notable changes only.
        overall_score: Weighted 0..1 blend of success, retention, efficiency,
            consistency and prediction accuracy.
    """

    total_reviews: int
    sample_size: int
    personalized_error: float
    default_error: float
    personalized_advantage: float
    recommendation: Recommendation
    key_differences: dict[int, float] = field(default_factory=dict)
    overall_score: float = 0.0
