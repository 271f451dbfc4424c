"""JSON-friendly views of domain objects, shared by the CLI and the HTTP server."""

import math
from datetime import datetime
from typing import Any

from mneme.domain.models import CardMemoryState, Rating, VersionedParameters
from mneme.domain.optimization.models import (
    AnalysisReport,
    EffectivenessReport,
    OptimizationResult,
    OptimizationStatus,
    OptimizationSuggestions,
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def status_to_dict(status: OptimizationStatus) -> dict[str, Any]:
    days = status.days_since_update
    return {
        "total_reviews": status.total_reviews,
        "days_since_update": None if math.isinf(days) else round(days, 2),
        "should_optimize": status.should_optimize,
        "next_milestone": status.next_milestone,
        "reason": status.reason,
    }


def suggestions_to_dict(suggestions: OptimizationSuggestions) -> dict[str, Any]:
    return {
        "priority": suggestions.priority.value,
        "adjustments": {f"w{i}": delta for i, delta in sorted(suggestions.adjustments.items())},
        "reasons": suggestions.reasons,
        "expected_improvements": suggestions.expected_improvements,
    }


def report_to_dict(
    report: AnalysisReport, suggestions: OptimizationSuggestions, confidence: float
) -> dict[str, Any]:
    metrics = report.metrics
    prediction = report.prediction
    return {
        "metrics": {
            "total_reviews": metrics.total_reviews,
            "correct_rate": metrics.correct_rate,
            "average_response_time_ms": metrics.average_response_time_ms,
            "rating_distribution": {r.name.lower(): n for r, n in metrics.rating_distribution.items()},
            "stability_trend": metrics.stability_trend,
            "difficulty_trend": metrics.difficulty_trend,
            "retention_rate": metrics.retention_rate,
            "learning_efficiency": metrics.learning_efficiency,
        },
        "prediction": {
            "sample_size": prediction.sample_size,
            "average_error": prediction.average_error,
            "correlation": prediction.correlation,
            "overestimation_bias": prediction.overestimation_bias,
            "underestimation_bias": prediction.underestimation_bias,
            "consistency_score": prediction.consistency_score,
        },
        "suggestions": suggestions_to_dict(suggestions),
        "confidence": confidence,
    }


def result_to_dict(result: OptimizationResult) -> dict[str, Any]:
    data: dict[str, Any] = {
        "learner_id": result.learner_id,
        "outcome": result.outcome.value,
        "reason": result.reason,
        "confidence": result.confidence,
        "validation_errors": result.validation_errors,
        "improvements": result.improvements,
    }
    if result.run is not None:
        data["run"] = {
            "run_id": result.run.run_id,
            "previous_version": result.run.previous_version,
            "new_version": result.run.new_version,
            "previous": list(result.run.previous.weights),
            "proposed": list(result.run.proposed.weights),
            "suggestions": suggestions_to_dict(result.run.suggestions),
        }
    return data


def card_to_dict(card: CardMemoryState) -> dict[str, Any]:
    return {
        "learner_id": card.learner_id,
        "card_id": card.card_id,
        "state": card.state.value,
        "stability": card.stability,
        "difficulty": card.difficulty,
        "due_at": _iso(card.due_at),
        "step": card.step,
        "last_review": _iso(card.last_review),
        "scheduled_days": card.scheduled_days,
        "reps": card.reps,
        "lapses": card.lapses,
    }


def preview_to_dict(preview: dict[Rating, datetime]) -> dict[str, str | None]:
    return {rating.name.lower(): _iso(due) for rating, due in preview.items()}


def parameters_to_dict(versioned: VersionedParameters) -> dict[str, Any]:
    return {
        "version": versioned.version,
        "updated_at": _iso(versioned.updated_at),
        **versioned.parameters.to_dict(),
    }


def effectiveness_to_dict(report: EffectivenessReport) -> dict[str, Any]:
    return {
        "total_reviews": report.total_reviews,
        "sample_size": report.sample_size,
        "personalized_error": report.personalized_error,
        "default_error": report.default_error,
        "personalized_advantage": report.personalized_advantage,
        "recommendation": report.recommendation.value,
        "key_differences": {
            f"w{i}": round(percent, 1) for i, percent in sorted(report.key_differences.items())
        },
        "overall_score": report.overall_score,
    }
