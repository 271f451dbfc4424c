# Domain Optimization Package
from .models import (
    AnalysisReport,
    OptimizationOutcome,
    OptimizationResult,
    OptimizationRun,
    OptimizationStatus,
    OptimizationSuggestions,
    PerformanceMetrics,
    PredictionAnalysis,
    Priority,
)

__all__ = [
    "AnalysisReport",
    "OptimizationOutcome",
    "OptimizationResult",
    "OptimizationRun",
    "OptimizationStatus",
    "OptimizationSuggestions",
    "PerformanceMetrics",
    "PredictionAnalysis",
    "Priority",
]
