# Application Optimization Package
from .analyzer import PerformanceAnalyzer
from .batch import BatchOptimizer, BatchResult
from .optimizer import DEFAULT_RULES, OptimizerSettings, ParameterOptimizer, SuggestionRule
from .service import OptimizationService, OptimizationSettings

__all__ = [
    "BatchOptimizer",
    "BatchResult",
    "DEFAULT_RULES",
    "OptimizationService",
    "OptimizationSettings",
    "OptimizerSettings",
    "ParameterOptimizer",
    "PerformanceAnalyzer",
    "SuggestionRule",
]
