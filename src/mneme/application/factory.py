"""
Service Factory
Centralizes wiring of repositories, clock and application services.
"""

from dataclasses import dataclass

from mneme.application.config import AppConfig
from mneme.application.optimization import (
    BatchOptimizer,
    OptimizationService,
    OptimizationSettings,
    OptimizerSettings,
    ParameterOptimizer,
    PerformanceAnalyzer,
)
from mneme.application.parameter_service import ParameterService
from mneme.application.review_service import ReviewService
from mneme.domain.ports import Clock
from mneme.infrastructure.adapters import SqliteStore, SystemClock


@dataclass
class Services:
    store: SqliteStore
    reviews: ReviewService
    optimization: OptimizationService
    batch: BatchOptimizer
    parameters: ParameterService

    async def close(self) -> None:
        await self.store.close()


def optimization_settings(config: AppConfig) -> OptimizationSettings:
    return OptimizationSettings(
        min_reviews=config.min_reviews,
        milestones=tuple(config.milestones),
        stale_after_days=config.stale_after_days,
        review_window=config.review_window,
        conservative=config.conservative,
    )


def get_store(config: AppConfig, clock: Clock | None = None) -> SqliteStore:
    return SqliteStore(config.database_path, clock=clock)


def build_services(
    config: AppConfig,
    store: SqliteStore | None = None,
    clock: Clock | None = None,
) -> Services:
    """
    Returns the application services wired to one store.
    """
    clock = clock or SystemClock()
    store = store or get_store(config, clock)
    settings = optimization_settings(config)

    optimization = OptimizationService(
        reviews=store,
        parameters=store,
        audit=store,
        clock=clock,
        analyzer=PerformanceAnalyzer(min_reviews=config.min_reviews),
        optimizer=ParameterOptimizer(
            OptimizerSettings(
                conservative_scale=config.conservative_scale,
                max_param_change=config.max_param_change,
            )
        ),
        settings=settings,
    )
    return Services(
        store=store,
        reviews=ReviewService(reviews=store, parameters=store, cards=store, clock=clock),
        optimization=optimization,
        batch=BatchOptimizer(optimization, batch_size=config.batch_size),
        parameters=ParameterService(store),
    )
