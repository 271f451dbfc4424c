import asyncio
import math
from unittest.mock import AsyncMock

import pytest

from mneme.application.optimization import OptimizationService, OptimizationSettings
from mneme.domain.constants import DEFAULT_WEIGHTS
from mneme.domain.errors import ConcurrentOptimization, InsufficientData
from mneme.domain.models import ParameterSet, ParameterVector
from mneme.domain.optimization.models import (
    OptimizationOutcome,
    OptimizationResult,
    PerformanceMetrics,
    PredictionAnalysis,
    Priority,
    Recommendation,
)
from mneme.infrastructure.adapters import InMemoryStore


async def seed(store, events):
    for event in events:
        await store.append_review(event)


@pytest.fixture
def service(store, clock):
    return OptimizationService(reviews=store, parameters=store, audit=store, clock=clock)


class TestCadence:
    def test_never_below_minimum(self, service):
        for total in (0, 10, 49):
            assert service.should_optimize(total, math.inf) is False

    def test_milestone_or_stale(self, service):
        assert service.should_optimize(100, 0.0)
        assert service.should_optimize(60, 30.0)
        assert not service.should_optimize(60, 29.9)

    def test_next_milestone(self, service):
        assert service.next_milestone(10) == 100
        assert service.next_milestone(100) == 250
        assert service.next_milestone(2000) == 2500

    def test_reasons(self, service):
        assert service.optimization_reason(20, 0) == "Need 30 more reviews"
        assert service.optimization_reason(250, 0) == "Reached 250 review milestone"
        assert service.optimization_reason(60, math.inf) == "Parameters have never been optimized"
        assert service.optimization_reason(60, 45.2) == "45 days since last optimization"
        assert service.optimization_reason(60, 3) == "No optimization needed"

    def test_custom_settings(self, store, clock):
        settings = OptimizationSettings(min_reviews=5, milestones=(10,), stale_after_days=1)
        service = OptimizationService(store, store, store, clock, settings=settings)
        assert service.should_optimize(10, 0)
        assert service.next_milestone(10) == 510

    @pytest.mark.asyncio
    async def test_check_never_optimized(self, service, store, events_factory):
        await seed(store, events_factory(60))
        status = await service.check("learner-1")
        assert status.total_reviews == 60
        assert math.isinf(status.days_since_update)
        assert status.should_optimize is True
        assert status.next_milestone == 100

    @pytest.mark.asyncio
    async def test_check_after_commit(self, service, store, clock, events_factory):
        await seed(store, events_factory(60))
        await store.compare_and_set_parameters("learner-1", 0, ParameterSet())
        clock.advance(days=3)

        status = await service.check("learner-1")
        assert status.days_since_update == pytest.approx(3.0)
        assert status.should_optimize is False


def test_confidence(service):
    metrics = PerformanceMetrics(total_reviews=400, retention_rate=0.8)
    prediction = PredictionAnalysis(consistency_score=0.6)
    assert service.confidence(400, metrics, prediction) == pytest.approx((1.0 + 0.7) / 2)

    nan_metrics = PerformanceMetrics(total_reviews=50, retention_rate=math.nan)
    assert service.confidence(50, nan_metrics, PredictionAnalysis()) == pytest.approx(0.125)


@pytest.mark.asyncio
async def test_low_correct_rate_scenario(service, store, events_factory):
    await seed(store, events_factory(50, correct_rate=0.6))

    result = await service.optimize("learner-1")

    assert result.outcome is OptimizationOutcome.COMMITTED
    assert result.committed
    assert result.confidence == pytest.approx(0.125)

    stored = await store.get_parameters("learner-1")
    assert stored.version == 1
    weights = stored.parameters.weights
    assert weights[6] == pytest.approx(DEFAULT_WEIGHTS[6] - 0.025)
    assert weights[7] == pytest.approx(DEFAULT_WEIGHTS[7] + 0.01)
    unchanged = [i for i in range(17) if i not in (6, 7)]
    assert all(weights[i] == DEFAULT_WEIGHTS[i] for i in unchanged)

    assert len(store.runs) == 1
    run = store.runs[0]
    assert run.previous_version == 0
    assert run.new_version == 1
    assert run.proposed == weights
    assert len(run.run_id) == 26
    assert "Reduced difficulty impact for struggling cards" in result.improvements


@pytest.mark.asyncio
async def test_low_correct_rate_with_scheduled_reviews(service, store, events_factory):
    # reviewed on schedule: predicted recall 0.9, actual 0.6
    events = events_factory(
        50, correct_rate=0.6, elapsed_days=1.0, scheduled_days=1.0, stability_before=1.0
    )
    await seed(store, events)

    report, suggestions, _ = await service.analyze("learner-1")
    assert report.prediction.overestimation_bias == pytest.approx(0.3)
    assert suggestions.priority in (Priority.MEDIUM, Priority.HIGH)
    assert suggestions.adjustments[6] < 0
    assert suggestions.adjustments[7] > 0

    result = await service.optimize("learner-1")

    assert result.committed
    assert result.run.suggestions.priority in (Priority.MEDIUM, Priority.HIGH)
    weights = (await store.get_parameters("learner-1")).parameters.weights
    assert weights[6] < DEFAULT_WEIGHTS[6]
    assert weights[7] > DEFAULT_WEIGHTS[7]


@pytest.mark.asyncio
async def test_aggressive_mode(service, store, events_factory):
    await seed(store, events_factory(50, correct_rate=0.6))
    await service.optimize("learner-1", conservative=False)

    weights = (await store.get_parameters("learner-1")).parameters.weights
    assert weights[6] == pytest.approx(DEFAULT_WEIGHTS[6] - 0.05)


@pytest.mark.asyncio
async def test_insufficient_data_skips(service, store, events_factory):
    await seed(store, events_factory(20))
    result = await service.optimize("learner-1")

    assert result.outcome is OptimizationOutcome.SKIPPED
    assert result.reason == "Need at least 50 reviews, have 20"
    assert (await store.get_parameters("learner-1")).version == 0
    assert store.runs == []


@pytest.mark.asyncio
async def test_nothing_to_adjust_skips(service, store, events_factory):
    await seed(store, events_factory(60, correct_rate=0.9))
    result = await service.optimize("learner-1")
    assert result.outcome is OptimizationOutcome.SKIPPED
    assert (await store.get_parameters("learner-1")).version == 0


@pytest.mark.asyncio
async def test_validation_failure_rejects(service, store, events_factory):
    edge = ParameterSet(weights=ParameterVector().with_updates({7: 0.75}))
    assert await store.compare_and_set_parameters("learner-1", 0, edge)
    await seed(store, events_factory(50, correct_rate=0.6))

    result = await service.optimize("learner-1")

    assert result.outcome is OptimizationOutcome.REJECTED
    assert any(e.startswith("w7") for e in result.validation_errors)
    stored = await store.get_parameters("learner-1")
    assert stored.version == 1
    assert stored.parameters == edge
    assert store.runs == []


@pytest.mark.asyncio
async def test_audit_failure_does_not_undo_commit(store, clock, events_factory):
    audit = AsyncMock()
    audit.record_optimization_run.side_effect = RuntimeError("disk full")
    service = OptimizationService(store, store, audit, clock)
    await seed(store, events_factory(50, correct_rate=0.6))

    result = await service.optimize("learner-1")

    assert result.committed
    assert (await store.get_parameters("learner-1")).version == 1
    audit.record_optimization_run.assert_awaited_once()


class InterleavingStore(InMemoryStore):
    """Yields after reading parameters so concurrent passes read the same version."""

    async def get_parameters(self, learner_id):
        versioned = await super().get_parameters(learner_id)
        await asyncio.sleep(0)
        return versioned


@pytest.mark.asyncio
async def test_concurrent_optimizations_single_winner(clock, events_factory):
    store = InterleavingStore(clock=clock)
    service = OptimizationService(store, store, store, clock)
    await seed(store, events_factory(50, correct_rate=0.6))

    results = await asyncio.gather(
        service.optimize("learner-1"),
        service.optimize("learner-1"),
        return_exceptions=True,
    )

    committed = [r for r in results if not isinstance(r, Exception) and r.committed]
    conflicts = [r for r in results if isinstance(r, ConcurrentOptimization)]
    assert len(committed) == 1
    assert len(conflicts) == 1
    assert conflicts[0].expected_version == 0
    assert (await store.get_parameters("learner-1")).version == 1
    assert len(store.runs) == 1


@pytest.mark.asyncio
async def test_retry_after_conflict(service):
    committed = OptimizationResult("learner-1", OptimizationOutcome.COMMITTED)
    service.optimize = AsyncMock(side_effect=[ConcurrentOptimization("learner-1", 0), committed])

    result = await service.optimize_with_retry("learner-1")

    assert result is committed
    assert service.optimize.await_count == 2


@pytest.mark.asyncio
async def test_retry_gives_up_after_second_conflict(service):
    service.optimize = AsyncMock(side_effect=ConcurrentOptimization("learner-1", 1))
    with pytest.raises(ConcurrentOptimization):
        await service.optimize_with_retry("learner-1")


@pytest.mark.asyncio
async def test_analyze_does_not_commit(service, store, events_factory):
    await seed(store, events_factory(50, correct_rate=0.6))
    report, suggestions, confidence = await service.analyze("learner-1")

    assert report.metrics.correct_rate == pytest.approx(0.6)
    assert 6 in suggestions.adjustments
    assert confidence == pytest.approx(0.125)
    assert (await store.get_parameters("learner-1")).version == 0


@pytest.mark.asyncio
async def test_analyze_requires_history(service):
    with pytest.raises(InsufficientData):
        await service.analyze("nobody")


@pytest.mark.asyncio
async def test_window_limits_analysis(store, clock, events_factory):
    settings = OptimizationSettings(review_window=50)
    service = OptimizationService(store, store, store, clock, settings=settings)
    # 100 poor reviews followed by 50 good ones; only the last 50 are analyzed
    await seed(store, events_factory(100, correct_rate=0.0) + events_factory(50, correct_rate=1.0))

    report, _, _ = await service.analyze("learner-1")
    assert report.metrics.total_reviews == 50
    assert report.metrics.correct_rate == 1.0


@pytest.mark.asyncio
async def test_effectiveness_uses_committed_weights(service, store, events_factory):
    await seed(store, events_factory(50, correct_rate=1.0, elapsed_days=10.0))
    tuned = ParameterSet(weights=ParameterVector().with_updates({8: 4.0}))
    await store.compare_and_set_parameters("learner-1", 0, tuned)

    report = await service.effectiveness("learner-1")

    assert report.total_reviews == 50
    assert report.personalized_error < report.default_error
    assert report.recommendation is Recommendation.KEEP_PERSONALIZED
