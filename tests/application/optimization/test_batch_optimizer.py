import math
from unittest.mock import AsyncMock

import pytest

from mneme.application.optimization import BatchOptimizer, OptimizationService
from mneme.domain.optimization.models import OptimizationStatus


def status(total, days=math.inf, should=True):
    return OptimizationStatus(
        total_reviews=total,
        days_since_update=days,
        should_optimize=should,
        next_milestone=0,
        reason="",
    )


@pytest.fixture
def service(store, clock):
    return OptimizationService(reviews=store, parameters=store, audit=store, clock=clock)


async def seed_learner(store, events_factory, learner_id, n, correct_rate=0.6):
    for event in events_factory(n, correct_rate=correct_rate, learner_id=learner_id):
        await store.append_review(event)


def test_priority(service):
    batch = BatchOptimizer(service)
    assert batch.priority(status(100, days=0)) == pytest.approx(1 + 0 + 10)
    assert batch.priority(status(60, days=15)) == pytest.approx(0.6 + 1.5)
    assert batch.priority(status(900)) == pytest.approx(5 + 3)


@pytest.mark.asyncio
async def test_candidates_filtered_and_ordered(service, store, events_factory):
    await seed_learner(store, events_factory, "small", 10)
    await seed_learner(store, events_factory, "mid", 60)
    await seed_learner(store, events_factory, "milestone", 100)

    batch = BatchOptimizer(service)
    candidates = await batch.candidates(await store.list_learners())

    assert [c.learner_id for c in candidates] == ["milestone", "mid"]


@pytest.mark.asyncio
async def test_run_tallies_outcomes(service, store, events_factory):
    await seed_learner(store, events_factory, "a", 60, correct_rate=0.6)
    await seed_learner(store, events_factory, "b", 60, correct_rate=0.9)
    await seed_learner(store, events_factory, "c", 100, correct_rate=0.5)
    await seed_learner(store, events_factory, "d", 5)

    result = await BatchOptimizer(service, batch_size=2).run(await store.list_learners())

    assert result.total_learners == 3
    assert result.optimized == 2
    assert result.skipped == 1
    assert result.errors == 0
    assert {d["learner_id"] for d in result.details if d["status"] == "optimized"} == {"a", "c"}
    assert (await store.get_parameters("d")).version == 0


@pytest.mark.asyncio
async def test_failure_for_one_learner_does_not_abort(service, store, events_factory):
    await seed_learner(store, events_factory, "ok", 60)
    await seed_learner(store, events_factory, "broken", 100)

    real_optimize = service.optimize

    async def flaky(learner_id, conservative=None):
        if learner_id == "broken":
            raise RuntimeError("store unavailable")
        return await real_optimize(learner_id, conservative)

    service.optimize = AsyncMock(side_effect=flaky)
    result = await BatchOptimizer(service).run(["ok", "broken"])

    assert result.optimized == 1
    assert result.errors == 1
    error = next(d for d in result.details if d["status"] == "error")
    assert error == {"learner_id": "broken", "status": "error", "error": "store unavailable"}


@pytest.mark.asyncio
async def test_check_failure_skips_learner(service):
    service.check = AsyncMock(side_effect=RuntimeError("boom"))
    result = await BatchOptimizer(service).run(["x"])
    assert result.total_learners == 0
