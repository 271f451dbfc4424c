import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from mneme.domain.models import CardMemoryState, CardState, ParameterSet, ParameterVector, Rating
from mneme.domain.optimization.models import (
    OptimizationRun,
    OptimizationSuggestions,
    PerformanceMetrics,
    PredictionAnalysis,
    Priority,
)
from mneme.infrastructure.adapters import SqliteStore


@pytest.fixture
def db(tmp_path, clock):
    store = SqliteStore(tmp_path / "data" / "mneme.db", clock=clock)
    yield store
    asyncio.run(store.close())


@pytest.mark.asyncio
async def test_creates_database_file(tmp_path):
    path = tmp_path / "nested" / "dir" / "mneme.db"
    async with SqliteStore(path) as store:
        assert await store.count_reviews("l") == 0
    assert path.exists()


@pytest.mark.asyncio
async def test_in_memory_database():
    async with SqliteStore(":memory:") as store:
        assert await store.compare_and_set_parameters("l", 0, ParameterSet())
        assert (await store.get_parameters("l")).version == 1


@pytest.mark.asyncio
async def test_defaults_at_version_zero(db):
    versioned = await db.get_parameters("nobody")
    assert versioned.version == 0
    assert versioned.updated_at is None
    assert versioned.parameters == ParameterSet()


@pytest.mark.asyncio
async def test_parameter_round_trip_is_bit_identical(db):
    weights = tuple(w + 1e-13 * i for i, w in enumerate(ParameterVector()))
    params = ParameterSet(
        weights=ParameterVector(weights).with_updates({2: 0.1 + 0.2}),
        desired_retention=0.87,
        learning_steps=(1.0, 10.0, 60.0),
        easy_skips_learning=False,
    )
    assert await db.compare_and_set_parameters("l", 0, params)

    loaded = (await db.get_parameters("l")).parameters
    assert loaded == params
    assert [w.hex() for w in loaded.weights] == [w.hex() for w in params.weights]


@pytest.mark.asyncio
async def test_compare_and_set(db, clock):
    assert await db.compare_and_set_parameters("l", 0, ParameterSet())
    assert not await db.compare_and_set_parameters("l", 0, ParameterSet())
    assert not await db.compare_and_set_parameters("l", 5, ParameterSet())

    clock.advance(days=1)
    assert await db.compare_and_set_parameters("l", 1, ParameterSet(desired_retention=0.8))

    versioned = await db.get_parameters("l")
    assert versioned.version == 2
    assert versioned.updated_at == clock.now()
    assert versioned.parameters.desired_retention == 0.8


@pytest.mark.asyncio
async def test_concurrent_commits_single_winner(db):
    results = await asyncio.gather(
        *(db.compare_and_set_parameters("l", 0, ParameterSet()) for _ in range(4))
    )
    assert results.count(True) == 1


@pytest.mark.asyncio
async def test_commits_visible_across_stores(tmp_path, clock):
    path = tmp_path / "shared.db"
    async with SqliteStore(path, clock=clock) as first, SqliteStore(path, clock=clock) as second:
        assert await first.compare_and_set_parameters("l", 0, ParameterSet())
        assert not await second.compare_and_set_parameters("l", 0, ParameterSet())
        assert (await second.get_parameters("l")).version == 1
        assert await second.compare_and_set_parameters("l", 1, ParameterSet())
        assert not await first.compare_and_set_parameters("l", 1, ParameterSet())


@pytest.mark.asyncio
async def test_reviews_round_trip_in_order(db, events_factory):
    events = events_factory(12, correct_rate=0.5)
    for event in events:
        await db.append_review(event)

    assert await db.count_reviews("learner-1") == 12
    assert await db.list_reviews("learner-1") == events
    assert await db.list_reviews("learner-1", window=4) == events[-4:]
    assert await db.list_reviews("learner-1", window=0) == []


@pytest.mark.asyncio
async def test_list_learners(db, events_factory):
    for event in events_factory(2, learner_id="b") + events_factory(1, learner_id="a"):
        await db.append_review(event)
    await db.compare_and_set_parameters("c", 0, ParameterSet())
    assert await db.list_learners() == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_cards(db, clock):
    now = clock.now()
    card = CardMemoryState(
        "l",
        "c1",
        state=CardState.RELEARNING,
        stability=2.5,
        difficulty=6.25,
        due_at=now - timedelta(minutes=5),
        step=0,
        last_review=now - timedelta(days=3),
        scheduled_days=3.0,
        reps=4,
        lapses=1,
    )
    await db.save_card(card)
    await db.save_card(CardMemoryState("l", "new"))
    later = CardMemoryState(
        "l",
        "later",
        state=CardState.REVIEW,
        stability=9.0,
        difficulty=5.0,
        due_at=now + timedelta(days=2),
        last_review=now,
        scheduled_days=2.0,
    )
    await db.save_card(later)

    assert await db.get_card("l", "c1") == card
    assert (await db.get_card("l", "new")).state is CardState.NEW
    assert [c.card_id for c in await db.list_due("l", now)] == ["c1"]

    card.reps = 5
    await db.save_card(card)
    assert (await db.get_card("l", "c1")).reps == 5


@pytest.mark.asyncio
async def test_commit_review_writes_event_and_card(db, events_factory):
    event = events_factory(1)[0]
    card = CardMemoryState(
        "learner-1",
        event.card_id,
        state=CardState.LEARNING,
        stability=2.3,
        difficulty=5.0,
        due_at=event.reviewed_at,
        last_review=event.reviewed_at,
    )

    await db.commit_review(event, card)

    assert await db.list_reviews("learner-1") == [event]
    assert await db.get_card("learner-1", event.card_id) == card


class BrokenCardStore(SqliteStore):
    def _card_row(self, card):
        raise RuntimeError("cannot map card")


@pytest.mark.asyncio
async def test_commit_review_rolls_back_event_on_card_failure(tmp_path, clock, events_factory):
    event = events_factory(1)[0]
    async with BrokenCardStore(tmp_path / "m.db", clock=clock) as db:
        with pytest.raises(RuntimeError, match="cannot map card"):
            await db.commit_review(event, CardMemoryState("learner-1", event.card_id))

        assert await db.count_reviews("learner-1") == 0
        assert await db.get_card("learner-1", event.card_id) is None


@pytest.mark.asyncio
async def test_audit_runs_are_write_once(db, clock):
    run = OptimizationRun(
        run_id="01HZX3Y5W8D9K2M4N6P8Q0R2S4",
        learner_id="l",
        previous=ParameterVector(),
        proposed=ParameterVector().with_updates({6: 0.8725}),
        metrics=PerformanceMetrics(
            total_reviews=50, correct_rate=0.6, rating_distribution={Rating.GOOD: 30}
        ),
        prediction=PredictionAnalysis(),
        suggestions=OptimizationSuggestions(
            adjustments={6: -0.05}, reasons=["Low success rate"], priority=Priority.LOW
        ),
        confidence=0.125,
        previous_version=0,
        new_version=1,
        created_at=clock.now(),
    )
    await db.record_optimization_run(run)

    runs = await db.list_runs("l")
    assert len(runs) == 1
    assert runs[0]["new_version"] == 1
    assert runs[0]["created_at"] == clock.now()
    assert runs[0]["payload"]["proposed"][6] == 0.8725
    assert runs[0]["payload"]["adjustments"] == {"6": -0.05}
    assert runs[0]["payload"]["metrics"]["rating_distribution"] == {"good": 30}

    with pytest.raises(IntegrityError):
        await db.record_optimization_run(run)
