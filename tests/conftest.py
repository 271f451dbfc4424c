from datetime import datetime, timedelta, timezone

import pytest

from mneme.domain.models import CardState, Rating, ReviewEvent
from mneme.infrastructure.adapters import FixedClock, InMemoryStore

T0 = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Isolate config files and the default database
    monkeypatch.setenv("HOME", str(home))
    for key in ("MNEME_DATABASE_PATH", "MNEME_MIN_REVIEWS", "MNEME_CONSERVATIVE"):
        monkeypatch.delenv(key, raising=False)
    return home


@pytest.fixture
def clock():
    return FixedClock(T0)


@pytest.fixture
def store(clock):
    return InMemoryStore(clock=clock)


def make_events(
    n: int,
    correct_rate: float = 0.9,
    learner_id: str = "learner-1",
    stability_gain: float = 1.0,
    elapsed_days: float = 0.0,
    scheduled_days: float = 0.0,
    stability_before: float = 1.0,
    start: datetime = T0,
) -> list[ReviewEvent]:
    """
    Build a chronological review log.

    The first round(n * correct_rate) events are GOOD, the rest AGAIN.
    With the default elapsed_days=0 there are no prediction samples.
    """
    successes = round(n * correct_rate)
    events = []
    for i in range(n):
        rating = Rating.GOOD if i < successes else Rating.AGAIN
        events.append(
            ReviewEvent(
                learner_id=learner_id,
                card_id=f"card-{i % 7}",
                rating=rating,
                reviewed_at=start + timedelta(hours=i),
                elapsed_days=elapsed_days,
                scheduled_days=scheduled_days,
                stability_before=stability_before,
                stability_after=stability_before + stability_gain,
                difficulty_before=5.0,
                difficulty_after=5.0,
                response_time_ms=1000,
                state_before=CardState.REVIEW,
                state_after=CardState.REVIEW,
            )
        )
    return events


@pytest.fixture
def events_factory():
    return make_events
