"""
Ports (interfaces) for review logs, parameters, card state and auditing.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from .models import CardMemoryState, ParameterSet, ReviewEvent, VersionedParameters
from .optimization.models import OptimizationRun


class ReviewRepository(ABC):
    """
    Append-only review log per learner.

    Implementations:
        - InMemoryStore: Process-local dictionaries (tests, embedding).
        - SqliteStore: A SQLite database file.
    """

    @abstractmethod
    async def list_reviews(self, learner_id: str, window: int | None = None) -> list[ReviewEvent]:
        """
        Fetch a learner's review log.

        Args:
            learner_id: The learner whose log to read.
            window: When set, only the most recent `window` events.

        Returns:
            ReviewEvents in chronological order (oldest first).
        """
        pass

    @abstractmethod
    async def append_review(self, event: ReviewEvent) -> None:
        pass

    @abstractmethod
    async def commit_review(self, event: ReviewEvent, card: CardMemoryState) -> None:
        """Append `event` and save the card's new state as one unit of work."""
        pass

    @abstractmethod
    async def count_reviews(self, learner_id: str) -> int:
        pass


class ParameterRepository(ABC):
    """Versioned per-learner parameter storage with compare-and-swap writes."""

    @abstractmethod
    async def get_parameters(self, learner_id: str) -> VersionedParameters:
        """
        Fetch the learner's committed parameters.

        Returns:
            The stored parameters, or defaults at version 0 if none were stored.
        """
        pass

    @abstractmethod
    async def compare_and_set_parameters(
        self, learner_id: str, expected_version: int, parameters: ParameterSet
    ) -> bool:
        """
        Store `parameters` only if the current version equals `expected_version`.

        Returns:
            True on success (version incremented), False on conflict.
        """
        pass

    @abstractmethod
    async def list_learners(self) -> list[str]:
        pass


class CardStateRepository(ABC):
    @abstractmethod
    async def get_card(self, learner_id: str, card_id: str) -> CardMemoryState | None:
        pass

    @abstractmethod
    async def save_card(self, card: CardMemoryState) -> None:
        pass

    @abstractmethod
    async def list_due(self, learner_id: str, now: datetime) -> list[CardMemoryState]:
        """Cards in a non-NEW state whose due date is at or before `now`."""
        pass


class AuditSink(ABC):
    """Receives optimization audit records. Failures never roll back a commit."""

    @abstractmethod
    async def record_optimization_run(self, run: OptimizationRun) -> None:
        pass


class Clock(ABC):
    """Injectable source of "now" (timezone-aware UTC)."""

    @abstractmethod
    def now(self) -> datetime:
        pass
