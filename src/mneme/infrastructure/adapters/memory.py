"""
In-memory store — Infrastructure adapter backed by process-local dicts.

Implements every repository port plus the audit sink. Parameter commits are
guarded by an asyncio.Lock so compare-and-swap is atomic within the loop.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import replace
from datetime import datetime

from mneme.domain.models import (
    CardMemoryState,
    CardState,
    ParameterSet,
    ReviewEvent,
    VersionedParameters,
)
from mneme.domain.optimization.models import OptimizationRun
from mneme.domain.ports import (
    AuditSink,
    CardStateRepository,
    Clock,
    ParameterRepository,
    ReviewRepository,
)

from .clock import SystemClock

logger = logging.getLogger(__name__)


class InMemoryStore(ReviewRepository, ParameterRepository, CardStateRepository, AuditSink):
    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()
        self._reviews: dict[str, list[ReviewEvent]] = defaultdict(list)
        self._parameters: dict[str, VersionedParameters] = {}
        self._cards: dict[tuple[str, str], CardMemoryState] = {}
        self._lock = asyncio.Lock()
        self.runs: list[OptimizationRun] = []

    # ReviewRepository

    async def list_reviews(self, learner_id: str, window: int | None = None) -> list[ReviewEvent]:
        events = self._reviews.get(learner_id, [])
        if window is not None:
            events = events[-window:] if window > 0 else []
        return list(events)

    async def append_review(self, event: ReviewEvent) -> None:
        self._reviews[event.learner_id].append(event)

    async def commit_review(self, event: ReviewEvent, card: CardMemoryState) -> None:
        # card first: a failed save must not leave an orphaned event in the log
        await self.save_card(card)
        await self.append_review(event)

    async def count_reviews(self, learner_id: str) -> int:
        return len(self._reviews.get(learner_id, []))

    # ParameterRepository

    async def get_parameters(self, learner_id: str) -> VersionedParameters:
        return self._parameters.get(learner_id) or VersionedParameters(ParameterSet())

    async def compare_and_set_parameters(
        self, learner_id: str, expected_version: int, parameters: ParameterSet
    ) -> bool:
        async with self._lock:
            current = await self.get_parameters(learner_id)
            if current.version != expected_version:
                logger.debug(
                    f"CAS conflict for {learner_id}: expected v{expected_version}, "
                    f"found v{current.version}"
                )
                return False
            self._parameters[learner_id] = VersionedParameters(
                parameters=parameters,
                version=expected_version + 1,
                updated_at=self._clock.now(),
            )
            return True

    async def list_learners(self) -> list[str]:
        return sorted(set(self._parameters) | set(self._reviews))

    # CardStateRepository

    async def get_card(self, learner_id: str, card_id: str) -> CardMemoryState | None:
        card = self._cards.get((learner_id, card_id))
        return replace(card) if card else None

    async def save_card(self, card: CardMemoryState) -> None:
        self._cards[(card.learner_id, card.card_id)] = replace(card)

    async def list_due(self, learner_id: str, now: datetime) -> list[CardMemoryState]:
        due = [
            replace(card)
            for (owner, _), card in self._cards.items()
            if owner == learner_id
            and card.state is not CardState.NEW
            and card.due_at is not None
            and card.due_at <= now
        ]
        return sorted(due, key=lambda c: c.due_at)

    # AuditSink

    async def record_optimization_run(self, run: OptimizationRun) -> None:
        self.runs.append(run)
