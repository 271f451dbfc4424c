"""
Batch optimization across learners.

Learners are independent, so each batch runs concurrently; a failure for one
learner is recorded and never aborts the rest.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field

from mneme.domain.constants import BATCH_SIZE
from mneme.domain.optimization.models import OptimizationStatus

from .service import OptimizationService

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    learner_id: str
    status: OptimizationStatus
    priority: float


@dataclass
class BatchResult:
    total_learners: int = 0
    optimized: int = 0
    skipped: int = 0
    errors: int = 0
    details: list[dict] = field(default_factory=list)


class BatchOptimizer:
    def __init__(self, service: OptimizationService, batch_size: int = BATCH_SIZE):
        self.service = service
        self.batch_size = max(1, batch_size)

    def priority(self, status: OptimizationStatus) -> float:
        """More reviews, staler parameters and milestone counts rank first."""
        days = status.days_since_update
        score = min(status.total_reviews / 100, 5)
        score += 3 if math.isinf(days) else min(days / 10, 3)
        if status.total_reviews in self.service.settings.milestones:
            score += 10
        return score

    async def candidates(self, learner_ids: list[str]) -> list[Candidate]:
        found: list[Candidate] = []
        for learner_id in learner_ids:
            try:
                status = await self.service.check(learner_id)
            except Exception as e:
                logger.warning(f"Failed to check optimization for learner {learner_id}: {e}")
                continue
            if status.should_optimize:
                found.append(Candidate(learner_id, status, self.priority(status)))

        found.sort(key=lambda c: c.priority, reverse=True)
        return found

    async def run(self, learner_ids: list[str]) -> BatchResult:
        candidates = await self.candidates(learner_ids)
        result = BatchResult(total_learners=len(candidates))

        for start in range(0, len(candidates), self.batch_size):
            batch = candidates[start : start + self.batch_size]
            outcomes = await asyncio.gather(
                *(self.service.optimize(c.learner_id) for c in batch),
                return_exceptions=True,
            )
            for candidate, outcome in zip(batch, outcomes):
                self._tally(result, candidate.learner_id, outcome)

        logger.info(
            f"Batch optimization finished: {result.optimized} optimized, "
            f"{result.skipped} skipped, {result.errors} errors"
        )
        return result

    def _tally(self, result: BatchResult, learner_id: str, outcome) -> None:
        if isinstance(outcome, BaseException):
            result.errors += 1
            result.details.append(
                {"learner_id": learner_id, "status": "error", "error": str(outcome)}
            )
            logger.error(f"Error optimizing learner {learner_id}: {outcome}")
        elif outcome.committed:
            result.optimized += 1
            result.details.append(
                {
                    "learner_id": learner_id,
                    "status": "optimized",
                    "confidence": outcome.confidence,
                    "improvements": outcome.improvements,
                }
            )
        else:
            result.skipped += 1
            result.details.append(
                {"learner_id": learner_id, "status": "skipped", "reason": outcome.reason}
            )
