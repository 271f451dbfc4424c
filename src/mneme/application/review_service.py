"""
Review Service — Application layer orchestrator for recording reviews.

Loads the card and the learner's committed parameters, runs the scheduler,
then commits the event and the new card state together.
"""

import logging
from datetime import datetime

from mneme.domain.models import CardMemoryState, Rating
from mneme.domain.ports import CardStateRepository, Clock, ParameterRepository, ReviewRepository

from .scheduler import ReviewOutcome, Scheduler

logger = logging.getLogger(__name__)


class ReviewService:
    """
    Application service for applying ratings to cards.

    Depends on repository ports only; each call reads the learner's current
    parameters so a freshly committed optimization applies to the next review.
    """

    def __init__(
        self,
        reviews: ReviewRepository,
        parameters: ParameterRepository,
        cards: CardStateRepository,
        clock: Clock,
    ):
        self._reviews = reviews
        self._parameters = parameters
        self._cards = cards
        self._clock = clock

    async def scheduler_for(self, learner_id: str) -> Scheduler:
        versioned = await self._parameters.get_parameters(learner_id)
        return Scheduler(versioned.parameters)

    async def get_or_create_card(self, learner_id: str, card_id: str) -> CardMemoryState:
        card = await self._cards.get_card(learner_id, card_id)
        return card or CardMemoryState(learner_id=learner_id, card_id=card_id)

    async def record_review(
        self,
        learner_id: str,
        card_id: str,
        rating: Rating,
        response_time_ms: int = 0,
        now: datetime | None = None,
    ) -> ReviewOutcome:
        rating = Rating.parse(rating)
        now = now or self._clock.now()

        card = await self.get_or_create_card(learner_id, card_id)
        scheduler = await self.scheduler_for(learner_id)
        outcome = scheduler.review(card, rating, now, response_time_ms)

        await self._reviews.commit_review(outcome.event, outcome.card)

        logger.info(
            f"Learner {learner_id} rated {card_id} {rating.name}: "
            f"{outcome.event.state_before.value} -> {outcome.card.state.value}"
        )
        return outcome

    async def preview(self, learner_id: str, card_id: str) -> dict[Rating, datetime]:
        card = await self.get_or_create_card(learner_id, card_id)
        scheduler = await self.scheduler_for(learner_id)
        return scheduler.preview(card, self._clock.now())

    async def due_cards(self, learner_id: str) -> list[CardMemoryState]:
        return await self._cards.list_due(learner_id, self._clock.now())
