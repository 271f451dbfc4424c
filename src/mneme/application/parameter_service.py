"""
Parameter Service — Application layer access to a learner's scheduling settings.

Weights belong to the optimizer; this service changes everything else in a
ParameterSet (desired retention, steps, intervals) through the same
validated compare-and-swap commit the optimizer uses.
"""

import dataclasses
import logging
from typing import Any

from mneme.domain.errors import ConcurrentOptimization, InvalidInput
from mneme.domain.models import ParameterSet, VersionedParameters
from mneme.domain.ports import ParameterRepository
from mneme.domain.validation import ensure_valid

logger = logging.getLogger(__name__)

SETTINGS = (
    "desired_retention",
    "learning_steps",
    "relearning_steps",
    "graduating_interval_days",
    "easy_interval_days",
    "minimum_interval_days",
    "maximum_interval_days",
    "relearning_stability_penalty",
    "easy_skips_learning",
)

STEP_SETTINGS = ("learning_steps", "relearning_steps")


class ParameterService:
    def __init__(self, parameters: ParameterRepository):
        self._parameters = parameters

    async def get(self, learner_id: str) -> VersionedParameters:
        return await self._parameters.get_parameters(learner_id)

    async def update_settings(self, learner_id: str, **changes: Any) -> VersionedParameters:
        """
        Apply scheduling-setting changes to the learner's committed parameters.

        Settings passed as None are left alone.

        Raises:
            InvalidInput: An unknown setting name (weights included).
            ValidationFailed: The resulting set is out of bounds; nothing is written.
            ConcurrentOptimization: The parameters changed between read and commit.
        """
        unknown = sorted(set(changes) - set(SETTINGS))
        if unknown:
            raise InvalidInput(f"Unknown settings: {', '.join(unknown)}")

        changes = {name: value for name, value in changes.items() if value is not None}
        for name in STEP_SETTINGS:
            if name in changes:
                changes[name] = tuple(float(step) for step in changes[name])

        current = await self._parameters.get_parameters(learner_id)
        if not changes:
            return current

        updated: ParameterSet = ensure_valid(dataclasses.replace(current.parameters, **changes))
        if not await self._parameters.compare_and_set_parameters(
            learner_id, current.version, updated
        ):
            raise ConcurrentOptimization(learner_id, current.version)

        logger.info(
            f"Updated settings for {learner_id} (v{current.version} -> v{current.version + 1}): "
            f"{', '.join(sorted(changes))}"
        )
        return await self._parameters.get_parameters(learner_id)
