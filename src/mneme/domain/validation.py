"""Domain validation for candidate parameter sets."""

import math

from .constants import (
    DESIRED_RETENTION_BOUNDS,
    MAXIMUM_INTERVAL_DAYS,
    PARAMETER_COUNT,
    RELEARNING_PENALTY_BOUNDS,
    WEIGHT_BOUNDS,
)
from .errors import ValidationFailed
from .models import ParameterSet, ParameterVector


def validate_weights(weights: ParameterVector) -> list[str]:
    errors: list[str] = []
    if len(weights) != PARAMETER_COUNT:
        return [f"Expected {PARAMETER_COUNT} weights, got {len(weights)}"]

    for i, (value, (low, high)) in enumerate(zip(weights, WEIGHT_BOUNDS)):
        if not isinstance(value, float) or not math.isfinite(value):
            errors.append(f"w{i} must be a finite number, got {value}")
        elif value < low or value > high:
            errors.append(f"w{i} must be between {low} and {high}, got {value}")
    return errors


def validate_parameters(params: ParameterSet) -> list[str]:
    """
    Check every weight against its bounds plus the scheduling settings.

    Returns:
        A list of human-readable errors; empty when the set is valid.
    """
    errors = validate_weights(params.weights)

    low, high = DESIRED_RETENTION_BOUNDS
    if not (low <= params.desired_retention <= high):
        errors.append(
            f"desired_retention must be between {low} and {high}, got {params.desired_retention}"
        )

    if any(step <= 0 for step in params.learning_steps):
        errors.append("Learning steps must be positive")
    if any(step <= 0 for step in params.relearning_steps):
        errors.append("Relearning steps must be positive")

    if params.minimum_interval_days < 1 or params.maximum_interval_days > MAXIMUM_INTERVAL_DAYS:
        errors.append(f"Interval days must be between 1 and {MAXIMUM_INTERVAL_DAYS}")
    if params.minimum_interval_days >= params.maximum_interval_days:
        errors.append("Minimum interval must be less than maximum interval")

    if params.graduating_interval_days < 1 or params.easy_interval_days < 1:
        errors.append("Graduating and easy intervals must be at least 1 day")

    low, high = RELEARNING_PENALTY_BOUNDS
    if not (low <= params.relearning_stability_penalty <= high):
        errors.append(f"Relearning stability penalty must be between {low} and {high}")

    return errors


def ensure_valid(params: ParameterSet) -> ParameterSet:
    """Raise ValidationFailed unless the set passes validate_parameters."""
    errors = validate_parameters(params)
    if errors:
        raise ValidationFailed(errors)
    return params
