"""
Domain error taxonomy.

Model-layer errors (InvalidInput) are never swallowed. InsufficientData and
ValidationFailed are signals the orchestrator turns into "no change" results.
"""


class MnemeError(Exception):
    """Base class for all mneme errors."""


class InvalidInput(MnemeError, ValueError):
    """Malformed numeric or rating argument passed to a model function."""


class InsufficientData(MnemeError):
    """Not enough review history to compute a meaningful statistic."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(f"Need at least {required} reviews, have {available}")


class ValidationFailed(MnemeError):
    """Candidate parameters fall outside their validated domain."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Parameter validation failed")


class ConcurrentOptimization(MnemeError):
    """Lost the compare-and-swap race when committing parameters."""

    def __init__(self, learner_id: str, expected_version: int):
        self.learner_id = learner_id
        self.expected_version = expected_version
        super().__init__(
            f"Parameters for learner {learner_id} changed since version {expected_version}"
        )
