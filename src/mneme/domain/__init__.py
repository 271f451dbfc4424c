# Domain Package
from .errors import (
    ConcurrentOptimization,
    InsufficientData,
    InvalidInput,
    MnemeError,
    ValidationFailed,
)
from .models import (
    CardMemoryState,
    CardState,
    ParameterIndex,
    ParameterSet,
    ParameterVector,
    Rating,
    ReviewEvent,
    VersionedParameters,
)

__all__ = [
    "CardMemoryState",
    "CardState",
    "ConcurrentOptimization",
    "InsufficientData",
    "InvalidInput",
    "MnemeError",
    "ParameterIndex",
    "ParameterSet",
    "ParameterVector",
    "Rating",
    "ReviewEvent",
    "ValidationFailed",
    "VersionedParameters",
]
