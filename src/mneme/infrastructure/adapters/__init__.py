# Infrastructure Adapters Package
from .clock import FixedClock, SystemClock
from .memory import InMemoryStore
from .sqlite_store import SqliteStore

__all__ = ["FixedClock", "InMemoryStore", "SqliteStore", "SystemClock"]
