"""
Database tables for the SQL store.

Timestamps are stored as naive UTC and handed back timezone-aware; parameter
sets and audit details are JSON so float weights round-trip exactly.
"""

from datetime import timezone

from sqlalchemy import JSON, Column, DateTime, Float, Index, Integer, String, TypeDecorator
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """DateTime that normalizes to UTC on write and re-attaches tzinfo on read."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class ParameterRow(Base):
    """Committed parameter set per learner; `version` guards compare-and-swap."""

    __tablename__ = "parameters"

    learner_id = Column(String(100), primary_key=True)
    payload = Column(JSON, nullable=False)
    version = Column(Integer, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)


class ReviewRow(Base):
    """Append-only review log; `id` gives insertion (chronological) order."""

    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    learner_id = Column(String(100), nullable=False)
    card_id = Column(String(100), nullable=False)
    rating = Column(Integer, nullable=False)
    reviewed_at = Column(UTCDateTime, nullable=False)
    elapsed_days = Column(Float, nullable=False)
    scheduled_days = Column(Float, nullable=False)
    stability_before = Column(Float, nullable=False)
    stability_after = Column(Float, nullable=False)
    difficulty_before = Column(Float, nullable=False)
    difficulty_after = Column(Float, nullable=False)
    response_time_ms = Column(Integer, nullable=False)
    state_before = Column(String(20), nullable=False)
    state_after = Column(String(20), nullable=False)

    __table_args__ = (Index("idx_reviews_learner", "learner_id", "id"),)


class CardRow(Base):
    __tablename__ = "cards"

    learner_id = Column(String(100), primary_key=True)
    card_id = Column(String(100), primary_key=True)
    state = Column(String(20), nullable=False)
    stability = Column(Float)
    difficulty = Column(Float)
    due_at = Column(UTCDateTime, index=True)
    step = Column(Integer, nullable=False, default=0)
    last_review = Column(UTCDateTime)
    scheduled_days = Column(Float, nullable=False, default=0.0)
    reps = Column(Integer, nullable=False, default=0)
    lapses = Column(Integer, nullable=False, default=0)


class OptimizationRunRow(Base):
    """Write-once audit record; a duplicate run_id is an integrity error."""

    __tablename__ = "optimization_runs"

    run_id = Column(String(26), primary_key=True)
    learner_id = Column(String(100), nullable=False, index=True)
    created_at = Column(UTCDateTime, nullable=False)
    confidence = Column(Float, nullable=False)
    previous_version = Column(Integer, nullable=False)
    new_version = Column(Integer, nullable=False)
    payload = Column(JSON, nullable=False)
