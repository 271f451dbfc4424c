"""
SQLite Store — Infrastructure adapter over SQLAlchemy's async engine.

Implements every repository port and the audit sink on one database file
through aiosqlite. Commits use `UPDATE ... WHERE version = :expected` as the
compare-and-swap guard; a review and its card state are written in a single
transaction.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.event import listens_for
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from mneme.domain.models import (
    CardMemoryState,
    CardState,
    ParameterSet,
    Rating,
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
from .tables import Base, CardRow, OptimizationRunRow, ParameterRow, ReviewRow

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


def database_url(path: Path | str) -> str:
    return f"sqlite+aiosqlite:///{path}"


def _run_payload(run: OptimizationRun) -> dict[str, Any]:
    return {
        "previous": list(run.previous.weights),
        "proposed": list(run.proposed.weights),
        "metrics": {
            **asdict(run.metrics),
            "rating_distribution": {
                r.name.lower(): n for r, n in run.metrics.rating_distribution.items()
            },
        },
        "prediction": asdict(run.prediction),
        "adjustments": {str(k): v for k, v in run.suggestions.adjustments.items()},
        "reasons": run.suggestions.reasons,
        "priority": run.suggestions.priority.value,
    }


def _event_row(event: ReviewEvent) -> ReviewRow:
    return ReviewRow(
        learner_id=event.learner_id,
        card_id=event.card_id,
        rating=int(event.rating),
        reviewed_at=event.reviewed_at,
        elapsed_days=event.elapsed_days,
        scheduled_days=event.scheduled_days,
        stability_before=event.stability_before,
        stability_after=event.stability_after,
        difficulty_before=event.difficulty_before,
        difficulty_after=event.difficulty_after,
        response_time_ms=event.response_time_ms,
        state_before=event.state_before.value,
        state_after=event.state_after.value,
    )


def _row_to_event(row: ReviewRow) -> ReviewEvent:
    return ReviewEvent(
        learner_id=row.learner_id,
        card_id=row.card_id,
        rating=Rating(row.rating),
        reviewed_at=row.reviewed_at,
        elapsed_days=row.elapsed_days,
        scheduled_days=row.scheduled_days,
        stability_before=row.stability_before,
        stability_after=row.stability_after,
        difficulty_before=row.difficulty_before,
        difficulty_after=row.difficulty_after,
        response_time_ms=row.response_time_ms,
        state_before=CardState(row.state_before),
        state_after=CardState(row.state_after),
    )


def _row_to_card(row: CardRow) -> CardMemoryState:
    return CardMemoryState(
        learner_id=row.learner_id,
        card_id=row.card_id,
        state=CardState(row.state),
        stability=row.stability,
        difficulty=row.difficulty,
        due_at=row.due_at,
        step=row.step,
        last_review=row.last_review,
        scheduled_days=row.scheduled_days,
        reps=row.reps,
        lapses=row.lapses,
    )


class SqliteStore(ReviewRepository, ParameterRepository, CardStateRepository, AuditSink):
    """
    All ports over one SQLite database.

    Use as an async context manager, or await close() when done. Tables are
    created on first use. Every transaction starts with BEGIN IMMEDIATE, so
    concurrent writers from other processes wait on the file lock instead of
    failing mid-transaction.
    """

    def __init__(self, path: Path | str, clock: Clock | None = None):
        self.path = str(path)
        self._clock = clock or SystemClock()

        if self.path == MEMORY:
            # One shared connection, or every session would see an empty database.
            self.engine = create_async_engine(
                database_url(MEMORY),
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_async_engine(database_url(self.path), poolclass=NullPool)

        @listens_for(self.engine.sync_engine, "connect")
        def _disable_driver_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @listens_for(self.engine.sync_engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        self._sessions = sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)
        self._lock = asyncio.Lock()
        self._schema_ready = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def _session(self):
        """One session at a time per store; the in-memory database has a single connection."""
        async with self._lock:
            if not self._schema_ready:
                async with self.engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
                self._schema_ready = True
            async with self._sessions() as session:
                yield session

    # ReviewRepository

    async def list_reviews(self, learner_id: str, window: int | None = None) -> list[ReviewEvent]:
        query = select(ReviewRow).where(ReviewRow.learner_id == learner_id)
        query = query.order_by(ReviewRow.id.desc())
        if window is not None:
            query = query.limit(max(0, window))

        async with self._session() as session:
            rows = (await session.execute(query)).scalars().all()
        return [_row_to_event(row) for row in reversed(rows)]

    async def append_review(self, event: ReviewEvent) -> None:
        async with self._session() as session:
            async with session.begin():
                session.add(_event_row(event))

    async def commit_review(self, event: ReviewEvent, card: CardMemoryState) -> None:
        async with self._session() as session:
            async with session.begin():
                session.add(_event_row(event))
                await session.merge(self._card_row(card))

    async def count_reviews(self, learner_id: str) -> int:
        query = select(func.count()).select_from(ReviewRow).where(ReviewRow.learner_id == learner_id)
        async with self._session() as session:
            return (await session.execute(query)).scalar_one()

    # ParameterRepository

    async def get_parameters(self, learner_id: str) -> VersionedParameters:
        async with self._session() as session:
            row = await session.get(ParameterRow, learner_id)
        if row is None:
            return VersionedParameters(ParameterSet())
        return VersionedParameters(
            parameters=ParameterSet.from_dict(row.payload),
            version=row.version,
            updated_at=row.updated_at,
        )

    async def compare_and_set_parameters(
        self, learner_id: str, expected_version: int, parameters: ParameterSet
    ) -> bool:
        table = ParameterRow.__table__
        payload = parameters.to_dict()
        now = self._clock.now()

        if expected_version == 0:
            statement = (
                sqlite_insert(table)
                .values(learner_id=learner_id, payload=payload, version=1, updated_at=now)
                .on_conflict_do_nothing(index_elements=["learner_id"])
            )
        else:
            statement = (
                update(table)
                .where(table.c.learner_id == learner_id, table.c.version == expected_version)
                .values(payload=payload, version=table.c.version + 1, updated_at=now)
            )

        async with self._session() as session:
            async with session.begin():
                changed = (await session.execute(statement)).rowcount

        if changed != 1:
            logger.debug(f"CAS conflict for {learner_id} at v{expected_version}")
            return False
        return True

    async def list_learners(self) -> list[str]:
        query = select(ParameterRow.learner_id).union(select(ReviewRow.learner_id))
        async with self._session() as session:
            learners = (await session.execute(query)).scalars().all()
        return sorted(learners)

    # CardStateRepository

    async def get_card(self, learner_id: str, card_id: str) -> CardMemoryState | None:
        async with self._session() as session:
            row = await session.get(CardRow, (learner_id, card_id))
        return _row_to_card(row) if row else None

    async def save_card(self, card: CardMemoryState) -> None:
        async with self._session() as session:
            async with session.begin():
                await session.merge(self._card_row(card))

    async def list_due(self, learner_id: str, now: datetime) -> list[CardMemoryState]:
        query = (
            select(CardRow)
            .where(
                CardRow.learner_id == learner_id,
                CardRow.state != CardState.NEW.value,
                CardRow.due_at.is_not(None),
                CardRow.due_at <= now,
            )
            .order_by(CardRow.due_at)
        )
        async with self._session() as session:
            rows = (await session.execute(query)).scalars().all()
        return [_row_to_card(row) for row in rows]

    def _card_row(self, card: CardMemoryState) -> CardRow:
        return CardRow(
            learner_id=card.learner_id,
            card_id=card.card_id,
            state=card.state.value,
            stability=card.stability,
            difficulty=card.difficulty,
            due_at=card.due_at,
            step=card.step,
            last_review=card.last_review,
            scheduled_days=card.scheduled_days,
            reps=card.reps,
            lapses=card.lapses,
        )

    # AuditSink

    async def record_optimization_run(self, run: OptimizationRun) -> None:
        async with self._session() as session:
            async with session.begin():
                session.add(
                    OptimizationRunRow(
                        run_id=run.run_id,
                        learner_id=run.learner_id,
                        created_at=run.created_at,
                        confidence=run.confidence,
                        previous_version=run.previous_version,
                        new_version=run.new_version,
                        payload=_run_payload(run),
                    )
                )

    async def list_runs(self, learner_id: str) -> list[dict[str, Any]]:
        query = (
            select(OptimizationRunRow)
            .where(OptimizationRunRow.learner_id == learner_id)
            .order_by(OptimizationRunRow.created_at)
        )
        async with self._session() as session:
            rows = (await session.execute(query)).scalars().all()
        return [
            {
                "run_id": row.run_id,
                "created_at": row.created_at,
                "confidence": row.confidence,
                "previous_version": row.previous_version,
                "new_version": row.new_version,
                "payload": row.payload,
            }
            for row in rows
        ]
