"""Record store client over the request's database session.

Critical writes are flushed through ``flush`` and fail the request.
Secondary writes (history, notifications) run inside ``best_effort``: each
gets its own SAVEPOINT, and a failure is logged and rolled back to that
savepoint while the surrounding transaction carries on.
"""

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import ConflictError, DependencyWriteError
from app.database import Base

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


class RecordStore:
    """Generic fetch/insert/update access to named collections."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, model: type[ModelT], record_id: UUID | None) -> ModelT | None:
        """Fetch a row by primary key."""
        if record_id is None:
            return None
        return await self.db.get(model, record_id)

    async def find(
        self,
        model: type[ModelT],
        *criteria: Any,
        order_by: Any = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> Sequence[ModelT]:
        """Fetch rows matching all criteria."""
        query = select(model).where(*criteria)
        if order_by is not None:
            query = query.order_by(order_by)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return result.scalars().all()

    async def first(self, model: type[ModelT], *criteria: Any) -> ModelT | None:
        rows = await self.find(model, *criteria, limit=1)
        return rows[0] if rows else None

    def insert(self, model: type[ModelT], **values: Any) -> ModelT:
        """Stage a new row; written on the next flush."""
        record = model(**values)
        self.db.add(record)
        return record

    def update(self, record: ModelT, **values: Any) -> ModelT:
        """Stage column changes on a loaded row."""
        for key, value in values.items():
            setattr(record, key, value)
        return record

    async def flush(self, step: str, failure_detail: str) -> None:
        """Write staged changes now, failing the request on error.

        Raises:
            ConflictError: A versioned row was changed by another request
            DependencyWriteError: Any other database failure
        """
        try:
            await self.db.flush()
        except StaleDataError as e:
            logger.warning(f"Concurrent modification during {step}: {e}")
            raise ConflictError()
        except SQLAlchemyError as e:
            logger.error(f"Error during {step}: {e}")
            raise DependencyWriteError(failure_detail)

    @asynccontextmanager
    async def best_effort(self, step: str, **context: Any) -> AsyncIterator[None]:
        """Run a secondary write in its own savepoint; log and continue on failure."""
        try:
            async with self.db.begin_nested():
                yield
        except Exception as e:
            details = ", ".join(f"{key}={value}" for key, value in context.items())
            logger.error(f"Error {step} ({details}): {e}")
