"""
Base Repository Class.

============================================================
PURPOSE
============================================================
Async data-access base shared by the exchange repositories.

- The AsyncSession is injected; repositories flush but never
  commit, the caller's transaction_scope owns the boundary
- Every SQLAlchemy error leaves as a RepositoryException

============================================================
"""

import logging
import re
from abc import ABC
from typing import Any, Generic, List, NoReturn, Optional, Sequence, Type, TypeVar
from uuid import UUID

from sqlalchemy.exc import (
    IntegrityError as SQLAlchemyIntegrityError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import AsyncSession

from storage.models.base import Base
from storage.repositories.exceptions import (
    ConnectionError,
    DuplicateRecordError,
    IntegrityError,
    QueryError,
)


T = TypeVar("T", bound=Base)

# PostgreSQL names the index, SQLite names the columns
_UNIQUE_MARKERS = ("duplicate key", "unique constraint", "unique")
_CONSTRAINT_NAME = re.compile(r'constraint "([^"]+)"|failed: ([\w., ]+)', re.IGNORECASE)


def _constraint_of(error: SQLAlchemyIntegrityError) -> str:
    match = _CONSTRAINT_NAME.search(str(error.orig))
    if not match:
        return "unknown"
    return (match.group(1) or match.group(2)).strip()


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base for one model's repository.

    Subclasses pass their model class and a name used in log
    records and exceptions:

        class ExchangeRepository(BaseRepository[Exchange]):
            def __init__(self, session: AsyncSession):
                super().__init__(session, Exchange, "ExchangeRepository")
    """

    def __init__(
        self,
        session: AsyncSession,
        model_class: Type[T],
        repository_name: str
    ) -> None:
        self._session = session
        self._model_class = model_class
        self._repository_name = repository_name
        self._logger = logging.getLogger(f"repository.{repository_name}")

    @property
    def session(self) -> AsyncSession:
        return self._session

    @property
    def repository_name(self) -> str:
        return self._repository_name

    # =========================================================
    # ERROR MAPPING
    # =========================================================

    def _handle_db_error(
        self,
        error: SQLAlchemyError,
        operation: str,
        context: Optional[dict] = None
    ) -> NoReturn:
        """
        Re-raise a driver error as a repository exception.

        Unique violations become DuplicateRecordError so callers can
        detect a lost insert race (e.g. two processes onboarding the
        same exchange) and re-read.
        """
        context = context or {}
        self._logger.error(f"{operation} failed: {error.__class__.__name__}: {error}")

        if isinstance(error, OperationalError):
            raise ConnectionError(self._repository_name, operation, str(error)) from error

        if isinstance(error, SQLAlchemyIntegrityError):
            constraint = _constraint_of(error)
            if any(marker in str(error.orig).lower() for marker in _UNIQUE_MARKERS):
                raise DuplicateRecordError(
                    self._repository_name,
                    constraint_field=context.get("field", constraint),
                    value=context.get("value", "?"),
                ) from error
            raise IntegrityError(self._repository_name, operation, constraint, str(error.orig)) from error

        raise QueryError(self._repository_name, operation, context.get("query", operation), str(error)) from error

    # =========================================================
    # HELPERS
    # =========================================================

    async def _add(self, entity: T, context: Optional[dict] = None) -> T:
        """Insert one row and load its server defaults."""
        try:
            self._session.add(entity)
            await self._session.flush()
            await self._session.refresh(entity)
        except SQLAlchemyError as e:
            self._handle_db_error(e, "create", context)
        return entity

    async def _add_all(self, entities: Sequence[T]) -> List[T]:
        if not entities:
            return []
        try:
            self._session.add_all(entities)
            await self._session.flush()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "bulk_create", {"query": f"insert {len(entities)} rows"})
        self._logger.debug(f"Inserted {len(entities)} {self._model_class.__tablename__} rows")
        return list(entities)

    async def _get_by_id(self, record_id: UUID) -> Optional[T]:
        try:
            return await self._session.get(self._model_class, record_id)
        except SQLAlchemyError as e:
            self._handle_db_error(e, "get_by_id", {"query": f"id={record_id}"})

    async def _execute_query(self, stmt: Any, operation: str = "query") -> List[T]:
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            self._handle_db_error(e, operation)
        return list(result.scalars().all())

    async def _execute_scalar(self, stmt: Any, operation: str = "query") -> Optional[T]:
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            self._handle_db_error(e, operation)
        return result.scalars().first()

    async def _execute_update(self, stmt: Any, operation: str = "update") -> int:
        """Run an UPDATE and return the matched row count."""
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            self._handle_db_error(e, operation)
        return result.rowcount or 0
