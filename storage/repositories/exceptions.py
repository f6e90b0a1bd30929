"""
Repository Layer Exceptions.

============================================================
PURPOSE
============================================================
Every SQLAlchemy / driver error raised inside a repository is
wrapped in one of these before it leaves the storage package.

The exchange engine converts them to InternalError at its own
boundary (see exchange_engine.errors.storage_errors).

============================================================
"""

from typing import Any, Optional


class RepositoryException(Exception):
    """Base exception for all repository operations."""

    def __init__(
        self,
        message: str,
        repository_name: str,
        operation: str,
        details: Optional[dict] = None
    ) -> None:
        self.message = message
        self.repository_name = repository_name
        self.operation = operation
        self.details = details or {}
        super().__init__(f"[{repository_name}] {operation}: {message}")


class DuplicateRecordError(RepositoryException):
    """Unique constraint violated on insert."""

    def __init__(self, repository_name: str, constraint_field: str, value: Any) -> None:
        super().__init__(
            message=f"Duplicate record: {constraint_field}={value} already exists",
            repository_name=repository_name,
            operation="create",
            details={"field": constraint_field, "value": str(value)}
        )
        self.constraint_field = constraint_field


class IntegrityError(RepositoryException):
    """Foreign key or check constraint violated."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        constraint_name: str,
        message: str
    ) -> None:
        super().__init__(
            message=f"Integrity constraint violated ({constraint_name}): {message}",
            repository_name=repository_name,
            operation=operation,
            details={"constraint": constraint_name}
        )


class ConnectionError(RepositoryException):
    """Connection lost, pool exhausted or server unreachable."""

    def __init__(self, repository_name: str, operation: str, original_error: str) -> None:
        super().__init__(
            message=f"Database connection failed: {original_error}",
            repository_name=repository_name,
            operation=operation,
        )


class QueryError(RepositoryException):
    """Statement execution failed."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        query_description: str,
        original_error: str
    ) -> None:
        super().__init__(
            message=f"Query failed ({query_description}): {original_error}",
            repository_name=repository_name,
            operation=operation,
        )


class TransactionError(RepositoryException):
    """Commit or rollback failed."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        phase: str,
        original_error: str
    ) -> None:
        super().__init__(
            message=f"Transaction {phase} failed: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"phase": phase}
        )
        self.phase = phase
