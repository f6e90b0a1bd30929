"""
Storage Repositories Package.

Async data access for the exchange adapter subsystem.
"""

from storage.repositories.base import BaseRepository
from storage.repositories.exceptions import (
    ConnectionError,
    DuplicateRecordError,
    IntegrityError,
    QueryError,
    RepositoryException,
    TransactionError,
)
from storage.repositories.exchange import (
    BalanceSnapshotRepository,
    ExchangeCredentialRepository,
    ExchangeRepository,
    OrderBookSnapshotRepository,
    OrderHistoryRepository,
    TradingPairRepository,
)

__all__ = [
    "BaseRepository",
    "RepositoryException",
    "DuplicateRecordError",
    "IntegrityError",
    "ConnectionError",
    "QueryError",
    "TransactionError",
    "ExchangeRepository",
    "TradingPairRepository",
    "ExchangeCredentialRepository",
    "OrderHistoryRepository",
    "BalanceSnapshotRepository",
    "OrderBookSnapshotRepository",
]
