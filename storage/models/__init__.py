"""
Storage Models Package.

ORM models for the exchange adapter subsystem.

============================================================
MODEL ORGANIZATION
============================================================
- base.py: Declarative base and mixins
- exchange.py: Exchange, TradingPair, ExchangeCredential,
  OrderHistory, BalanceSnapshot, OrderBookSnapshot

============================================================
"""

from storage.models.base import Base, TimestampMixin
from storage.models.exchange import (
    BalanceSnapshot,
    Exchange,
    ExchangeCredential,
    OrderBookSnapshot,
    OrderHistory,
    TradingPair,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "Exchange",
    "TradingPair",
    "ExchangeCredential",
    "OrderHistory",
    "BalanceSnapshot",
    "OrderBookSnapshot",
]
