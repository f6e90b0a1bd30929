"""
Exchange Domain ORM Models.

============================================================
PURPOSE
============================================================
Models for the exchange adapter subsystem: exchange identity,
trading-pair catalog, per-user encrypted credentials, order
history and point-in-time balance / order book captures.

============================================================
DATA LIFECYCLE ROLE
============================================================
- Exchange / TradingPair: read-mostly, written by catalog
  reconciliation only
- ExchangeCredential: secret fields re-encrypted in place on
  rotation, deactivated but never deleted
- OrderHistory: immutable identity, mutable status
- BalanceSnapshot / OrderBookSnapshot: append-only

============================================================
MODELS
============================================================
- Exchange
- TradingPair
- ExchangeCredential
- OrderHistory
- BalanceSnapshot
- OrderBookSnapshot

============================================================
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, JSONType, TimestampMixin


# Amounts travel as floats through the canonical model
Amount = Numeric(36, 18, asdecimal=False)


class Exchange(Base, TimestampMixin):
    """
    Exchange identity record.

    ============================================================
    CONSTRAINTS
    ============================================================
    - name is unique among active rows
    - created once per name by the registry
    - immutable apart from administrative reactivation

    ============================================================
    """

    __tablename__ = "exchanges"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Registry name, e.g. bitpin"
    )

    display_name: Mapped[str] = mapped_column(String(100), nullable=False)

    base_url: Mapped[str] = mapped_column(String(255), nullable=False)

    rate_limit: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1000,
        comment="Requests per minute"
    )

    features: Mapped[Dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index(
            "uq_exchanges_name_active",
            "name",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Exchange(name={self.name}, active={self.is_active})>"


class TradingPair(Base, TimestampMixin):
    """
    Tradable pair of one exchange.

    Unique on (exchange_id, symbol) among active rows. Only catalog
    reconciliation inserts rows; request handling never mutates them.
    """

    __tablename__ = "trading_pairs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    exchange_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("exchanges.id"),
        nullable=False,
    )

    symbol: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Exchange-native symbol, e.g. BTC_USDT or BTCUSDT"
    )

    base_asset: Mapped[str] = mapped_column(String(20), nullable=False)
    quote_asset: Mapped[str] = mapped_column(String(20), nullable=False)

    min_quantity: Mapped[float] = mapped_column(Amount, nullable=False, default=0)
    max_quantity: Mapped[float] = mapped_column(Amount, nullable=False, default=0)
    step_size: Mapped[float] = mapped_column(Amount, nullable=False)
    tick_size: Mapped[float] = mapped_column(Amount, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index(
            "uq_trading_pairs_exchange_symbol_active",
            "exchange_id",
            "symbol",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )

    def __repr__(self) -> str:
        return f"<TradingPair(symbol={self.symbol}, exchange_id={self.exchange_id})>"


class ExchangeCredential(Base, TimestampMixin):
    """
    Per-user exchange credential.

    ============================================================
    SECURITY
    ============================================================
    Every *_key column holds ciphertext produced by SecretCodec.
    Plaintext never reaches this table.

    ============================================================
    """

    __tablename__ = "exchange_credentials"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    exchange_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("exchanges.id"),
        nullable=False,
    )

    label: Mapped[str] = mapped_column(String(100), nullable=False, default="Default")

    api_key: Mapped[str] = mapped_column(Text, nullable=False)
    secret_key: Mapped[str] = mapped_column(Text, nullable=False)
    access_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refresh_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    access_key_issued_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the current access key was obtained"
    )

    is_testnet: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    last_used: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "exchange_id", "label",
            name="uq_exchange_credentials_user_exchange_label",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ExchangeCredential(user_id={self.user_id}, "
            f"exchange_id={self.exchange_id}, label={self.label})>"
        )


class OrderHistory(Base, TimestampMixin):
    """
    One row per successfully placed order.

    Identity fields are immutable; status is updated by an external
    reconciliation process.
    """

    __tablename__ = "order_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    credential_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("exchange_credentials.id"),
        nullable=False,
    )

    exchange_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("exchanges.id"),
        nullable=False,
    )

    trading_pair_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("trading_pairs.id"),
        nullable=False,
    )

    client_order_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        unique=True,
        comment="Exchange order id + user id"
    )

    exchange_order_id: Mapped[str] = mapped_column(String(64), nullable=False)

    side: Mapped[str] = mapped_column(String(10), nullable=False)
    order_type: Mapped[str] = mapped_column(String(10), nullable=False)
    quantity: Mapped[float] = mapped_column(Amount, nullable=False)
    price: Mapped[Optional[float]] = mapped_column(Amount, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    __table_args__ = (
        Index("ix_order_history_user_exchange", "user_id", "exchange_id"),
    )

    def __repr__(self) -> str:
        return f"<OrderHistory(client_order_id={self.client_order_id}, status={self.status})>"


class BalanceSnapshot(Base):
    """Append-only capture of one asset balance."""

    __tablename__ = "balance_snapshots"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    exchange_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("exchanges.id"),
        nullable=False,
    )

    asset: Mapped[str] = mapped_column(String(20), nullable=False)
    total: Mapped[float] = mapped_column(Amount, nullable=False)
    available: Mapped[float] = mapped_column(Amount, nullable=False)
    locked: Mapped[float] = mapped_column(Amount, nullable=False)

    snapshot_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class OrderBookSnapshot(Base):
    """Append-only capture of one order book."""

    __tablename__ = "order_book_snapshots"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    exchange_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("exchanges.id"),
        nullable=False,
    )

    trading_pair_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("trading_pairs.id"),
        nullable=False,
    )

    symbol: Mapped[str] = mapped_column(String(50), nullable=False)

    bids: Mapped[List[List[float]]] = mapped_column(JSONType, nullable=False)
    asks: Mapped[List[List[float]]] = mapped_column(JSONType, nullable=False)

    snapshot_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
