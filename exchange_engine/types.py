"""
Exchange Engine - Canonical Model.

============================================================
PURPOSE
============================================================
Exchange-agnostic value types used above the adapter layer.

- Enums for side, type, status and cancellation mode
- Canonical order request / response
- Balance and order book responses
- Trading pair catalog entries
- Decrypted credential view (in memory only)

Monetary amounts are floats. Symbols are upper-case.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID


# ============================================================
# ENUMS
# ============================================================

class OrderSide(Enum):
    """Order side."""
    BUY = "buy"
    SELL = "sell"


class OrderType(Enum):
    """Order type."""
    MARKET = "market"
    LIMIT = "limit"


class OrderStatus(Enum):
    """
    Canonical order status.

    FAILED exists only so the legacy "filled -> failed" mapping can
    be selected through configuration.
    """
    NEW = "new"
    PENDING = "pending"
    PARTIAL = "partial"
    FILLED = "filled"
    CANCELLED = "cancelled"
    FAILED = "failed"


class CancelMode(Enum):
    """How an exchange identifies the orders to cancel."""

    BY_ORDER_ID = "by_order_id"
    """Cancel exactly one order by its exchange-native id."""

    TIME_WINDOW = "time_window"
    """Cancel every order of a pair and side opened within the last N hours."""


# ============================================================
# ORDERS
# ============================================================

@dataclass
class StandardOrderRequest:
    """
    Canonical order request.

    At least one of quantity, base_amount or quote_amount must be
    positive. See translator.resolve_quantity for precedence.
    """

    symbol: str
    side: str
    type: str

    quantity: Optional[float] = None
    base_amount: Optional[float] = None
    quote_amount: Optional[float] = None
    price: Optional[float] = None
    stop_price: Optional[float] = None

    client_order_id: Optional[str] = None
    """Caller-supplied idempotency id, forwarded where the exchange accepts one."""

    base_currency: Optional[str] = None
    """Base asset, if given must match the symbol (IRT and RLS are equal)."""

    quote_currency: Optional[str] = None
    """Quote asset, if given must match the symbol (IRT and RLS are equal)."""


@dataclass
class StandardOrderResponse:
    """Canonical order acknowledgement."""

    id: str
    """Exchange order id + user id."""

    order_id: UUID
    """Internal OrderHistory id, used for cancellation."""

    exchange_order_id: str
    symbol: str
    side: str
    type: str
    quantity: float
    price: Optional[float]
    status: OrderStatus
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order_id": str(self.order_id),
            "exchange_order_id": self.exchange_order_id,
            "symbol": self.symbol,
            "side": self.side,
            "type": self.type,
            "quantity": self.quantity,
            "price": self.price,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class CancelHints:
    """Extra inputs some cancellation modes need."""

    hours: Optional[float] = None
    """Trailing window for TIME_WINDOW cancellation."""


# ============================================================
# BALANCES / ORDER BOOK
# ============================================================

@dataclass
class StandardBalanceResponse:
    """One asset balance. ``free`` is total minus frozen."""

    asset: str
    free: float
    locked: float
    total: float


@dataclass
class StandardOrderLevel:
    price: float
    quantity: float


@dataclass
class StandardOrderBookResponse:
    symbol: str
    bids: List[StandardOrderLevel]
    asks: List[StandardOrderLevel]
    timestamp: datetime


# ============================================================
# CATALOG
# ============================================================

@dataclass(frozen=True)
class TradingPairSpec:
    """Static catalog entry for one tradable pair."""

    symbol: str
    base_asset: str
    quote_asset: str
    tick_size: float
    step_size: float
    min_quantity: float = 0.0
    max_quantity: float = 0.0


# ============================================================
# CREDENTIALS
# ============================================================

@dataclass
class DecryptedCredential:
    """
    Decrypted credential view.

    Lives only in memory for the duration of one adapter call.
    Secret fields are excluded from repr so they never reach a
    log line or traceback.
    """

    id: UUID
    user_id: UUID
    exchange_id: UUID
    label: str
    is_testnet: bool

    api_key: str = field(repr=False)
    secret_key: str = field(repr=False)
    access_key: Optional[str] = field(default=None, repr=False)
    refresh_key: Optional[str] = field(default=None, repr=False)

    access_key_issued_at: Optional[datetime] = None


@dataclass
class TokenPair:
    """Result of an exchange token issuance or refresh call."""

    access_key: str = field(repr=False)
    refresh_key: Optional[str] = field(default=None, repr=False)


@dataclass
class CredentialSummary:
    """Credential metadata safe to return upward."""

    id: UUID
    user_id: UUID
    exchange_id: UUID
    label: str
    api_key_masked: str
    is_testnet: bool
    is_active: bool
    last_used: Optional[datetime] = None
