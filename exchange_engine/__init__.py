"""
Exchange Engine Package.

============================================================
PURPOSE
============================================================
Aggregates trading accounts across cryptocurrency exchanges
behind one canonical API: place/cancel orders, read balances,
read order books.

AUTHORITY BOUNDARIES:
    CAN:
        - Onboard exchanges and reconcile their symbol catalogs
        - Store, decrypt and renew per-user credentials
        - Translate canonical orders to exchange payloads
        - Call exchange REST APIs

    MUST NOT:
        - Log or return plaintext secrets
        - Retry failed exchange calls (one token renewal aside)
        - Decide what to trade

============================================================
MODULES
============================================================
- types: Canonical model
- errors: Error taxonomy
- config: Settings from environment
- secret_codec: Credential encryption at rest
- transport: Outbound HTTP + auth schemes
- translator: Canonical order -> exchange payload
- catalog: Static symbol catalogs
- credentials: Credential lifecycle
- adapters: Bitpin and Nobitex adapters
- registry: Adapter resolution and exchange onboarding
- bootstrap: Process-start wiring

============================================================
"""

from exchange_engine.errors import ErrorCategory, ExchangeError, ExchangeException
from exchange_engine.types import (
    CancelHints,
    CancelMode,
    OrderSide,
    OrderStatus,
    OrderType,
    StandardBalanceResponse,
    StandardOrderBookResponse,
    StandardOrderLevel,
    StandardOrderRequest,
    StandardOrderResponse,
)

__all__ = [
    "ErrorCategory",
    "ExchangeError",
    "ExchangeException",
    "CancelHints",
    "CancelMode",
    "OrderSide",
    "OrderStatus",
    "OrderType",
    "StandardBalanceResponse",
    "StandardOrderBookResponse",
    "StandardOrderLevel",
    "StandardOrderRequest",
    "StandardOrderResponse",
]
