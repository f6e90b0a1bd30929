"""
Exchange Engine - Order Translator.

============================================================
PURPOSE
============================================================
Pure, side-effect-free mapping from StandardOrderRequest to each
exchange's order payload, plus validation.

This is the only module that formats exchange order JSON.
Adapters never hand-build order payloads.

============================================================
AMOUNT RESOLUTION
============================================================
quantity:     quantity -> base_amount -> quote_amount / price
base amount:  base_amount -> quantity -> quote_amount / price
quote amount: quote_amount -> (base_amount or quantity) * price

A value counts only if positive. Decimals are rendered with
8 fractional digits.

============================================================
"""

import logging
from typing import Optional, Tuple, TypedDict

from exchange_engine.errors import (
    AmountIndeterminateError,
    UnparseableSymbolError,
    ValidationFailedError,
)
from exchange_engine.types import OrderSide, OrderType, StandardOrderRequest


logger = logging.getLogger(__name__)


# Tried in order when a symbol has no separator
QUOTE_CURRENCIES = ("USDT", "USDC", "BTC", "ETH", "BNB", "IRT", "RLS")

SYMBOL_SEPARATORS = ("_", "-")

VALID_SIDES = {side.value for side in OrderSide}
VALID_TYPES = {order_type.value for order_type in OrderType}

# Nobitex only sells into these
NOBITEX_DST_CURRENCIES = {"rls", "usdt"}


def _positive(value: Optional[float]) -> bool:
    return value is not None and value > 0


def format_amount(value: float) -> str:
    return f"{value:.8f}"


# ============================================================
# VALIDATION
# ============================================================

def validate_order_request(req: StandardOrderRequest) -> None:
    """
    Check the exchange-independent rules.

    Raises:
        ValidationFailedError: Request is malformed
    """
    if not req.symbol or not req.symbol.strip():
        raise ValidationFailedError(message="symbol is required", code="SYMBOL_REQUIRED")

    side = (req.side or "").lower()
    if side not in VALID_SIDES:
        raise ValidationFailedError(
            message=f"side must be one of {sorted(VALID_SIDES)}, got {req.side!r}",
            code="INVALID_SIDE",
            symbol=req.symbol,
        )

    order_type = (req.type or "").lower()
    if order_type not in VALID_TYPES:
        raise ValidationFailedError(
            message=f"type must be one of {sorted(VALID_TYPES)}, got {req.type!r}",
            code="INVALID_TYPE",
            symbol=req.symbol,
        )

    if order_type == OrderType.LIMIT.value and not _positive(req.price):
        raise ValidationFailedError(
            message="limit orders require a positive price",
            code="PRICE_REQUIRED",
            symbol=req.symbol,
        )

    if not any(_positive(v) for v in (req.quantity, req.base_amount, req.quote_amount)):
        raise ValidationFailedError(
            message="one of quantity, base_amount or quote_amount must be positive",
            code="AMOUNT_REQUIRED",
            symbol=req.symbol,
        )


# ============================================================
# AMOUNT RESOLUTION
# ============================================================

def resolve_quantity(req: StandardOrderRequest) -> float:
    """
    Order size in base units.

    Raises:
        AmountIndeterminateError: No rule applies
    """
    if _positive(req.quantity):
        return req.quantity
    if _positive(req.base_amount):
        return req.base_amount
    if _positive(req.quote_amount) and _positive(req.price):
        return req.quote_amount / req.price
    raise AmountIndeterminateError(
        message="cannot determine quantity: need quantity, base_amount, or quote_amount with price",
        symbol=req.symbol,
    )


def resolve_base_amount(req: StandardOrderRequest) -> float:
    """Base-asset amount, preferring an explicit base_amount."""
    if _positive(req.base_amount):
        return req.base_amount
    if _positive(req.quantity):
        return req.quantity
    if _positive(req.quote_amount) and _positive(req.price):
        return req.quote_amount / req.price
    raise AmountIndeterminateError(
        message="cannot determine base amount",
        symbol=req.symbol,
    )


def resolve_quote_amount(req: StandardOrderRequest) -> float:
    """
    Quote-asset amount.

    Raises:
        AmountIndeterminateError: No quote_amount and no price
    """
    if _positive(req.quote_amount):
        return req.quote_amount
    if not _positive(req.price):
        raise AmountIndeterminateError(
            message="cannot determine quote amount without a price",
            symbol=req.symbol,
        )
    base = req.base_amount if _positive(req.base_amount) else req.quantity
    if not _positive(base):
        raise AmountIndeterminateError(
            message="cannot determine quote amount",
            symbol=req.symbol,
        )
    return base * req.price


# ============================================================
# SYMBOLS
# ============================================================

def parse_symbol(symbol: str) -> Tuple[str, str]:
    """
    Split a symbol into (base, quote), upper-cased.

    Accepts BTC_USDT, BTC-USDT and BTCUSDT.

    Raises:
        UnparseableSymbolError: No separator and no known quote suffix
    """
    normalized = (symbol or "").strip().upper()

    for separator in SYMBOL_SEPARATORS:
        if separator in normalized:
            parts = normalized.split(separator)
            if len(parts) == 2 and all(parts):
                return parts[0], parts[1]
            raise UnparseableSymbolError(
                message=f"cannot split symbol {symbol!r}",
                symbol=symbol,
            )

    for quote in QUOTE_CURRENCIES:
        if normalized.endswith(quote) and len(normalized) > len(quote):
            return normalized[:-len(quote)], quote

    raise UnparseableSymbolError(
        message=f"symbol {symbol!r} has no known quote currency suffix",
        symbol=symbol,
    )


def to_bitpin_symbol(symbol: str) -> str:
    base, quote = parse_symbol(symbol)
    return f"{base}_{quote}"


def to_nobitex_symbol(symbol: str) -> str:
    base, quote = parse_symbol(symbol)
    return f"{base}{quote}"


# ============================================================
# BITPIN
# ============================================================

class _BitpinOrderRequired(TypedDict):
    symbol: str
    type: str
    side: str
    base_amount: str


class BitpinOrderPayload(_BitpinOrderRequired, total=False):
    """POST /api/v1/odr/orders body."""

    quote_amount: str
    price: str
    stop_price: str
    identifier: str


def build_bitpin_order(req: StandardOrderRequest) -> BitpinOrderPayload:
    """
    Raises:
        ValidationFailedError: Request is malformed
        AmountIndeterminateError: No usable amount
        UnparseableSymbolError: Symbol cannot be split
    """
    validate_order_request(req)

    payload: BitpinOrderPayload = {
        "symbol": to_bitpin_symbol(req.symbol),
        "type": req.type.lower(),
        "side": req.side.lower(),
        "base_amount": format_amount(resolve_base_amount(req)),
    }

    # Market buys without a price can only be sized by base amount
    if _positive(req.quote_amount) or _positive(req.price):
        payload["quote_amount"] = format_amount(resolve_quote_amount(req))
    if _positive(req.price):
        payload["price"] = format_amount(req.price)
    if _positive(req.stop_price):
        payload["stop_price"] = format_amount(req.stop_price)
    if req.client_order_id:
        payload["identifier"] = req.client_order_id

    return payload


# ============================================================
# NOBITEX
# ============================================================

class _NobitexOrderRequired(TypedDict):
    type: str
    execution: str
    srcCurrency: str
    dstCurrency: str
    amount: str
    clientOrderId: str


class NobitexOrderPayload(_NobitexOrderRequired, total=False):
    """POST /market/orders/add body."""

    price: str


def nobitex_currency(code: str) -> str:
    """Nobitex spells currencies lower-case and calls IRT "rls"."""
    code = code.strip().lower()
    return "rls" if code == "irt" else code


def build_nobitex_order(
    req: StandardOrderRequest,
    client_order_id: Optional[str] = None,
) -> NobitexOrderPayload:
    """
    Raises:
        ValidationFailedError: Request is malformed, base_currency or
            quote_currency disagrees with the symbol, the quote
            currency is not rls/usdt, or no client order id
        AmountIndeterminateError: No usable amount
        UnparseableSymbolError: Symbol cannot be split
    """
    validate_order_request(req)

    base, quote = parse_symbol(req.symbol)
    src = nobitex_currency(base)
    dst = nobitex_currency(quote)

    # The order is recorded (and later cancelled) against the symbol's pair
    for field, given, expected in (
        ("base_currency", req.base_currency, src),
        ("quote_currency", req.quote_currency, dst),
    ):
        if given and nobitex_currency(given) != expected:
            raise ValidationFailedError(
                message=f"{field} {given!r} does not match symbol {req.symbol!r}",
                code="CURRENCY_MISMATCH",
                symbol=req.symbol,
            )

    if dst not in NOBITEX_DST_CURRENCIES:
        raise ValidationFailedError(
            message=f"dstCurrency must be one of {sorted(NOBITEX_DST_CURRENCIES)}, got {dst!r}",
            code="UNSUPPORTED_QUOTE_CURRENCY",
            symbol=req.symbol,
        )

    order_id = client_order_id or req.client_order_id
    if not order_id:
        raise ValidationFailedError(
            message="clientOrderId is required",
            code="CLIENT_ORDER_ID_REQUIRED",
            symbol=req.symbol,
        )

    payload: NobitexOrderPayload = {
        "type": req.side.lower(),
        "execution": req.type.lower(),
        "srcCurrency": src,
        "dstCurrency": dst,
        "amount": format_amount(resolve_quantity(req)),
        "clientOrderId": order_id,
    }
    if req.type.lower() == OrderType.LIMIT.value:
        payload["price"] = format_amount(req.price)

    return payload
