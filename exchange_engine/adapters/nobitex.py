"""
Exchange Engine - Nobitex Adapter.

============================================================
PURPOSE
============================================================
Nobitex REST API behind the common adapter interface.

============================================================
PROTOCOL
============================================================
- Auth: Authorization: Token <api token>, long-lived, no renewal
- Symbols: BASEQUOTE (BTCUSDT); currencies lower-case in order
  bodies, IRT spelled "rls"
- Replies carry {"status": "ok" | "failed", ...}
- Cancel: time-window bulk cancellation (cancel-old) by
  execution type + currency pair + hours; success only on
  HTTP 200 with status "ok"

============================================================
ENDPOINTS
============================================================
POST /users/wallets/balance     single-currency balance
GET  /v3/orderbook/{symbol}     order book (public)
POST /market/orders/add         place order
POST /market/orders/cancel-old  cancel within trailing hours

============================================================
"""

import logging
import uuid
from typing import Any, List, Optional
from uuid import UUID

from exchange_engine.adapters.base import (
    ExchangeAdapter,
    first_present,
    parse_timestamp,
    safe_json,
    to_float,
    utc_now,
)
from exchange_engine.errors import CancellationFailedError, ValidationFailedError
from exchange_engine.transport import AuthScheme, HttpResponse
from exchange_engine.translator import (
    build_nobitex_order,
    nobitex_currency,
    to_nobitex_symbol,
)
from exchange_engine.types import (
    CancelHints,
    CancelMode,
    OrderStatus,
    StandardBalanceResponse,
    StandardOrderBookResponse,
    StandardOrderRequest,
    StandardOrderResponse,
)


logger = logging.getLogger(__name__)


NOBITEX_BASE_URL = "https://api.nobitex.ir"

BALANCE_PATH = "/users/wallets/balance"
ORDER_BOOK_PATH = "/v3/orderbook/{symbol}"
PLACE_ORDER_PATH = "/market/orders/add"
CANCEL_OLD_PATH = "/market/orders/cancel-old"
PING_SYMBOL = "BTCUSDT"

# Nobitex caps clientOrderId at 32 characters
CLIENT_ORDER_ID_LENGTH = 32


NOBITEX_STATUS_MAP = {
    "new": OrderStatus.NEW,
    "active": OrderStatus.NEW,
    "inactive": OrderStatus.PENDING,
    "pending": OrderStatus.PENDING,
    "partial": OrderStatus.PARTIAL,
    "canceled": OrderStatus.CANCELLED,
    "cancelled": OrderStatus.CANCELLED,
}


def _status_ok(data: Any) -> bool:
    return isinstance(data, dict) and str(data.get("status", "")).lower() == "ok"


class NobitexAdapter(ExchangeAdapter):
    """Nobitex spot adapter."""

    auth_scheme = AuthScheme.TOKEN_PREFIX_ACCESS_TOKEN
    supports_renewal = False
    cancel_mode = CancelMode.TIME_WINDOW
    status_map = NOBITEX_STATUS_MAP

    @property
    def name(self) -> str:
        return "nobitex"

    def native_symbol(self, symbol: str) -> str:
        return to_nobitex_symbol(symbol)

    def _failed_reply(self, response: HttpResponse, operation: str, symbol: Optional[str] = None):
        data = response.json()
        message = data.get("message") if isinstance(data, dict) else None
        return self._upstream_error(
            response,
            operation,
            message=f"Nobitex reported failure: {message or 'no message'}",
            symbol=symbol,
        )

    # --------------------------------------------------------
    # OPERATIONS
    # --------------------------------------------------------

    async def ping(self) -> None:
        response = await self._public_request(
            "GET", ORDER_BOOK_PATH.format(symbol=PING_SYMBOL), "ping"
        )
        response.raise_for_status()

    async def get_balance(
        self,
        user_id: UUID,
        asset_filter: Optional[str] = None,
    ) -> List[StandardBalanceResponse]:
        """
        Balance of one currency. Nobitex has no all-wallets balance
        call in this protocol, so ``asset_filter`` is required.
        """
        if not asset_filter or not asset_filter.strip():
            raise ValidationFailedError(
                message="Nobitex balance requires an asset",
                code="ASSET_REQUIRED",
                exchange_id=self.name,
                operation="get_balance",
            )

        credential, renewed = await self._resolve_credential(user_id)
        response, credential = await self._authenticated_request(
            "POST",
            BALANCE_PATH,
            user_id,
            credential,
            "get_balance",
            json_body={"currency": nobitex_currency(asset_filter)},
            renewed=renewed,
        )
        if response.status not in (200, 202):
            raise self._upstream_error(response, "get_balance")

        data = response.json()
        if not _status_ok(data):
            raise self._failed_reply(response, "get_balance")

        total = to_float(data.get("balance")) or 0.0
        balances = [
            StandardBalanceResponse(
                asset=asset_filter.strip().upper(),
                free=total,
                locked=0.0,
                total=total,
            )
        ]

        await self._persist_balances(user_id, balances)
        await self._mark_used(credential)
        return balances

    async def get_order_book(
        self,
        symbol: str,
        user_id: Optional[UUID] = None,
    ) -> StandardOrderBookResponse:
        pair = await self._resolve_pair(symbol)

        response = await self._public_request(
            "GET", ORDER_BOOK_PATH.format(symbol=pair.symbol), "get_order_book"
        )
        if not response.ok:
            raise self._upstream_error(response, "get_order_book", symbol=pair.symbol)

        data = response.json()
        if not _status_ok(data):
            raise self._failed_reply(response, "get_order_book", pair.symbol)

        book = StandardOrderBookResponse(
            symbol=pair.symbol,
            bids=self._parse_levels(data.get("bids")),
            asks=self._parse_levels(data.get("asks")),
            timestamp=utc_now(),
        )
        await self._persist_order_book(pair, book)
        return book

    async def place_order(
        self,
        req: StandardOrderRequest,
        user_id: UUID,
    ) -> StandardOrderResponse:
        client_order_id = req.client_order_id or uuid.uuid4().hex[:CLIENT_ORDER_ID_LENGTH]
        payload = build_nobitex_order(req, client_order_id=client_order_id)

        credential, renewed = await self._resolve_credential(user_id)
        pair = await self._resolve_pair(req.symbol)

        response, credential = await self._authenticated_request(
            "POST", PLACE_ORDER_PATH, user_id, credential, "place_order", json_body=dict(payload),
            renewed=renewed,
        )
        if response.status != 200:
            self._log.log_order(
                operation="place",
                client_order_id=client_order_id,
                symbol=pair.symbol,
                side=payload["type"],
                order_type=payload["execution"],
                error_message=response.text,
            )
            raise self._upstream_error(response, "place_order", symbol=pair.symbol)

        data = response.json()
        if not _status_ok(data):
            raise self._failed_reply(response, "place_order", pair.symbol)

        order = data.get("order")
        if not isinstance(order, dict) or order.get("id") in (None, ""):
            raise self._upstream_error(
                response, "place_order", "Order acknowledgement has no id", pair.symbol
            )

        quantity = to_float(order.get("amount")) or float(payload["amount"])
        price = to_float(first_present(order, "price", "totalOrderPrice"))

        result = await self._persist_order(
            user_id=user_id,
            credential=credential,
            pair=pair,
            exchange_order_id=str(order["id"]),
            req=req,
            quantity=quantity,
            price=price,
            status=self._map_status(order.get("status")),
            created_at=parse_timestamp(order.get("created_at")),
        )
        await self._mark_used(credential)
        return result

    async def cancel_order(
        self,
        order_id: UUID,
        user_id: UUID,
        hints: Optional[CancelHints] = None,
    ) -> None:
        """
        Cancel every order of the same pair and execution type opened
        within the last ``hints.hours`` (Nobitex has no single-order
        cancel in this protocol).
        """
        if hints is None or not hints.hours or hints.hours <= 0:
            raise ValidationFailedError(
                message="Nobitex cancellation requires hints.hours > 0",
                code="HOURS_REQUIRED",
                exchange_id=self.name,
                operation="cancel_order",
            )

        credential, renewed = await self._resolve_credential(user_id)
        order = await self._resolve_order(order_id, user_id)
        pair = await self._get_pair_by_id(order.trading_pair_id)

        body = {
            "execution": order.order_type,
            "srcCurrency": nobitex_currency(pair.base_asset),
            "dstCurrency": nobitex_currency(pair.quote_asset),
            "hours": hints.hours,
        }
        response, credential = await self._authenticated_request(
            "POST", CANCEL_OLD_PATH, user_id, credential, "cancel_order", json_body=body,
            renewed=renewed,
        )

        if response.status != 200 or not _status_ok(safe_json(response)):
            self._log.log_order(
                operation="cancel",
                client_order_id=order.client_order_id,
                exchange_order_id=order.exchange_order_id,
                symbol=pair.symbol,
                error_message=response.text or f"HTTP {response.status}",
            )
            raise CancellationFailedError(
                message=f"Nobitex did not cancel {pair.symbol} orders of the last {hints.hours}h",
                exchange_id=self.name,
                operation="cancel_order",
                http_status=response.status,
                exchange_message=response.text,
                symbol=pair.symbol,
            )

        self._log.log_order(
            operation="cancel",
            client_order_id=order.client_order_id,
            exchange_order_id=order.exchange_order_id,
            symbol=pair.symbol,
            status="cancel_requested",
        )
        await self._mark_used(credential)
