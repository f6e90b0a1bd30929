"""
Exchange Engine - Bitpin Adapter.

============================================================
PURPOSE
============================================================
Bitpin REST API behind the common adapter interface.

============================================================
PROTOCOL
============================================================
- Auth: Authorization: Bearer <access token>
- Access tokens live ~15 minutes; refreshed with the stored
  refresh token, or issued from API key + secret when none exists
- Symbols: BASE_QUOTE (BTC_USDT)
- Cancel: DELETE by native order id, success only on 204

============================================================
ENDPOINTS
============================================================
POST   /api/v1/usr/authenticate/        issue access + refresh
POST   /api/v1/usr/refresh_token/       renew access
GET    /api/v1/wlt/wallets/             balances
GET    /api/v1/mth/orderbook/{symbol}/  order book (public)
POST   /api/v1/odr/orders/              place order
DELETE /api/v1/odr/orders/{id}/         cancel order
GET    /api/v1/mkt/currencies/          ping (public)

============================================================
"""

import logging
from typing import List, Optional
from uuid import UUID

from exchange_engine.adapters.base import (
    ExchangeAdapter,
    first_present,
    parse_timestamp,
    safe_json,
    to_float,
    utc_now,
)
from exchange_engine.errors import AuthExpiredError, CancellationFailedError
from exchange_engine.transport import AuthScheme
from exchange_engine.translator import build_bitpin_order, to_bitpin_symbol
from exchange_engine.types import (
    CancelHints,
    CancelMode,
    DecryptedCredential,
    OrderStatus,
    StandardBalanceResponse,
    StandardOrderBookResponse,
    StandardOrderRequest,
    StandardOrderResponse,
    TokenPair,
)


logger = logging.getLogger(__name__)


BITPIN_BASE_URL = "https://api.bitpin.ir"

AUTHENTICATE_PATH = "/api/v1/usr/authenticate/"
REFRESH_PATH = "/api/v1/usr/refresh_token/"
WALLETS_PATH = "/api/v1/wlt/wallets/"
ORDER_BOOK_PATH = "/api/v1/mth/orderbook/{symbol}/"
ORDERS_PATH = "/api/v1/odr/orders/"
ORDER_PATH = "/api/v1/odr/orders/{order_id}/"
PING_PATH = "/api/v1/mkt/currencies/"


BITPIN_STATUS_MAP = {
    "new": OrderStatus.NEW,
    "active": OrderStatus.NEW,
    "open": OrderStatus.NEW,
    "pending": OrderStatus.PENDING,
    "initial": OrderStatus.PENDING,
    "partial": OrderStatus.PARTIAL,
    "partially_filled": OrderStatus.PARTIAL,
    "cancelled": OrderStatus.CANCELLED,
    "canceled": OrderStatus.CANCELLED,
}


class BitpinAdapter(ExchangeAdapter):
    """Bitpin spot adapter."""

    auth_scheme = AuthScheme.BEARER_ACCESS_TOKEN
    supports_renewal = True
    cancel_mode = CancelMode.BY_ORDER_ID
    status_map = BITPIN_STATUS_MAP

    @property
    def name(self) -> str:
        return "bitpin"

    def native_symbol(self, symbol: str) -> str:
        return to_bitpin_symbol(symbol)

    # --------------------------------------------------------
    # TOKENS
    # --------------------------------------------------------

    async def refresh_tokens(self, credential: DecryptedCredential) -> TokenPair:
        """
        Renew the access token.

        Uses the refresh token when one is stored and still accepted,
        otherwise issues a fresh pair from API key + secret.
        """
        if credential.refresh_key:
            response = await self._public_request(
                "POST",
                REFRESH_PATH,
                "refresh_token",
                json_body={"refresh": credential.refresh_key},
            )
            if response.ok:
                data = safe_json(response)
                access = data.get("access") if isinstance(data, dict) else None
                if access:
                    return TokenPair(access_key=access, refresh_key=data.get("refresh"))
            self._log.warning(
                f"Refresh token rejected (HTTP {response.status}), re-authenticating"
            )

        response = await self._public_request(
            "POST",
            AUTHENTICATE_PATH,
            "authenticate",
            json_body={"api_key": credential.api_key, "secret_key": credential.secret_key},
        )
        data = safe_json(response) if response.ok else None
        if not isinstance(data, dict) or not data.get("access"):
            raise AuthExpiredError(
                message="Bitpin refused to issue an access token",
                exchange_id=self.name,
                operation="authenticate",
                http_status=response.status,
                exchange_message=response.text,
            )
        return TokenPair(access_key=data["access"], refresh_key=data.get("refresh"))

    # --------------------------------------------------------
    # OPERATIONS
    # --------------------------------------------------------

    async def ping(self) -> None:
        response = await self._public_request("GET", PING_PATH, "ping")
        response.raise_for_status()

    async def get_balance(
        self,
        user_id: UUID,
        asset_filter: Optional[str] = None,
    ) -> List[StandardBalanceResponse]:
        credential, renewed = await self._resolve_credential(user_id)
        response, credential = await self._authenticated_request(
            "GET", WALLETS_PATH, user_id, credential, "get_balance",
            renewed=renewed,
        )
        if response.status not in (200, 202):
            raise self._upstream_error(response, "get_balance")

        wallets = response.json()
        if not isinstance(wallets, list):
            raise self._upstream_error(response, "get_balance", "Unexpected wallets payload")

        wanted = asset_filter.strip().upper() if asset_filter else None
        balances = []
        for wallet in wallets:
            if not isinstance(wallet, dict):
                continue
            asset = str(wallet.get("asset", "")).upper()
            if not asset or (wanted and asset != wanted):
                continue
            total = to_float(wallet.get("balance")) or 0.0
            frozen = to_float(wallet.get("frozen")) or 0.0
            balances.append(
                StandardBalanceResponse(
                    asset=asset,
                    free=total - frozen,
                    locked=frozen,
                    total=total,
                )
            )

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
        if not isinstance(data, dict):
            raise self._upstream_error(
                response, "get_order_book", "Unexpected order book payload", pair.symbol
            )

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
        payload = build_bitpin_order(req)

        credential, renewed = await self._resolve_credential(user_id)
        pair = await self._resolve_pair(payload["symbol"])

        response, credential = await self._authenticated_request(
            "POST", ORDERS_PATH, user_id, credential, "place_order", json_body=dict(payload),
            renewed=renewed,
        )
        if response.status not in (200, 201):
            self._log.log_order(
                operation="place",
                symbol=pair.symbol,
                side=payload["side"],
                order_type=payload["type"],
                error_message=response.text,
            )
            raise self._upstream_error(response, "place_order", symbol=pair.symbol)

        data = response.json()
        exchange_order_id = data.get("id") if isinstance(data, dict) else None
        if exchange_order_id in (None, ""):
            raise self._upstream_error(
                response, "place_order", "Order acknowledgement has no id", pair.symbol
            )

        quantity = to_float(data.get("base_amount")) or float(payload["base_amount"])
        price = to_float(data.get("price"))
        if price is None and "price" in payload:
            price = float(payload["price"])

        result = await self._persist_order(
            user_id=user_id,
            credential=credential,
            pair=pair,
            exchange_order_id=str(exchange_order_id),
            req=req,
            quantity=quantity,
            price=price,
            status=self._map_status(first_present(data, "state", "status")),
            created_at=parse_timestamp(data.get("created_at")),
        )
        await self._mark_used(credential)
        return result

    async def cancel_order(
        self,
        order_id: UUID,
        user_id: UUID,
        hints: Optional[CancelHints] = None,
    ) -> None:
        credential, renewed = await self._resolve_credential(user_id)
        order = await self._resolve_order(order_id, user_id)

        response, credential = await self._authenticated_request(
            "DELETE",
            ORDER_PATH.format(order_id=order.exchange_order_id),
            user_id,
            credential,
            "cancel_order",
            renewed=renewed,
        )
        if response.status != 204:
            self._log.log_order(
                operation="cancel",
                client_order_id=order.client_order_id,
                exchange_order_id=order.exchange_order_id,
                error_message=response.text or f"HTTP {response.status}",
            )
            raise CancellationFailedError(
                message=f"Bitpin did not cancel order {order.exchange_order_id}",
                exchange_id=self.name,
                operation="cancel_order",
                http_status=response.status,
                exchange_message=response.text,
            )

        self._log.log_order(
            operation="cancel",
            client_order_id=order.client_order_id,
            exchange_order_id=order.exchange_order_id,
            status="cancel_requested",
        )
        await self._mark_used(credential)
