"""
Exchange Engine - Exchange Adapter Base.

============================================================
PURPOSE
============================================================
Common interface for exchange adapters, plus the machinery
every adapter shares:

- Trading pair resolution (SymbolNotFound otherwise)
- Credential resolution and one-shot renew-then-retry on 401
- Defensive order book level parsing
- Status vocabulary mapping
- Snapshot / order history persistence after a parsed reply

============================================================
ORDERING
============================================================
1. Credentials are resolved before any authenticated request
2. Rows are written only after a successful, parsed reply
3. A cancelled task rolls its pending write back

============================================================
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from exchange_engine.catalog import SymbolCatalog
from exchange_engine.config import EngineSettings, ExchangeConfig
from exchange_engine.credentials import CredentialManager
from exchange_engine.errors import (
    AuthExpiredError,
    NotFoundError,
    SymbolNotFoundError,
    UnparseableSymbolError,
    UpstreamError,
    storage_errors,
)
from exchange_engine.logging_utils import AdapterLogger
from exchange_engine.transport import AuthScheme, HttpResponse, HttpTransport
from exchange_engine.types import (
    CancelHints,
    CancelMode,
    DecryptedCredential,
    OrderStatus,
    StandardBalanceResponse,
    StandardOrderBookResponse,
    StandardOrderLevel,
    StandardOrderRequest,
    StandardOrderResponse,
    TokenPair,
)
from storage.database import transaction_scope
from storage.models.exchange import (
    BalanceSnapshot,
    OrderBookSnapshot,
    OrderHistory,
    TradingPair,
)
from storage.repositories.exchange import (
    BalanceSnapshotRepository,
    OrderBookSnapshotRepository,
    OrderHistoryRepository,
    TradingPairRepository,
)


logger = logging.getLogger(__name__)


# Native statuses that mean "completely filled"
FILLED_STATUSES = {"filled", "done", "completed"}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_float(value: Any) -> Optional[float]:
    """Exchange-native number (often a string) to float, None if unusable."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def composite_order_id(exchange_order_id: str, user_id: UUID) -> str:
    """Globally unique order id: exchange order id + user id."""
    return f"{exchange_order_id}-{user_id}"


# ============================================================
# CONTEXT
# ============================================================

@dataclass
class AdapterContext:
    """Everything the registry hands an adapter constructor."""

    exchange_id: UUID
    config: ExchangeConfig
    catalog: SymbolCatalog
    session_factory: async_sessionmaker[AsyncSession]
    credentials: CredentialManager
    transport: HttpTransport
    settings: EngineSettings


# ============================================================
# EXCHANGE ADAPTER
# ============================================================

class ExchangeAdapter(ABC):
    """
    Abstract interface for exchange adapters.

    Implementations:
    - BitpinAdapter
    - NobitexAdapter
    """

    auth_scheme: AuthScheme = AuthScheme.API_KEY_HEADER
    """Authorization header shape of private endpoints."""

    supports_renewal: bool = False
    """Whether access tokens are short-lived and renewable."""

    cancel_mode: CancelMode = CancelMode.BY_ORDER_ID

    status_map: Mapping[str, OrderStatus] = {}
    """Native status (lower-case) to canonical status, "filled" excluded."""

    def __init__(self, context: AdapterContext):
        self._context = context
        self._exchange_id = context.exchange_id
        self._base_url = context.config.base_url
        self._transport = context.transport
        self._credentials = context.credentials
        self._session_factory = context.session_factory
        self._settings = context.settings
        self._log = AdapterLogger(self.name)

    # --------------------------------------------------------
    # IDENTITY
    # --------------------------------------------------------

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry name of the exchange."""
        pass

    @property
    def exchange_id(self) -> UUID:
        """Primary key of the Exchange row."""
        return self._exchange_id

    @property
    def catalog(self) -> SymbolCatalog:
        return self._context.catalog

    @abstractmethod
    def native_symbol(self, symbol: str) -> str:
        """
        Convert any accepted symbol spelling to this exchange's form.

        Raises:
            UnparseableSymbolError: Symbol cannot be split
        """
        pass

    # --------------------------------------------------------
    # OPERATIONS
    # --------------------------------------------------------

    @abstractmethod
    async def ping(self) -> None:
        """
        Issue a lightweight public request.

        Raises:
            UpstreamError: Exchange unreachable or non-2xx
        """
        pass

    @abstractmethod
    async def get_balance(
        self,
        user_id: UUID,
        asset_filter: Optional[str] = None,
    ) -> List[StandardBalanceResponse]:
        """
        Balances of the user, one BalanceSnapshot persisted per asset.
        """
        pass

    @abstractmethod
    async def get_order_book(
        self,
        symbol: str,
        user_id: Optional[UUID] = None,
    ) -> StandardOrderBookResponse:
        """
        Order book of a catalog symbol; persists an OrderBookSnapshot.

        Raises:
            SymbolNotFoundError: Symbol not in this exchange's catalog
        """
        pass

    @abstractmethod
    async def place_order(
        self,
        req: StandardOrderRequest,
        user_id: UUID,
    ) -> StandardOrderResponse:
        """
        Place an order; persists one OrderHistory row.

        Raises:
            ValidationFailedError: Request rejected before any network call
            UpstreamError: Exchange rejected the order
        """
        pass

    @abstractmethod
    async def cancel_order(
        self,
        order_id: UUID,
        user_id: UUID,
        hints: Optional[CancelHints] = None,
    ) -> None:
        """
        Cancel a previously placed order by its internal id.

        Semantics depend on ``cancel_mode``:
        BY_ORDER_ID cancels exactly that order; TIME_WINDOW cancels
        every order of the same pair and execution type opened within
        the last ``hints.hours``.

        Raises:
            NotFoundError: Order unknown for this user and exchange
            CancellationFailedError: Exchange did not acknowledge
        """
        pass

    async def list_orders(
        self,
        user_id: UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> List[StandardOrderResponse]:
        """Persisted orders of the user on this exchange, newest first."""
        with storage_errors(self.name, "list_orders"):
            async with transaction_scope(self._session_factory) as session:
                rows = await OrderHistoryRepository(session).list_by_user(
                    user_id, self._exchange_id, limit=limit, offset=offset
                )
                pairs = await TradingPairRepository(session).get_by_exchange(self._exchange_id)

        symbols = {pair.id: pair.symbol for pair in pairs}
        return [
            StandardOrderResponse(
                id=row.client_order_id,
                order_id=row.id,
                exchange_order_id=row.exchange_order_id,
                symbol=symbols.get(row.trading_pair_id, ""),
                side=row.side,
                type=row.order_type,
                quantity=row.quantity,
                price=row.price,
                status=OrderStatus(row.status),
                created_at=row.created_at,
            )
            for row in rows
        ]

    # --------------------------------------------------------
    # TOKEN RENEWAL
    # --------------------------------------------------------

    async def refresh_tokens(self, credential: DecryptedCredential) -> TokenPair:
        """
        Exchange-specific token refresh call.

        Only adapters with ``supports_renewal`` override this.
        """
        raise AuthExpiredError(
            message=f"{self.name} does not support token renewal",
            exchange_id=self.name,
            operation="refresh_tokens",
        )

    # --------------------------------------------------------
    # SHARED HELPERS
    # --------------------------------------------------------

    async def _resolve_credential(self, user_id: UUID) -> Tuple[DecryptedCredential, bool]:
        """
        Returns:
            The credential, and whether its access token was renewed
            just now (a renewed token is not renewed again on 401)
        """
        credential = await self._credentials.get_by_user_and_exchange(user_id, self._exchange_id)
        if self.supports_renewal and self._credentials.needs_renewal(credential):
            self._log.info(f"Access token of credential {credential.id} due for renewal")
            return await self._renew(user_id), True
        return credential, False

    async def _renew(self, user_id: UUID) -> DecryptedCredential:
        return await self._credentials.renew_access_token(
            user_id, self._exchange_id, self.refresh_tokens
        )

    async def _resolve_pair(self, symbol: str) -> TradingPair:
        try:
            native = self.native_symbol(symbol)
        except UnparseableSymbolError:
            native = (symbol or "").strip().upper()

        with storage_errors(self.name, "resolve_pair"):
            async with transaction_scope(self._session_factory) as session:
                pair = await TradingPairRepository(session).get_by_exchange_and_symbol(
                    self._exchange_id, native
                )

        if pair is None:
            raise SymbolNotFoundError(
                message=f"Symbol {symbol} is not traded on {self.name}",
                exchange_id=self.name,
                symbol=symbol,
            )
        return pair

    async def _resolve_order(self, order_id: UUID, user_id: UUID) -> OrderHistory:
        with storage_errors(self.name, "resolve_order"):
            async with transaction_scope(self._session_factory) as session:
                order = await OrderHistoryRepository(session).get_for_user(
                    order_id, user_id, self._exchange_id
                )
        if order is None:
            raise NotFoundError(
                message=f"Order {order_id} not found",
                code="ORDER_NOT_FOUND",
                exchange_id=self.name,
                operation="cancel_order",
            )
        return order

    async def _get_pair_by_id(self, pair_id: UUID) -> TradingPair:
        with storage_errors(self.name, "resolve_pair"):
            async with transaction_scope(self._session_factory) as session:
                pair = await TradingPairRepository(session).get_by_id(pair_id)
        if pair is None:
            raise NotFoundError(
                message=f"Trading pair {pair_id} not found",
                code="PAIR_NOT_FOUND",
                exchange_id=self.name,
            )
        return pair

    async def _public_request(
        self,
        method: str,
        path: str,
        operation: str,
        json_body: Optional[Any] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> HttpResponse:
        return await self._transport.request(
            method,
            self._base_url,
            path,
            exchange_id=self.name,
            operation=operation,
            json_body=json_body,
            params=params,
        )

    async def _authenticated_request(
        self,
        method: str,
        path: str,
        user_id: UUID,
        credential: DecryptedCredential,
        operation: str,
        json_body: Optional[Any] = None,
        params: Optional[Mapping[str, Any]] = None,
        renewed: bool = False,
    ) -> Tuple[HttpResponse, DecryptedCredential]:
        """
        Send an authenticated request.

        On 401 the access token is renewed once and the request
        retried once. A second 401, a 401 on an exchange without
        renewal, or a 401 right after ``_resolve_credential`` renewed
        the token (``renewed``) raises AuthExpiredError.

        Returns:
            The response and the credential actually used
        """
        response = await self._send(method, path, credential, operation, json_body, params)
        if response.status != 401:
            return response, credential

        if not self.supports_renewal or renewed:
            raise self._auth_expired(response, operation)

        self._log.info(f"{operation} got 401, renewing access token once")
        credential = await self._renew(user_id)
        response = await self._send(method, path, credential, operation, json_body, params)
        if response.status == 401:
            raise self._auth_expired(response, operation)
        return response, credential

    async def _send(
        self,
        method: str,
        path: str,
        credential: DecryptedCredential,
        operation: str,
        json_body: Optional[Any],
        params: Optional[Mapping[str, Any]],
    ) -> HttpResponse:
        return await self._transport.request(
            method,
            self._base_url,
            path,
            exchange_id=self.name,
            operation=operation,
            auth=self.auth_scheme,
            credential=credential,
            json_body=json_body,
            params=params,
        )

    def _auth_expired(self, response: HttpResponse, operation: str) -> AuthExpiredError:
        return AuthExpiredError(
            message=f"{self.name} rejected the credential",
            exchange_id=self.name,
            operation=operation,
            http_status=response.status,
            exchange_message=response.text,
        )

    def _upstream_error(
        self,
        response: HttpResponse,
        operation: str,
        message: Optional[str] = None,
        symbol: Optional[str] = None,
    ) -> UpstreamError:
        return UpstreamError(
            message=message or f"{self.name} returned HTTP {response.status}",
            code=f"HTTP_{response.status}",
            exchange_id=self.name,
            operation=operation,
            http_status=response.status,
            exchange_message=response.text,
            symbol=symbol,
        )

    def _map_status(self, native: Optional[str]) -> OrderStatus:
        """
        Native order status to canonical.

        Filled statuses map to the configured ``filled_status``;
        unknown statuses map to NEW.
        """
        key = (native or "").strip().lower()
        if key in FILLED_STATUSES:
            mapped = self._settings.filled_status
            self._log.info(f"Mapping native status {native!r} to {mapped.value!r}")
            return mapped
        return self.status_map.get(key, OrderStatus.NEW)

    def _parse_levels(self, levels: Any) -> List[StandardOrderLevel]:
        """
        Parse [[price, quantity], ...] into canonical levels.

        Malformed levels are skipped, never fatal.
        """
        parsed: List[StandardOrderLevel] = []
        if not isinstance(levels, list):
            return parsed
        for level in levels:
            if not isinstance(level, (list, tuple)) or len(level) < 2:
                self._log.debug(f"Skipping malformed order book level: {level!r}")
                continue
            price = to_float(level[0])
            quantity = to_float(level[1])
            if price is None or quantity is None:
                self._log.debug(f"Skipping unparseable order book level: {level!r}")
                continue
            parsed.append(StandardOrderLevel(price=price, quantity=quantity))
        return parsed

    async def _persist_balances(
        self,
        user_id: UUID,
        balances: Sequence[StandardBalanceResponse],
    ) -> None:
        taken_at = utc_now()
        with storage_errors(self.name, "get_balance"):
            async with transaction_scope(self._session_factory) as session:
                await BalanceSnapshotRepository(session).create_many([
                    BalanceSnapshot(
                        user_id=user_id,
                        exchange_id=self._exchange_id,
                        asset=balance.asset,
                        total=balance.total,
                        available=balance.free,
                        locked=balance.locked,
                        snapshot_time=taken_at,
                    )
                    for balance in balances
                ])

    async def _persist_order_book(
        self,
        pair: TradingPair,
        book: StandardOrderBookResponse,
    ) -> None:
        with storage_errors(self.name, "get_order_book"):
            async with transaction_scope(self._session_factory) as session:
                await OrderBookSnapshotRepository(session).create(
                    OrderBookSnapshot(
                        exchange_id=self._exchange_id,
                        trading_pair_id=pair.id,
                        symbol=pair.symbol,
                        bids=[[level.price, level.quantity] for level in book.bids],
                        asks=[[level.price, level.quantity] for level in book.asks],
                        snapshot_time=book.timestamp,
                    )
                )

    async def _persist_order(
        self,
        user_id: UUID,
        credential: DecryptedCredential,
        pair: TradingPair,
        exchange_order_id: str,
        req: StandardOrderRequest,
        quantity: float,
        price: Optional[float],
        status: OrderStatus,
        created_at: datetime,
    ) -> StandardOrderResponse:
        client_order_id = composite_order_id(exchange_order_id, user_id)
        with storage_errors(self.name, "place_order"):
            async with transaction_scope(self._session_factory) as session:
                row = await OrderHistoryRepository(session).create(
                    OrderHistory(
                        user_id=user_id,
                        credential_id=credential.id,
                        exchange_id=self._exchange_id,
                        trading_pair_id=pair.id,
                        client_order_id=client_order_id,
                        exchange_order_id=exchange_order_id,
                        side=req.side.lower(),
                        order_type=req.type.lower(),
                        quantity=quantity,
                        price=price,
                        status=status.value,
                    )
                )
                order_id = row.id

        self._log.log_order(
            operation="place",
            client_order_id=client_order_id,
            exchange_order_id=exchange_order_id,
            symbol=pair.symbol,
            side=req.side.lower(),
            order_type=req.type.lower(),
            quantity=f"{quantity:.8f}",
            price=f"{price:.8f}" if price is not None else None,
            status=status.value,
        )

        return StandardOrderResponse(
            id=client_order_id,
            order_id=order_id,
            exchange_order_id=exchange_order_id,
            symbol=pair.symbol,
            side=req.side.lower(),
            type=req.type.lower(),
            quantity=quantity,
            price=price,
            status=status,
            created_at=created_at,
        )

    async def _mark_used(self, credential: DecryptedCredential) -> None:
        await self._credentials.mark_used(credential.id)


def parse_timestamp(value: Any) -> datetime:
    """ISO-8601 or epoch (s / ms) exchange timestamp; now if unusable."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 1e11 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return utc_now()
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return utc_now()


def first_present(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def safe_json(response: HttpResponse) -> Any:
    """Decoded body, or None when the body is empty or not JSON."""
    try:
        return json.loads(response.body) if response.body else None
    except ValueError:
        return None
