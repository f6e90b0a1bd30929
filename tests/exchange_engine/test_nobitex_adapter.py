"""
Tests for the Nobitex adapter against a mocked transport.
"""

import uuid

import pytest
import pytest_asyncio

from exchange_engine.adapters.nobitex import (
    BALANCE_PATH,
    CANCEL_OLD_PATH,
    CLIENT_ORDER_ID_LENGTH,
    PLACE_ORDER_PATH,
    NobitexAdapter,
)
from exchange_engine.errors import (
    AuthExpiredError,
    CancellationFailedError,
    NotFoundError,
    UpstreamError,
    ValidationFailedError,
)
from exchange_engine.transport import AuthScheme
from exchange_engine.types import CancelHints, CancelMode, OrderStatus, StandardOrderRequest
from storage.models.exchange import BalanceSnapshot, OrderHistory

from tests.exchange_engine.helpers import count_rows, make_response, store_credential


def ok_order(order_id=55, status="Active", **extra):
    order = {"id": order_id, "status": status, "amount": "0.5", "price": "50000"}
    order.update(extra)
    return {"status": "ok", "order": order}


def sent(transport, index=-1):
    call = transport.request.await_args_list[index]
    return call.args[0], call.args[2], call.kwargs


@pytest_asyncio.fixture
async def adapter(nobitex, credentials, user_id):
    await store_credential(credentials, user_id, nobitex.exchange.id, access_key=None, refresh_key=None)
    return nobitex.instance


# =============================================================
# PLACE ORDER
# =============================================================

class TestPlaceOrder:
    """POST /market/orders/add"""

    @pytest.mark.asyncio
    async def test_limit_buy(self, adapter, transport, user_id, session_factory):
        transport.request.return_value = make_response(200, ok_order())
        req = StandardOrderRequest(
            symbol="BTCUSDT", side="buy", type="limit", quantity=0.5, price=50000.0
        )

        result = await adapter.place_order(req, user_id)

        method, path, kwargs = sent(transport)
        assert (method, path) == ("POST", PLACE_ORDER_PATH)
        assert kwargs["auth"] is AuthScheme.TOKEN_PREFIX_ACCESS_TOKEN
        body = kwargs["json_body"]
        assert body["type"] == "buy"
        assert body["execution"] == "limit"
        assert body["srcCurrency"] == "btc"
        assert body["dstCurrency"] == "usdt"
        assert body["amount"] == "0.50000000"
        assert body["price"] == "50000.00000000"
        assert len(body["clientOrderId"]) == CLIENT_ORDER_ID_LENGTH

        assert result.id == f"55-{user_id}"
        assert result.symbol == "BTCUSDT"
        assert result.status is OrderStatus.NEW
        assert await count_rows(session_factory, OrderHistory) == 1

    @pytest.mark.asyncio
    async def test_caller_client_order_id_forwarded(self, adapter, transport, user_id):
        transport.request.return_value = make_response(200, ok_order())
        req = StandardOrderRequest(
            symbol="BTC_IRT", side="sell", type="market", quantity=0.1, client_order_id="mine-1"
        )

        await adapter.place_order(req, user_id)

        body = sent(transport)[2]["json_body"]
        assert body["clientOrderId"] == "mine-1"
        assert body["dstCurrency"] == "rls"
        assert "price" not in body

    @pytest.mark.asyncio
    async def test_price_falls_back_to_total_order_price(self, adapter, transport, user_id):
        reply = ok_order(price=None, totalOrderPrice="25000")
        transport.request.return_value = make_response(200, reply)
        req = StandardOrderRequest(symbol="BTCUSDT", side="buy", type="market", quantity=0.5)

        result = await adapter.place_order(req, user_id)

        assert result.price == 25000.0

    @pytest.mark.asyncio
    async def test_unsupported_quote_rejected_before_network(self, adapter, transport, user_id):
        req = StandardOrderRequest(symbol="ETHBTC", side="buy", type="market", quantity=1)

        with pytest.raises(ValidationFailedError):
            await adapter.place_order(req, user_id)
        transport.request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_currencies_must_match_symbol(self, adapter, transport, user_id, session_factory):
        req = StandardOrderRequest(
            symbol="BTCUSDT", side="buy", type="limit", quantity=0.5, price=50000.0,
            base_currency="ETH", quote_currency="IRT",
        )

        with pytest.raises(ValidationFailedError) as exc_info:
            await adapter.place_order(req, user_id)

        assert exc_info.value.error.code == "CURRENCY_MISMATCH"
        transport.request.assert_not_awaited()
        assert await count_rows(session_factory, OrderHistory) == 0

    @pytest.mark.asyncio
    async def test_failed_status(self, adapter, transport, user_id, session_factory):
        transport.request.return_value = make_response(
            200, {"status": "failed", "message": "Insufficient balance"}
        )
        req = StandardOrderRequest(symbol="BTCUSDT", side="buy", type="market", quantity=1)

        with pytest.raises(UpstreamError) as exc_info:
            await adapter.place_order(req, user_id)

        assert "Insufficient balance" in exc_info.value.error.message
        assert await count_rows(session_factory, OrderHistory) == 0

    @pytest.mark.asyncio
    async def test_401_without_renewal(self, adapter, transport, user_id):
        transport.request.return_value = make_response(401, {"detail": "Invalid token"})
        req = StandardOrderRequest(symbol="BTCUSDT", side="buy", type="market", quantity=1)

        with pytest.raises(AuthExpiredError):
            await adapter.place_order(req, user_id)
        assert transport.request.await_count == 1


# =============================================================
# BALANCE / ORDER BOOK
# =============================================================

class TestBalanceAndOrderBook:
    """Single-currency balance and public order book."""

    @pytest.mark.asyncio
    async def test_balance_requires_asset(self, adapter, transport, user_id):
        with pytest.raises(ValidationFailedError) as exc_info:
            await adapter.get_balance(user_id)

        assert exc_info.value.error.code == "ASSET_REQUIRED"
        transport.request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_balance(self, adapter, transport, user_id, session_factory):
        transport.request.return_value = make_response(200, {"status": "ok", "balance": "12.5"})

        balances = await adapter.get_balance(user_id, asset_filter="irt")

        method, path, kwargs = sent(transport)
        assert (method, path) == ("POST", BALANCE_PATH)
        assert kwargs["json_body"] == {"currency": "rls"}
        assert (balances[0].asset, balances[0].free, balances[0].total) == ("IRT", 12.5, 12.5)
        assert await count_rows(session_factory, BalanceSnapshot) == 1

    @pytest.mark.asyncio
    async def test_balance_failed_status(self, adapter, transport, user_id):
        transport.request.return_value = make_response(200, {"status": "failed"})

        with pytest.raises(UpstreamError):
            await adapter.get_balance(user_id, asset_filter="btc")

    @pytest.mark.asyncio
    async def test_ping(self, nobitex, transport):
        transport.request.return_value = make_response(200, {"status": "ok"})
        await nobitex.instance.ping()
        assert sent(transport)[1] == "/v3/orderbook/BTCUSDT"

        transport.request.return_value = make_response(502, b"<html>bad gateway</html>")
        with pytest.raises(UpstreamError) as exc_info:
            await nobitex.instance.ping()
        assert exc_info.value.error.http_status == 502

    @pytest.mark.asyncio
    async def test_order_book(self, nobitex, transport):
        transport.request.return_value = make_response(200, {
            "status": "ok",
            "bids": [["50000", "0.2"], []],
            "asks": [["51000", "0.1"]],
        })

        book = await nobitex.instance.get_order_book("BTC_USDT")

        assert sent(transport)[1] == "/v3/orderbook/BTCUSDT"
        assert len(book.bids) == 1
        assert book.asks[0].price == 51000.0


# =============================================================
# CANCEL
# =============================================================

class TestCancelOrder:
    """POST /market/orders/cancel-old"""

    async def place(self, adapter, transport, user_id, symbol="BTCIRT"):
        transport.request.return_value = make_response(200, ok_order())
        req = StandardOrderRequest(symbol=symbol, side="buy", type="limit", quantity=0.1, price=1e9)
        return await adapter.place_order(req, user_id)

    def test_cancel_mode(self):
        assert NobitexAdapter.cancel_mode is CancelMode.TIME_WINDOW

    @pytest.mark.asyncio
    async def test_hours_required(self, adapter, transport, user_id):
        placed = await self.place(adapter, transport, user_id)
        transport.request.reset_mock()

        for hints in (None, CancelHints(), CancelHints(hours=0)):
            with pytest.raises(ValidationFailedError) as exc_info:
                await adapter.cancel_order(placed.order_id, user_id, hints)
            assert exc_info.value.error.code == "HOURS_REQUIRED"
        transport.request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_old(self, adapter, transport, user_id):
        placed = await self.place(adapter, transport, user_id)
        transport.request.return_value = make_response(200, {"status": "ok"})

        await adapter.cancel_order(placed.order_id, user_id, CancelHints(hours=2))

        method, path, kwargs = sent(transport)
        assert (method, path) == ("POST", CANCEL_OLD_PATH)
        assert kwargs["json_body"] == {
            "execution": "limit",
            "srcCurrency": "btc",
            "dstCurrency": "rls",
            "hours": 2,
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, body", [
        (200, {"status": "failed", "message": "no orders"}),
        (500, b"<html>error</html>"),
        (200, b"not json"),
    ])
    async def test_cancel_failures(self, adapter, transport, user_id, status, body):
        placed = await self.place(adapter, transport, user_id)
        transport.request.return_value = make_response(status, body)

        with pytest.raises(CancellationFailedError) as exc_info:
            await adapter.cancel_order(placed.order_id, user_id, CancelHints(hours=1))
        assert exc_info.value.error.http_status == status

    @pytest.mark.asyncio
    async def test_unknown_order(self, adapter, user_id):
        with pytest.raises(NotFoundError) as exc_info:
            await adapter.cancel_order(uuid.uuid4(), user_id, CancelHints(hours=1))
        assert exc_info.value.error.code == "ORDER_NOT_FOUND"
