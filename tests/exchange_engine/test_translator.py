"""
Tests for the order translator.

============================================================
COVERAGE
============================================================
- Request validation
- Quantity / base / quote amount precedence
- Symbol parsing and native spellings
- Bitpin and Nobitex payload shapes

============================================================
"""

import pytest

from exchange_engine.errors import (
    AmountIndeterminateError,
    UnparseableSymbolError,
    ValidationFailedError,
)
from exchange_engine.translator import (
    build_bitpin_order,
    build_nobitex_order,
    format_amount,
    nobitex_currency,
    parse_symbol,
    resolve_base_amount,
    resolve_quantity,
    resolve_quote_amount,
    to_bitpin_symbol,
    to_nobitex_symbol,
    validate_order_request,
)
from exchange_engine.types import StandardOrderRequest


def limit_buy(**overrides) -> StandardOrderRequest:
    fields = dict(symbol="BTC_USDT", side="buy", type="limit", quantity=0.5, price=50000.0)
    fields.update(overrides)
    return StandardOrderRequest(**fields)


# =============================================================
# VALIDATION
# =============================================================

class TestValidation:
    """Exchange-independent request checks."""

    def test_valid_request_passes(self):
        validate_order_request(limit_buy())

    @pytest.mark.parametrize("symbol", ["", "   "])
    def test_symbol_required(self, symbol):
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_order_request(limit_buy(symbol=symbol))
        assert exc_info.value.error.code == "SYMBOL_REQUIRED"

    def test_invalid_side(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_order_request(limit_buy(side="hold"))
        assert exc_info.value.error.code == "INVALID_SIDE"

    def test_invalid_type(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_order_request(limit_buy(type="stop"))
        assert exc_info.value.error.code == "INVALID_TYPE"

    def test_limit_without_price(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_order_request(limit_buy(price=None))
        assert exc_info.value.error.code == "PRICE_REQUIRED"

    def test_no_positive_amount(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_order_request(limit_buy(quantity=0, base_amount=None, quote_amount=-1))
        assert exc_info.value.error.code == "AMOUNT_REQUIRED"

    def test_side_and_type_case_insensitive(self):
        validate_order_request(limit_buy(side="SELL", type="Market", price=None))


# =============================================================
# AMOUNTS
# =============================================================

class TestAmountResolution:
    """Precedence rules for the three amount fields."""

    def test_quantity_wins(self):
        req = StandardOrderRequest("BTC_USDT", "buy", "market", quantity=2, base_amount=3)
        assert resolve_quantity(req) == 2

    def test_base_amount_when_no_quantity(self):
        req = StandardOrderRequest("BTC_USDT", "buy", "market", base_amount=3)
        assert resolve_quantity(req) == 3

    def test_quote_over_price(self):
        req = StandardOrderRequest("BTC_USDT", "buy", "limit", quote_amount=100, price=50)
        assert resolve_quantity(req) == 2

    def test_quote_without_price_is_indeterminate(self):
        req = StandardOrderRequest("BTC_USDT", "buy", "market", quote_amount=100)
        with pytest.raises(AmountIndeterminateError):
            resolve_quantity(req)

    def test_indeterminate_is_a_validation_failure(self):
        assert issubclass(AmountIndeterminateError, ValidationFailedError)

    def test_base_amount_prefers_explicit_base(self):
        req = StandardOrderRequest("BTC_USDT", "buy", "market", quantity=2, base_amount=3)
        assert resolve_base_amount(req) == 3

    def test_quote_amount_explicit(self):
        req = StandardOrderRequest("BTC_USDT", "buy", "limit", quantity=1, quote_amount=70, price=50)
        assert resolve_quote_amount(req) == 70

    def test_quote_amount_from_base_times_price(self):
        req = StandardOrderRequest("BTC_USDT", "buy", "limit", quantity=0.5, price=50000)
        assert resolve_quote_amount(req) == 25000

    def test_quote_amount_needs_price(self):
        req = StandardOrderRequest("BTC_USDT", "buy", "market", quantity=0.5)
        with pytest.raises(AmountIndeterminateError):
            resolve_quote_amount(req)

    def test_format_amount_eight_digits(self):
        assert format_amount(0.5) == "0.50000000"
        assert format_amount(50000) == "50000.00000000"


# =============================================================
# SYMBOLS
# =============================================================

class TestSymbols:
    """Symbol parsing and per-exchange spelling."""

    @pytest.mark.parametrize("symbol", ["BTC_USDT", "BTC-USDT", "BTCUSDT", "btc_usdt"])
    def test_accepted_spellings(self, symbol):
        assert parse_symbol(symbol) == ("BTC", "USDT")

    def test_irt_suffix(self):
        assert parse_symbol("USDTIRT") == ("USDT", "IRT")

    def test_unknown_suffix(self):
        with pytest.raises(UnparseableSymbolError):
            parse_symbol("FOOBAR")

    def test_bad_split(self):
        with pytest.raises(UnparseableSymbolError):
            parse_symbol("BTC_USDT_X")

    def test_native_spellings(self):
        assert to_bitpin_symbol("BTCUSDT") == "BTC_USDT"
        assert to_nobitex_symbol("BTC-USDT") == "BTCUSDT"

    def test_nobitex_currency(self):
        assert nobitex_currency("IRT") == "rls"
        assert nobitex_currency(" USDT ") == "usdt"


# =============================================================
# BITPIN PAYLOAD
# =============================================================

class TestBitpinPayload:
    """POST /api/v1/odr/orders/ body."""

    def test_limit_order(self):
        payload = build_bitpin_order(limit_buy())

        assert payload == {
            "symbol": "BTC_USDT",
            "type": "limit",
            "side": "buy",
            "base_amount": "0.50000000",
            "quote_amount": "25000.00000000",
            "price": "50000.00000000",
        }

    def test_market_order_without_price_has_no_quote(self):
        payload = build_bitpin_order(
            StandardOrderRequest("ETHUSDT", "sell", "market", quantity=1.25)
        )

        assert payload["symbol"] == "ETH_USDT"
        assert payload["base_amount"] == "1.25000000"
        assert "quote_amount" not in payload
        assert "price" not in payload

    def test_identifier_and_stop_price(self):
        payload = build_bitpin_order(limit_buy(client_order_id="abc", stop_price=49000))

        assert payload["identifier"] == "abc"
        assert payload["stop_price"] == "49000.00000000"

    def test_invalid_request_rejected(self):
        with pytest.raises(ValidationFailedError):
            build_bitpin_order(limit_buy(side="long"))


# =============================================================
# NOBITEX PAYLOAD
# =============================================================

class TestNobitexPayload:
    """POST /market/orders/add body."""

    def test_limit_order(self):
        payload = build_nobitex_order(limit_buy(symbol="BTCUSDT"), client_order_id="cid-1")

        assert payload == {
            "type": "buy",
            "execution": "limit",
            "srcCurrency": "btc",
            "dstCurrency": "usdt",
            "amount": "0.50000000",
            "clientOrderId": "cid-1",
            "price": "50000.00000000",
        }

    def test_irt_becomes_rls(self):
        payload = build_nobitex_order(
            StandardOrderRequest("BTCIRT", "sell", "market", quantity=0.1),
            client_order_id="cid-2",
        )

        assert payload["dstCurrency"] == "rls"
        assert "price" not in payload

    def test_matching_currencies_accepted(self):
        payload = build_nobitex_order(
            limit_buy(symbol="BTCIRT", base_currency="btc", quote_currency="RLS"),
            client_order_id="cid-3",
        )

        assert payload["srcCurrency"] == "btc"
        assert payload["dstCurrency"] == "rls"

    @pytest.mark.parametrize("overrides", [
        dict(base_currency="ETH"),
        dict(quote_currency="IRT"),
        dict(base_currency="ETH", quote_currency="IRT"),
    ])
    def test_currency_mismatch_rejected(self, overrides):
        with pytest.raises(ValidationFailedError) as exc_info:
            build_nobitex_order(limit_buy(symbol="BTCUSDT", **overrides), client_order_id="cid-3")
        assert exc_info.value.error.code == "CURRENCY_MISMATCH"

    def test_unsupported_destination(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            build_nobitex_order(limit_buy(symbol="ETHBTC"), client_order_id="cid-4")
        assert exc_info.value.error.code == "UNSUPPORTED_QUOTE_CURRENCY"

    def test_client_order_id_required(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            build_nobitex_order(limit_buy(symbol="BTCUSDT"))
        assert exc_info.value.error.code == "CLIENT_ORDER_ID_REQUIRED"

    def test_request_client_order_id_used(self):
        payload = build_nobitex_order(limit_buy(symbol="BTCUSDT", client_order_id="mine"))
        assert payload["clientOrderId"] == "mine"
