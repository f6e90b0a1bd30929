"""
Tests for the exchange registry and bootstrap wiring.

============================================================
COVERAGE
============================================================
- Idempotent onboarding (one Exchange row, no duplicate pairs)
- Additive catalog reconciliation
- Registration errors and unsupported names
- Constructor and storage failures

============================================================
"""

import asyncio
import logging
from unittest.mock import MagicMock

import pytest

from exchange_engine.adapters import BitpinAdapter, NobitexAdapter
from exchange_engine import bootstrap
from exchange_engine.bootstrap import create_default_registry, default_exchange_configs, start_engine
from exchange_engine.catalog import BITPIN_CATALOG, SymbolCatalog
from exchange_engine.config import ExchangeConfig, configure_logging
from exchange_engine.errors import (
    InternalError,
    RegistrationError,
    UnsupportedExchangeError,
)
from exchange_engine.registry import ExchangeRegistry
from exchange_engine.types import TradingPairSpec
from storage.models.exchange import Exchange, TradingPair
from storage.repositories.exceptions import QueryError
from storage.repositories.exchange import TradingPairRepository

from tests.exchange_engine.helpers import count_rows


def demo_catalog(*symbols: str) -> SymbolCatalog:
    return SymbolCatalog(
        "demo",
        [
            TradingPairSpec(
                symbol=symbol,
                base_asset=symbol.split("_")[0],
                quote_asset=symbol.split("_")[1],
                tick_size=0.01,
                step_size=0.001,
            )
            for symbol in symbols
        ],
    )


DEMO_CONFIG = ExchangeConfig(name="demo", display_name="Demo", base_url="https://demo.test")


# =============================================================
# ONBOARDING
# =============================================================

class TestGetOrCreateExchange:
    """Onboarding and re-resolution."""

    @pytest.mark.asyncio
    async def test_first_call_onboards(self, registry, bitpin_config, session_factory):
        result = await registry.get_or_create_exchange(bitpin_config)

        assert result.is_new_exchange is True
        assert result.exchange.name == "bitpin"
        assert isinstance(result.instance, BitpinAdapter)
        assert result.instance.exchange_id == result.exchange.id
        assert len(result.trading_pairs) == len(BITPIN_CATALOG)
        assert await count_rows(session_factory, TradingPair) == len(BITPIN_CATALOG)

    @pytest.mark.asyncio
    async def test_second_call_is_idempotent(self, registry, bitpin_config, session_factory):
        first = await registry.get_or_create_exchange(bitpin_config)
        second = await registry.get_or_create_exchange(bitpin_config)

        assert second.is_new_exchange is False
        assert second.exchange.id == first.exchange.id
        assert {p.id for p in second.trading_pairs} == {p.id for p in first.trading_pairs}
        assert await count_rows(session_factory, Exchange) == 1
        assert await count_rows(session_factory, TradingPair) == len(BITPIN_CATALOG)

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_exchange(self, registry, bitpin_config, session_factory):
        results = await asyncio.gather(
            registry.get_or_create_exchange(bitpin_config),
            registry.get_or_create_exchange(bitpin_config),
        )

        assert results[0].exchange.id == results[1].exchange.id
        assert sorted(r.is_new_exchange for r in results) == [False, True]
        assert await count_rows(session_factory, Exchange) == 1

    @pytest.mark.asyncio
    async def test_both_exchanges(self, registry, bitpin_config, nobitex_config):
        bitpin = await registry.get_or_create_exchange(bitpin_config)
        nobitex = await registry.get_or_create_exchange(nobitex_config)

        assert isinstance(nobitex.instance, NobitexAdapter)
        assert bitpin.exchange.id != nobitex.exchange.id

    @pytest.mark.asyncio
    async def test_name_is_case_insensitive(self, registry, bitpin_config):
        bitpin_config.name = "BitPin"
        result = await registry.get_or_create_exchange(bitpin_config)

        assert result.exchange.name == "bitpin"

    @pytest.mark.asyncio
    async def test_catalog_growth_is_additive(
        self, session_factory, credentials, transport, settings
    ):
        small = ExchangeRegistry(session_factory, credentials, transport, settings)
        small.register("demo", lambda ctx: MagicMock(), demo_catalog("AAA_USDT", "BBB_USDT"))
        first = await small.get_or_create_exchange(DEMO_CONFIG)

        grown = ExchangeRegistry(session_factory, credentials, transport, settings)
        grown.register(
            "demo", lambda ctx: MagicMock(), demo_catalog("AAA_USDT", "BBB_USDT", "CCC_USDT")
        )
        second = await grown.get_or_create_exchange(DEMO_CONFIG)

        assert second.exchange.id == first.exchange.id
        assert [p.symbol for p in second.trading_pairs] == ["AAA_USDT", "BBB_USDT", "CCC_USDT"]
        kept = {p.symbol: p.id for p in first.trading_pairs}
        assert all(kept[p.symbol] == p.id for p in second.trading_pairs if p.symbol in kept)


# =============================================================
# FAILURES
# =============================================================

class TestRegistryFailures:
    """Registration errors, unknown names and rollbacks."""

    @pytest.mark.asyncio
    async def test_duplicate_registration(self, registry):
        with pytest.raises(RegistrationError) as exc_info:
            registry.register("bitpin", BitpinAdapter, BITPIN_CATALOG)
        assert exc_info.value.error.code == "DUPLICATE_REGISTRATION"

    @pytest.mark.asyncio
    async def test_catalog_of_another_exchange(self, registry):
        with pytest.raises(RegistrationError) as exc_info:
            registry.register("demo", BitpinAdapter, BITPIN_CATALOG)

        assert exc_info.value.error.code == "CATALOG_MISMATCH"
        assert not registry.is_supported("demo")

    @pytest.mark.asyncio
    async def test_unsupported_exchange(self, registry):
        config = ExchangeConfig(name="kraken", display_name="Kraken", base_url="https://k.test")

        with pytest.raises(UnsupportedExchangeError):
            await registry.get_or_create_exchange(config)

    @pytest.mark.asyncio
    async def test_constructor_failure(self, session_factory, credentials, transport, settings):
        def broken(context):
            raise RuntimeError("boom")

        registry = ExchangeRegistry(session_factory, credentials, transport, settings)
        registry.register("demo", broken, demo_catalog("AAA_USDT"))

        with pytest.raises(InternalError) as exc_info:
            await registry.get_or_create_exchange(DEMO_CONFIG)
        assert exc_info.value.error.code == "ADAPTER_CONSTRUCTION_FAILED"

    @pytest.mark.asyncio
    async def test_failed_reconcile_rolls_back(
        self, registry, bitpin_config, session_factory, monkeypatch
    ):
        async def failing_bulk_create(self, pairs):
            raise QueryError("TradingPairRepository", "bulk_create", "insert pairs", "disk full")

        monkeypatch.setattr(TradingPairRepository, "bulk_create", failing_bulk_create)

        with pytest.raises(InternalError) as exc_info:
            await registry.get_or_create_exchange(bitpin_config)

        assert exc_info.value.error.code == "STORAGE_ERROR"
        assert await count_rows(session_factory, Exchange) == 0
        assert await count_rows(session_factory, TradingPair) == 0


# =============================================================
# BOOTSTRAP
# =============================================================

class TestBootstrap:
    """Default wiring."""

    def test_default_registry_lists_builtins(self, settings, transport):
        registry = create_default_registry(MagicMock(), settings, transport)

        assert registry.list_supported() == ["bitpin", "nobitex"]
        assert registry.is_supported("NOBITEX")
        assert not registry.is_supported("binance")

    def test_default_configs(self, monkeypatch):
        monkeypatch.setenv("BITPIN_BASE_URL", "https://sandbox.bitpin.test/")
        monkeypatch.setenv("NOBITEX_RATE_LIMIT", "120")

        configs = default_exchange_configs()

        assert configs["bitpin"].base_url == "https://sandbox.bitpin.test"
        assert configs["nobitex"].rate_limit == 120
        assert configs["nobitex"].features["cancel_mode"] == "time_window"

    @pytest.mark.asyncio
    async def test_start_engine(self, settings, monkeypatch):
        levels = []
        monkeypatch.setattr(bootstrap, "configure_logging", levels.append)
        settings.log_level = "DEBUG"

        engine = await start_engine(settings, create_tables=True)
        try:
            result = await engine.registry.get_or_create_exchange(
                engine.exchange_configs["nobitex"]
            )
        finally:
            await engine.close()

        assert levels == ["DEBUG"]
        assert result.is_new_exchange
        assert isinstance(result.instance, NobitexAdapter)

    def test_configure_logging(self, monkeypatch):
        calls = []
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

        configure_logging("warning")
        configure_logging("nonsense")

        assert [c["level"] for c in calls] == [logging.WARNING, logging.INFO]
