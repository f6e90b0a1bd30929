"""
Exchange Engine - Bootstrap.

============================================================
PURPOSE
============================================================
Process-start wiring: the constructor table, default exchange
configs, and a helper that builds every long-lived object from
EngineSettings.

============================================================
USAGE
============================================================
```python
engine = await start_engine()
try:
    result = await engine.registry.get_or_create_exchange(
        engine.exchange_configs["bitpin"]
    )
    balances = await result.instance.get_balance(user_id)
finally:
    await engine.close()
```

============================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from exchange_engine.adapters.bitpin import BITPIN_BASE_URL, BitpinAdapter
from exchange_engine.adapters.nobitex import NOBITEX_BASE_URL, NobitexAdapter
from exchange_engine.catalog import BITPIN_CATALOG, NOBITEX_CATALOG
from exchange_engine.config import EngineSettings, ExchangeConfig, configure_logging
from exchange_engine.credentials import CredentialManager
from exchange_engine.registry import AdapterBinding, ExchangeRegistry
from exchange_engine.secret_codec import SecretCodec
from exchange_engine.transport import HttpTransport
from storage.database import create_all_tables, create_database_engine, create_session_factory


logger = logging.getLogger(__name__)


ADAPTER_BINDINGS: Dict[str, AdapterBinding] = {
    "bitpin": AdapterBinding(constructor=BitpinAdapter, catalog=BITPIN_CATALOG),
    "nobitex": AdapterBinding(constructor=NobitexAdapter, catalog=NOBITEX_CATALOG),
}


def default_exchange_configs() -> Dict[str, ExchangeConfig]:
    """Onboarding configs, overridable through <NAME>_* env variables."""
    return {
        "bitpin": ExchangeConfig.from_env(
            "bitpin",
            display_name="Bitpin",
            base_url=BITPIN_BASE_URL,
            features={"token_renewal": True, "cancel_mode": "by_order_id"},
        ),
        "nobitex": ExchangeConfig.from_env(
            "nobitex",
            display_name="Nobitex",
            base_url=NOBITEX_BASE_URL,
            features={"token_renewal": False, "cancel_mode": "time_window"},
        ),
    }


def create_default_registry(
    session_factory: async_sessionmaker[AsyncSession],
    settings: EngineSettings,
    transport: HttpTransport,
    credentials: Optional[CredentialManager] = None,
) -> ExchangeRegistry:
    """Registry with every built-in adapter bound."""
    if credentials is None:
        credentials = CredentialManager(
            session_factory,
            SecretCodec(settings.encryption_key),
            access_token_ttl_seconds=settings.access_token_ttl_seconds,
        )

    registry = ExchangeRegistry(session_factory, credentials, transport, settings)
    for name, binding in ADAPTER_BINDINGS.items():
        registry.register(name, binding.constructor, binding.catalog)
    return registry


@dataclass
class ExchangeEngine:
    """Long-lived objects of one process."""

    settings: EngineSettings
    db_engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    transport: HttpTransport
    credentials: CredentialManager
    registry: ExchangeRegistry
    exchange_configs: Dict[str, ExchangeConfig] = field(default_factory=dict)

    async def close(self) -> None:
        await self.transport.close()
        await self.db_engine.dispose()
        logger.info("Exchange engine stopped")


async def start_engine(
    settings: Optional[EngineSettings] = None,
    create_tables: bool = False,
) -> ExchangeEngine:
    """Build the engine from settings (environment by default)."""
    settings = settings or EngineSettings.from_env()
    configure_logging(settings.log_level)

    db_engine = create_database_engine(settings.database_url)
    if create_tables:
        await create_all_tables(db_engine)
    session_factory = create_session_factory(db_engine)

    transport = HttpTransport(settings.timeouts)
    await transport.connect()

    credentials = CredentialManager(
        session_factory,
        SecretCodec(settings.encryption_key),
        access_token_ttl_seconds=settings.access_token_ttl_seconds,
    )
    registry = create_default_registry(session_factory, settings, transport, credentials)

    logger.info(f"Exchange engine started with {registry.list_supported()}")
    return ExchangeEngine(
        settings=settings,
        db_engine=db_engine,
        session_factory=session_factory,
        transport=transport,
        credentials=credentials,
        registry=registry,
        exchange_configs=default_exchange_configs(),
    )
