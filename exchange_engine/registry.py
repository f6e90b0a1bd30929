"""
Exchange Engine - Exchange Registry.

============================================================
PURPOSE
============================================================
The single entry point other layers use to obtain a ready
adapter for an exchange.

- Binds exchange names to adapter constructors and catalogs
- Ensures the Exchange row exists exactly once
- Reconciles the static catalog into TradingPair rows
- Constructs the adapter only after the catalog is committed

============================================================
USAGE
============================================================
```python
registry = ExchangeRegistry(session_factory, credentials, transport, settings)
registry.register("bitpin", BitpinAdapter, BITPIN_CATALOG)

result = await registry.get_or_create_exchange(bitpin_config)
await result.instance.place_order(request, user_id)
```

One registry is built at process start and passed to every
consumer. There is no module-level default instance.

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from exchange_engine.adapters.base import AdapterContext, ExchangeAdapter
from exchange_engine.catalog import SymbolCatalog
from exchange_engine.config import EngineSettings, ExchangeConfig
from exchange_engine.credentials import CredentialManager
from exchange_engine.errors import (
    ExchangeException,
    InternalError,
    RegistrationError,
    UnsupportedExchangeError,
    storage_errors,
)
from exchange_engine.transport import HttpTransport
from storage.database import transaction_scope
from storage.models.exchange import Exchange, TradingPair
from storage.repositories.exceptions import DuplicateRecordError
from storage.repositories.exchange import ExchangeRepository, TradingPairRepository


logger = logging.getLogger(__name__)


AdapterConstructor = Callable[[AdapterContext], ExchangeAdapter]


@dataclass
class AdapterBinding:
    """Constructor and catalog bound to one exchange name."""

    constructor: AdapterConstructor
    catalog: SymbolCatalog


@dataclass
class ExchangeResult:
    """What get_or_create_exchange hands back."""

    exchange: Exchange
    trading_pairs: List[TradingPair]
    instance: ExchangeAdapter
    is_new_exchange: bool


class ExchangeRegistry:
    """
    Registry of exchange adapters.

    Bindings are written once during process start and only read
    afterwards. get_or_create_exchange may be called concurrently;
    calls for the same name are serialised in-process, and the
    partial unique index on active exchange names backs that up
    across processes.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        credentials: CredentialManager,
        transport: HttpTransport,
        settings: EngineSettings,
    ):
        self._session_factory = session_factory
        self._credentials = credentials
        self._transport = transport
        self._settings = settings
        self._bindings: Dict[str, AdapterBinding] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    # --------------------------------------------------------
    # REGISTRATION
    # --------------------------------------------------------

    def register(
        self,
        name: str,
        constructor: AdapterConstructor,
        catalog: SymbolCatalog,
    ) -> None:
        """
        Bind a name to an adapter constructor and its catalog.

        Raises:
            RegistrationError: The name is already registered, or the
                catalog belongs to another exchange
        """
        key = name.lower()
        if catalog.exchange_name.lower() != key:
            raise RegistrationError(
                message=f"Catalog of {catalog.exchange_name!r} cannot be bound to {key!r}",
                code="CATALOG_MISMATCH",
                exchange_id=key,
                operation="register",
            )
        if key in self._bindings:
            raise RegistrationError(
                message=f"Exchange {key!r} is already registered",
                code="DUPLICATE_REGISTRATION",
                exchange_id=key,
                operation="register",
            )
        self._bindings[key] = AdapterBinding(constructor=constructor, catalog=catalog)
        self._locks[key] = asyncio.Lock()
        logger.info(f"Registered exchange adapter: {key} ({len(catalog)} pairs)")

    def list_supported(self) -> List[str]:
        return sorted(self._bindings)

    def is_supported(self, name: str) -> bool:
        return name.lower() in self._bindings

    # --------------------------------------------------------
    # RESOLUTION
    # --------------------------------------------------------

    async def get_or_create_exchange(self, config: ExchangeConfig) -> ExchangeResult:
        """
        Resolve a ready adapter, onboarding the exchange if needed.

        1. Find the active Exchange by name, creating it if absent
        2. Insert catalog pairs not yet persisted (additive only)
        3. Commit; any failure rolls the whole onboarding back
        4. Construct the adapter

        Raises:
            UnsupportedExchangeError: No binding for config.name
            InternalError: Storage failure or constructor failure
        """
        name = config.name.lower()
        binding = self._bindings.get(name)
        if binding is None:
            raise UnsupportedExchangeError(
                message=f"Exchange {name!r} is not supported",
                exchange_id=name,
                operation="get_or_create_exchange",
            )

        async with self._locks[name]:
            with storage_errors(name, "get_or_create_exchange"):
                try:
                    exchange, pairs, is_new = await self._reconcile(name, config, binding.catalog)
                except DuplicateRecordError:
                    # Another process onboarded the same exchange first
                    logger.warning(f"Concurrent onboarding of {name} detected, re-reading")
                    exchange, pairs, is_new = await self._reconcile(name, config, binding.catalog)

        context = AdapterContext(
            exchange_id=exchange.id,
            config=config,
            catalog=binding.catalog,
            session_factory=self._session_factory,
            credentials=self._credentials,
            transport=self._transport,
            settings=self._settings,
        )
        try:
            instance = binding.constructor(context)
        except ExchangeException:
            raise
        except Exception as e:
            logger.error(f"Adapter constructor for {name} failed: {e}")
            raise InternalError(
                message=f"Could not construct {name} adapter: {e}",
                code="ADAPTER_CONSTRUCTION_FAILED",
                exchange_id=name,
                operation="get_or_create_exchange",
            ) from e

        return ExchangeResult(
            exchange=exchange,
            trading_pairs=pairs,
            instance=instance,
            is_new_exchange=is_new,
        )

    async def _reconcile(
        self,
        name: str,
        config: ExchangeConfig,
        catalog: SymbolCatalog,
    ) -> Tuple[Exchange, List[TradingPair], bool]:
        async with transaction_scope(self._session_factory) as session:
            exchanges = ExchangeRepository(session)
            pair_repo = TradingPairRepository(session)

            exchange = await exchanges.get_active_by_name(name)
            is_new = exchange is None
            if is_new:
                exchange = await exchanges.create(
                    Exchange(
                        name=name,
                        display_name=config.display_name,
                        base_url=config.base_url,
                        rate_limit=config.rate_limit,
                        features=dict(config.features),
                        is_active=True,
                    )
                )
                logger.info(f"Created exchange {name} ({exchange.id})")

            catalog_pairs = catalog.list_pairs()
            existing = await pair_repo.get_symbols_list(exchange.id, [p.symbol for p in catalog_pairs])
            missing = [pair for pair in catalog_pairs if pair.symbol not in existing]

            await pair_repo.bulk_create([
                TradingPair(
                    exchange_id=exchange.id,
                    symbol=pair.symbol,
                    base_asset=pair.base_asset,
                    quote_asset=pair.quote_asset,
                    tick_size=pair.tick_size,
                    step_size=pair.step_size,
                    min_quantity=pair.min_quantity,
                    max_quantity=pair.max_quantity,
                    is_active=True,
                )
                for pair in missing
            ])
            if missing:
                logger.info(f"Added {len(missing)} trading pairs to {name}")

            pairs = await pair_repo.get_by_exchange(exchange.id)

        return exchange, pairs, is_new
