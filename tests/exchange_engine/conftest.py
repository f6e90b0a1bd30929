"""
Shared fixtures for exchange engine tests.

Storage runs on in-memory SQLite (aiosqlite); the HTTP transport
is an AsyncMock so no test touches the network.
"""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from exchange_engine.bootstrap import create_default_registry
from exchange_engine.config import EngineSettings, ExchangeConfig
from exchange_engine.credentials import CredentialManager
from exchange_engine.secret_codec import SecretCodec
from exchange_engine.transport import HttpTransport
from storage.database import create_all_tables, create_database_engine, create_session_factory


TEST_ENCRYPTION_KEY = "test-master-key-for-credentials"


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(
        database_url="sqlite+aiosqlite://",
        encryption_key=TEST_ENCRYPTION_KEY,
    )


@pytest_asyncio.fixture
async def db_engine(settings):
    engine = create_database_engine(settings.database_url)
    await create_all_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def codec() -> SecretCodec:
    return SecretCodec(TEST_ENCRYPTION_KEY)


@pytest_asyncio.fixture
async def credentials(session_factory, codec) -> CredentialManager:
    return CredentialManager(session_factory, codec, access_token_ttl_seconds=900)


@pytest.fixture
def transport() -> MagicMock:
    mock = MagicMock(spec=HttpTransport)
    mock.request = AsyncMock()
    return mock


@pytest_asyncio.fixture
async def registry(session_factory, settings, transport, credentials):
    return create_default_registry(session_factory, settings, transport, credentials)


@pytest.fixture
def bitpin_config() -> ExchangeConfig:
    return ExchangeConfig(
        name="bitpin",
        display_name="Bitpin",
        base_url="https://api.bitpin.test",
    )


@pytest.fixture
def nobitex_config() -> ExchangeConfig:
    return ExchangeConfig(
        name="nobitex",
        display_name="Nobitex",
        base_url="https://api.nobitex.test",
    )


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest_asyncio.fixture
async def bitpin(registry, bitpin_config):
    """Onboarded Bitpin exchange (ExchangeResult)."""
    return await registry.get_or_create_exchange(bitpin_config)


@pytest_asyncio.fixture
async def nobitex(registry, nobitex_config):
    """Onboarded Nobitex exchange (ExchangeResult)."""
    return await registry.get_or_create_exchange(nobitex_config)
