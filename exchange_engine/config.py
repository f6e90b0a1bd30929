"""
Exchange Engine - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the exchange engine.

Values come from environment variables, with a .env file
loaded through python-dotenv when present.

============================================================
ENVIRONMENT
============================================================
DATABASE_URL / DB_*            storage connection
ENCRYPTION_KEY                 secret codec master key
HTTP_TIMEOUT_SECONDS           total request timeout
HTTP_CONNECT_TIMEOUT_SECONDS   connect timeout
ACCESS_TOKEN_TTL_SECONDS       proactive renewal hint
FILLED_ORDER_STATUS            canonical status for "filled"
<NAME>_BASE_URL                per-exchange endpoint override
<NAME>_RATE_LIMIT              per-exchange requests/minute
LOG_LEVEL                      root log level of start_engine

============================================================
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from exchange_engine.types import OrderStatus
from storage.database import get_database_url


logger = logging.getLogger(__name__)


# ============================================================
# TIMEOUT CONFIGURATION
# ============================================================

@dataclass
class TimeoutConfig:
    """
    HTTP timeout configuration.
    """

    connect_timeout_seconds: float = 5.0
    """Connection timeout."""

    total_timeout_seconds: float = 30.0
    """Upper bound for one request, connect to last byte."""

    @classmethod
    def from_env(cls) -> "TimeoutConfig":
        return cls(
            connect_timeout_seconds=float(
                os.environ.get("HTTP_CONNECT_TIMEOUT_SECONDS", cls.connect_timeout_seconds)
            ),
            total_timeout_seconds=float(
                os.environ.get("HTTP_TIMEOUT_SECONDS", cls.total_timeout_seconds)
            ),
        )


# ============================================================
# EXCHANGE CONFIGURATION
# ============================================================

@dataclass
class ExchangeConfig:
    """
    Configuration used to onboard one exchange.

    Becomes the Exchange row on first resolution.
    """

    name: str
    """Registry name, lower-case."""

    display_name: str
    """Human-readable name."""

    base_url: str
    """REST API base URL."""

    rate_limit: int = 1000
    """Requests per minute."""

    features: Dict[str, Any] = field(default_factory=dict)
    """Free-form feature flags stored on the Exchange row."""

    @classmethod
    def from_env(
        cls,
        name: str,
        display_name: str,
        base_url: str,
        rate_limit: int = 1000,
        features: Optional[Dict[str, Any]] = None,
    ) -> "ExchangeConfig":
        """
        Create config, letting <NAME>_* environment variables override
        the defaults given here.
        """
        prefix = name.upper()
        return cls(
            name=name.lower(),
            display_name=display_name,
            base_url=os.environ.get(f"{prefix}_BASE_URL", base_url).rstrip("/"),
            rate_limit=int(os.environ.get(f"{prefix}_RATE_LIMIT", rate_limit)),
            features=dict(features or {}),
        )


# ============================================================
# MASTER CONFIGURATION
# ============================================================

@dataclass
class EngineSettings:
    """
    Master configuration for the exchange engine.
    """

    database_url: str
    """Async SQLAlchemy URL."""

    encryption_key: str = field(repr=False)
    """Process-wide master key for the secret codec."""

    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)

    access_token_ttl_seconds: int = 900
    """Expected access-token lifetime; 15 minutes on Bitpin."""

    filled_status: OrderStatus = OrderStatus.FILLED
    """Canonical status for an exchange-native "filled" order."""

    log_level: str = "INFO"
    """Root log level applied by start_engine."""

    @classmethod
    def from_env(cls) -> "EngineSettings":
        load_dotenv()

        filled = os.environ.get("FILLED_ORDER_STATUS", OrderStatus.FILLED.value)
        try:
            filled_status = OrderStatus(filled.strip().lower())
        except ValueError:
            logger.warning(f"Ignoring unknown FILLED_ORDER_STATUS={filled!r}")
            filled_status = OrderStatus.FILLED

        encryption_key = os.environ.get("ENCRYPTION_KEY", "")
        if not encryption_key:
            logger.warning("ENCRYPTION_KEY not set; credential operations will fail")

        return cls(
            database_url=get_database_url(),
            encryption_key=encryption_key,
            timeouts=TimeoutConfig.from_env(),
            access_token_ttl_seconds=int(os.environ.get("ACCESS_TOKEN_TTL_SECONDS", 900)),
            filled_status=filled_status,
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
        )


def configure_logging(level: str = "INFO") -> None:
    """Root log format for scripts and local runs."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
