"""
Exchange Engine - Adapters Package.

============================================================
PURPOSE
============================================================
Exchange adapter implementations.

AVAILABLE ADAPTERS:
- BitpinAdapter: Bitpin spot API (bearer token, renewable)
- NobitexAdapter: Nobitex spot API (token prefix, long-lived)

============================================================
"""

from exchange_engine.adapters.base import AdapterContext, ExchangeAdapter
from exchange_engine.adapters.bitpin import BitpinAdapter
from exchange_engine.adapters.nobitex import NobitexAdapter

__all__ = [
    "AdapterContext",
    "ExchangeAdapter",
    "BitpinAdapter",
    "NobitexAdapter",
]
