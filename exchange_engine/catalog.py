"""
Exchange Engine - Symbol Catalog.

============================================================
PURPOSE
============================================================
Authoritative, hardcoded list of tradable pairs per exchange,
with tick and step sizes. Pure data source: no network calls.

The registry turns a catalog into persisted TradingPair rows.

============================================================
"""

from typing import Dict, Iterable, List, Tuple

from exchange_engine.translator import parse_symbol
from exchange_engine.types import TradingPairSpec


class SymbolCatalog:
    """Static pair table of one exchange, keyed by native symbol."""

    def __init__(self, exchange_name: str, pairs: Iterable[TradingPairSpec]):
        self._exchange_name = exchange_name
        self._pairs: Dict[str, TradingPairSpec] = {}
        for pair in pairs:
            if pair.symbol in self._pairs:
                raise ValueError(f"Duplicate symbol {pair.symbol} in {exchange_name} catalog")
            self._pairs[pair.symbol] = pair

    @classmethod
    def from_table(
        cls,
        exchange_name: str,
        rows: Iterable[Tuple[str, float, float]],
    ) -> "SymbolCatalog":
        """
        Build from (symbol, tick_size, step_size) rows.

        Base and quote are parsed from the symbol. The minimum
        quantity is one step; max_quantity 0 means unbounded.
        """
        pairs = []
        for symbol, tick_size, step_size in rows:
            base, quote = parse_symbol(symbol)
            pairs.append(
                TradingPairSpec(
                    symbol=symbol,
                    base_asset=base,
                    quote_asset=quote,
                    tick_size=tick_size,
                    step_size=step_size,
                    min_quantity=step_size,
                    max_quantity=0.0,
                )
            )
        return cls(exchange_name, pairs)

    @property
    def exchange_name(self) -> str:
        return self._exchange_name

    def list_pairs(self) -> List[TradingPairSpec]:
        return list(self._pairs.values())

    def __len__(self) -> int:
        return len(self._pairs)


# ============================================================
# BITPIN
# ============================================================

# (symbol, tick_size, step_size)
_BITPIN_PAIRS = [
    ("BTC_IRT", 1, 1e-8),
    ("BTC_USDT", 0.01, 1e-8),
    ("ETH_IRT", 1, 0.00001),
    ("ETH_USDT", 0.01, 0.00001),
    ("XRP_USDT", 0.00001, 0.0001),
    ("USDT_IRT", 1, 0.01),
    ("USDC_IRT", 1, 0.01),
    ("SOL_IRT", 1, 0.0001),
    ("SOL_USDT", 0.001, 0.0001),
    ("BNB_IRT", 1, 0.0001),
    ("BNB_USDT", 0.001, 0.0001),
    ("ADA_IRT", 1, 0.01),
    ("ADA_USDT", 0.0001, 0.01),
    ("DOGE_IRT", 1, 0.0001),
    ("DOGE_USDT", 0.00001, 0.0001),
    ("TRX_IRT", 1, 0.01),
    ("TRX_USDT", 0.0001, 0.01),
    ("LINK_USDT", 0.0001, 0.0001),
    ("DOT_IRT", 1, 0.0001),
    ("DOT_USDT", 0.0001, 0.0001),
    ("LTC_IRT", 1, 0.001),
    ("LTC_USDT", 0.001, 0.001),
    ("AVAX_IRT", 1, 0.0001),
    ("AVAX_USDT", 0.001, 0.0001),
    ("UNI_IRT", 1, 0.0001),
    ("UNI_USDT", 0.0001, 0.0001),
    ("TON_USDT", 0.0001, 0.0001),
    ("ATOM_USDT", 0.0001, 0.0001),
    ("XLM_USDT", 0.0001, 0.01),
    ("BCH_IRT", 1, 0.0001),
    ("BCH_USDT", 0.01, 0.0001),
]

BITPIN_CATALOG = SymbolCatalog.from_table("bitpin", _BITPIN_PAIRS)


# ============================================================
# NOBITEX
# ============================================================

_NOBITEX_PAIRS = [
    ("BTCIRT", 1, 1e-8),
    ("ETHIRT", 1, 1e-8),
    ("USDTIRT", 1, 0.0001),
    ("BNBIRT", 1, 0.0001),
    ("USDCIRT", 1, 0.0001),
    ("BTCUSDT", 0.01, 1e-8),
    ("ETHUSDT", 0.01, 1e-8),
    ("LTCUSDT", 0.01, 0.001),
    ("XRPUSDT", 0.01, 0.0001),
    ("BCHUSDT", 0.01, 0.001),
    ("BNBUSDT", 0.01, 0.0001),
    ("EOSUSDT", 0.01, 0.0001),
    ("XLMUSDT", 0.01, 0.01),
    ("ETCUSDT", 0.01, 0.0001),
    ("TRXUSDT", 0.01, 0.01),
    ("DOGEUSDT", 0.01, 0.0001),
    ("UNIUSDT", 0.01, 0.0001),
    ("DAIUSDT", 0.01, 0.0001),
    ("LINKUSDT", 0.01, 0.0001),
    ("DOTUSDT", 0.01, 0.0001),
]

NOBITEX_CATALOG = SymbolCatalog.from_table("nobitex", _NOBITEX_PAIRS)
