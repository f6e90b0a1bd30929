"""
Exchange Domain Repositories.

============================================================
PURPOSE
============================================================
Data access for exchanges, trading pairs, credentials, order
history and snapshots.

============================================================
RULES
============================================================
- Every lookup of an "active" entity filters on is_active
- Repositories flush, callers commit
- Snapshot tables are append-only: no update methods exist

============================================================
"""

from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Set
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storage.models.exchange import (
    BalanceSnapshot,
    Exchange,
    ExchangeCredential,
    OrderBookSnapshot,
    OrderHistory,
    TradingPair,
)
from storage.repositories.base import BaseRepository


# ============================================================
# EXCHANGE
# ============================================================

class ExchangeRepository(BaseRepository[Exchange]):
    """Repository for exchange identity rows."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Exchange, "ExchangeRepository")

    async def create(self, exchange: Exchange) -> Exchange:
        return await self._add(exchange, {"field": "name", "value": exchange.name})

    async def get_active_by_name(self, name: str) -> Optional[Exchange]:
        stmt = select(Exchange).where(
            Exchange.name == name,
            Exchange.is_active.is_(True),
        )
        return await self._execute_scalar(stmt)

# ============================================================
# TRADING PAIR
# ============================================================

class TradingPairRepository(BaseRepository[TradingPair]):
    """Repository for the persisted trading-pair catalog."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, TradingPair, "TradingPairRepository")

    async def get_by_id(self, pair_id: UUID) -> Optional[TradingPair]:
        return await self._get_by_id(pair_id)

    async def get_by_exchange_and_symbol(
        self,
        exchange_id: UUID,
        symbol: str,
    ) -> Optional[TradingPair]:
        stmt = select(TradingPair).where(
            TradingPair.exchange_id == exchange_id,
            TradingPair.symbol == symbol,
            TradingPair.is_active.is_(True),
        )
        return await self._execute_scalar(stmt)

    async def get_by_exchange(self, exchange_id: UUID) -> List[TradingPair]:
        stmt = (
            select(TradingPair)
            .where(
                TradingPair.exchange_id == exchange_id,
                TradingPair.is_active.is_(True),
            )
            .order_by(TradingPair.symbol)
        )
        return await self._execute_query(stmt)

    async def get_symbols_list(
        self,
        exchange_id: UUID,
        symbols: Iterable[str],
    ) -> Set[str]:
        """Return which of the given symbols are already persisted as active."""
        wanted = list(symbols)
        if not wanted:
            return set()
        stmt = select(TradingPair).where(
            TradingPair.exchange_id == exchange_id,
            TradingPair.symbol.in_(wanted),
            TradingPair.is_active.is_(True),
        )
        return {pair.symbol for pair in await self._execute_query(stmt)}

    async def bulk_create(self, pairs: Sequence[TradingPair]) -> List[TradingPair]:
        if not pairs:
            return []
        return await self._add_all(pairs)


# ============================================================
# CREDENTIALS
# ============================================================

class ExchangeCredentialRepository(BaseRepository[ExchangeCredential]):
    """
    Repository for encrypted credentials.

    Never sees plaintext: encryption happens in the credential
    manager before any call into this class.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, ExchangeCredential, "ExchangeCredentialRepository")

    async def create(self, credential: ExchangeCredential) -> ExchangeCredential:
        return await self._add(credential, {"field": "label", "value": credential.label})

    async def get_latest_active(
        self,
        user_id: UUID,
        exchange_id: UUID,
    ) -> Optional[ExchangeCredential]:
        """Most recently updated active credential of one user on one exchange."""
        stmt = (
            select(ExchangeCredential)
            .where(
                ExchangeCredential.user_id == user_id,
                ExchangeCredential.exchange_id == exchange_id,
                ExchangeCredential.is_active.is_(True),
            )
            .order_by(
                ExchangeCredential.updated_at.desc(),
                ExchangeCredential.created_at.desc(),
            )
            .limit(1)
        )
        return await self._execute_scalar(stmt)

    async def get_by_label(
        self,
        user_id: UUID,
        exchange_id: UUID,
        label: str,
    ) -> Optional[ExchangeCredential]:
        stmt = select(ExchangeCredential).where(
            ExchangeCredential.user_id == user_id,
            ExchangeCredential.exchange_id == exchange_id,
            ExchangeCredential.label == label,
        )
        return await self._execute_scalar(stmt)

    async def update_secrets(
        self,
        credential_id: UUID,
        api_key: str,
        access_key: Optional[str],
        refresh_key: Optional[str],
        access_key_issued_at: Optional[datetime],
        secret_key: Optional[str] = None,
    ) -> int:
        """Overwrite ciphertext columns in place."""
        values = {
            "api_key": api_key,
            "access_key": access_key,
            "refresh_key": refresh_key,
            "access_key_issued_at": access_key_issued_at,
        }
        if secret_key is not None:
            values["secret_key"] = secret_key
        stmt = (
            update(ExchangeCredential)
            .where(ExchangeCredential.id == credential_id)
            .values(**values)
        )
        return await self._execute_update(stmt)

    async def update_last_used(self, credential_id: UUID, used_at: datetime) -> int:
        stmt = (
            update(ExchangeCredential)
            .where(ExchangeCredential.id == credential_id)
            .values(last_used=used_at)
        )
        return await self._execute_update(stmt)

    async def deactivate(self, credential_id: UUID, user_id: UUID) -> int:
        stmt = (
            update(ExchangeCredential)
            .where(
                ExchangeCredential.id == credential_id,
                ExchangeCredential.user_id == user_id,
            )
            .values(is_active=False)
        )
        return await self._execute_update(stmt)


# ============================================================
# ORDER HISTORY
# ============================================================

class OrderHistoryRepository(BaseRepository[OrderHistory]):
    """Repository for placed orders."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, OrderHistory, "OrderHistoryRepository")

    async def create(self, order: OrderHistory) -> OrderHistory:
        return await self._add(
            order, {"field": "client_order_id", "value": order.client_order_id}
        )

    async def get_for_user(
        self,
        order_id: UUID,
        user_id: UUID,
        exchange_id: UUID,
    ) -> Optional[OrderHistory]:
        """Order by internal id, only if it belongs to the user on that exchange."""
        stmt = select(OrderHistory).where(
            OrderHistory.id == order_id,
            OrderHistory.user_id == user_id,
            OrderHistory.exchange_id == exchange_id,
        )
        return await self._execute_scalar(stmt)

    async def list_by_user(
        self,
        user_id: UUID,
        exchange_id: UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> List[OrderHistory]:
        stmt = (
            select(OrderHistory)
            .where(
                OrderHistory.user_id == user_id,
                OrderHistory.exchange_id == exchange_id,
            )
            .order_by(OrderHistory.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return await self._execute_query(stmt)


# ============================================================
# SNAPSHOTS
# ============================================================

class BalanceSnapshotRepository(BaseRepository[BalanceSnapshot]):
    """Append-only balance captures."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, BalanceSnapshot, "BalanceSnapshotRepository")

    async def create_many(self, snapshots: Sequence[BalanceSnapshot]) -> List[BalanceSnapshot]:
        if not snapshots:
            return []
        return await self._add_all(snapshots)


class OrderBookSnapshotRepository(BaseRepository[OrderBookSnapshot]):
    """Append-only order book captures."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, OrderBookSnapshot, "OrderBookSnapshotRepository")

    async def create(self, snapshot: OrderBookSnapshot) -> OrderBookSnapshot:
        return await self._add(snapshot)
