"""
Exchange Engine - Credential Lifecycle Manager.

============================================================
PURPOSE
============================================================
Retrieve, decrypt, store and renew per-user exchange
credentials, transparently to adapters.

============================================================
RULES
============================================================
- Encrypt before every write, decrypt before every external use
- Plaintext lives only in DecryptedCredential, never in logs
- Lookups are always scoped by (user, exchange)
- Renewal is inline and on demand, never on a timer
- Credentials are deactivated, never deleted

============================================================
"""

import dataclasses
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from exchange_engine.errors import DecryptionFailedError, NotFoundError, storage_errors
from exchange_engine.logging_utils import mask_value
from exchange_engine.secret_codec import SecretCodec
from exchange_engine.types import CredentialSummary, DecryptedCredential, TokenPair
from storage.database import transaction_scope
from storage.models.exchange import ExchangeCredential
from storage.repositories.exchange import ExchangeCredentialRepository


logger = logging.getLogger(__name__)


# Renew this long before the expected expiry
RENEWAL_MARGIN_SECONDS = 60

TokenRefresher = Callable[[DecryptedCredential], Awaitable[TokenPair]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class CredentialManager:
    """
    Credential lifecycle over the credential repository.

    Each public method runs in its own transaction; none of them
    holds a session across a network call.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        codec: SecretCodec,
        access_token_ttl_seconds: int = 900,
    ):
        self._session_factory = session_factory
        self._codec = codec
        self._ttl = timedelta(seconds=access_token_ttl_seconds)

    # =========================================================
    # READ
    # =========================================================

    async def get_by_user_and_exchange(
        self,
        user_id: UUID,
        exchange_id: UUID,
    ) -> DecryptedCredential:
        """
        Most recent active credential of the user on the exchange, decrypted.

        Raises:
            NotFoundError: No active credential
            DecryptionFailedError: Stored ciphertext unreadable with
                the configured key
        """
        with storage_errors(None, "get_credential"):
            async with transaction_scope(self._session_factory) as session:
                row = await ExchangeCredentialRepository(session).get_latest_active(
                    user_id, exchange_id
                )

        if row is None:
            raise NotFoundError(
                message=f"No active credential for user {user_id} on exchange {exchange_id}",
                code="CREDENTIAL_NOT_FOUND",
                operation="get_credential",
            )

        return self._decrypt(row)

    def _decrypt(self, row: ExchangeCredential) -> DecryptedCredential:
        try:
            return DecryptedCredential(
                id=row.id,
                user_id=row.user_id,
                exchange_id=row.exchange_id,
                label=row.label,
                is_testnet=row.is_testnet,
                api_key=self._codec.decrypt(row.api_key),
                secret_key=self._codec.decrypt(row.secret_key),
                access_key=self._codec.decrypt_optional(row.access_key),
                refresh_key=self._codec.decrypt_optional(row.refresh_key),
                access_key_issued_at=row.access_key_issued_at,
            )
        except DecryptionFailedError as e:
            logger.error(f"Cannot decrypt credential {row.id}: {e.error.code}")
            raise

    # =========================================================
    # WRITE
    # =========================================================

    async def store_credential(
        self,
        user_id: UUID,
        exchange_id: UUID,
        api_key: str,
        secret_key: str,
        label: str = "Default",
        access_key: Optional[str] = None,
        refresh_key: Optional[str] = None,
        is_testnet: bool = False,
    ) -> CredentialSummary:
        """
        Create the (user, exchange, label) credential, or overwrite its
        secrets in place if it already exists.
        """
        issued_at = _utc_now() if access_key else None

        with storage_errors(None, "store_credential"):
            async with transaction_scope(self._session_factory) as session:
                repo = ExchangeCredentialRepository(session)
                row = await repo.get_by_label(user_id, exchange_id, label)
                if row is None:
                    row = await repo.create(
                        ExchangeCredential(
                            user_id=user_id,
                            exchange_id=exchange_id,
                            label=label,
                            api_key=self._codec.encrypt(api_key),
                            secret_key=self._codec.encrypt(secret_key),
                            access_key=self._codec.encrypt_optional(access_key),
                            refresh_key=self._codec.encrypt_optional(refresh_key),
                            access_key_issued_at=issued_at,
                            is_testnet=is_testnet,
                            is_active=True,
                            last_used=None,
                        )
                    )
                    logger.info(f"Stored new credential {row.id} for user {user_id}")
                else:
                    row.api_key = self._codec.encrypt(api_key)
                    row.secret_key = self._codec.encrypt(secret_key)
                    row.access_key = self._codec.encrypt_optional(access_key)
                    row.refresh_key = self._codec.encrypt_optional(refresh_key)
                    row.access_key_issued_at = issued_at
                    row.is_testnet = is_testnet
                    row.is_active = True
                    await session.flush()
                    logger.info(f"Replaced secrets of credential {row.id} for user {user_id}")

                return CredentialSummary(
                    id=row.id,
                    user_id=row.user_id,
                    exchange_id=row.exchange_id,
                    label=row.label,
                    api_key_masked=mask_value(api_key),
                    is_testnet=row.is_testnet,
                    is_active=row.is_active,
                    last_used=row.last_used,
                )

    async def rotate_tokens(
        self,
        credential: DecryptedCredential,
        tokens: TokenPair,
    ) -> DecryptedCredential:
        """
        Re-encrypt and persist access, refresh and API keys.

        A refresh key missing from ``tokens`` keeps the current one.
        """
        refresh_key = tokens.refresh_key or credential.refresh_key
        issued_at = _utc_now()

        with storage_errors(None, "rotate_tokens"):
            async with transaction_scope(self._session_factory) as session:
                updated = await ExchangeCredentialRepository(session).update_secrets(
                    credential.id,
                    api_key=self._codec.encrypt(credential.api_key),
                    access_key=self._codec.encrypt(tokens.access_key),
                    refresh_key=self._codec.encrypt_optional(refresh_key),
                    access_key_issued_at=issued_at,
                )

        if not updated:
            raise NotFoundError(
                message=f"Credential {credential.id} disappeared during rotation",
                code="CREDENTIAL_NOT_FOUND",
                operation="rotate_tokens",
            )

        logger.info(f"Rotated access token of credential {credential.id}")
        return dataclasses.replace(
            credential,
            access_key=tokens.access_key,
            refresh_key=refresh_key,
            access_key_issued_at=issued_at,
        )

    async def mark_used(self, credential_id: UUID) -> None:
        with storage_errors(None, "mark_used"):
            async with transaction_scope(self._session_factory) as session:
                await ExchangeCredentialRepository(session).update_last_used(
                    credential_id, _utc_now()
                )

    async def deactivate(self, credential_id: UUID, user_id: UUID) -> bool:
        """Soft-deactivate one of the user's credentials."""
        with storage_errors(None, "deactivate_credential"):
            async with transaction_scope(self._session_factory) as session:
                updated = await ExchangeCredentialRepository(session).deactivate(
                    credential_id, user_id
                )
        if updated:
            logger.info(f"Deactivated credential {credential_id}")
        return bool(updated)

    # =========================================================
    # RENEWAL
    # =========================================================

    def needs_renewal(self, credential: DecryptedCredential) -> bool:
        """Proactive renewal hint from the expected token TTL."""
        if not credential.access_key or credential.access_key_issued_at is None:
            return True
        age = _utc_now() - _as_utc(credential.access_key_issued_at)
        return age >= self._ttl - timedelta(seconds=RENEWAL_MARGIN_SECONDS)

    async def renew_access_token(
        self,
        user_id: UUID,
        exchange_id: UUID,
        refresher: TokenRefresher,
    ) -> DecryptedCredential:
        """
        Obtain a new access token through ``refresher`` and persist it.

        ``refresher`` is the exchange-specific refresh call supplied by
        the adapter. It runs outside any database transaction.
        """
        credential = await self.get_by_user_and_exchange(user_id, exchange_id)
        tokens = await refresher(credential)
        return await self.rotate_tokens(credential, tokens)
