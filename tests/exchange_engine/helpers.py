"""
Helpers shared by exchange engine tests.
"""

import json
import uuid
from typing import Any, Optional

from sqlalchemy import func, select

from exchange_engine.credentials import CredentialManager
from exchange_engine.transport import HttpResponse


def make_response(status: int, body: Any = None, exchange_id: str = "test") -> HttpResponse:
    """HttpResponse with a JSON (or raw bytes) body."""
    if body is None:
        raw = b""
    elif isinstance(body, bytes):
        raw = body
    else:
        raw = json.dumps(body).encode()
    return HttpResponse(status=status, body=raw, exchange_id=exchange_id, operation="test")


async def count_rows(session_factory, model) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(model))
        return result.scalar_one()


async def fetch_all(session_factory, model):
    async with session_factory() as session:
        result = await session.execute(select(model))
        return list(result.scalars().all())


async def store_credential(
    credentials: CredentialManager,
    user_id: uuid.UUID,
    exchange_id: uuid.UUID,
    access_key: Optional[str] = "access-token-1",
    refresh_key: Optional[str] = "refresh-token-1",
):
    return await credentials.store_credential(
        user_id=user_id,
        exchange_id=exchange_id,
        api_key="api-key-1234567890",
        secret_key="secret-key-1234567890",
        access_key=access_key,
        refresh_key=refresh_key,
    )
