"""
Exchange Engine - HTTP Transport.

============================================================
PURPOSE
============================================================
The single outbound HTTP client for every adapter.

- Builds the Authorization header for the requested scheme
- Sends JSON requests through one pooled aiohttp session
- Returns status + raw body; interpreting it is the adapter's job
- Logs every request/response through AdapterLogger (masked)

============================================================
FAILURE MAPPING
============================================================
- Timeout             -> UpstreamError(code=TIMEOUT)
- aiohttp.ClientError -> UpstreamError(code=NETWORK)
- Task cancellation   -> propagates; the in-flight call is aborted

No retries happen here.

============================================================
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

import aiohttp

from exchange_engine.config import TimeoutConfig
from exchange_engine.errors import AuthExpiredError, UpstreamError
from exchange_engine.logging_utils import AdapterLogger
from exchange_engine.types import DecryptedCredential


logger = logging.getLogger(__name__)


# ============================================================
# AUTHENTICATION
# ============================================================

class AuthScheme(Enum):
    """Authorization header shape."""

    API_KEY_HEADER = "api_key_header"
    """Authorization: <api key>"""

    BEARER_ACCESS_TOKEN = "bearer_access_token"
    """Authorization: Bearer <access token>"""

    TOKEN_PREFIX_ACCESS_TOKEN = "token_prefix_access_token"
    """Authorization: Token <access token, else api key>"""


def build_auth_headers(
    scheme: AuthScheme,
    credential: DecryptedCredential,
) -> Dict[str, str]:
    """
    Build authorization headers for one request.

    Raises:
        AuthExpiredError: The scheme needs an access token the
            credential does not hold
    """
    if scheme is AuthScheme.API_KEY_HEADER:
        return {"Authorization": credential.api_key}

    if scheme is AuthScheme.BEARER_ACCESS_TOKEN:
        if not credential.access_key:
            raise AuthExpiredError(
                message="Credential has no access token",
                code="ACCESS_TOKEN_MISSING",
            )
        return {
            "Authorization": f"Bearer {credential.access_key}",
            "X-Timestamp": str(int(time.time())),
        }

    if scheme is AuthScheme.TOKEN_PREFIX_ACCESS_TOKEN:
        token = credential.access_key or credential.api_key
        return {"Authorization": f"Token {token}"}

    raise ValueError(f"Unsupported auth scheme: {scheme}")


# ============================================================
# RESPONSE
# ============================================================

@dataclass
class HttpResponse:
    """Status and raw body of one exchange reply."""

    status: int
    body: bytes
    headers: Dict[str, str] = field(default_factory=dict)
    exchange_id: Optional[str] = None
    operation: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """
        Decode the body as JSON.

        Raises:
            UpstreamError: Body is not JSON
        """
        try:
            return json.loads(self.body)
        except ValueError as e:
            raise UpstreamError(
                message="Exchange returned a non-JSON body",
                code="INVALID_RESPONSE",
                exchange_id=self.exchange_id,
                operation=self.operation,
                http_status=self.status,
                exchange_message=self.text,
            ) from e

    def raise_for_status(self, *accepted: int) -> None:
        """
        Raise UpstreamError unless the status is accepted.

        With no arguments, any 2xx is accepted.
        """
        allowed = self.status in accepted if accepted else self.ok
        if not allowed:
            raise UpstreamError(
                message=f"Unexpected HTTP status {self.status}",
                code=f"HTTP_{self.status}",
                exchange_id=self.exchange_id,
                operation=self.operation,
                http_status=self.status,
                exchange_message=self.text,
            )


# ============================================================
# TRANSPORT
# ============================================================

class HttpTransport:
    """
    Pooled aiohttp client shared by all adapters.

    Holds no per-request state; credentials are passed per call.
    Use as an async context manager or call close() on shutdown.
    """

    def __init__(
        self,
        timeouts: Optional[TimeoutConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._timeouts = timeouts or TimeoutConfig()
        self._session = session
        self._owns_session = session is None
        self._loggers: Dict[str, AdapterLogger] = {}

    async def __aenter__(self) -> "HttpTransport":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def connect(self) -> None:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(
                connect=self._timeouts.connect_timeout_seconds,
                total=self._timeouts.total_timeout_seconds,
            )
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _logger_for(self, exchange_id: str) -> AdapterLogger:
        if exchange_id not in self._loggers:
            self._loggers[exchange_id] = AdapterLogger(exchange_id)
        return self._loggers[exchange_id]

    async def request(
        self,
        method: str,
        base_url: str,
        path: str,
        *,
        exchange_id: str,
        operation: str,
        auth: Optional[AuthScheme] = None,
        credential: Optional[DecryptedCredential] = None,
        json_body: Optional[Any] = None,
        params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        """
        Send one request and return its status and raw body.

        Args:
            method: HTTP method
            base_url: Exchange base URL
            path: Endpoint path, with or without leading slash
            exchange_id: Exchange name, for logging and errors
            operation: Operation name, for logging and errors
            auth: Authorization scheme, None for public endpoints
            credential: Decrypted credential, required with auth
            json_body: JSON request body
            params: Query parameters
            timeout: Per-call total timeout override in seconds

        Raises:
            UpstreamError: Network failure or timeout
            AuthExpiredError: Scheme needs a token the credential lacks
        """
        await self.connect()

        url = f"{base_url.rstrip('/')}/{path.lstrip('/')}"
        headers = {"Accept": "application/json"}
        if json_body is not None:
            headers["Content-Type"] = "application/json"
        if auth is not None:
            if credential is None:
                raise ValueError("auth scheme given without a credential")
            headers.update(build_auth_headers(auth, credential))

        adapter_logger = self._logger_for(exchange_id)
        request_id = adapter_logger.log_request(
            operation=operation,
            method=method,
            endpoint=url,
            headers=headers,
            body=json_body,
        )

        request_timeout = aiohttp.ClientTimeout(total=timeout) if timeout else None
        started = time.monotonic()
        try:
            async with self._session.request(
                method,
                url,
                json=json_body,
                params=params,
                headers=headers,
                timeout=request_timeout,
            ) as response:
                body = await response.read()
                result = HttpResponse(
                    status=response.status,
                    body=body,
                    headers=dict(response.headers),
                    exchange_id=exchange_id,
                    operation=operation,
                )
        except asyncio.TimeoutError as e:
            adapter_logger.warning(f"{operation} timed out after {time.monotonic() - started:.2f}s")
            raise UpstreamError(
                message=f"Request to {exchange_id} timed out",
                code="TIMEOUT",
                exchange_id=exchange_id,
                operation=operation,
            ) from e
        except aiohttp.ClientError as e:
            adapter_logger.warning(f"{operation} network error: {e}")
            raise UpstreamError(
                message=f"Network error: {e}",
                code="NETWORK",
                exchange_id=exchange_id,
                operation=operation,
            ) from e

        adapter_logger.log_response(
            operation=operation,
            request_id=request_id,
            status_code=result.status,
            latency_ms=(time.monotonic() - started) * 1000,
            body=result.body,
        )
        return result
