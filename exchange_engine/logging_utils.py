"""
Exchange Adapter - Secure Logging Utilities.

============================================================
PURPOSE
============================================================
Secure logging for outbound exchange traffic with:
- Credential masking (API keys, secrets, access/refresh tokens)
- Request/response sanitization
- Structured JSON log entries

============================================================
SECURITY REQUIREMENTS
============================================================
1. NEVER log raw API keys, secrets or tokens
2. Mask sensitive headers (Authorization, X-API-KEY, ...)
3. Log request bodies as a hash only
4. Mask token fields in response previews (token issuance
   and refresh endpoints echo secrets back)

============================================================
"""

import hashlib
import itertools
import json
import logging
import re
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)


# ============================================================
# SENSITIVE DATA PATTERNS
# ============================================================

SENSITIVE_HEADERS = {
    "authorization",
    "x-api-key",
    "api-key",
    "token",
    "cookie",
}

SENSITIVE_FIELDS = {
    "apikey",
    "api_key",
    "secret",
    "secretkey",
    "secret_key",
    "password",
    "token",
    "key",
    "access",
    "refresh",
    "access_token",
    "refresh_token",
    "access_key",
    "refresh_key",
}

# Long opaque strings inside free text are treated as keys
KEY_LIKE_PATTERN = re.compile(r"[A-Za-z0-9_\-\.]{32,}")

PREVIEW_LIMIT = 200


# ============================================================
# MASKING FUNCTIONS
# ============================================================

def mask_value(value: Optional[str], show_chars: int = 4) -> str:
    """
    Mask a sensitive value, showing only first few chars.

    Values not longer than twice ``show_chars`` are fully hidden,
    so short secrets never leak a meaningful fraction.
    """
    if not value or len(value) <= show_chars * 2:
        return "***"
    return f"{value[:show_chars]}...***"


def mask_headers(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Mask sensitive headers."""
    if not headers:
        return {}

    return {
        key: mask_value(str(value)) if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }


def mask_payload(payload: Any) -> Any:
    """
    Recursively mask sensitive fields in a JSON-like payload.

    Dicts are masked by key, lists element-wise, and free-text
    strings have key-like substrings replaced.
    """
    if isinstance(payload, dict):
        masked = {}
        for key, value in payload.items():
            if str(key).lower() in SENSITIVE_FIELDS and value:
                masked[key] = mask_value(str(value))
            else:
                masked[key] = mask_payload(value)
        return masked
    if isinstance(payload, list):
        return [mask_payload(item) for item in payload]
    if isinstance(payload, str):
        return KEY_LIKE_PATTERN.sub("***KEY***", payload)
    return payload


def hash_body(body: Any) -> Optional[str]:
    """Short SHA-256 fingerprint of a request body."""
    if not body:
        return None
    if isinstance(body, (dict, list)):
        raw = json.dumps(body, sort_keys=True, default=str)
    else:
        raw = str(body)
    return hashlib.sha256(raw.encode()).hexdigest()[:16]


def response_preview(body: Any) -> Optional[str]:
    """Truncated, masked rendering of a response body."""
    if body is None or body == b"" or body == "":
        return None
    if isinstance(body, bytes):
        try:
            body = json.loads(body)
        except ValueError:
            body = body.decode("utf-8", errors="replace")
    if isinstance(body, (dict, list)):
        return json.dumps(mask_payload(body), default=str)[:PREVIEW_LIMIT]
    return mask_payload(str(body))[:PREVIEW_LIMIT]


# ============================================================
# LOG ENTRY STRUCTURES
# ============================================================

def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class RequestLogEntry:
    """Structured log entry for requests."""

    timestamp: str
    exchange_id: str
    operation: str
    method: str
    endpoint: str
    request_id: str

    headers: Optional[Dict[str, str]] = None
    body_hash: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps({k: v for k, v in asdict(self).items() if v is not None})


@dataclass
class ResponseLogEntry:
    """Structured log entry for responses."""

    timestamp: str
    exchange_id: str
    operation: str
    request_id: str
    status_code: int
    latency_ms: float
    success: bool

    response_preview: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps({k: v for k, v in asdict(self).items() if v is not None})


@dataclass
class OrderLogEntry:
    """Structured log entry for order placement and cancellation."""

    timestamp: str
    exchange_id: str
    operation: str
    client_order_id: Optional[str] = None
    exchange_order_id: Optional[str] = None
    symbol: Optional[str] = None
    side: Optional[str] = None
    order_type: Optional[str] = None
    quantity: Optional[str] = None
    price: Optional[str] = None
    status: Optional[str] = None
    error_message: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps({k: v for k, v in asdict(self).items() if v is not None})


# ============================================================
# ADAPTER LOGGER
# ============================================================

class AdapterLogger:
    """
    Secure logger for exchange traffic.

    Every header and body passes through the masking functions
    above before it is formatted.
    """

    def __init__(self, exchange_id: str, logger_name: Optional[str] = None):
        self._exchange_id = exchange_id
        self._logger = logging.getLogger(logger_name or f"exchange_adapter.{exchange_id}")
        self._counter = itertools.count(1)

    @property
    def exchange_id(self) -> str:
        return self._exchange_id

    def log_request(
        self,
        operation: str,
        method: str,
        endpoint: str,
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
    ) -> str:
        """
        Log outgoing request.

        Returns:
            Request ID for correlation with log_response
        """
        request_id = f"{self._exchange_id}-{next(self._counter)}"

        entry = RequestLogEntry(
            timestamp=_utc_now(),
            exchange_id=self._exchange_id,
            operation=operation,
            method=method,
            endpoint=endpoint,
            request_id=request_id,
            headers=mask_headers(headers) or None,
            body_hash=hash_body(body),
        )

        self._logger.debug(f"REQUEST: {entry.to_json()}")
        return request_id

    def log_response(
        self,
        operation: str,
        request_id: str,
        status_code: int,
        latency_ms: float,
        body: Any = None,
    ) -> None:
        """Log incoming response; non-2xx statuses log at WARNING."""
        success = 200 <= status_code < 300
        entry = ResponseLogEntry(
            timestamp=_utc_now(),
            exchange_id=self._exchange_id,
            operation=operation,
            request_id=request_id,
            status_code=status_code,
            latency_ms=round(latency_ms, 2),
            success=success,
            response_preview=response_preview(body),
        )

        if success:
            self._logger.debug(f"RESPONSE: {entry.to_json()}")
        else:
            self._logger.warning(f"RESPONSE_ERROR: {entry.to_json()}")

    def log_order(
        self,
        operation: str,
        client_order_id: Optional[str] = None,
        exchange_order_id: Optional[str] = None,
        symbol: Optional[str] = None,
        side: Optional[str] = None,
        order_type: Optional[str] = None,
        quantity: Optional[str] = None,
        price: Optional[str] = None,
        status: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """Log an order operation (place, cancel)."""
        entry = OrderLogEntry(
            timestamp=_utc_now(),
            exchange_id=self._exchange_id,
            operation=operation,
            client_order_id=client_order_id,
            exchange_order_id=exchange_order_id,
            symbol=symbol,
            side=side,
            order_type=order_type,
            quantity=quantity,
            price=price,
            status=status,
            error_message=error_message[:PREVIEW_LIMIT] if error_message else None,
        )

        if error_message:
            self._logger.warning(f"ORDER_ERROR: {entry.to_json()}")
        else:
            self._logger.info(f"ORDER: {entry.to_json()}")

    def info(self, message: str) -> None:
        self._logger.info(f"[{self._exchange_id}] {message}")

    def warning(self, message: str) -> None:
        self._logger.warning(f"[{self._exchange_id}] {message}")

    def error(self, message: str, exc_info: bool = False) -> None:
        self._logger.error(f"[{self._exchange_id}] {message}", exc_info=exc_info)

    def debug(self, message: str) -> None:
        self._logger.debug(f"[{self._exchange_id}] {message}")
