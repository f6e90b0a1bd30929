"""
Exchange Engine - Error Taxonomy.

============================================================
PURPOSE
============================================================
One structured error family for everything the exchange
engine raises, so the API layer above can map each kind to an
HTTP status without parsing messages.

============================================================
ERROR CATEGORIES
============================================================
1. NOT_FOUND             - credential / exchange / order absent
2. SYMBOL_NOT_FOUND      - trading pair unknown for exchange
3. VALIDATION_FAILED     - malformed order request
4. AMOUNT_INDETERMINATE  - no usable quantity in request
5. UNPARSEABLE_SYMBOL    - symbol has no known quote suffix
6. AUTH_EXPIRED          - exchange rejected token after renewal
7. UPSTREAM_ERROR        - non-2xx or unexpected exchange reply
8. CANCELLATION_FAILED   - cancel not acknowledged
9. DECRYPTION_FAILED     - stored secret unreadable
10. INTERNAL             - storage / transaction failure

============================================================
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError

from storage.repositories.exceptions import RepositoryException


logger = logging.getLogger(__name__)


# ============================================================
# ERROR TAXONOMY
# ============================================================

class ErrorCategory(Enum):
    """Standardized error categories."""

    NOT_FOUND = "NOT_FOUND"
    SYMBOL_NOT_FOUND = "SYMBOL_NOT_FOUND"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    AMOUNT_INDETERMINATE = "AMOUNT_INDETERMINATE"
    UNPARSEABLE_SYMBOL = "UNPARSEABLE_SYMBOL"
    AUTH_EXPIRED = "AUTH_EXPIRED"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    CANCELLATION_FAILED = "CANCELLATION_FAILED"
    DECRYPTION_FAILED = "DECRYPTION_FAILED"
    INTERNAL = "INTERNAL"


# ============================================================
# EXCHANGE ERROR
# ============================================================

@dataclass
class ExchangeError:
    """
    Structured error record.

    ``exchange_message`` carries the raw upstream body verbatim
    for operator diagnosis of exchange-side rejections.
    """

    category: ErrorCategory
    code: str
    message: str

    exchange_id: Optional[str] = None
    operation: Optional[str] = None
    http_status: Optional[int] = None
    exchange_message: Optional[str] = None
    symbol: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "code": self.code,
            "message": self.message,
            "exchange_id": self.exchange_id,
            "operation": self.operation,
            "http_status": self.http_status,
            "exchange_message": self.exchange_message,
            "symbol": self.symbol,
        }

    def __str__(self) -> str:
        text = f"[{self.category.value}] {self.code}: {self.message}"
        if self.exchange_id:
            text = f"{text} (exchange={self.exchange_id})"
        return text


class ExchangeException(Exception):
    """Exception wrapper for ExchangeError."""

    category: ErrorCategory = ErrorCategory.INTERNAL
    default_code: str = "INTERNAL"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        exchange_id: Optional[str] = None,
        operation: Optional[str] = None,
        http_status: Optional[int] = None,
        exchange_message: Optional[str] = None,
        symbol: Optional[str] = None,
    ):
        self.error = ExchangeError(
            category=self.category,
            code=code or self.default_code,
            message=message,
            exchange_id=exchange_id,
            operation=operation,
            http_status=http_status,
            exchange_message=exchange_message,
            symbol=symbol,
        )
        super().__init__(str(self.error))


# ============================================================
# CONCRETE ERRORS
# ============================================================

class NotFoundError(ExchangeException):
    category = ErrorCategory.NOT_FOUND
    default_code = "NOT_FOUND"


class SymbolNotFoundError(NotFoundError):
    category = ErrorCategory.SYMBOL_NOT_FOUND
    default_code = "SYMBOL_NOT_FOUND"


class UnsupportedExchangeError(NotFoundError):
    """No constructor is registered under the requested name."""

    default_code = "UNSUPPORTED_EXCHANGE"


class ValidationFailedError(ExchangeException):
    category = ErrorCategory.VALIDATION_FAILED
    default_code = "VALIDATION_FAILED"


class AmountIndeterminateError(ValidationFailedError):
    category = ErrorCategory.AMOUNT_INDETERMINATE
    default_code = "AMOUNT_INDETERMINATE"


class UnparseableSymbolError(ValidationFailedError):
    category = ErrorCategory.UNPARSEABLE_SYMBOL
    default_code = "UNPARSEABLE_SYMBOL"


class AuthExpiredError(ExchangeException):
    category = ErrorCategory.AUTH_EXPIRED
    default_code = "AUTH_EXPIRED"


class UpstreamError(ExchangeException):
    """Non-2xx or unparseable exchange reply; carries status and raw body."""

    category = ErrorCategory.UPSTREAM_ERROR
    default_code = "UPSTREAM_ERROR"


class CancellationFailedError(UpstreamError):
    category = ErrorCategory.CANCELLATION_FAILED
    default_code = "CANCELLATION_FAILED"


class DecryptionFailedError(ExchangeException):
    category = ErrorCategory.DECRYPTION_FAILED
    default_code = "DECRYPTION_FAILED"


class MalformedCiphertextError(DecryptionFailedError):
    """Input is not a ciphertext this codec produced."""

    default_code = "MALFORMED_CIPHERTEXT"


class WrongKeyError(DecryptionFailedError):
    """Ciphertext was produced under a different encryption key."""

    default_code = "WRONG_KEY"


class IntegrityCheckError(DecryptionFailedError):
    """Right key, but the ciphertext or its tag was altered."""

    default_code = "INTEGRITY_CHECK_FAILED"


class InternalError(ExchangeException):
    category = ErrorCategory.INTERNAL
    default_code = "INTERNAL"


class RegistrationError(InternalError):
    """Programmer error in adapter registration (e.g. duplicate name)."""

    default_code = "REGISTRATION_ERROR"


# ============================================================
# STORAGE BOUNDARY
# ============================================================

@contextmanager
def storage_errors(exchange_id: Optional[str], operation: str) -> Iterator[None]:
    """
    Convert storage-layer failures into InternalError.

    Usage:
        with storage_errors("bitpin", "place_order"):
            async with transaction_scope(factory) as session:
                ...
    """
    try:
        yield
    except (RepositoryException, SQLAlchemyError) as e:
        logger.error(f"Storage failure during {operation} ({exchange_id}): {e}")
        raise InternalError(
            message=f"Storage failure: {e}",
            code="STORAGE_ERROR",
            exchange_id=exchange_id,
            operation=operation,
        ) from e
