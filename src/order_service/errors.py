"""
Error Taxonomy for the Order Service

Every failure the service reasons about is an OrderServiceError tagged with
an ErrorKind and, where one exists, the lower-level exception it wraps.

KIND → OUTCOME:
- validation     → message skipped without commit / HTTP 400
- not_found      → HTTP 404 (never cached)
- transient      → message skipped without commit / HTTP 500
- fatal_startup  → process exits before serving
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Classification tag carried by every OrderServiceError."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    FATAL_STARTUP = "fatal_startup"


class OrderServiceError(Exception):
    """
    Base exception for the order service.

    Attributes:
        kind: ErrorKind classifying the failure
        message: Human-readable description
        cause: Wrapped lower-level exception, if any
    """

    kind: ErrorKind = ErrorKind.TRANSIENT

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message


class ValidationError(OrderServiceError):
    """Malformed or rule-violating order record."""

    kind = ErrorKind.VALIDATION


class NotFoundError(OrderServiceError):
    """Order absent from both cache and store."""

    kind = ErrorKind.NOT_FOUND


class TransientInfraError(OrderServiceError):
    """Store or broker I/O failure."""

    kind = ErrorKind.TRANSIENT


class FatalStartupError(OrderServiceError):
    """Store connection or consumer group join failed at boot."""

    kind = ErrorKind.FATAL_STARTUP


# Messages shared by the validator, decoder and store
INVALID_ORDER_UID = "invalid order UID"
INVALID_TRACK_NUMBER = "invalid track number"
EMPTY_ITEMS = "items list is empty"
INVALID_JSON = "invalid JSON data"
ORDER_NOT_FOUND = "order not found"
