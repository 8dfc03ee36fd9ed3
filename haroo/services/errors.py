"""
Typed outcomes for the message mode and trace core.

Every denial raised by a service is one of the kinds below. They are all
recoverable by the caller; the transport layer maps them to responses and
the core never retries on its own.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    INVALID_ARGUMENT = "invalid_argument"
    PAYMENT_REJECTED = "payment_rejected"


class HarooServiceError(Exception):
    """Base exception for core service operations."""

    kind: ErrorKind = ErrorKind.CONFLICT

    def __init__(self, message: str, reason: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.details = details or {}
        self.recoverable = True

    def to_dict(self) -> dict[str, Any]:
        payload = {"error": self.reason, "message": self.message}
        payload.update(self.details)
        return payload


class NotFoundError(HarooServiceError):
    kind = ErrorKind.NOT_FOUND


class ForbiddenError(HarooServiceError):
    kind = ErrorKind.FORBIDDEN


class ConflictError(HarooServiceError):
    kind = ErrorKind.CONFLICT


class InvalidArgumentError(HarooServiceError):
    kind = ErrorKind.INVALID_ARGUMENT


class PaymentRejectedError(HarooServiceError):
    kind = ErrorKind.PAYMENT_REJECTED
