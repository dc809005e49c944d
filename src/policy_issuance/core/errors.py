"""Typed domain errors carried inside ``Err`` results.

Services never raise for business-rule failures. They return
``Err(DomainError(...))`` and let the API layer translate the error kind into
an HTTP status.
"""

from enum import Enum
from typing import Any

from attrs import field, frozen
from beartype import beartype

from .result_types import Err


class ErrorKind(str, Enum):
    """Machine readable error taxonomy."""

    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    FORBIDDEN = "forbidden"
    EXPIRED = "expired"
    VALIDATION = "validation"
    NO_ACTIVE_GRID = "no_active_grid"
    NO_MATCHING_RATE = "no_matching_rate"
    INVALID_EXPRESSION = "invalid_expression"
    MISSING_CATEGORY = "missing_category"
    REFERENCE_EXHAUSTED = "reference_exhausted"
    GATEWAY_TIMEOUT = "gateway_timeout"
    GATEWAY_UNAVAILABLE = "gateway_unavailable"
    INVALID_CALLBACK = "invalid_callback"
    PAYMENT_NOT_FOUND = "payment_not_found"


# Kinds a caller may retry without changing its input
RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.GATEWAY_TIMEOUT,
        ErrorKind.GATEWAY_UNAVAILABLE,
    }
)


@frozen
class DomainError:
    """A business failure with its taxonomy kind and optional context."""

    kind: ErrorKind
    message: str
    details: dict[str, Any] = field(factory=dict, eq=False, hash=False)

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


@beartype
def fail(kind: ErrorKind, message: str, **details: Any) -> Err[DomainError]:
    """Shorthand for ``Err(DomainError(kind, message, details))``."""
    return Err(DomainError(kind=kind, message=message, details=details))
