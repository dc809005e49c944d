"""Result[T, DomainError] to HTTP response mapping."""

from typing import Any, Final, NoReturn, TypeVar

from beartype import beartype
from fastapi import HTTPException, status
from pydantic import Field

from ..core.errors import DomainError, ErrorKind
from ..core.logging_utils import get_logger
from ..core.result_types import Result
from ..schemas.common import StrictSchema

T = TypeVar("T")

logger = get_logger(__name__)

STATUS_BY_KIND: Final[dict[ErrorKind, int]] = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INVALID_STATE: status.HTTP_409_CONFLICT,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.EXPIRED: status.HTTP_410_GONE,
    ErrorKind.NO_ACTIVE_GRID: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.NO_MATCHING_RATE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.INVALID_EXPRESSION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.MISSING_CATEGORY: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.REFERENCE_EXHAUSTED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.GATEWAY_TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorKind.GATEWAY_UNAVAILABLE: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.INVALID_CALLBACK: status.HTTP_400_BAD_REQUEST,
    ErrorKind.PAYMENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


@beartype
class ErrorResponse(StrictSchema):
    """Standardized error response for business logic failures."""

    success: bool = Field(default=False, description="Always false for error responses")
    error: str = Field(..., description="Human-readable error message")
    error_code: str | None = Field(default=None, description="Machine-readable error code")
    details: dict[str, Any] | None = Field(default=None, description="Additional error context")


@beartype
def status_for(kind: ErrorKind) -> int:
    """HTTP status for an error kind."""
    return STATUS_BY_KIND[kind]


@beartype
def error_response(error: DomainError) -> ErrorResponse:
    return ErrorResponse(
        error=error.message,
        error_code=error.kind.value,
        details=error.details or None,
    )


@beartype
def raise_for_error(error: DomainError) -> NoReturn:
    """Raise the ``HTTPException`` matching a domain error."""
    code = status_for(error.kind)
    if code >= 500:
        logger.error("Request failed with %s", error)
    raise HTTPException(
        status_code=code,
        detail=error_response(error).model_dump(mode="json"),
    )


def unwrap_or_raise(result: Result[T, DomainError]) -> T:
    """Unwrap an ``Ok`` or turn an ``Err`` into an HTTP error."""
    if result.is_err():
        raise_for_error(result.unwrap_err())
    return result.unwrap()
