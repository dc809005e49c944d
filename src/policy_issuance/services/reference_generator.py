"""Collision-safe generation of human readable identifiers.

Sequential identifiers (quote references, contract numbers) are produced by
reading the greatest identifier in a scope, adding one and inserting the
owning row. Nothing is locked between the read and the insert: two writers
can compute the same candidate, and the unique constraint on the identifier
column makes exactly one of them win. The loser gets a
``UniqueViolationError`` and starts over from a fresh read, up to
``max_attempts`` times.
"""

import random
import re
from collections.abc import Awaitable, Callable
from datetime import date, datetime
from typing import Final, TypeVar

import asyncpg
from beartype import beartype

from ..core.errors import DomainError, ErrorKind, fail
from ..core.logging_utils import get_logger
from ..core.result_types import Ok, Result
from ..models.product import ProductType
from ..repositories.base import (
    CONTRACT_NUMBER_CONSTRAINT,
    QUOTE_REFERENCE_CONSTRAINT,
    ReferenceScope,
    ReferenceSource,
    violated_constraint,
)

T = TypeVar("T")

logger = get_logger(__name__)

DEFAULT_MAX_ATTEMPTS: Final = 5
QUOTE_SEQUENCE_WIDTH: Final = 4
CONTRACT_SEQUENCE_WIDTH: Final = 5
_TRAILING_DIGITS: Final = re.compile(r"(\d+)$")


@beartype
def quote_scope(product_type: ProductType, on: date) -> ReferenceScope:
    """Scope for ``{VIE|NONVIE}-{YYYYMMDD}-{seq4}`` quote references."""
    return ReferenceScope(
        prefix=f"{product_type.reference_prefix}-{on:%Y%m%d}-",
        width=QUOTE_SEQUENCE_WIDTH,
        constraint=QUOTE_REFERENCE_CONSTRAINT,
    )


@beartype
def contract_scope(
    agency_code: str, category_code: str, product_type: ProductType
) -> ReferenceScope:
    """Scope for ``{agency}-{category}{seq5}`` contract numbers.

    Numbers are unique per product type, so the product type partitions the
    maximum lookup even though it is not part of the number itself.
    """
    return ReferenceScope(
        prefix=f"{agency_code}-{category_code}",
        width=CONTRACT_SEQUENCE_WIDTH,
        constraint=CONTRACT_NUMBER_CONSTRAINT,
        partition=product_type.value,
    )


@beartype
def payment_reference(now: datetime, rng: random.Random | None = None) -> str:
    """``PAY-{epoch millis}-{4 random digits}``; opaque to aggregators."""
    digits = (rng or random).randint(0, 9999)
    return f"PAY-{int(now.timestamp() * 1000)}-{digits:04d}"


async def _persist_loop(
    candidate: Callable[[], Awaitable[Result[str, DomainError]]],
    persist: Callable[[str], Awaitable[T]],
    constraint: str,
    max_attempts: int,
) -> Result[T, DomainError]:
    last_identifier: str | None = None
    for attempt in range(1, max_attempts + 1):
        result = await candidate()
        if result.is_err():
            return result
        last_identifier = result.unwrap()
        try:
            return Ok(await persist(last_identifier))
        except asyncpg.UniqueViolationError as e:
            name = violated_constraint(e)
            if name is not None and name != constraint:
                raise
            logger.warning(
                "Identifier %s already taken (attempt %d/%d), retrying",
                last_identifier,
                attempt,
                max_attempts,
            )

    logger.error(
        "Gave up generating an identifier after %d attempts (last candidate %s)",
        max_attempts,
        last_identifier,
    )
    return fail(
        ErrorKind.REFERENCE_EXHAUSTED,
        f"Could not allocate a unique identifier after {max_attempts} attempts",
        constraint=constraint,
        last_candidate=last_identifier,
    )


class ReferenceGenerator:
    """Sequential identifiers over one :class:`ReferenceSource`."""

    def __init__(self, source: ReferenceSource, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._source = source
        self._max_attempts = max_attempts

    @beartype
    async def next_reference(self, scope: ReferenceScope) -> Result[str, DomainError]:
        """Compute the next candidate identifier for ``scope``.

        The candidate is not reserved; only a successful insert makes it
        final.
        """
        greatest = await self._source.greatest_identifier(scope)
        sequence = 1
        if greatest and greatest.startswith(scope.prefix):
            match = _TRAILING_DIGITS.search(greatest[len(scope.prefix):])
            if match is not None:
                sequence = int(match.group(1)) + 1

        if sequence >= 10**scope.width:
            return fail(
                ErrorKind.REFERENCE_EXHAUSTED,
                f"Sequence for {scope.prefix} exceeded {scope.width} digits",
                prefix=scope.prefix,
            )
        return Ok(scope.format(sequence))

    async def persist_with_reference(
        self,
        scope: ReferenceScope,
        persist: Callable[[str], Awaitable[T]],
    ) -> Result[T, DomainError]:
        """Insert the owning row under a fresh identifier, retrying on conflicts.

        ``persist`` receives the candidate identifier and must perform the
        insert. Unique violations on the scope's constraint trigger a retry;
        violations of any other constraint propagate to the caller.
        """
        return await _persist_loop(
            lambda: self.next_reference(scope),
            persist,
            scope.constraint,
            self._max_attempts,
        )


async def persist_with_random_reference(
    make_reference: Callable[[], str],
    persist: Callable[[str], Awaitable[T]],
    constraint: str,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Result[T, DomainError]:
    """Same retry contract as sequential references, for random identifiers."""

    async def candidate() -> Result[str, DomainError]:
        return Ok(make_reference())

    return await _persist_loop(candidate, persist, constraint, max_attempts)
