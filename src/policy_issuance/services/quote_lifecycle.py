"""Quote lifecycle state machine.

    SIMULATION -> SAVED -> AWAITING_PAYMENT -> PAID -> CONVERTED
        |                      |
        v                      v
     EXPIRED                 SAVED (payment failed, may be retried)

Every transition is a compare-and-set on the stored status, so concurrent
callers cannot both move the same quote. Anything not in ``TRANSITIONS`` is
rejected with INVALID_STATE.
"""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any, Final
from uuid import UUID, uuid4

from beartype import beartype

from ..core.errors import DomainError, ErrorKind, fail
from ..core.logging_utils import get_logger
from ..core.result_types import Ok, Result
from ..models.quote import Quote, QuoteCreate, QuoteStatus
from ..repositories.catalog import CatalogRepository
from ..repositories.quotes import QuoteRepository
from .reference_generator import DEFAULT_MAX_ATTEMPTS, ReferenceGenerator, quote_scope
from .tariff_resolver import TariffResolver, derive_criteria

logger = get_logger(__name__)

Clock = Callable[[], datetime]

TRANSITIONS: Final[dict[QuoteStatus, frozenset[QuoteStatus]]] = {
    QuoteStatus.SIMULATION: frozenset({QuoteStatus.SAVED, QuoteStatus.EXPIRED}),
    QuoteStatus.SAVED: frozenset({QuoteStatus.AWAITING_PAYMENT}),
    QuoteStatus.AWAITING_PAYMENT: frozenset({QuoteStatus.PAID, QuoteStatus.SAVED}),
    QuoteStatus.PAID: frozenset({QuoteStatus.CONVERTED}),
    QuoteStatus.CONVERTED: frozenset(),
    QuoteStatus.EXPIRED: frozenset(),
}

# Quotes a subscriber may delete; anything paid or converted is kept
DELETABLE_STATUSES: Final = frozenset(
    {QuoteStatus.SIMULATION, QuoteStatus.SAVED, QuoteStatus.EXPIRED}
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@beartype
def can_transition(current: QuoteStatus, target: QuoteStatus) -> bool:
    """Whether ``current -> target`` is a legal lifecycle move."""
    return target in TRANSITIONS[current]


class QuoteLifecycle:
    """Owns quote creation and every quote status change."""

    def __init__(
        self,
        quotes: QuoteRepository,
        catalog: CatalogRepository,
        resolver: TariffResolver,
        *,
        validity: timedelta = timedelta(hours=24),
        max_reference_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: Clock = utc_now,
    ) -> None:
        self._quotes = quotes
        self._catalog = catalog
        self._resolver = resolver
        self._validity = validity
        self._references = ReferenceGenerator(quotes, max_reference_attempts)
        self._clock = clock

    @beartype
    async def create(self, request: QuoteCreate) -> Result[Quote, DomainError]:
        """Price a request and store it as a SIMULATION quote.

        The reference date segment and the tariff selection both use the
        evaluation date, which defaults to today.
        """
        product = await self._catalog.get_product(request.product_id)
        if product is None:
            return fail(ErrorKind.NOT_FOUND, f"Product {request.product_id} not found")

        now = self._clock()
        on = request.evaluation_date or now.date()
        criteria = derive_criteria(product, request.criteria, request.insured, on)

        price_result = await self._resolver.price(product, on, criteria)
        if price_result.is_err():
            return price_result
        price = price_result.unwrap()

        quote_id = uuid4()

        async def insert(reference: str) -> Quote:
            return await self._quotes.insert(
                Quote(
                    id=quote_id,
                    reference=reference,
                    product_id=product.id,
                    grid_id=price.grid_id,
                    formula_id=price.formula_id,
                    category_id=request.category_id,
                    owner_id=request.owner_id,
                    criteria=criteria,
                    premium=price.premium,
                    deductible=price.deductible,
                    cap=price.cap,
                    status=QuoteStatus.SIMULATION,
                    expires_at=now + self._validity,
                    insured=request.insured,
                    created_at=now,
                    updated_at=now,
                )
            )

        result = await self._references.persist_with_reference(
            quote_scope(product.product_type, on), insert
        )
        if result.is_ok():
            quote = result.unwrap()
            logger.info("Quote %s created at %s", quote.reference, quote.premium)
        return result

    @beartype
    async def get(self, quote_id: UUID) -> Result[Quote, DomainError]:
        quote = await self._quotes.get(quote_id)
        if quote is None:
            return fail(ErrorKind.NOT_FOUND, f"Quote {quote_id} not found")
        return Ok(quote)

    @beartype
    async def list_for_owner(
        self,
        owner_id: UUID,
        status: QuoteStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Result[list[Quote], DomainError]:
        if limit < 1 or limit > 100 or offset < 0:
            return fail(ErrorKind.VALIDATION, "limit must be 1-100 and offset >= 0")
        return Ok(await self._quotes.list_for_owner(owner_id, status, limit, offset))

    @beartype
    async def save(
        self,
        quote_id: UUID,
        owner_id: UUID,
        name: str | None = None,
        notes: str | None = None,
    ) -> Result[Quote, DomainError]:
        """SIMULATION -> SAVED for ``owner_id``.

        Saving a quote the owner already saved only updates its name and
        notes.
        """
        current = await self.get(quote_id)
        if current.is_err():
            return current
        quote = current.unwrap()

        if quote.owner_id is not None and quote.owner_id != owner_id:
            return fail(
                ErrorKind.FORBIDDEN,
                f"Quote {quote.reference} belongs to another subscriber",
            )

        now = self._clock()
        if quote.status is QuoteStatus.EXPIRED or quote.is_expired(now):
            return fail(ErrorKind.EXPIRED, f"Quote {quote.reference} has expired")

        changes: dict[str, Any] = {"owner_id": owner_id, "name": name, "notes": notes}
        if quote.status is QuoteStatus.SAVED:
            expected = QuoteStatus.SAVED
        elif quote.status is QuoteStatus.SIMULATION:
            expected = QuoteStatus.SIMULATION
            changes["expires_at"] = None
        else:
            return self._invalid(quote, QuoteStatus.SAVED)

        updated = await self._quotes.transition(
            quote_id, {expected}, QuoteStatus.SAVED, changes, now
        )
        if updated is None:
            return await self._lost_race(quote_id, QuoteStatus.SAVED)
        logger.info("Quote %s saved by %s", updated.reference, owner_id)
        return Ok(updated)

    @beartype
    async def initiate_payment(self, quote_id: UUID) -> Result[Quote, DomainError]:
        """SAVED -> AWAITING_PAYMENT; the only way into payment."""
        return await self._move(quote_id, QuoteStatus.SAVED, QuoteStatus.AWAITING_PAYMENT)

    @beartype
    async def on_payment_succeeded(self, quote_id: UUID) -> Result[Quote, DomainError]:
        """AWAITING_PAYMENT -> PAID; no-op once PAID or CONVERTED."""
        return await self._move(
            quote_id,
            QuoteStatus.AWAITING_PAYMENT,
            QuoteStatus.PAID,
            already_done=(QuoteStatus.PAID, QuoteStatus.CONVERTED),
        )

    @beartype
    async def on_payment_failed(self, quote_id: UUID) -> Result[Quote, DomainError]:
        """AWAITING_PAYMENT -> SAVED so the subscriber can pay again."""
        return await self._move(quote_id, QuoteStatus.AWAITING_PAYMENT, QuoteStatus.SAVED)

    @beartype
    async def convert(self, quote_id: UUID) -> Result[Quote, DomainError]:
        """PAID -> CONVERTED; no-op when already CONVERTED."""
        return await self._move(
            quote_id,
            QuoteStatus.PAID,
            QuoteStatus.CONVERTED,
            already_done=(QuoteStatus.CONVERTED,),
        )

    @beartype
    async def sweep_expired(self) -> int:
        """Expire every SIMULATION quote past its expiry. SAVED quotes are exempt."""
        count = await self._quotes.expire_simulations(self._clock())
        if count:
            logger.info("Expired %d simulation quotes", count)
        return count

    @beartype
    async def delete(self, quote_id: UUID, owner_id: UUID) -> Result[UUID, DomainError]:
        """Delete an unconverted quote on behalf of its owner."""
        current = await self.get(quote_id)
        if current.is_err():
            return current
        quote = current.unwrap()

        if quote.owner_id != owner_id:
            return fail(
                ErrorKind.FORBIDDEN,
                f"Quote {quote.reference} belongs to another subscriber",
            )
        if quote.status not in DELETABLE_STATUSES:
            return fail(
                ErrorKind.INVALID_STATE,
                f"Quote {quote.reference} cannot be deleted while {quote.status.value}",
                status=quote.status.value,
            )
        if not await self._quotes.delete(quote_id, owner_id, DELETABLE_STATUSES):
            return await self._lost_race(quote_id, None)
        logger.info("Quote %s deleted by %s", quote.reference, owner_id)
        return Ok(quote_id)

    async def _move(
        self,
        quote_id: UUID,
        source: QuoteStatus,
        target: QuoteStatus,
        already_done: tuple[QuoteStatus, ...] = (),
    ) -> Result[Quote, DomainError]:
        assert can_transition(source, target), f"{source} -> {target} is not a transition"

        current = await self.get(quote_id)
        if current.is_err():
            return current
        quote = current.unwrap()

        if quote.status in already_done:
            return Ok(quote)
        if quote.status is not source:
            return self._invalid(quote, target)

        updated = await self._quotes.transition(
            quote_id, {source}, target, {}, self._clock()
        )
        if updated is None:
            return await self._lost_race(quote_id, target, already_done)
        logger.info(
            "Quote %s moved %s -> %s", updated.reference, source.value, target.value
        )
        return Ok(updated)

    async def _lost_race(
        self,
        quote_id: UUID,
        target: QuoteStatus | None,
        already_done: tuple[QuoteStatus, ...] = (),
    ) -> Result[Quote, DomainError]:
        """Report the state a concurrent writer left the quote in."""
        current = await self.get(quote_id)
        if current.is_err():
            return current
        quote = current.unwrap()
        if quote.status in already_done:
            return Ok(quote)
        return fail(
            ErrorKind.INVALID_STATE,
            f"Quote {quote.reference} was modified concurrently (now {quote.status.value})",
            status=quote.status.value,
            target=target.value if target else None,
        )

    @staticmethod
    def _invalid(quote: Quote, target: QuoteStatus) -> Result[Quote, DomainError]:
        return fail(
            ErrorKind.INVALID_STATE,
            f"Quote {quote.reference} cannot move from {quote.status.value} to {target.value}",
            status=quote.status.value,
            target=target.value,
        )
