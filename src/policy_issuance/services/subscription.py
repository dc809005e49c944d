"""Read side of a subscription: a quote with its latest payment and contract."""

from uuid import UUID

from attrs import frozen
from beartype import beartype

from ..core.errors import DomainError, ErrorKind, fail
from ..core.result_types import Ok, Result
from ..models.contract import Contract
from ..models.payment import Payment
from ..models.quote import Quote
from ..repositories.contracts import ContractRepository
from ..repositories.payments import PaymentRepository
from ..repositories.quotes import QuoteRepository


@frozen
class SubscriptionState:
    quote: Quote
    payment: Payment | None
    contract: Contract | None


class SubscriptionService:
    """Lets a subscriber follow a quote after checkout."""

    def __init__(
        self,
        quotes: QuoteRepository,
        payments: PaymentRepository,
        contracts: ContractRepository,
    ) -> None:
        self._quotes = quotes
        self._payments = payments
        self._contracts = contracts

    @beartype
    async def state(
        self, quote_id: UUID, owner_id: UUID
    ) -> Result[SubscriptionState, DomainError]:
        quote = await self._owned_quote(quote_id, owner_id)
        if quote.is_err():
            return quote
        return Ok(
            SubscriptionState(
                quote=quote.unwrap(),
                payment=await self._payments.latest_for_quote(quote_id),
                contract=await self._contracts.get_by_quote(quote_id),
            )
        )

    @beartype
    async def payment_by_reference(
        self, reference: str, owner_id: UUID
    ) -> Result[Payment, DomainError]:
        payment = await self._payments.get_by_reference(reference)
        if payment is None:
            return fail(ErrorKind.NOT_FOUND, f"Payment {reference} not found")
        quote = await self._owned_quote(payment.quote_id, owner_id)
        if quote.is_err():
            return quote
        return Ok(payment)

    async def _owned_quote(self, quote_id: UUID, owner_id: UUID) -> Result[Quote, DomainError]:
        quote = await self._quotes.get(quote_id)
        if quote is None:
            return fail(ErrorKind.NOT_FOUND, f"Quote {quote_id} not found")
        if quote.owner_id != owner_id:
            return fail(
                ErrorKind.FORBIDDEN,
                f"Quote {quote.reference} belongs to another subscriber",
            )
        return Ok(quote)
