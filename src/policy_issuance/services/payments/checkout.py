"""Start paying for a saved quote."""

from collections.abc import Sequence
from typing import Final
from uuid import UUID, uuid4

from attrs import frozen
from beartype import beartype

from ...core.errors import DomainError, ErrorKind, fail
from ...core.logging_utils import get_logger
from ...core.result_types import Ok, Result
from ...models.payment import (
    Aggregator,
    BeneficiaryInput,
    Payment,
    PaymentMethod,
    PaymentStatus,
)
from ...models.product import Product
from ...models.quote import Quote, QuoteStatus
from ...repositories.base import PAYMENT_REFERENCE_CONSTRAINT
from ...repositories.catalog import CatalogRepository
from ...repositories.payments import PaymentRepository
from ..quote_lifecycle import Clock, QuoteLifecycle, utc_now
from ..reference_generator import (
    DEFAULT_MAX_ATTEMPTS,
    payment_reference,
    persist_with_random_reference,
)
from .gateway import GatewayCheckout, PaymentGatewayClient

logger = get_logger(__name__)

# Aggregators reached through the hosted checkout page
GATEWAY_AGGREGATORS: Final = frozenset({Aggregator.CINETPAY})

# A quote already awaiting payment may start over after a gateway failure
CHECKOUT_STATUSES: Final = frozenset({QuoteStatus.SAVED, QuoteStatus.AWAITING_PAYMENT})


@frozen
class CheckoutSession:
    payment: Payment
    quote: Quote
    checkout: GatewayCheckout | None = None


@beartype
def check_beneficiaries(
    product: Product, beneficiaries: Sequence[BeneficiaryInput]
) -> Result[list[BeneficiaryInput], DomainError]:
    """Apply the product's beneficiary policy."""
    if product.requires_beneficiaries and not beneficiaries:
        return fail(
            ErrorKind.VALIDATION,
            f"Product {product.name} requires at least one beneficiary",
        )
    if len(beneficiaries) > product.max_beneficiaries:
        return fail(
            ErrorKind.VALIDATION,
            f"Product {product.name} allows at most {product.max_beneficiaries} beneficiaries",
            submitted=len(beneficiaries),
            maximum=product.max_beneficiaries,
        )
    return Ok(list(beneficiaries))


class CheckoutService:
    """Creates the pending payment and moves the quote into payment."""

    def __init__(
        self,
        lifecycle: QuoteLifecycle,
        payments: PaymentRepository,
        catalog: CatalogRepository,
        gateway: PaymentGatewayClient | None = None,
        *,
        max_reference_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: Clock = utc_now,
    ) -> None:
        self._lifecycle = lifecycle
        self._payments = payments
        self._catalog = catalog
        self._gateway = gateway
        self._max_attempts = max_reference_attempts
        self._clock = clock

    @beartype
    async def start_checkout(
        self,
        quote_id: UUID,
        owner_id: UUID,
        method: PaymentMethod,
        aggregator: Aggregator = Aggregator.GENERIC,
        beneficiaries: Sequence[BeneficiaryInput] = (),
        customer_phone: str | None = None,
    ) -> Result[CheckoutSession, DomainError]:
        current = await self._lifecycle.get(quote_id)
        if current.is_err():
            return current
        quote = current.unwrap()

        if quote.owner_id != owner_id:
            return fail(
                ErrorKind.FORBIDDEN,
                f"Quote {quote.reference} belongs to another subscriber",
            )
        if quote.status not in CHECKOUT_STATUSES:
            return fail(
                ErrorKind.INVALID_STATE,
                f"Quote {quote.reference} must be saved before payment (is {quote.status.value})",
                status=quote.status.value,
            )

        product = await self._catalog.get_product(quote.product_id)
        if product is None:
            return fail(ErrorKind.NOT_FOUND, f"Product {quote.product_id} not found")
        checked = check_beneficiaries(product, beneficiaries)
        if checked.is_err():
            return checked

        async def insert(reference: str) -> Payment:
            now = self._clock()
            return await self._payments.insert(
                Payment(
                    id=uuid4(),
                    reference=reference,
                    quote_id=quote.id,
                    amount=quote.premium,
                    method=method,
                    aggregator=aggregator,
                    status=PaymentStatus.PENDING,
                    beneficiaries=checked.unwrap(),
                    created_at=now,
                    updated_at=now,
                )
            )

        created = await persist_with_random_reference(
            lambda: payment_reference(self._clock()),
            insert,
            PAYMENT_REFERENCE_CONSTRAINT,
            self._max_attempts,
        )
        if created.is_err():
            return created
        payment = created.unwrap()

        if quote.status is QuoteStatus.SAVED:
            moved = await self._lifecycle.initiate_payment(quote.id)
            if moved.is_err():
                logger.warning(
                    "Payment %s created but quote %s could not enter payment: %s",
                    payment.reference,
                    quote.reference,
                    moved.err_value,
                )
                return moved
            quote = moved.unwrap()
        logger.info(
            "Checkout started for quote %s with payment %s (%s)",
            quote.reference,
            payment.reference,
            aggregator.value,
        )

        if aggregator not in GATEWAY_AGGREGATORS or self._gateway is None:
            return Ok(CheckoutSession(payment=payment, quote=quote))

        # The payment stays pending when the gateway fails; the caller retries
        checkout = await self._gateway.init_payment(
            payment.reference,
            payment.amount,
            f"Subscription {quote.reference}",
            customer_phone=customer_phone,
            metadata={"quote_id": str(quote.id)},
        )
        if checkout.is_err():
            return checkout
        return Ok(CheckoutSession(payment=payment, quote=quote, checkout=checkout.unwrap()))
