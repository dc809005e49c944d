"""Apply aggregator callbacks to payments, quotes and contracts.

Aggregators retry and sometimes deliver the same notification twice, in
parallel. Handling a callback is therefore built from idempotent steps:

1. adapt the raw payload into a :class:`CanonicalEvent`;
2. merge it into the payment row under a row lock (status moves away from
   ``pending`` once, except that a late success overturns a failure);
3. drive the quote lifecycle and contract issuance from the merged status.

A success is re-driven on every delivery so a redelivery completes a
success whose first processing stopped part way.
"""

from collections.abc import Mapping
from typing import Any
from uuid import UUID

from attrs import frozen
from beartype import beartype

from ...core.errors import DomainError, ErrorKind, fail
from ...core.logging_utils import get_logger, render_payload
from ...core.result_types import Ok, Result
from ...models.contract import Contract
from ...models.payment import Aggregator, CanonicalEvent, Payment, PaymentStatus
from ...models.quote import Quote, QuoteStatus
from ...repositories.payments import PaymentRepository
from ..contract_issuance import ContractIssuance
from ..quote_lifecycle import Clock, QuoteLifecycle, utc_now
from .adapters import adapter_for

logger = get_logger(__name__)


@frozen
class CallbackOutcome:
    """What one callback did.

    ``warning`` carries a business failure that happened after the payment
    was recorded; the callback itself was still accepted.
    """

    event: CanonicalEvent
    payment: Payment
    status_changed: bool
    contract: Contract | None = None
    warning: DomainError | None = None


class PaymentReconciliation:
    """Entry point for gateway callbacks."""

    def __init__(
        self,
        payments: PaymentRepository,
        lifecycle: QuoteLifecycle,
        issuance: ContractIssuance,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._payments = payments
        self._lifecycle = lifecycle
        self._issuance = issuance
        self._clock = clock

    @beartype
    async def handle_callback(
        self, aggregator: Aggregator, raw_payload: Mapping[str, Any]
    ) -> Result[CallbackOutcome, DomainError]:
        logger.info(
            "Callback received from %s: %s", aggregator.value, render_payload(raw_payload)
        )

        adapted = adapter_for(aggregator).adapt(raw_payload)
        if adapted.is_err():
            return adapted
        event = adapted.unwrap()

        payment = await self._find_payment(event)
        if payment is None:
            logger.warning(
                "No payment for %s callback (reference=%s, external=%s): %s",
                aggregator.value,
                event.payment_reference,
                event.external_transaction_id,
                render_payload(raw_payload),
            )
            return fail(
                ErrorKind.PAYMENT_NOT_FOUND,
                "No payment matches the callback",
                payment_reference=event.payment_reference,
                external_transaction_id=event.external_transaction_id,
            )

        merge = await self._payments.merge_callback(
            payment.id,
            raw_payload,
            event.status.to_payment_status(),
            event.external_transaction_id,
            event.operator_id,
            event.error_message,
            self._clock(),
            event.beneficiaries,
        )
        if merge is None:
            # Deleted between lookup and lock
            return fail(ErrorKind.PAYMENT_NOT_FOUND, f"Payment {payment.reference} vanished")

        merged = merge.payment
        if merge.status_changed:
            logger.info(
                "Payment %s moved %s -> %s",
                merged.reference,
                merge.previous_status.value,
                merged.status.value,
            )
        elif merged.status is not event.status.to_payment_status():
            logger.info(
                "Payment %s stays %s; ignoring %s callback",
                merged.reference,
                merged.status.value,
                event.status.value,
            )

        outcome = CallbackOutcome(event=event, payment=merged, status_changed=merge.status_changed)

        if merged.status is PaymentStatus.SUCCEEDED:
            return Ok(await self._drive_success(outcome))
        if merged.status is PaymentStatus.FAILED and merge.status_changed:
            if await self._payments.has_open_payment(merged.quote_id, excluding=merged.id):
                logger.info(
                    "Payment %s failed but another payment for the quote is still open",
                    merged.reference,
                )
                return Ok(outcome)
            failed = await self._lifecycle.on_payment_failed(merged.quote_id)
            if failed.is_err():
                return Ok(self._with_warning(outcome, failed.unwrap_err()))
            logger.warning(
                "Payment %s failed (%s); quote returned to saved",
                merged.reference,
                merged.failure_message,
            )
        return Ok(outcome)

    async def _find_payment(self, event: CanonicalEvent) -> Payment | None:
        if event.payment_reference:
            payment = await self._payments.get_by_reference(event.payment_reference)
            if payment is not None:
                return payment
        if event.external_transaction_id:
            payment = await self._payments.get_by_external_id(event.external_transaction_id)
            if payment is not None:
                return payment
        if event.quote_id is not None:
            return await self._payments.latest_for_quote(event.quote_id)
        return None

    async def _drive_success(self, outcome: CallbackOutcome) -> CallbackOutcome:
        quote_id = outcome.payment.quote_id
        paid = await self._mark_paid(quote_id)
        if paid.is_err():
            return self._with_warning(outcome, paid.unwrap_err())

        issued = await self._issuance.issue_from_quote(quote_id)
        if issued.is_err():
            return self._with_warning(outcome, issued.unwrap_err())
        return CallbackOutcome(
            event=outcome.event,
            payment=outcome.payment,
            status_changed=outcome.status_changed,
            contract=issued.unwrap(),
        )

    async def _mark_paid(self, quote_id: UUID) -> Result[Quote, DomainError]:
        """Move the quote to PAID, reopening it first when a failure sent it back."""
        current = await self._lifecycle.get(quote_id)
        if current.is_err():
            return current
        if current.unwrap().status is QuoteStatus.SAVED:
            reopened = await self._lifecycle.initiate_payment(quote_id)
            if reopened.is_err():
                # A concurrent success may have reopened it first
                logger.info("Quote %s not reopened: %s", quote_id, reopened.unwrap_err())
            else:
                logger.warning(
                    "Quote %s reopened by a success after a failed payment",
                    reopened.unwrap().reference,
                )
        return await self._lifecycle.on_payment_succeeded(quote_id)

    @staticmethod
    def _with_warning(outcome: CallbackOutcome, error: DomainError) -> CallbackOutcome:
        logger.error(
            "Payment %s recorded but follow-up failed: %s", outcome.payment.reference, error
        )
        return CallbackOutcome(
            event=outcome.event,
            payment=outcome.payment,
            status_changed=outcome.status_changed,
            warning=error,
        )
