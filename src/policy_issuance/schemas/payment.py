"""Payment and subscription read schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from beartype import beartype
from pydantic import Field

from ..models.contract import Contract
from ..models.payment import Aggregator, Payment, PaymentMethod, PaymentStatus
from ..models.quote import Quote
from .common import StrictSchema


@beartype
class PaymentSummary(StrictSchema):
    """A payment as shown to its subscriber; raw callbacks stay internal."""

    id: UUID
    reference: str
    quote_id: UUID
    contract_id: UUID | None = Field(default=None)
    amount: Decimal
    method: PaymentMethod
    aggregator: Aggregator
    status: PaymentStatus
    failure_message: str | None = Field(default=None)
    paid_at: datetime | None = Field(default=None)
    created_at: datetime

    @classmethod
    def from_payment(cls, payment: Payment) -> "PaymentSummary":
        return cls(
            id=payment.id,
            reference=payment.reference,
            quote_id=payment.quote_id,
            contract_id=payment.contract_id,
            amount=payment.amount,
            method=payment.method,
            aggregator=payment.aggregator,
            status=payment.status,
            failure_message=payment.failure_message,
            paid_at=payment.paid_at,
            created_at=payment.created_at,
        )


@beartype
class SubscriptionResponse(StrictSchema):
    quote: Quote
    payment: PaymentSummary | None = Field(default=None)
    contract: Contract | None = Field(default=None)
