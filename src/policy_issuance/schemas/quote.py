"""Quote and checkout API schemas."""

from decimal import Decimal
from uuid import UUID

from beartype import beartype
from pydantic import Field

from ..models.payment import Aggregator, BeneficiaryInput, PaymentMethod, PaymentStatus
from ..models.quote import Quote, QuoteStatus
from .common import StrictSchema


@beartype
class SaveQuoteRequest(StrictSchema):
    owner_id: UUID
    name: str | None = Field(default=None, max_length=200)
    notes: str | None = Field(default=None, max_length=2000)


@beartype
class CheckoutRequest(StrictSchema):
    """Payment initiation for a saved quote."""

    owner_id: UUID
    method: PaymentMethod
    aggregator: Aggregator = Field(default=Aggregator.GENERIC)
    beneficiaries: list[BeneficiaryInput] = Field(default_factory=list, max_length=10)
    customer_phone: str | None = Field(default=None, max_length=30)


@beartype
class CheckoutResponse(StrictSchema):
    payment_id: UUID
    payment_reference: str
    payment_status: PaymentStatus
    amount: Decimal
    quote_id: UUID
    quote_status: QuoteStatus
    payment_url: str | None = Field(default=None)
    payment_token: str | None = Field(default=None)


@beartype
class QuoteListResponse(StrictSchema):
    quotes: list[Quote]
    total: int = Field(..., ge=0)
    limit: int = Field(..., ge=1)
    offset: int = Field(..., ge=0)


@beartype
class DeleteQuoteResponse(StrictSchema):
    success: bool = Field(default=True)
    quote_id: UUID
