"""Payment and gateway callback models."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from beartype import beartype
from pydantic import Field, field_validator

from .base import BaseModelConfig, IdentifiableModel
from .quote import parse_birth_date


class PaymentStatus(str, Enum):
    """Persisted payment statuses."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


class PaymentMethod(str, Enum):
    """How the customer pays."""

    WAVE = "wave"
    ORANGE_MONEY = "orange_money"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    CINETPAY = "cinetpay"


class Aggregator(str, Enum):
    """Payment aggregators whose callbacks this service understands."""

    GENERIC = "generic"
    WAVE = "wave"
    ORANGE_MONEY = "orange_money"
    CINETPAY = "cinetpay"


class CanonicalStatus(str, Enum):
    """Aggregator-agnostic callback outcome."""

    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    PENDING = "PENDING"
    CANCELLED = "CANCELLED"

    def to_payment_status(self) -> PaymentStatus:
        return {
            CanonicalStatus.SUCCEEDED: PaymentStatus.SUCCEEDED,
            CanonicalStatus.FAILED: PaymentStatus.FAILED,
            CanonicalStatus.PENDING: PaymentStatus.PENDING,
            CanonicalStatus.CANCELLED: PaymentStatus.CANCELLED,
        }[self]


@beartype
class BeneficiaryInput(BaseModelConfig):
    """Beneficiary captured at checkout, attached to the contract later."""

    full_name: str = Field(..., min_length=1, max_length=200)
    relationship: str = Field(..., min_length=1, max_length=100)
    rank: int = Field(default=1, ge=1, le=2)
    birth_date: date | None = Field(default=None)
    share_percent: Decimal | None = Field(
        default=None, gt=Decimal("0"), le=Decimal("100"), decimal_places=2
    )

    @field_validator("birth_date", mode="before")
    @classmethod
    def normalize_birth_date(cls, v: Any) -> date | None:
        return parse_birth_date(v)


@beartype
class Payment(IdentifiableModel):
    """A payment attempt for a quote."""

    reference: str = Field(..., min_length=1, max_length=100)
    quote_id: UUID
    contract_id: UUID | None = Field(default=None)
    amount: Decimal = Field(..., ge=Decimal("0"), decimal_places=2)
    method: PaymentMethod
    aggregator: Aggregator = Field(default=Aggregator.GENERIC)
    status: PaymentStatus = Field(default=PaymentStatus.PENDING)
    external_transaction_id: str | None = Field(default=None, max_length=200)
    operator_id: str | None = Field(default=None, max_length=200)
    callback_history: list[dict[str, Any]] = Field(default_factory=list)
    beneficiaries: list[BeneficiaryInput] = Field(default_factory=list)
    failure_message: str | None = Field(default=None, max_length=1000)
    paid_at: datetime | None = Field(default=None)


@beartype
class CanonicalEvent(BaseModelConfig):
    """Normalized form of one gateway callback."""

    aggregator: Aggregator
    payment_reference: str | None = Field(default=None)
    status: CanonicalStatus
    external_transaction_id: str | None = Field(default=None)
    operator_id: str | None = Field(default=None)
    error_message: str | None = Field(default=None)
    quote_id: UUID | None = Field(default=None)
    beneficiaries: list[BeneficiaryInput] = Field(default_factory=list)
