"""Quote domain models."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from beartype import beartype
from pydantic import EmailStr, Field, field_validator, model_validator

from .base import BaseModelConfig, IdentifiableModel

_BIRTH_DATE_FORMATS = ("%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y")


class QuoteStatus(str, Enum):
    """Quote lifecycle states."""

    SIMULATION = "simulation"
    SAVED = "saved"
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    CONVERTED = "converted"
    EXPIRED = "expired"


@beartype
def parse_birth_date(value: Any) -> date | None:
    """Parse ``YYYY-MM-DD``, ``DD-MM-YYYY`` or ``DD/MM/YYYY`` birth dates."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    for fmt in _BIRTH_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognised date format: {text!r}")


@beartype
class InsuredParty(BaseModelConfig):
    """Snapshot of the insured person captured on the quote."""

    full_name: str = Field(..., min_length=1, max_length=200)
    birth_date: date | None = Field(default=None)
    id_document_type: str | None = Field(default=None, max_length=50)
    id_document_number: str | None = Field(default=None, max_length=100)
    email: EmailStr | None = Field(default=None)
    phone: str | None = Field(default=None, max_length=30)
    address: str | None = Field(default=None, max_length=500)

    @field_validator("birth_date", mode="before")
    @classmethod
    def normalize_birth_date(cls, v: Any) -> date | None:
        """Accept the day-first format used by the subscription forms."""
        return parse_birth_date(v)


@beartype
class QuoteCreate(BaseModelConfig):
    """Input for pricing a new simulation quote."""

    product_id: UUID
    criteria: dict[str, Any] = Field(default_factory=dict)
    insured: InsuredParty | None = Field(default=None)
    category_id: UUID | None = Field(default=None)
    owner_id: UUID | None = Field(default=None)
    evaluation_date: date | None = Field(
        default=None, description="Tariff selection date, defaults to today"
    )


@beartype
class Quote(IdentifiableModel):
    """A priced, not-yet-binding insurance proposal."""

    reference: str = Field(..., pattern=r"^(VIE|NONVIE)-\d{8}-\d{4}$")
    product_id: UUID
    grid_id: UUID | None = Field(default=None)
    formula_id: UUID | None = Field(default=None)
    category_id: UUID | None = Field(default=None)
    owner_id: UUID | None = Field(default=None)
    criteria: dict[str, Any] = Field(default_factory=dict)
    premium: Decimal = Field(..., ge=Decimal("0"), decimal_places=2)
    deductible: Decimal = Field(default=Decimal("0.00"), ge=Decimal("0"), decimal_places=2)
    cap: Decimal | None = Field(default=None, ge=Decimal("0"), decimal_places=2)
    status: QuoteStatus
    expires_at: datetime | None = Field(default=None)
    insured: InsuredParty | None = Field(default=None)
    name: str | None = Field(default=None, max_length=200)
    notes: str | None = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def validate_expiry(self) -> "Quote":
        """Only simulations carry an expiry timestamp."""
        if self.expires_at is not None and self.status is not QuoteStatus.SIMULATION:
            raise ValueError("expires_at is only allowed on simulation quotes")
        return self

    @beartype
    def is_expired(self, now: datetime) -> bool:
        """Whether an unsaved simulation is past its expiry."""
        return (
            self.status is QuoteStatus.SIMULATION
            and self.expires_at is not None
            and self.expires_at <= now
        )
