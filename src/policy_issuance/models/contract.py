"""Contract domain models."""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from beartype import beartype
from pydantic import Field, model_validator

from .base import BaseModelConfig, IdentifiableModel
from .product import ProductType
from .quote import InsuredParty


class ContractStatus(str, Enum):
    """Contract statuses."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"
    EXPIRED = "expired"


@beartype
class Beneficiary(BaseModelConfig):
    """A party entitled to contract proceeds."""

    id: UUID
    contract_id: UUID
    full_name: str = Field(..., min_length=1, max_length=200)
    relationship: str = Field(..., min_length=1, max_length=100)
    rank: int = Field(..., ge=1, le=2)
    position: int = Field(default=0, ge=0, description="Order within the contract")
    birth_date: date | None = Field(default=None)
    share_percent: Decimal | None = Field(default=None, decimal_places=2)


@beartype
class Contract(IdentifiableModel):
    """The binding policy created from a paid quote."""

    number: str = Field(..., pattern=r"^\d{3}-\d{3}\d{5}$")
    quote_id: UUID
    product_id: UUID
    product_type: ProductType
    grid_id: UUID | None = Field(default=None)
    category_id: UUID
    owner_id: UUID | None = Field(default=None)
    criteria: dict[str, Any] = Field(default_factory=dict)
    premium: Decimal = Field(..., ge=Decimal("0"), decimal_places=2)
    deductible: Decimal = Field(default=Decimal("0.00"), ge=Decimal("0"), decimal_places=2)
    cap: Decimal | None = Field(default=None, ge=Decimal("0"), decimal_places=2)
    insured: InsuredParty | None = Field(default=None)
    coverage_start: date
    coverage_end: date
    status: ContractStatus = Field(default=ContractStatus.ACTIVE)
    termination_reason: str | None = Field(default=None, max_length=1000)
    beneficiaries: list[Beneficiary] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_coverage(self) -> "Contract":
        """Coverage must end after it starts."""
        if self.coverage_end <= self.coverage_start:
            raise ValueError("coverage_end must be after coverage_start")
        return self
