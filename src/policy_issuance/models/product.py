"""Product catalog models.

Products and categories are managed by the admin back office. This service
only reads them, so the models carry exactly what pricing, numbering and
beneficiary checks need.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from beartype import beartype
from pydantic import Field, field_validator, model_validator

from .base import BaseModelConfig


class ProductType(str, Enum):
    """Line of business, also the quote reference prefix family."""

    LIFE = "vie"
    NON_LIFE = "non_vie"

    @property
    def reference_prefix(self) -> str:
        return "VIE" if self is ProductType.LIFE else "NONVIE"


class PricingMode(str, Enum):
    """How a product's premium is computed."""

    GRID = "grid"
    FORMULA = "formula"


class CriterionKind(str, Enum):
    """Value type of a pricing criterion."""

    NUMERIC = "numeric"
    CATEGORICAL = "categorical"
    BOOLEAN = "boolean"
    TEXT = "text"


class CriterionOperator(str, Enum):
    """Comparison applied between a fixed rate key and a submitted value."""

    EQUAL = "equal"
    DIFFERENT = "different"
    GREATER = "greater"
    LESS = "less"
    BETWEEN = "between"
    NOT_BETWEEN = "not_between"


@beartype
class PricingCriterion(BaseModelConfig):
    """A criterion declared by a product."""

    name: str = Field(..., min_length=1, max_length=100)
    kind: CriterionKind = Field(default=CriterionKind.CATEGORICAL)
    operator: CriterionOperator = Field(default=CriterionOperator.EQUAL)
    required: bool = Field(default=True)


@beartype
class Category(BaseModelConfig):
    """Product category; its code feeds contract numbering."""

    id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    code: str = Field(..., description="Three digit category code")

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        """Category codes are exactly three digits."""
        if len(v) != 3 or not v.isdigit():
            raise ValueError(f"Category code must be three digits, got {v!r}")
        return v


@beartype
class Product(BaseModelConfig):
    """Insurance product as seen by pricing and issuance."""

    id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    product_type: ProductType
    pricing_mode: PricingMode = Field(default=PricingMode.GRID)
    category_id: UUID | None = Field(default=None)
    criteria: list[PricingCriterion] = Field(default_factory=list)
    requires_beneficiaries: bool = Field(default=False)
    max_beneficiaries: int = Field(default=0, ge=0, le=10)
    default_deductible: Decimal = Field(default=Decimal("0.00"), ge=Decimal("0"))
    default_cap: Decimal | None = Field(default=None, ge=Decimal("0"))

    @model_validator(mode="after")
    def validate_beneficiary_policy(self) -> "Product":
        """A product that requires beneficiaries must allow at least one."""
        if self.requires_beneficiaries and self.max_beneficiaries < 1:
            raise ValueError(
                "max_beneficiaries must be at least 1 when beneficiaries are required"
            )
        return self

    def criterion(self, name: str) -> PricingCriterion | None:
        """Look up a declared criterion by case-insensitive name."""
        wanted = name.strip().lower()
        for criterion in self.criteria:
            if criterion.name.lower() == wanted:
                return criterion
        return None
