"""Tariff models: rate grids, fixed rates and premium formulas."""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from beartype import beartype
from pydantic import Field, model_validator

from .base import BaseModelConfig


class GridStatus(str, Enum):
    """Rate grid status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    FUTURE = "future"


class FormulaStatus(str, Enum):
    """Formula status."""

    ACTIVE = "active"
    INACTIVE = "inactive"


@beartype
class RateGrid(BaseModelConfig):
    """A dated set of fixed rates for one product."""

    id: UUID
    product_id: UUID
    name: str = Field(default="", max_length=200)
    valid_from: date
    valid_to: date | None = Field(default=None)
    status: GridStatus = Field(default=GridStatus.ACTIVE)

    @model_validator(mode="after")
    def validate_window(self) -> "RateGrid":
        """Ensure the validity window is not inverted."""
        if self.valid_to is not None and self.valid_to < self.valid_from:
            raise ValueError("valid_to must be on or after valid_from")
        return self

    def covers(self, on: date) -> bool:
        """Whether ``on`` falls inside the validity window (inclusive)."""
        return self.valid_from <= on and (self.valid_to is None or on <= self.valid_to)


@beartype
class FixedRate(BaseModelConfig):
    """A grid cell: a criteria combination and its fixed premium."""

    id: UUID
    grid_id: UUID
    criteria: dict[str, Any] = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=Decimal("0"), decimal_places=2)


@beartype
class FormulaVariable(BaseModelConfig):
    """Declared variable of a formula."""

    type: str = Field(
        default="number",
        pattern="^(number|string|boolean|date|table)$",
    )
    default: Any = Field(default=None)
    description: str = Field(default="", max_length=500)


@beartype
class Formula(BaseModelConfig):
    """A premium expression with its variable schema."""

    id: UUID
    product_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    expression: str = Field(..., min_length=1, max_length=4000)
    variables: dict[str, FormulaVariable] = Field(default_factory=dict)
    status: FormulaStatus = Field(default=FormulaStatus.ACTIVE)

    def default_values(self) -> dict[str, Any]:
        """Declared defaults, skipping variables without one."""
        return {
            name: variable.default
            for name, variable in self.variables.items()
            if variable.default is not None
        }


@beartype
class PriceBreakdown(BaseModelConfig):
    """Premium, deductible and cap resolved for one quote request."""

    premium: Decimal = Field(..., ge=Decimal("0"), decimal_places=2)
    deductible: Decimal = Field(default=Decimal("0.00"), ge=Decimal("0"), decimal_places=2)
    cap: Decimal | None = Field(default=None, ge=Decimal("0"), decimal_places=2)
    grid_id: UUID | None = Field(default=None)
    formula_id: UUID | None = Field(default=None)
