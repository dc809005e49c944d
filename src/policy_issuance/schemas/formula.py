"""Formula validation schemas."""

from decimal import Decimal

from beartype import beartype
from pydantic import Field

from ..models.tariff import FormulaVariable
from .common import StrictSchema


@beartype
class FormulaValidateRequest(StrictSchema):
    expression: str = Field(..., min_length=1, max_length=4000)
    variables: dict[str, FormulaVariable] = Field(default_factory=dict)


@beartype
class FormulaValidateResponse(StrictSchema):
    """Outcome of evaluating a formula against its declared defaults."""

    valid: bool
    sample_result: Decimal | None = Field(default=None)
    error: str | None = Field(default=None)
