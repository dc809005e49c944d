"""Contract API schemas."""

from beartype import beartype
from pydantic import Field

from ..models.contract import Contract
from .common import StrictSchema


@beartype
class TerminateContractRequest(StrictSchema):
    reason: str | None = Field(default=None, max_length=1000)


@beartype
class ContractListResponse(StrictSchema):
    contracts: list[Contract]
    total: int = Field(..., ge=0)
