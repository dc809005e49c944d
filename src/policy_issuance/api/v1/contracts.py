"""Contract API endpoints."""

from uuid import UUID

from beartype import beartype
from fastapi import APIRouter, Depends

from ...models.contract import Contract
from ...schemas.contract import ContractListResponse, TerminateContractRequest
from ...services.contract_service import ContractService
from ..dependencies import get_contract_service
from ..response_patterns import unwrap_or_raise

router = APIRouter(prefix="/contracts", tags=["contracts"])


@router.get("/", response_model=ContractListResponse)
@beartype
async def list_contracts(
    owner_id: UUID,
    service: ContractService = Depends(get_contract_service),
) -> ContractListResponse:
    contracts = unwrap_or_raise(await service.list_for_owner(owner_id))
    return ContractListResponse(contracts=contracts, total=len(contracts))


@router.get("/by-number/{number}", response_model=Contract)
@beartype
async def get_contract_by_number(
    number: str,
    service: ContractService = Depends(get_contract_service),
) -> Contract:
    return unwrap_or_raise(await service.get_by_number(number))


@router.get("/{contract_id}", response_model=Contract)
@beartype
async def get_contract(
    contract_id: UUID,
    service: ContractService = Depends(get_contract_service),
) -> Contract:
    return unwrap_or_raise(await service.get(contract_id))


@router.post("/{contract_id}/suspend", response_model=Contract)
@beartype
async def suspend_contract(
    contract_id: UUID,
    service: ContractService = Depends(get_contract_service),
) -> Contract:
    return unwrap_or_raise(await service.suspend(contract_id))


@router.post("/{contract_id}/reactivate", response_model=Contract)
@beartype
async def reactivate_contract(
    contract_id: UUID,
    service: ContractService = Depends(get_contract_service),
) -> Contract:
    return unwrap_or_raise(await service.reactivate(contract_id))


@router.post("/{contract_id}/terminate", response_model=Contract)
@beartype
async def terminate_contract(
    contract_id: UUID,
    request: TerminateContractRequest,
    service: ContractService = Depends(get_contract_service),
) -> Contract:
    """Terminate an active or suspended contract; termination is final."""
    return unwrap_or_raise(await service.terminate(contract_id, request.reason))
