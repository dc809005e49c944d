"""Contract lookups and status management after issuance."""

from typing import Final
from uuid import UUID

from beartype import beartype

from ..core.errors import DomainError, ErrorKind, fail
from ..core.logging_utils import get_logger
from ..core.result_types import Ok, Result
from ..models.contract import Contract, ContractStatus
from ..repositories.contracts import ContractRepository
from .quote_lifecycle import Clock, utc_now

logger = get_logger(__name__)

CONTRACT_TRANSITIONS: Final[dict[ContractStatus, frozenset[ContractStatus]]] = {
    ContractStatus.ACTIVE: frozenset({ContractStatus.SUSPENDED, ContractStatus.TERMINATED}),
    ContractStatus.SUSPENDED: frozenset({ContractStatus.ACTIVE, ContractStatus.TERMINATED}),
    ContractStatus.TERMINATED: frozenset(),
    ContractStatus.EXPIRED: frozenset(),
}


class ContractService:
    def __init__(self, contracts: ContractRepository, *, clock: Clock = utc_now) -> None:
        self._contracts = contracts
        self._clock = clock

    @beartype
    async def get(self, contract_id: UUID) -> Result[Contract, DomainError]:
        contract = await self._contracts.get(contract_id)
        if contract is None:
            return fail(ErrorKind.NOT_FOUND, f"Contract {contract_id} not found")
        return Ok(contract)

    @beartype
    async def get_by_number(self, number: str) -> Result[Contract, DomainError]:
        contract = await self._contracts.get_by_number(number)
        if contract is None:
            return fail(ErrorKind.NOT_FOUND, f"Contract {number} not found")
        return Ok(contract)

    @beartype
    async def list_for_owner(self, owner_id: UUID) -> Result[list[Contract], DomainError]:
        return Ok(await self._contracts.list_for_owner(owner_id))

    @beartype
    async def suspend(self, contract_id: UUID) -> Result[Contract, DomainError]:
        return await self._move(contract_id, ContractStatus.SUSPENDED)

    @beartype
    async def reactivate(self, contract_id: UUID) -> Result[Contract, DomainError]:
        return await self._move(contract_id, ContractStatus.ACTIVE)

    @beartype
    async def terminate(
        self, contract_id: UUID, reason: str | None = None
    ) -> Result[Contract, DomainError]:
        return await self._move(
            contract_id, ContractStatus.TERMINATED, {"termination_reason": reason}
        )

    async def _move(
        self,
        contract_id: UUID,
        target: ContractStatus,
        changes: dict[str, str | None] | None = None,
    ) -> Result[Contract, DomainError]:
        current = await self.get(contract_id)
        if current.is_err():
            return current
        contract = current.unwrap()

        if target not in CONTRACT_TRANSITIONS[contract.status]:
            return fail(
                ErrorKind.INVALID_STATE,
                f"Contract {contract.number} cannot move from "
                f"{contract.status.value} to {target.value}",
                status=contract.status.value,
                target=target.value,
            )

        updated = await self._contracts.transition(
            contract_id, {contract.status}, target, changes or {}, self._clock()
        )
        if updated is None:
            return fail(
                ErrorKind.INVALID_STATE,
                f"Contract {contract.number} was modified concurrently",
                target=target.value,
            )
        logger.info(
            "Contract %s moved %s -> %s", updated.number, contract.status.value, target.value
        )
        return Ok(updated)
