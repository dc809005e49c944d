"""Contract and beneficiary persistence."""

from collections.abc import Collection, Mapping, Sequence
from datetime import datetime
from typing import Any, Final, Protocol, runtime_checkable
from uuid import UUID, uuid4

from beartype import beartype

from ..core.database import Database
from ..models.contract import Beneficiary, Contract, ContractStatus
from ..models.payment import BeneficiaryInput
from ..models.product import ProductType
from ..models.quote import InsuredParty
from .base import ReferenceScope, record_to_dict

_MUTABLE_COLUMNS: Final = frozenset({"termination_reason"})


@runtime_checkable
class ContractRepository(Protocol):
    """Storage operations used by issuance and contract management."""

    async def greatest_identifier(self, scope: ReferenceScope) -> str | None: ...

    async def insert(self, contract: Contract) -> Contract: ...

    async def get(self, contract_id: UUID) -> Contract | None: ...

    async def get_by_number(self, number: str) -> Contract | None: ...

    async def get_by_quote(self, quote_id: UUID) -> Contract | None: ...

    async def list_for_owner(self, owner_id: UUID) -> list[Contract]: ...

    async def add_beneficiaries(
        self, contract_id: UUID, beneficiaries: Sequence[BeneficiaryInput]
    ) -> list[Beneficiary]: ...

    async def transition(
        self,
        contract_id: UUID,
        expected: Collection[ContractStatus],
        target: ContractStatus,
        changes: Mapping[str, Any],
        now: datetime,
    ) -> Contract | None: ...


class PostgresContractRepository:
    """asyncpg implementation of :class:`ContractRepository`."""

    def __init__(self, db: Database) -> None:
        self._db = db

    @beartype
    async def greatest_identifier(self, scope: ReferenceScope) -> str | None:
        """Greatest contract number for the prefix within one product type."""
        return await self._db.fetchval(
            """
            SELECT number FROM contracts
            WHERE number LIKE $1 AND ($2::text IS NULL OR product_type = $2)
            ORDER BY number DESC
            LIMIT 1
            """,
            scope.like_pattern,
            scope.partition,
        )

    @beartype
    async def insert(self, contract: Contract) -> Contract:
        """Insert a contract.

        Raises ``UniqueViolationError`` on a duplicate number or when the quote
        already has a contract; the constraint name tells which.
        """
        row = await self._db.fetchrow(
            """
            INSERT INTO contracts (
                id, number, quote_id, product_id, product_type, grid_id, category_id,
                owner_id, criteria, premium, deductible, cap, insured,
                coverage_start, coverage_end, status, termination_reason,
                created_at, updated_at
            ) VALUES (
                $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15,
                $16, $17, $18, $19
            )
            RETURNING *
            """,
            contract.id,
            contract.number,
            contract.quote_id,
            contract.product_id,
            contract.product_type.value,
            contract.grid_id,
            contract.category_id,
            contract.owner_id,
            contract.criteria,
            contract.premium,
            contract.deductible,
            contract.cap,
            contract.insured.model_dump(mode="json") if contract.insured else None,
            contract.coverage_start,
            contract.coverage_end,
            contract.status.value,
            contract.termination_reason,
            contract.created_at,
            contract.updated_at,
        )
        return self._row_to_contract(row, [])

    @beartype
    async def get(self, contract_id: UUID) -> Contract | None:
        row = await self._db.fetchrow("SELECT * FROM contracts WHERE id = $1", contract_id)
        return await self._with_beneficiaries(row)

    @beartype
    async def get_by_number(self, number: str) -> Contract | None:
        row = await self._db.fetchrow("SELECT * FROM contracts WHERE number = $1", number)
        return await self._with_beneficiaries(row)

    @beartype
    async def get_by_quote(self, quote_id: UUID) -> Contract | None:
        row = await self._db.fetchrow(
            "SELECT * FROM contracts WHERE quote_id = $1", quote_id
        )
        return await self._with_beneficiaries(row)

    @beartype
    async def list_for_owner(self, owner_id: UUID) -> list[Contract]:
        rows = await self._db.fetch(
            "SELECT * FROM contracts WHERE owner_id = $1 ORDER BY created_at DESC",
            owner_id,
        )
        return [self._row_to_contract(row, []) for row in rows]

    @beartype
    async def add_beneficiaries(
        self, contract_id: UUID, beneficiaries: Sequence[BeneficiaryInput]
    ) -> list[Beneficiary]:
        """Attach beneficiaries in one transaction, keeping their order."""
        created: list[Beneficiary] = []
        async with self._db.transaction() as conn:
            offset = await conn.fetchval(
                "SELECT COUNT(*) FROM beneficiaries WHERE contract_id = $1",
                contract_id,
            )
            for index, item in enumerate(beneficiaries):
                row = await conn.fetchrow(
                    """
                    INSERT INTO beneficiaries (
                        id, contract_id, full_name, relationship, rank,
                        position, birth_date, share_percent
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                    RETURNING *
                    """,
                    uuid4(),
                    contract_id,
                    item.full_name,
                    item.relationship,
                    item.rank,
                    offset + index,
                    item.birth_date,
                    item.share_percent,
                )
                created.append(self._row_to_beneficiary(row))
        return created

    @beartype
    async def transition(
        self,
        contract_id: UUID,
        expected: Collection[ContractStatus],
        target: ContractStatus,
        changes: Mapping[str, Any],
        now: datetime,
    ) -> Contract | None:
        """Compare-and-set the contract status."""
        unknown = set(changes) - _MUTABLE_COLUMNS
        if unknown:
            raise ValueError(f"Columns cannot be changed by a transition: {sorted(unknown)}")

        assignments = ["status = $3", "updated_at = $4"]
        args: list[Any] = [
            contract_id,
            [status.value for status in expected],
            target.value,
            now,
        ]
        for column, value in changes.items():
            args.append(value)
            assignments.append(f"{column} = ${len(args)}")

        row = await self._db.fetchrow(
            f"""
            UPDATE contracts SET {", ".join(assignments)}
            WHERE id = $1 AND status = ANY($2::text[])
            RETURNING *
            """,
            *args,
        )
        return await self._with_beneficiaries(row)

    async def _with_beneficiaries(self, row: Any) -> Contract | None:
        if row is None:
            return None
        rows = await self._db.fetch(
            "SELECT * FROM beneficiaries WHERE contract_id = $1 ORDER BY position",
            row["id"],
        )
        return self._row_to_contract(
            row, [self._row_to_beneficiary(item) for item in rows]
        )

    @staticmethod
    def _row_to_beneficiary(row: Any) -> Beneficiary:
        data = record_to_dict(row)
        return Beneficiary(
            id=data["id"],
            contract_id=data["contract_id"],
            full_name=data["full_name"],
            relationship=data["relationship"],
            rank=data["rank"],
            position=data.get("position") or 0,
            birth_date=data.get("birth_date"),
            share_percent=data.get("share_percent"),
        )

    @staticmethod
    def _row_to_contract(row: Any, beneficiaries: list[Beneficiary]) -> Contract:
        data = record_to_dict(row)
        insured = data.get("insured")
        return Contract(
            id=data["id"],
            number=data["number"],
            quote_id=data["quote_id"],
            product_id=data["product_id"],
            product_type=ProductType(data["product_type"]),
            grid_id=data.get("grid_id"),
            category_id=data["category_id"],
            owner_id=data.get("owner_id"),
            criteria=data.get("criteria") or {},
            premium=data["premium"],
            deductible=data.get("deductible") or 0,
            cap=data.get("cap"),
            insured=InsuredParty(**insured) if insured else None,
            coverage_start=data["coverage_start"],
            coverage_end=data["coverage_end"],
            status=ContractStatus(data["status"]),
            termination_reason=data.get("termination_reason"),
            beneficiaries=beneficiaries,
            created_at=data["created_at"],
            updated_at=data["updated_at"],
        )
