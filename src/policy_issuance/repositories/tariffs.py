"""Rate grid, fixed rate and formula persistence."""

from datetime import date
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from beartype import beartype

from ..core.database import Database
from ..models.tariff import (
    FixedRate,
    Formula,
    FormulaStatus,
    FormulaVariable,
    GridStatus,
    RateGrid,
)
from .base import record_to_dict


@runtime_checkable
class TariffRepository(Protocol):
    """Tariff reads used by pricing, plus formula writes used by validation."""

    async def active_grids_on(self, product_id: UUID, on: date) -> list[RateGrid]: ...

    async def fixed_rates(self, grid_id: UUID) -> list[FixedRate]: ...

    async def active_formula(self, product_id: UUID) -> Formula | None: ...

    async def save_formula(self, formula: Formula) -> Formula: ...


class PostgresTariffRepository:
    """asyncpg implementation of :class:`TariffRepository`."""

    def __init__(self, db: Database) -> None:
        self._db = db

    @beartype
    async def active_grids_on(self, product_id: UUID, on: date) -> list[RateGrid]:
        """Active grids whose validity window contains ``on``, newest start first."""
        rows = await self._db.fetch(
            """
            SELECT id, product_id, name, valid_from, valid_to, status FROM rate_grids
            WHERE product_id = $1
              AND status = $2
              AND valid_from <= $3
              AND (valid_to IS NULL OR valid_to >= $3)
            ORDER BY valid_from DESC
            """,
            product_id,
            GridStatus.ACTIVE.value,
            on,
        )
        return [RateGrid(**record_to_dict(row)) for row in rows]

    @beartype
    async def fixed_rates(self, grid_id: UUID) -> list[FixedRate]:
        rows = await self._db.fetch(
            "SELECT id, grid_id, criteria, amount FROM fixed_rates WHERE grid_id = $1",
            grid_id,
        )
        return [FixedRate(**record_to_dict(row)) for row in rows]

    @beartype
    async def active_formula(self, product_id: UUID) -> Formula | None:
        row = await self._db.fetchrow(
            """
            SELECT * FROM formulas
            WHERE product_id = $1 AND status = $2
            ORDER BY updated_at DESC
            LIMIT 1
            """,
            product_id,
            FormulaStatus.ACTIVE.value,
        )
        return self._row_to_formula(row) if row else None

    @beartype
    async def save_formula(self, formula: Formula) -> Formula:
        """Insert or update a formula by id."""
        row = await self._db.fetchrow(
            """
            INSERT INTO formulas (id, product_id, name, expression, variables, status)
            VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (id) DO UPDATE SET
                name = EXCLUDED.name,
                expression = EXCLUDED.expression,
                variables = EXCLUDED.variables,
                status = EXCLUDED.status,
                updated_at = CURRENT_TIMESTAMP
            RETURNING *
            """,
            formula.id,
            formula.product_id,
            formula.name,
            formula.expression,
            {name: v.model_dump(mode="json") for name, v in formula.variables.items()},
            formula.status.value,
        )
        return self._row_to_formula(row)

    @staticmethod
    def _row_to_formula(row: Any) -> Formula:
        data = record_to_dict(row)
        return Formula(
            id=data["id"],
            product_id=data["product_id"],
            name=data["name"],
            expression=data["expression"],
            variables={
                name: FormulaVariable(**spec)
                for name, spec in (data.get("variables") or {}).items()
            },
            status=FormulaStatus(data["status"]),
        )
