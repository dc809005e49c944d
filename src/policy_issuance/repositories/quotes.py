"""Quote persistence."""

from collections.abc import Collection, Mapping
from datetime import datetime
from typing import Any, Final, Protocol, runtime_checkable
from uuid import UUID

from beartype import beartype

from ..core.database import Database
from ..models.quote import InsuredParty, Quote, QuoteStatus
from .base import ReferenceScope, record_to_dict

# Columns a status transition may rewrite alongside the status itself
_MUTABLE_COLUMNS: Final = frozenset({"owner_id", "expires_at", "name", "notes"})

_INSERT_QUOTE: Final = """
    INSERT INTO quotes (
        id, reference, product_id, grid_id, formula_id, category_id, owner_id,
        criteria, premium, deductible, cap, status, expires_at, insured,
        name, notes, created_at, updated_at
    ) VALUES (
        $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17, $18
    )
    RETURNING *
"""


@runtime_checkable
class QuoteRepository(Protocol):
    """Storage operations the quote lifecycle relies on."""

    async def greatest_identifier(self, scope: ReferenceScope) -> str | None: ...

    async def insert(self, quote: Quote) -> Quote: ...

    async def get(self, quote_id: UUID) -> Quote | None: ...

    async def transition(
        self,
        quote_id: UUID,
        expected: Collection[QuoteStatus],
        target: QuoteStatus,
        changes: Mapping[str, Any],
        now: datetime,
    ) -> Quote | None: ...

    async def expire_simulations(self, now: datetime) -> int: ...

    async def list_for_owner(
        self, owner_id: UUID, status: QuoteStatus | None, limit: int, offset: int
    ) -> list[Quote]: ...

    async def delete(
        self, quote_id: UUID, owner_id: UUID, statuses: Collection[QuoteStatus]
    ) -> bool: ...


class PostgresQuoteRepository:
    """asyncpg implementation of :class:`QuoteRepository`."""

    def __init__(self, db: Database) -> None:
        self._db = db

    @beartype
    async def greatest_identifier(self, scope: ReferenceScope) -> str | None:
        """Lexicographically greatest reference starting with the scope prefix."""
        return await self._db.fetchval(
            """
            SELECT reference FROM quotes
            WHERE reference LIKE $1
            ORDER BY reference DESC
            LIMIT 1
            """,
            scope.like_pattern,
        )

    @beartype
    async def insert(self, quote: Quote) -> Quote:
        """Insert a quote; a duplicate reference raises ``UniqueViolationError``."""
        row = await self._db.fetchrow(
            _INSERT_QUOTE,
            quote.id,
            quote.reference,
            quote.product_id,
            quote.grid_id,
            quote.formula_id,
            quote.category_id,
            quote.owner_id,
            quote.criteria,
            quote.premium,
            quote.deductible,
            quote.cap,
            quote.status.value,
            quote.expires_at,
            quote.insured.model_dump(mode="json") if quote.insured else None,
            quote.name,
            quote.notes,
            quote.created_at,
            quote.updated_at,
        )
        return self._row_to_quote(row)

    @beartype
    async def get(self, quote_id: UUID) -> Quote | None:
        row = await self._db.fetchrow("SELECT * FROM quotes WHERE id = $1", quote_id)
        return self._row_to_quote(row) if row else None

    @beartype
    async def transition(
        self,
        quote_id: UUID,
        expected: Collection[QuoteStatus],
        target: QuoteStatus,
        changes: Mapping[str, Any],
        now: datetime,
    ) -> Quote | None:
        """Compare-and-set the status.

        Returns the updated quote, or ``None`` when the quote does not exist or
        its current status is not in ``expected``.
        """
        unknown = set(changes) - _MUTABLE_COLUMNS
        if unknown:
            raise ValueError(f"Columns cannot be changed by a transition: {sorted(unknown)}")

        assignments = ["status = $3", "updated_at = $4"]
        args: list[Any] = [
            quote_id,
            [status.value for status in expected],
            target.value,
            now,
        ]
        for column, value in changes.items():
            args.append(value)
            assignments.append(f"{column} = ${len(args)}")

        row = await self._db.fetchrow(
            f"""
            UPDATE quotes SET {", ".join(assignments)}
            WHERE id = $1 AND status = ANY($2::text[])
            RETURNING *
            """,
            *args,
        )
        return self._row_to_quote(row) if row else None

    @beartype
    async def expire_simulations(self, now: datetime) -> int:
        """Expire every simulation whose expiry has passed."""
        result = await self._db.execute(
            """
            UPDATE quotes
            SET status = $1, expires_at = NULL, updated_at = $3
            WHERE status = $2 AND expires_at IS NOT NULL AND expires_at <= $3
            """,
            QuoteStatus.EXPIRED.value,
            QuoteStatus.SIMULATION.value,
            now,
        )
        # asyncpg returns the command tag, e.g. "UPDATE 3"
        return int(result.split()[-1]) if result else 0

    @beartype
    async def list_for_owner(
        self, owner_id: UUID, status: QuoteStatus | None, limit: int, offset: int
    ) -> list[Quote]:
        rows = await self._db.fetch(
            """
            SELECT * FROM quotes
            WHERE owner_id = $1 AND ($2::text IS NULL OR status = $2)
            ORDER BY created_at DESC
            LIMIT $3 OFFSET $4
            """,
            owner_id,
            status.value if status else None,
            limit,
            offset,
        )
        return [self._row_to_quote(row) for row in rows]

    @beartype
    async def delete(
        self, quote_id: UUID, owner_id: UUID, statuses: Collection[QuoteStatus]
    ) -> bool:
        result = await self._db.execute(
            """
            DELETE FROM quotes
            WHERE id = $1 AND owner_id = $2 AND status = ANY($3::text[])
            """,
            quote_id,
            owner_id,
            [status.value for status in statuses],
        )
        return result.endswith(" 1")

    @staticmethod
    def _row_to_quote(row: Any) -> Quote:
        data = record_to_dict(row)
        insured = data.get("insured")
        return Quote(
            id=data["id"],
            reference=data["reference"],
            product_id=data["product_id"],
            grid_id=data.get("grid_id"),
            formula_id=data.get("formula_id"),
            category_id=data.get("category_id"),
            owner_id=data.get("owner_id"),
            criteria=data.get("criteria") or {},
            premium=data["premium"],
            deductible=data.get("deductible") or 0,
            cap=data.get("cap"),
            status=QuoteStatus(data["status"]),
            expires_at=data.get("expires_at"),
            insured=InsuredParty(**insured) if insured else None,
            name=data.get("name"),
            notes=data.get("notes"),
            created_at=data["created_at"],
            updated_at=data["updated_at"],
        )
