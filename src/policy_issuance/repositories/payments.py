"""Payment persistence."""

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any, Final, Protocol, runtime_checkable
from uuid import UUID

from attrs import frozen
from beartype import beartype

from ..core.database import Database
from ..models.payment import (
    Aggregator,
    BeneficiaryInput,
    Payment,
    PaymentMethod,
    PaymentStatus,
)
from .base import record_to_dict


@frozen
class CallbackMerge:
    """Outcome of merging one callback into a payment row."""

    payment: Payment
    previous_status: PaymentStatus

    @property
    def status_changed(self) -> bool:
        return self.payment.status is not self.previous_status


# The CTE locks the row so concurrent callbacks for one payment serialize.
# Inside SET, column names refer to the row as it was before this update.
# Status leaves ``pending`` once; a failure may still be overturned by a
# later success, but a success is final.
_MERGE_CALLBACK: Final = """
    WITH previous AS (
        SELECT id, status FROM payments WHERE id = $1 FOR UPDATE
    )
    UPDATE payments AS p SET
        callback_history = p.callback_history || jsonb_build_array($2::jsonb),
        external_transaction_id = COALESCE(p.external_transaction_id, $3),
        operator_id = COALESCE(p.operator_id, $4),
        status = CASE
            WHEN p.status = 'pending' THEN $5
            WHEN p.status = 'failed' AND $5 = 'succeeded' THEN $5
            ELSE p.status
        END,
        failure_message = CASE
            WHEN p.status = 'pending' AND $5 IN ('failed', 'cancelled') THEN $6
            WHEN p.status = 'failed' AND $5 = 'succeeded' THEN NULL
            ELSE p.failure_message
        END,
        paid_at = CASE
            WHEN p.paid_at IS NULL AND p.status IN ('pending', 'failed') AND $5 = 'succeeded'
                THEN $7
            ELSE p.paid_at
        END,
        beneficiaries = CASE
            WHEN jsonb_array_length(p.beneficiaries) = 0 THEN $8::jsonb
            ELSE p.beneficiaries
        END,
        updated_at = $7
    FROM previous
    WHERE p.id = previous.id
    RETURNING p.*, previous.status AS previous_status
"""


@runtime_checkable
class PaymentRepository(Protocol):
    """Storage operations used by checkout and reconciliation."""

    async def insert(self, payment: Payment) -> Payment: ...

    async def get(self, payment_id: UUID) -> Payment | None: ...

    async def get_by_reference(self, reference: str) -> Payment | None: ...

    async def get_by_external_id(self, external_transaction_id: str) -> Payment | None: ...

    async def latest_succeeded_for_quote(self, quote_id: UUID) -> Payment | None: ...

    async def latest_for_quote(self, quote_id: UUID) -> Payment | None: ...

    async def has_open_payment(self, quote_id: UUID, excluding: UUID) -> bool: ...

    async def merge_callback(
        self,
        payment_id: UUID,
        payload: Mapping[str, Any],
        status: PaymentStatus,
        external_transaction_id: str | None,
        operator_id: str | None,
        failure_message: str | None,
        now: datetime,
        beneficiaries: Sequence[BeneficiaryInput] = (),
    ) -> CallbackMerge | None: ...

    async def attach_contract(self, payment_id: UUID, contract_id: UUID) -> None: ...


class PostgresPaymentRepository:
    """asyncpg implementation of :class:`PaymentRepository`."""

    def __init__(self, db: Database) -> None:
        self._db = db

    @beartype
    async def insert(self, payment: Payment) -> Payment:
        """Insert a payment; a duplicate reference raises ``UniqueViolationError``."""
        row = await self._db.fetchrow(
            """
            INSERT INTO payments (
                id, reference, quote_id, contract_id, amount, method, aggregator,
                status, external_transaction_id, operator_id, callback_history,
                beneficiaries, failure_message, paid_at, created_at, updated_at
            ) VALUES (
                $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16
            )
            RETURNING *
            """,
            payment.id,
            payment.reference,
            payment.quote_id,
            payment.contract_id,
            payment.amount,
            payment.method.value,
            payment.aggregator.value,
            payment.status.value,
            payment.external_transaction_id,
            payment.operator_id,
            payment.callback_history,
            [b.model_dump(mode="json") for b in payment.beneficiaries],
            payment.failure_message,
            payment.paid_at,
            payment.created_at,
            payment.updated_at,
        )
        return self._row_to_payment(row)

    @beartype
    async def get(self, payment_id: UUID) -> Payment | None:
        row = await self._db.fetchrow("SELECT * FROM payments WHERE id = $1", payment_id)
        return self._row_to_payment(row) if row else None

    @beartype
    async def get_by_reference(self, reference: str) -> Payment | None:
        row = await self._db.fetchrow(
            "SELECT * FROM payments WHERE reference = $1", reference
        )
        return self._row_to_payment(row) if row else None

    @beartype
    async def get_by_external_id(self, external_transaction_id: str) -> Payment | None:
        row = await self._db.fetchrow(
            """
            SELECT * FROM payments
            WHERE external_transaction_id = $1
            ORDER BY created_at DESC
            LIMIT 1
            """,
            external_transaction_id,
        )
        return self._row_to_payment(row) if row else None

    @beartype
    async def latest_succeeded_for_quote(self, quote_id: UUID) -> Payment | None:
        row = await self._db.fetchrow(
            """
            SELECT * FROM payments
            WHERE quote_id = $1 AND status = $2
            ORDER BY paid_at DESC NULLS LAST
            LIMIT 1
            """,
            quote_id,
            PaymentStatus.SUCCEEDED.value,
        )
        return self._row_to_payment(row) if row else None

    @beartype
    async def latest_for_quote(self, quote_id: UUID) -> Payment | None:
        row = await self._db.fetchrow(
            """
            SELECT * FROM payments
            WHERE quote_id = $1
            ORDER BY created_at DESC
            LIMIT 1
            """,
            quote_id,
        )
        return self._row_to_payment(row) if row else None

    @beartype
    async def has_open_payment(self, quote_id: UUID, excluding: UUID) -> bool:
        """Whether another payment for the quote is still pending or succeeded."""
        return bool(
            await self._db.fetchval(
                """
                SELECT EXISTS (
                    SELECT 1 FROM payments
                    WHERE quote_id = $1 AND id <> $2 AND status IN ($3, $4)
                )
                """,
                quote_id,
                excluding,
                PaymentStatus.PENDING.value,
                PaymentStatus.SUCCEEDED.value,
            )
        )

    @beartype
    async def merge_callback(
        self,
        payment_id: UUID,
        payload: Mapping[str, Any],
        status: PaymentStatus,
        external_transaction_id: str | None,
        operator_id: str | None,
        failure_message: str | None,
        now: datetime,
        beneficiaries: Sequence[BeneficiaryInput] = (),
    ) -> CallbackMerge | None:
        """Append a callback and apply its outcome in one statement."""
        row = await self._db.fetchrow(
            _MERGE_CALLBACK,
            payment_id,
            dict(payload),
            external_transaction_id,
            operator_id,
            status.value,
            failure_message,
            now,
            [b.model_dump(mode="json") for b in beneficiaries],
        )
        if row is None:
            return None
        return CallbackMerge(
            payment=self._row_to_payment(row),
            previous_status=PaymentStatus(row["previous_status"]),
        )

    @beartype
    async def attach_contract(self, payment_id: UUID, contract_id: UUID) -> None:
        await self._db.execute(
            """
            UPDATE payments SET contract_id = $2
            WHERE id = $1 AND contract_id IS NULL
            """,
            payment_id,
            contract_id,
        )

    @staticmethod
    def _row_to_payment(row: Any) -> Payment:
        data = record_to_dict(row)
        return Payment(
            id=data["id"],
            reference=data["reference"],
            quote_id=data["quote_id"],
            contract_id=data.get("contract_id"),
            amount=data["amount"],
            method=PaymentMethod(data["method"]),
            aggregator=Aggregator(data.get("aggregator") or Aggregator.GENERIC.value),
            status=PaymentStatus(data["status"]),
            external_transaction_id=data.get("external_transaction_id"),
            operator_id=data.get("operator_id"),
            callback_history=data.get("callback_history") or [],
            beneficiaries=[
                BeneficiaryInput(**item) for item in data.get("beneficiaries") or []
            ],
            failure_message=data.get("failure_message"),
            paid_at=data.get("paid_at"),
            created_at=data["created_at"],
            updated_at=data["updated_at"],
        )
