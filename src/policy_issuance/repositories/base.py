"""Shared repository pieces: reference scopes and constraint names."""

from typing import Any, Final, Protocol, runtime_checkable

import asyncpg
from attrs import field, frozen

QUOTE_REFERENCE_CONSTRAINT: Final = "uq_quotes_reference"
CONTRACT_NUMBER_CONSTRAINT: Final = "uq_contracts_number_product_type"
CONTRACT_QUOTE_CONSTRAINT: Final = "uq_contracts_quote_id"
PAYMENT_REFERENCE_CONSTRAINT: Final = "uq_payments_reference"


@frozen
class ReferenceScope:
    """Where a generated identifier lives and how it is formatted.

    ``prefix`` is everything before the zero-padded sequence, ``width`` the
    number of sequence digits, ``constraint`` the unique constraint that
    guards the identifier column and ``partition`` an optional extra equality
    filter (the product type for contract numbers).
    """

    prefix: str = field()
    width: int = field()
    constraint: str = field()
    partition: str | None = field(default=None)

    @property
    def like_pattern(self) -> str:
        return escape_like(self.prefix) + "%"

    def format(self, sequence: int) -> str:
        return f"{self.prefix}{sequence:0{self.width}d}"


@runtime_checkable
class ReferenceSource(Protocol):
    """Anything that can report the greatest identifier inside a scope."""

    async def greatest_identifier(self, scope: ReferenceScope) -> str | None: ...


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so a prefix matches literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def violated_constraint(error: asyncpg.UniqueViolationError) -> str | None:
    """Name of the unique constraint behind a violation, when known."""
    return getattr(error, "constraint_name", None)


def record_to_dict(row: Any) -> dict[str, Any]:
    """Turn an ``asyncpg.Record`` (or any mapping) into a plain dict."""
    return dict(row.items()) if hasattr(row, "items") else dict(row)
