# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Repository layer.

Each module declares the storage protocol its services depend on next to the
asyncpg implementation of that protocol.
"""

from .base import (
    CONTRACT_NUMBER_CONSTRAINT,
    CONTRACT_QUOTE_CONSTRAINT,
    PAYMENT_REFERENCE_CONSTRAINT,
    QUOTE_REFERENCE_CONSTRAINT,
    ReferenceScope,
    ReferenceSource,
)
from .catalog import CachedCatalogRepository, CatalogRepository, PostgresCatalogRepository
from .contracts import ContractRepository, PostgresContractRepository
from .payments import CallbackMerge, PaymentRepository, PostgresPaymentRepository
from .quotes import PostgresQuoteRepository, QuoteRepository
from .tariffs import PostgresTariffRepository, TariffRepository

__all__ = [
    "CONTRACT_NUMBER_CONSTRAINT",
    "CONTRACT_QUOTE_CONSTRAINT",
    "PAYMENT_REFERENCE_CONSTRAINT",
    "QUOTE_REFERENCE_CONSTRAINT",
    "CachedCatalogRepository",
    "CallbackMerge",
    "CatalogRepository",
    "ContractRepository",
    "PaymentRepository",
    "PostgresCatalogRepository",
    "PostgresContractRepository",
    "PostgresPaymentRepository",
    "PostgresQuoteRepository",
    "PostgresTariffRepository",
    "QuoteRepository",
    "ReferenceScope",
    "ReferenceSource",
    "TariffRepository",
]
