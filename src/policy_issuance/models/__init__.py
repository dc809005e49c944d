# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Domain models package.

This package exports the Pydantic domain models with strict validation and
immutability used by the quoting, payment and issuance services.
"""

from .base import BaseModelConfig, IdentifiableModel, TimestampedModel, quantize_money
from .contract import Beneficiary, Contract, ContractStatus
from .payment import (
    Aggregator,
    BeneficiaryInput,
    CanonicalEvent,
    CanonicalStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
)
from .product import (
    Category,
    CriterionKind,
    CriterionOperator,
    PricingCriterion,
    PricingMode,
    Product,
    ProductType,
)
from .quote import InsuredParty, Quote, QuoteCreate, QuoteStatus
from .tariff import (
    FixedRate,
    Formula,
    FormulaStatus,
    FormulaVariable,
    GridStatus,
    PriceBreakdown,
    RateGrid,
)

__all__ = [
    # Base models
    "BaseModelConfig",
    "IdentifiableModel",
    "TimestampedModel",
    "quantize_money",
    # Catalog
    "Category",
    "CriterionKind",
    "CriterionOperator",
    "PricingCriterion",
    "PricingMode",
    "Product",
    "ProductType",
    # Tariffs
    "FixedRate",
    "Formula",
    "FormulaStatus",
    "FormulaVariable",
    "GridStatus",
    "PriceBreakdown",
    "RateGrid",
    # Quotes
    "InsuredParty",
    "Quote",
    "QuoteCreate",
    "QuoteStatus",
    # Payments
    "Aggregator",
    "BeneficiaryInput",
    "CanonicalEvent",
    "CanonicalStatus",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    # Contracts
    "Beneficiary",
    "Contract",
    "ContractStatus",
]
