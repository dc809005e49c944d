# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Business services.

Services return ``Result`` values and never raise for business failures.
"""

from .contract_issuance import ContractIssuance, add_months
from .contract_service import ContractService
from .expiry_sweeper import ExpirySweeper
from .formula_evaluator import ExpressionError, FormulaEvaluator, parse_expression
from .formula_service import FormulaService
from .payments import (
    CallbackOutcome,
    CheckoutService,
    CheckoutSession,
    PaymentGatewayClient,
    PaymentReconciliation,
)
from .quote_lifecycle import QuoteLifecycle, can_transition
from .reference_generator import (
    ReferenceGenerator,
    contract_scope,
    payment_reference,
    persist_with_random_reference,
    quote_scope,
)
from .subscription import SubscriptionService, SubscriptionState
from .tariff_resolver import TariffResolver, criterion_matches, derive_criteria

__all__ = [
    "CallbackOutcome",
    "CheckoutService",
    "CheckoutSession",
    "ContractIssuance",
    "ContractService",
    "ExpirySweeper",
    "ExpressionError",
    "FormulaEvaluator",
    "FormulaService",
    "PaymentGatewayClient",
    "PaymentReconciliation",
    "QuoteLifecycle",
    "ReferenceGenerator",
    "SubscriptionService",
    "SubscriptionState",
    "TariffResolver",
    "add_months",
    "can_transition",
    "contract_scope",
    "criterion_matches",
    "derive_criteria",
    "parse_expression",
    "payment_reference",
    "persist_with_random_reference",
    "quote_scope",
]
