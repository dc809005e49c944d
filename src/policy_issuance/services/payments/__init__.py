# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Checkout, gateway and callback reconciliation."""

from .adapters import ADAPTERS, CallbackAdapter, adapter_for, canonical_status, parse_aggregator
from .checkout import CheckoutService, CheckoutSession, check_beneficiaries
from .gateway import GatewayCheckout, PaymentGatewayClient
from .reconciliation import CallbackOutcome, PaymentReconciliation

__all__ = [
    "ADAPTERS",
    "CallbackAdapter",
    "CallbackOutcome",
    "CheckoutService",
    "CheckoutSession",
    "GatewayCheckout",
    "PaymentGatewayClient",
    "PaymentReconciliation",
    "adapter_for",
    "canonical_status",
    "check_beneficiaries",
    "parse_aggregator",
]
