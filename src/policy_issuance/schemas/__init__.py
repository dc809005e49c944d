# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""API request and response schemas."""

from .common import APIInfo, HealthResponse, StrictSchema
from .contract import ContractListResponse, TerminateContractRequest
from .formula import FormulaValidateRequest, FormulaValidateResponse
from .payment import PaymentSummary, SubscriptionResponse
from .quote import (
    CheckoutRequest,
    CheckoutResponse,
    DeleteQuoteResponse,
    QuoteListResponse,
    SaveQuoteRequest,
)
from .webhook import WebhookResponse

__all__ = [
    "APIInfo",
    "CheckoutRequest",
    "CheckoutResponse",
    "ContractListResponse",
    "DeleteQuoteResponse",
    "FormulaValidateRequest",
    "FormulaValidateResponse",
    "HealthResponse",
    "PaymentSummary",
    "QuoteListResponse",
    "SaveQuoteRequest",
    "StrictSchema",
    "SubscriptionResponse",
    "TerminateContractRequest",
    "WebhookResponse",
]
