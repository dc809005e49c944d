# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""API v1 router aggregation."""

from fastapi import APIRouter

from .contracts import router as contracts_router
from .formulas import router as formulas_router
from .payments import router as payments_router
from .quotes import router as quotes_router

router = APIRouter(prefix="/api/v1")

router.include_router(quotes_router)
router.include_router(contracts_router)
router.include_router(payments_router)
router.include_router(formulas_router)

__all__ = ["router"]
