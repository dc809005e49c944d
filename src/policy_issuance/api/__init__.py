# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""HTTP surface: versioned API routers and the payment webhooks."""

from .v1 import router as v1_router
from .webhooks import router as webhooks_router

__all__ = ["v1_router", "webhooks_router"]
