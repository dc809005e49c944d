# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Policy issuance service.

Quotes insurance premiums, follows each quote through payment and turns paid
quotes into contracts, reconciling asynchronous payment-gateway callbacks on
the way.
"""

__version__ = "1.0.0"
