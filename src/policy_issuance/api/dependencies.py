# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""FastAPI dependencies wiring repositories and services.

Each provider builds one layer from the layer below it, so tests can swap a
whole service through ``app.dependency_overrides`` without touching the
database or Redis.
"""

from datetime import timedelta

from beartype import beartype
from fastapi import Depends

from ..core.cache import Cache, get_cache
from ..core.config import Settings, get_settings
from ..core.database import Database, get_database
from ..repositories.catalog import (
    CachedCatalogRepository,
    CatalogRepository,
    PostgresCatalogRepository,
)
from ..repositories.contracts import ContractRepository, PostgresContractRepository
from ..repositories.payments import PaymentRepository, PostgresPaymentRepository
from ..repositories.quotes import PostgresQuoteRepository, QuoteRepository
from ..repositories.tariffs import PostgresTariffRepository, TariffRepository
from ..services.contract_issuance import ContractIssuance
from ..services.contract_service import ContractService
from ..services.formula_service import FormulaService
from ..services.payments.checkout import CheckoutService
from ..services.payments.gateway import PaymentGatewayClient
from ..services.payments.reconciliation import PaymentReconciliation
from ..services.quote_lifecycle import QuoteLifecycle
from ..services.subscription import SubscriptionService
from ..services.tariff_resolver import TariffResolver


@beartype
async def get_db() -> Database:
    """Provide the shared database pool wrapper."""
    return get_database()


@beartype
async def get_cache_client() -> Cache:
    """Provide the shared Redis cache."""
    return get_cache()


# Repositories


async def get_quote_repository(db: Database = Depends(get_db)) -> QuoteRepository:
    return PostgresQuoteRepository(db)


async def get_payment_repository(db: Database = Depends(get_db)) -> PaymentRepository:
    return PostgresPaymentRepository(db)


async def get_contract_repository(db: Database = Depends(get_db)) -> ContractRepository:
    return PostgresContractRepository(db)


async def get_tariff_repository(db: Database = Depends(get_db)) -> TariffRepository:
    return PostgresTariffRepository(db)


async def get_catalog_repository(
    db: Database = Depends(get_db),
    cache: Cache = Depends(get_cache_client),
    settings: Settings = Depends(get_settings),
) -> CatalogRepository:
    """Catalog reads go through Redis when it is connected."""
    inner = PostgresCatalogRepository(db)
    if not cache.is_connected:
        return inner
    return CachedCatalogRepository(inner, cache, settings.redis_ttl_seconds)


# Services


async def get_tariff_resolver(
    catalog: CatalogRepository = Depends(get_catalog_repository),
    tariffs: TariffRepository = Depends(get_tariff_repository),
) -> TariffResolver:
    return TariffResolver(catalog, tariffs)


async def get_quote_lifecycle(
    quotes: QuoteRepository = Depends(get_quote_repository),
    catalog: CatalogRepository = Depends(get_catalog_repository),
    resolver: TariffResolver = Depends(get_tariff_resolver),
    settings: Settings = Depends(get_settings),
) -> QuoteLifecycle:
    return QuoteLifecycle(
        quotes,
        catalog,
        resolver,
        validity=timedelta(hours=settings.quote_validity_hours),
        max_reference_attempts=settings.reference_max_attempts,
    )


async def get_contract_issuance(
    lifecycle: QuoteLifecycle = Depends(get_quote_lifecycle),
    contracts: ContractRepository = Depends(get_contract_repository),
    payments: PaymentRepository = Depends(get_payment_repository),
    catalog: CatalogRepository = Depends(get_catalog_repository),
    settings: Settings = Depends(get_settings),
) -> ContractIssuance:
    return ContractIssuance(
        lifecycle,
        contracts,
        payments,
        catalog,
        agency_code=settings.agency_code,
        duration_months=settings.contract_duration_months,
        max_reference_attempts=settings.reference_max_attempts,
    )


async def get_reconciliation(
    payments: PaymentRepository = Depends(get_payment_repository),
    lifecycle: QuoteLifecycle = Depends(get_quote_lifecycle),
    issuance: ContractIssuance = Depends(get_contract_issuance),
) -> PaymentReconciliation:
    return PaymentReconciliation(payments, lifecycle, issuance)


async def get_gateway_client(
    settings: Settings = Depends(get_settings),
) -> PaymentGatewayClient:
    return PaymentGatewayClient(settings)


async def get_checkout_service(
    lifecycle: QuoteLifecycle = Depends(get_quote_lifecycle),
    payments: PaymentRepository = Depends(get_payment_repository),
    catalog: CatalogRepository = Depends(get_catalog_repository),
    gateway: PaymentGatewayClient = Depends(get_gateway_client),
    settings: Settings = Depends(get_settings),
) -> CheckoutService:
    return CheckoutService(
        lifecycle,
        payments,
        catalog,
        gateway,
        max_reference_attempts=settings.reference_max_attempts,
    )


async def get_contract_service(
    contracts: ContractRepository = Depends(get_contract_repository),
) -> ContractService:
    return ContractService(contracts)


async def get_formula_service(
    tariffs: TariffRepository = Depends(get_tariff_repository),
) -> FormulaService:
    return FormulaService(tariffs)


async def get_subscription_service(
    quotes: QuoteRepository = Depends(get_quote_repository),
    payments: PaymentRepository = Depends(get_payment_repository),
    contracts: ContractRepository = Depends(get_contract_repository),
) -> SubscriptionService:
    return SubscriptionService(quotes, payments, contracts)
