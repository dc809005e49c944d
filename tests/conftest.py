"""Shared fixtures: a frozen clock, a small catalog and the service graph.

Services are wired over the in-memory repositories from
``fixtures.memory_store`` so lifecycle, reconciliation and issuance tests
exercise the real compare-and-set and unique-constraint paths without a
database.
"""

from collections.abc import Iterator
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
import pytest_asyncio

from fixtures.memory_store import (
    InMemoryCatalogRepository,
    InMemoryContractRepository,
    InMemoryPaymentRepository,
    InMemoryQuoteRepository,
    InMemoryTariffRepository,
)
from policy_issuance.core.config import clear_settings_cache
from policy_issuance.models.payment import PaymentMethod
from policy_issuance.models.product import (
    Category,
    CriterionKind,
    CriterionOperator,
    PricingCriterion,
    PricingMode,
    Product,
    ProductType,
)
from policy_issuance.models.quote import Quote, QuoteCreate
from policy_issuance.models.tariff import FixedRate, GridStatus, RateGrid
from policy_issuance.services.contract_issuance import ContractIssuance
from policy_issuance.services.contract_service import ContractService
from policy_issuance.services.payments.checkout import CheckoutService
from policy_issuance.services.payments.reconciliation import PaymentReconciliation
from policy_issuance.services.quote_lifecycle import QuoteLifecycle
from policy_issuance.services.subscription import SubscriptionService
from policy_issuance.services.tariff_resolver import TariffResolver

T0 = datetime(2025, 3, 14, 9, 30, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep cached settings from leaking between tests."""
    monkeypatch.setenv("EXPIRY_SWEEP_ENABLED", "false")
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def mock_db() -> MagicMock:
    """Create mock database connection for testing."""
    db = MagicMock()
    db.fetchval = AsyncMock(return_value=None)
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.execute = AsyncMock(return_value=None)
    return db


# Catalog


@pytest.fixture
def category() -> Category:
    return Category(id=uuid4(), name="Prevoyance", code="230")


@pytest.fixture
def life_product(category: Category) -> Product:
    return Product(
        id=uuid4(),
        name="Serenite Vie",
        product_type=ProductType.LIFE,
        pricing_mode=PricingMode.GRID,
        category_id=category.id,
        criteria=[
            PricingCriterion(
                name="age", kind=CriterionKind.NUMERIC, operator=CriterionOperator.BETWEEN
            )
        ],
        max_beneficiaries=2,
        default_deductible=Decimal("5000"),
        default_cap=Decimal("1000000"),
    )


@pytest.fixture
def rate_grid(life_product: Product) -> RateGrid:
    return RateGrid(
        id=uuid4(),
        product_id=life_product.id,
        name="Grille 2025",
        valid_from=date(2025, 1, 1),
        valid_to=date(2025, 12, 31),
        status=GridStatus.ACTIVE,
    )


@pytest.fixture
def fixed_rates(rate_grid: RateGrid) -> list[FixedRate]:
    return [
        FixedRate(id=uuid4(), grid_id=rate_grid.id, criteria={"age": "18-25"}, amount=Decimal("12500")),
        FixedRate(id=uuid4(), grid_id=rate_grid.id, criteria={"age": "26-40"}, amount=Decimal("15000")),
    ]


# Repositories


@pytest.fixture
def catalog(life_product: Product, category: Category) -> InMemoryCatalogRepository:
    return InMemoryCatalogRepository([life_product], [category])


@pytest.fixture
def tariffs(rate_grid: RateGrid, fixed_rates: list[FixedRate]) -> InMemoryTariffRepository:
    repository = InMemoryTariffRepository()
    repository.add_grid(rate_grid, fixed_rates)
    return repository


@pytest.fixture
def quote_repo() -> InMemoryQuoteRepository:
    return InMemoryQuoteRepository()


@pytest.fixture
def payment_repo() -> InMemoryPaymentRepository:
    return InMemoryPaymentRepository()


@pytest.fixture
def contract_repo() -> InMemoryContractRepository:
    return InMemoryContractRepository()


# Services


@pytest.fixture
def resolver(
    catalog: InMemoryCatalogRepository, tariffs: InMemoryTariffRepository
) -> TariffResolver:
    return TariffResolver(catalog, tariffs)


@pytest.fixture
def lifecycle(
    quote_repo: InMemoryQuoteRepository,
    catalog: InMemoryCatalogRepository,
    resolver: TariffResolver,
    clock: FrozenClock,
) -> QuoteLifecycle:
    return QuoteLifecycle(quote_repo, catalog, resolver, clock=clock)


@pytest.fixture
def issuance(
    lifecycle: QuoteLifecycle,
    contract_repo: InMemoryContractRepository,
    payment_repo: InMemoryPaymentRepository,
    catalog: InMemoryCatalogRepository,
    clock: FrozenClock,
) -> ContractIssuance:
    return ContractIssuance(
        lifecycle, contract_repo, payment_repo, catalog, agency_code="101", clock=clock
    )


@pytest.fixture
def reconciliation(
    payment_repo: InMemoryPaymentRepository,
    lifecycle: QuoteLifecycle,
    issuance: ContractIssuance,
    clock: FrozenClock,
) -> PaymentReconciliation:
    return PaymentReconciliation(payment_repo, lifecycle, issuance, clock=clock)


@pytest.fixture
def checkout_service(
    lifecycle: QuoteLifecycle,
    payment_repo: InMemoryPaymentRepository,
    catalog: InMemoryCatalogRepository,
    clock: FrozenClock,
) -> CheckoutService:
    return CheckoutService(lifecycle, payment_repo, catalog, clock=clock)


@pytest.fixture
def contract_service(
    contract_repo: InMemoryContractRepository, clock: FrozenClock
) -> ContractService:
    return ContractService(contract_repo, clock=clock)


@pytest.fixture
def subscription_service(
    quote_repo: InMemoryQuoteRepository,
    payment_repo: InMemoryPaymentRepository,
    contract_repo: InMemoryContractRepository,
) -> SubscriptionService:
    return SubscriptionService(quote_repo, payment_repo, contract_repo)


# Quotes in a given state


@pytest.fixture
def owner_id():
    return uuid4()


@pytest_asyncio.fixture
async def simulation(lifecycle: QuoteLifecycle, life_product: Product) -> Quote:
    result = await lifecycle.create(
        QuoteCreate(product_id=life_product.id, criteria={"age": "18-25"})
    )
    return result.unwrap()


@pytest_asyncio.fixture
async def saved_quote(lifecycle: QuoteLifecycle, simulation: Quote, owner_id) -> Quote:
    return (await lifecycle.save(simulation.id, owner_id, "Ma simulation")).unwrap()


@pytest_asyncio.fixture
async def pending_checkout(checkout_service: CheckoutService, saved_quote: Quote, owner_id):
    """A saved quote moved to AWAITING_PAYMENT with one pending payment."""
    result = await checkout_service.start_checkout(
        saved_quote.id, owner_id, PaymentMethod.WAVE
    )
    return result.unwrap()
