"""Turn a paid quote into a contract, exactly once."""

import calendar
from datetime import date
from uuid import UUID, uuid4

import asyncpg
from beartype import beartype

from ..core.errors import DomainError, ErrorKind, fail
from ..core.logging_utils import get_logger
from ..core.result_types import Ok, Result
from ..models.contract import Contract, ContractStatus
from ..models.product import Category, Product
from ..models.quote import Quote, QuoteStatus
from ..repositories.base import CONTRACT_QUOTE_CONSTRAINT, violated_constraint
from ..repositories.catalog import CatalogRepository
from ..repositories.contracts import ContractRepository
from ..repositories.payments import PaymentRepository
from .quote_lifecycle import Clock, QuoteLifecycle, utc_now
from .reference_generator import DEFAULT_MAX_ATTEMPTS, ReferenceGenerator, contract_scope

logger = get_logger(__name__)


@beartype
def add_months(start: date, months: int) -> date:
    """Same day ``months`` later, clamped to the end of shorter months."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


class ContractIssuance:
    """Issues contracts for PAID quotes.

    Issuance is idempotent per quote: a second call returns the contract the
    first one created, and two concurrent calls are settled by the unique
    constraint on ``contracts.quote_id``.
    """

    def __init__(
        self,
        lifecycle: QuoteLifecycle,
        contracts: ContractRepository,
        payments: PaymentRepository,
        catalog: CatalogRepository,
        *,
        agency_code: str,
        duration_months: int = 12,
        max_reference_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: Clock = utc_now,
    ) -> None:
        self._lifecycle = lifecycle
        self._contracts = contracts
        self._payments = payments
        self._catalog = catalog
        self._agency_code = agency_code
        self._duration_months = duration_months
        self._numbers = ReferenceGenerator(contracts, max_reference_attempts)
        self._clock = clock

    @beartype
    async def issue_from_quote(self, quote_id: UUID) -> Result[Contract, DomainError]:
        existing = await self._contracts.get_by_quote(quote_id)
        if existing is not None:
            return await self._complete(existing)

        quote_result = await self._lifecycle.get(quote_id)
        if quote_result.is_err():
            return quote_result
        quote = quote_result.unwrap()
        if quote.status is QuoteStatus.CONVERTED:
            # Another issuer finished between the lookup above and this read
            issued = await self._contracts.get_by_quote(quote_id)
            if issued is not None:
                return await self._complete(issued)
        if quote.status is not QuoteStatus.PAID:
            return fail(
                ErrorKind.INVALID_STATE,
                f"Quote {quote.reference} is {quote.status.value}, not paid",
                status=quote.status.value,
            )

        product = await self._catalog.get_product(quote.product_id)
        if product is None:
            return fail(ErrorKind.NOT_FOUND, f"Product {quote.product_id} not found")

        category_result = await self._resolve_category(quote, product)
        if category_result.is_err():
            return category_result
        category = category_result.unwrap()

        try:
            created = await self._numbers.persist_with_reference(
                contract_scope(self._agency_code, category.code, product.product_type),
                lambda number: self._contracts.insert(
                    self._snapshot(quote, product, category, number)
                ),
            )
        except asyncpg.UniqueViolationError as e:
            if violated_constraint(e) != CONTRACT_QUOTE_CONSTRAINT:
                raise
            winner = await self._contracts.get_by_quote(quote_id)
            if winner is None:
                raise
            logger.info(
                "Concurrent issuance for quote %s settled on contract %s",
                quote.reference,
                winner.number,
            )
            return await self._complete(winner)

        if created.is_err():
            return created
        contract = created.unwrap()
        logger.info("Contract %s issued for quote %s", contract.number, quote.reference)
        return await self._complete(contract)

    async def _resolve_category(
        self, quote: Quote, product: Product
    ) -> Result[Category, DomainError]:
        category_id = quote.category_id or product.category_id
        category = await self._catalog.get_category(category_id) if category_id else None
        if category is None:
            return fail(
                ErrorKind.MISSING_CATEGORY,
                f"No category for quote {quote.reference} or product {product.name}",
                quote_id=str(quote.id),
                product_id=str(product.id),
            )
        return Ok(category)

    def _snapshot(
        self, quote: Quote, product: Product, category: Category, number: str
    ) -> Contract:
        now = self._clock()
        start = now.date()
        return Contract(
            id=uuid4(),
            number=number,
            quote_id=quote.id,
            product_id=product.id,
            product_type=product.product_type,
            grid_id=quote.grid_id,
            category_id=category.id,
            owner_id=quote.owner_id,
            criteria=quote.criteria,
            premium=quote.premium,
            deductible=quote.deductible,
            cap=quote.cap,
            insured=quote.insured,
            coverage_start=start,
            coverage_end=add_months(start, self._duration_months),
            status=ContractStatus.ACTIVE,
            created_at=now,
            updated_at=now,
        )

    async def _complete(self, contract: Contract) -> Result[Contract, DomainError]:
        """Convert the quote and hand the payment's beneficiaries to the contract.

        Both steps tolerate being replayed, so a redelivered callback finishes
        an issuance that stopped half way.
        """
        converted = await self._lifecycle.convert(contract.quote_id)
        if converted.is_err():
            logger.error(
                "Contract %s exists but quote %s could not be converted: %s",
                contract.number,
                contract.quote_id,
                converted.err_value,
            )
            return converted

        payment = await self._payments.latest_succeeded_for_quote(contract.quote_id)
        if payment is None or payment.contract_id is not None:
            return Ok(contract)

        if payment.beneficiaries and not contract.beneficiaries:
            product = await self._catalog.get_product(contract.product_id)
            limit = product.max_beneficiaries if product else 0
            accepted = payment.beneficiaries[:limit]
            if len(accepted) < len(payment.beneficiaries):
                logger.warning(
                    "Dropping %d beneficiaries over the limit of %d for contract %s",
                    len(payment.beneficiaries) - len(accepted),
                    limit,
                    contract.number,
                )
            if accepted:
                added = await self._contracts.add_beneficiaries(contract.id, accepted)
                contract = contract.model_copy(update={"beneficiaries": added})

        await self._payments.attach_contract(payment.id, contract.id)
        return Ok(contract)
