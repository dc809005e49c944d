# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Premium resolution from rate grids or formulas."""

import math
import re
from collections.abc import Mapping, Sequence
from datetime import date
from decimal import Decimal
from typing import Any, Final
from uuid import UUID

from beartype import beartype

from ..core.errors import DomainError, ErrorKind, fail
from ..core.logging_utils import get_logger
from ..core.result_types import Ok, Result
from ..models.base import quantize_money
from ..models.product import CriterionOperator, PricingMode, Product, ProductType
from ..models.quote import InsuredParty
from ..models.tariff import FixedRate, Formula, GridStatus, PriceBreakdown, RateGrid
from ..repositories.catalog import CatalogRepository
from ..repositories.tariffs import TariffRepository
from .formula_evaluator import DAYS_PER_YEAR, FormulaEvaluator

logger = get_logger(__name__)

AGE_CRITERION: Final = "age"
_RANGE_RE: Final = re.compile(
    r"^\s*(-?\d+(?:\.\d+)?)\s*-\s*(-?\d+(?:\.\d+)?)\s*$"
)
_TRUE_WORDS: Final = frozenset({"true", "1", "yes", "oui", "y"})
_FALSE_WORDS: Final = frozenset({"false", "0", "no", "non", "n"})


def _normalize_keys(criteria: Mapping[str, Any]) -> dict[str, Any]:
    return {str(key).strip().lower(): value for key, value in criteria.items()}


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip().lower()


def _equals(declared: Any, submitted: Any) -> bool:
    left = _as_float(declared)
    right = _as_float(submitted)
    if left is not None and right is not None:
        return left == right
    return _as_text(declared) == _as_text(submitted)


def _parse_range(declared: Any) -> tuple[float, float] | None:
    if isinstance(declared, Sequence) and not isinstance(declared, str):
        if len(declared) != 2:
            return None
        low, high = _as_float(declared[0]), _as_float(declared[1])
    elif isinstance(declared, str):
        match = _RANGE_RE.match(declared)
        if match is None:
            return None
        low, high = float(match.group(1)), float(match.group(2))
    else:
        return None
    if low is None or high is None:
        return None
    return (min(low, high), max(low, high))


@beartype
def criterion_matches(operator: CriterionOperator, declared: Any, submitted: Any) -> bool:
    """Whether a submitted criterion value satisfies a fixed rate's value."""
    if operator is CriterionOperator.EQUAL:
        return _equals(declared, submitted)
    if operator is CriterionOperator.DIFFERENT:
        return not _equals(declared, submitted)

    number = _as_float(submitted)
    if operator in (CriterionOperator.BETWEEN, CriterionOperator.NOT_BETWEEN):
        bounds = _parse_range(declared)
        if number is None or bounds is None:
            # Band labels such as "18-25" submitted verbatim
            equal = _equals(declared, submitted)
            return equal if operator is CriterionOperator.BETWEEN else not equal
        inside = bounds[0] <= number <= bounds[1]
        return inside if operator is CriterionOperator.BETWEEN else not inside

    threshold = _as_float(declared)
    if number is None or threshold is None:
        return False
    if operator is CriterionOperator.GREATER:
        return number > threshold
    return number < threshold


class TariffResolver:
    """Select the applicable rate for a product and criteria combination."""

    def __init__(
        self,
        catalog: CatalogRepository,
        tariffs: TariffRepository,
        evaluator: FormulaEvaluator | None = None,
    ) -> None:
        self._catalog = catalog
        self._tariffs = tariffs
        self._evaluator = evaluator or FormulaEvaluator()

    @beartype
    async def resolve_rate(
        self,
        product_id: UUID,
        grid_selection_date: date,
        criteria: Mapping[str, Any],
    ) -> Result[Decimal, DomainError]:
        """Resolve the premium for a product on a date.

        Returns:
            Result containing the premium rounded to two decimals, or
            NOT_FOUND, NO_ACTIVE_GRID, NO_MATCHING_RATE or INVALID_EXPRESSION.
        """
        product = await self._catalog.get_product(product_id)
        if product is None:
            return fail(ErrorKind.NOT_FOUND, f"Product {product_id} not found")

        result = await self.price(product, grid_selection_date, criteria)
        if result.is_err():
            return result
        return Ok(result.unwrap().premium)

    @beartype
    async def price(
        self,
        product: Product,
        grid_selection_date: date,
        criteria: Mapping[str, Any],
    ) -> Result[PriceBreakdown, DomainError]:
        """Premium plus the product's deductible and cap."""
        if product.pricing_mode is PricingMode.FORMULA:
            formula_result = await self._price_with_formula(product, criteria)
            if formula_result.is_err():
                return formula_result
            premium, formula = formula_result.unwrap()
            return Ok(self._breakdown(product, premium, formula_id=formula.id))

        grid_result = await self.select_active_grid(product.id, grid_selection_date)
        if grid_result.is_err():
            return grid_result
        grid = grid_result.unwrap()

        rates = await self._tariffs.fixed_rates(grid.id)
        rate_result = self.match_fixed_rate(product, rates, criteria)
        if rate_result.is_err():
            return rate_result
        rate = rate_result.unwrap()
        return Ok(self._breakdown(product, rate.amount, grid_id=grid.id))

    @beartype
    async def select_active_grid(
        self, product_id: UUID, on: date
    ) -> Result[RateGrid, DomainError]:
        """The active grid covering ``on``; the latest start wins."""
        candidates = [
            grid
            for grid in await self._tariffs.active_grids_on(product_id, on)
            if grid.status is GridStatus.ACTIVE and grid.covers(on)
        ]
        if not candidates:
            return fail(
                ErrorKind.NO_ACTIVE_GRID,
                f"No active rate grid for product {product_id} on {on.isoformat()}",
                product_id=str(product_id),
                date=on.isoformat(),
            )
        return Ok(max(candidates, key=lambda grid: grid.valid_from))

    @beartype
    def match_fixed_rate(
        self,
        product: Product,
        rates: Sequence[FixedRate],
        criteria: Mapping[str, Any],
    ) -> Result[FixedRate, DomainError]:
        """Find the single fixed rate matching every key it declares.

        Zero matches and several matches are both NO_MATCHING_RATE: an
        ambiguous grid is a configuration error, not a pricing choice.
        """
        submitted = _normalize_keys(criteria)
        matches = [rate for rate in rates if self._rate_matches(product, rate, submitted)]

        if len(matches) == 1:
            return Ok(matches[0])
        if not matches:
            return fail(
                ErrorKind.NO_MATCHING_RATE,
                "No rate found for the submitted criteria",
                criteria={k: str(v) for k, v in submitted.items()},
            )
        logger.warning(
            "Ambiguous grid for product %s: %d rates match %s",
            product.id,
            len(matches),
            submitted,
        )
        return fail(
            ErrorKind.NO_MATCHING_RATE,
            f"{len(matches)} rates match the submitted criteria",
            rate_ids=[str(rate.id) for rate in matches],
        )

    @staticmethod
    def _rate_matches(product: Product, rate: FixedRate, submitted: Mapping[str, Any]) -> bool:
        for key, declared in rate.criteria.items():
            name = key.strip().lower()
            if name not in submitted:
                return False
            criterion = product.criterion(name)
            operator = criterion.operator if criterion else CriterionOperator.EQUAL
            if not criterion_matches(operator, declared, submitted[name]):
                return False
        return True

    async def _price_with_formula(
        self, product: Product, criteria: Mapping[str, Any]
    ) -> Result[tuple[Decimal, Formula], DomainError]:
        formula = await self._tariffs.active_formula(product.id)
        if formula is None:
            return fail(
                ErrorKind.NO_ACTIVE_GRID,
                f"No active formula for product {product.id}",
                product_id=str(product.id),
            )

        variables = {**formula.default_values(), **self._coerce(formula, criteria)}
        result = self._evaluator.evaluate(formula.expression, variables)
        if result.is_err():
            logger.warning(
                "Formula %s failed for product %s: %s",
                formula.id,
                product.id,
                result.err_value,
            )
            return result

        premium = result.unwrap()
        if premium < 0:
            return fail(
                ErrorKind.INVALID_EXPRESSION,
                f"Formula {formula.id} produced a negative premium",
                premium=str(premium),
            )
        return Ok((premium, formula))

    @staticmethod
    def _coerce(formula: Formula, criteria: Mapping[str, Any]) -> dict[str, Any]:
        """Convert form values to the declared variable types where possible."""
        coerced: dict[str, Any] = {}
        for name, value in criteria.items():
            declared = formula.variables.get(name)
            if declared is not None and isinstance(value, str):
                if declared.type == "number":
                    number = _as_float(value)
                    value = number if number is not None else value
                elif declared.type == "boolean":
                    text = value.strip().lower()
                    if text in _TRUE_WORDS:
                        value = True
                    elif text in _FALSE_WORDS:
                        value = False
            coerced[name] = value
        return coerced

    @staticmethod
    def _breakdown(
        product: Product,
        premium: Decimal,
        *,
        grid_id: UUID | None = None,
        formula_id: UUID | None = None,
    ) -> PriceBreakdown:
        return PriceBreakdown(
            premium=quantize_money(premium),
            deductible=quantize_money(product.default_deductible),
            cap=quantize_money(product.default_cap) if product.default_cap is not None else None,
            grid_id=grid_id,
            formula_id=formula_id,
        )


@beartype
def derive_criteria(
    product: Product,
    criteria: Mapping[str, Any],
    insured: InsuredParty | None,
    on: date,
) -> dict[str, Any]:
    """Add criteria implied by the insured party.

    Life products are priced by age; when the caller did not send one it is
    derived from the insured's birth date on the evaluation date.
    """
    derived = dict(criteria)
    has_age = AGE_CRITERION in _normalize_keys(criteria)
    if (
        product.product_type is ProductType.LIFE
        and not has_age
        and insured is not None
        and insured.birth_date is not None
    ):
        derived[AGE_CRITERION] = math.floor((on - insured.birth_date).days / DAYS_PER_YEAR)
    return derived
