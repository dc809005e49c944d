"""Validate-before-persist for pricing formulas."""

from collections.abc import Mapping
from decimal import Decimal

from beartype import beartype

from ..core.errors import DomainError
from ..core.logging_utils import get_logger
from ..core.result_types import Ok, Result
from ..models.tariff import Formula, FormulaVariable
from ..repositories.tariffs import TariffRepository
from .formula_evaluator import FormulaEvaluator

logger = get_logger(__name__)


class FormulaService:
    """A formula is stored only once it evaluates against its own defaults."""

    def __init__(
        self, tariffs: TariffRepository, evaluator: FormulaEvaluator | None = None
    ) -> None:
        self._tariffs = tariffs
        self._evaluator = evaluator or FormulaEvaluator()

    @beartype
    def validate(
        self, expression: str, variables: Mapping[str, FormulaVariable]
    ) -> Result[Decimal, DomainError]:
        """Sample result of the formula, or the reason it cannot be stored."""
        return self._evaluator.validate(expression, variables)

    @beartype
    async def save(self, formula: Formula) -> Result[Formula, DomainError]:
        checked = self.validate(formula.expression, formula.variables)
        if checked.is_err():
            return checked
        saved = await self._tariffs.save_formula(formula)
        logger.info(
            "Formula %s saved for product %s (sample %s)",
            saved.id,
            saved.product_id,
            checked.unwrap(),
        )
        return Ok(saved)
