"""Unit tests for storing pricing formulas."""

from decimal import Decimal
from uuid import uuid4

import pytest

from fixtures.memory_store import InMemoryTariffRepository
from policy_issuance.core.errors import ErrorKind
from policy_issuance.models.tariff import Formula, FormulaVariable
from policy_issuance.services.formula_service import FormulaService


@pytest.fixture
def repository() -> InMemoryTariffRepository:
    return InMemoryTariffRepository()


@pytest.fixture
def service(repository) -> FormulaService:
    return FormulaService(repository)


def formula(expression: str, **variables: FormulaVariable) -> Formula:
    return Formula(
        id=uuid4(),
        product_id=uuid4(),
        name="Prime temporaire deces",
        expression=expression,
        variables=variables,
    )


class TestFormulaService:
    def test_validate_returns_sample(self, service) -> None:
        result = service.validate("capital * 0.01", {"capital": FormulaVariable(default=500000)})

        assert result.unwrap() == Decimal("5000.00")

    async def test_valid_formula_is_saved(self, service, repository) -> None:
        candidate = formula("MAX(100, age * 2)", age=FormulaVariable(default=30))

        result = await service.save(candidate)

        assert result.unwrap() == candidate
        assert repository.formulas[candidate.id] == candidate

    @pytest.mark.parametrize(
        "expression",
        ["capital / 0", "UNKNOWN_FN(capital)", "capital *", "capital * taux"],
    )
    async def test_invalid_formula_is_not_saved(self, service, repository, expression) -> None:
        result = await service.save(formula(expression, capital=FormulaVariable(default=1000)))

        assert result.unwrap_err().kind is ErrorKind.INVALID_EXPRESSION
        assert repository.formulas == {}
