"""Formula validation endpoint used by the back office before saving."""

from beartype import beartype
from fastapi import APIRouter, Depends

from ...schemas.formula import FormulaValidateRequest, FormulaValidateResponse
from ...services.formula_service import FormulaService
from ..dependencies import get_formula_service

router = APIRouter(prefix="/formulas", tags=["formulas"])


@router.post("/validate", response_model=FormulaValidateResponse)
@beartype
async def validate_formula(
    request: FormulaValidateRequest,
    service: FormulaService = Depends(get_formula_service),
) -> FormulaValidateResponse:
    """Evaluate the expression once against its declared defaults.

    An invalid formula is a normal outcome here, reported in the body
    rather than as an HTTP error.
    """
    result = service.validate(request.expression, request.variables)
    if result.is_err():
        return FormulaValidateResponse(valid=False, error=result.unwrap_err().message)
    return FormulaValidateResponse(valid=True, sample_result=result.unwrap())
