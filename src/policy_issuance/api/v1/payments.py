"""Payment lookup endpoint."""

from uuid import UUID

from beartype import beartype
from fastapi import APIRouter, Depends

from ...schemas.payment import PaymentSummary
from ...services.subscription import SubscriptionService
from ..dependencies import get_subscription_service
from ..response_patterns import unwrap_or_raise

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("/{reference}", response_model=PaymentSummary)
@beartype
async def get_payment(
    reference: str,
    owner_id: UUID,
    subscriptions: SubscriptionService = Depends(get_subscription_service),
) -> PaymentSummary:
    payment = unwrap_or_raise(await subscriptions.payment_by_reference(reference, owner_id))
    return PaymentSummary.from_payment(payment)
