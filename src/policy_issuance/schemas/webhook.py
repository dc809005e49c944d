"""Payment webhook schemas."""

from beartype import beartype
from pydantic import Field

from ..models.payment import PaymentStatus
from .common import StrictSchema


@beartype
class WebhookResponse(StrictSchema):
    """Acknowledgement returned to the aggregator.

    ``warning`` is set when the callback was recorded but a follow-up step
    (quote transition, contract issuance) failed.
    """

    success: bool = Field(default=True)
    message: str
    status: PaymentStatus
    payment_reference: str
    contract_number: str | None = Field(default=None)
    warning: str | None = Field(default=None)
