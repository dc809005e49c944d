"""Payment aggregator callbacks.

Mounted outside ``/api/v1`` because aggregators are configured with a fixed
notification URL per integration.
"""

import json
from typing import Any

from beartype import beartype
from fastapi import APIRouter, Depends, Request

from ..core.errors import DomainError, ErrorKind
from ..core.logging_utils import get_logger
from ..schemas.webhook import WebhookResponse
from ..services.payments.adapters import parse_aggregator
from ..services.payments.reconciliation import PaymentReconciliation
from .dependencies import get_reconciliation
from .response_patterns import raise_for_error, unwrap_or_raise

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


async def read_callback_payload(request: Request) -> dict[str, Any]:
    """Query parameters merged with the JSON or form body; the body wins."""
    payload: dict[str, Any] = dict(request.query_params)
    content_type = request.headers.get("content-type", "").lower()

    if content_type.startswith(_FORM_TYPES):
        form = await request.form()
        payload.update({key: value for key, value in form.items() if isinstance(value, str)})
        return payload

    raw = await request.body()
    if not raw.strip():
        return payload
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Unparsable callback body: %r", raw[:2000])
        raise_for_error(
            DomainError(ErrorKind.INVALID_CALLBACK, "Callback body is not valid JSON")
        )
    if not isinstance(body, dict):
        raise_for_error(
            DomainError(ErrorKind.INVALID_CALLBACK, "Callback body must be a JSON object")
        )
    payload.update(body)
    return payload


@router.post("/payment/{aggregator}", response_model=WebhookResponse)
@beartype
async def receive_payment_callback(
    aggregator: str,
    request: Request,
    reconciliation: PaymentReconciliation = Depends(get_reconciliation),
) -> WebhookResponse:
    """Acknowledge a payment notification.

    Any understood callback gets a 200 so the aggregator stops retrying;
    a business failure after the payment was recorded is reported in
    ``warning``. Unexpected failures propagate as 500 so it retries.
    """
    resolved = unwrap_or_raise(parse_aggregator(aggregator))
    payload = await read_callback_payload(request)

    try:
        result = await reconciliation.handle_callback(resolved, payload)
    except Exception:
        logger.exception("Callback from %s could not be processed", aggregator)
        raise

    outcome = unwrap_or_raise(result)
    return WebhookResponse(
        message="Callback processed",
        status=outcome.payment.status,
        payment_reference=outcome.payment.reference,
        contract_number=outcome.contract.number if outcome.contract else None,
        warning=str(outcome.warning) if outcome.warning else None,
    )
