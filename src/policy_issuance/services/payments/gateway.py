"""Outbound payment initialisation against the aggregator checkout API."""

import json
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Final

import httpx
from attrs import frozen
from beartype import beartype

from ...core.config import Settings
from ...core.errors import DomainError, ErrorKind, fail
from ...core.logging_utils import get_logger
from ...core.result_types import Ok, Result

logger = get_logger(__name__)

SUCCESS_CODES: Final = frozenset({"201", "00"})
_TRANSACTION_ID_RE: Final = re.compile(r"^[A-Za-z0-9-]+$")
_DESCRIPTION_STRIP_RE: Final = re.compile(r"[#/$_&]")
_AMOUNT_STEP: Final = Decimal("5")

_PROVIDER_ERRORS: Final[dict[str, str]] = {
    "608": "Missing or invalid mandatory parameter",
    "609": "Incorrect API key",
    "613": "Incorrect site id",
    "624": "The gateway could not process the request",
    "429": "Too many requests, retry later",
    "403": "Request format rejected by the gateway",
    "1010": "Request blocked by gateway restrictions",
}


@frozen
class GatewayCheckout:
    """Where to send the customer to complete a payment."""

    payment_url: str
    payment_token: str
    transaction_id: str


@beartype
def gateway_amount(amount: Decimal, currency: str) -> int:
    """Amount as the gateway accepts it.

    Non-USD currencies must be a multiple of 5: the amount is rounded to the
    nearest multiple with a floor of 5.
    """
    if currency.upper() == "USD":
        return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    steps = (amount / _AMOUNT_STEP).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(int(steps * _AMOUNT_STEP), int(_AMOUNT_STEP))


@beartype
def clean_description(description: str) -> str:
    return _DESCRIPTION_STRIP_RE.sub("", description).strip()


class PaymentGatewayClient:
    """Thin async client; it never changes payment or quote state."""

    def __init__(
        self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        self._settings = settings
        self._transport = transport

    @property
    def configured(self) -> bool:
        return self._settings.gateway_configured

    @beartype
    async def init_payment(
        self,
        transaction_id: str,
        amount: Decimal,
        description: str,
        *,
        channels: str = "ALL",
        customer_phone: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Result[GatewayCheckout, DomainError]:
        """Ask the aggregator for a checkout URL.

        Returns:
            Result containing the checkout URL and token, or VALIDATION,
            GATEWAY_TIMEOUT or GATEWAY_UNAVAILABLE.
        """
        if not self.configured:
            return fail(ErrorKind.GATEWAY_UNAVAILABLE, "Payment gateway is not configured")
        if not _TRANSACTION_ID_RE.match(transaction_id):
            return fail(
                ErrorKind.VALIDATION,
                "Transaction id may only contain letters, digits and dashes",
                transaction_id=transaction_id,
            )

        currency = self._settings.gateway_currency
        body: dict[str, Any] = {
            "apikey": self._settings.gateway_api_key,
            "site_id": self._settings.gateway_site_id,
            "transaction_id": transaction_id,
            "amount": gateway_amount(amount, currency),
            "currency": currency.upper(),
            "description": clean_description(description),
            "notify_url": self._settings.gateway_notify_url,
            "return_url": self._settings.gateway_return_url,
            "channels": channels,
            "lang": "fr",
        }
        if metadata:
            body["metadata"] = json.dumps(metadata, default=str)
        if customer_phone:
            body["customer_phone_number"] = customer_phone
            body["lock_phone_number"] = False

        logger.info(
            "Initialising payment %s for %s %s", transaction_id, body["amount"], currency
        )
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    self._settings.gateway_api_url,
                    json=body,
                    timeout=self._settings.gateway_timeout_seconds,
                )
            data = response.json()
        except httpx.TimeoutException:
            logger.error("Gateway timed out initialising payment %s", transaction_id)
            return fail(
                ErrorKind.GATEWAY_TIMEOUT,
                "Payment gateway timed out",
                transaction_id=transaction_id,
            )
        except httpx.RequestError as e:
            logger.error("Gateway unreachable for payment %s: %s", transaction_id, e)
            return fail(
                ErrorKind.GATEWAY_UNAVAILABLE,
                f"Payment gateway unreachable: {e}",
                transaction_id=transaction_id,
            )
        except ValueError:
            logger.error(
                "Gateway returned a non-JSON body (HTTP %s) for payment %s",
                response.status_code,
                transaction_id,
            )
            return fail(
                ErrorKind.GATEWAY_UNAVAILABLE,
                "Payment gateway returned an unreadable response",
                http_status=response.status_code,
            )

        return self._parse(transaction_id, data)

    @staticmethod
    def _parse(transaction_id: str, data: Any) -> Result[GatewayCheckout, DomainError]:
        if not isinstance(data, dict):
            return fail(ErrorKind.GATEWAY_UNAVAILABLE, "Unexpected gateway response")

        code = str(data.get("code", ""))
        if code not in SUCCESS_CODES:
            message = _PROVIDER_ERRORS.get(code) or data.get("message") or "Payment initialisation failed"
            logger.error(
                "Gateway refused payment %s: code=%s message=%s",
                transaction_id,
                code,
                data.get("message"),
            )
            return fail(
                ErrorKind.GATEWAY_UNAVAILABLE,
                f"{message} (code {code})",
                provider_code=code,
                provider_message=data.get("message"),
            )

        payload = data.get("data") or {}
        if not payload.get("payment_url") or not payload.get("payment_token"):
            logger.error("Gateway response for %s lacks checkout data: %s", transaction_id, data)
            return fail(
                ErrorKind.GATEWAY_UNAVAILABLE,
                "Gateway response is missing the payment URL or token",
            )
        return Ok(
            GatewayCheckout(
                payment_url=payload["payment_url"],
                payment_token=payload["payment_token"],
                transaction_id=payload.get("transaction_id") or transaction_id,
            )
        )
