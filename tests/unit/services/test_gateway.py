"""Unit tests for the outbound payment gateway client."""

import json
from decimal import Decimal

import httpx
import pytest

from policy_issuance.core.config import Settings
from policy_issuance.core.errors import ErrorKind
from policy_issuance.services.payments.gateway import (
    PaymentGatewayClient,
    clean_description,
    gateway_amount,
)


@pytest.fixture
def settings() -> Settings:
    return Settings(gateway_api_key="key-123", gateway_site_id="site-9")


def client_for(settings: Settings, handler) -> PaymentGatewayClient:
    return PaymentGatewayClient(settings, transport=httpx.MockTransport(handler))


class TestHelpers:
    @pytest.mark.parametrize(
        "amount,currency,expected",
        [
            (Decimal("12500.00"), "XOF", 12500),
            (Decimal("12502.40"), "XOF", 12500),
            (Decimal("12502.50"), "XOF", 12505),
            (Decimal("1"), "XOF", 5),
            (Decimal("19.49"), "USD", 19),
        ],
    )
    def test_gateway_amount(self, amount, currency, expected) -> None:
        assert gateway_amount(amount, currency) == expected

    def test_clean_description(self) -> None:
        assert clean_description(" Souscription #VIE/2025_$1 & co ") == "Souscription VIE20251  co"


class TestInitPayment:
    async def test_success(self, settings) -> None:
        # Setup
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(
                201,
                json={
                    "code": "201",
                    "message": "CREATED",
                    "data": {"payment_url": "https://pay.example/x", "payment_token": "tok"},
                },
            )

        # Execute
        result = await client_for(settings, handler).init_payment(
            "PAY-1741944600000-0042",
            Decimal("12500.00"),
            "Subscription VIE-20250314-0001",
            customer_phone="0700000000",
            metadata={"quote_id": "q-1"},
        )

        # Assert
        checkout = result.unwrap()
        assert checkout.payment_url == "https://pay.example/x"
        assert checkout.transaction_id == "PAY-1741944600000-0042"
        body = seen[0]
        assert body["apikey"] == "key-123"
        assert body["site_id"] == "site-9"
        assert body["amount"] == 12500
        assert body["currency"] == "XOF"
        assert body["customer_phone_number"] == "0700000000"
        assert json.loads(body["metadata"]) == {"quote_id": "q-1"}

    async def test_not_configured(self) -> None:
        client = PaymentGatewayClient(Settings())

        result = await client.init_payment("PAY-1", Decimal("100"), "x")

        assert result.unwrap_err().kind is ErrorKind.GATEWAY_UNAVAILABLE

    async def test_invalid_transaction_id(self, settings) -> None:
        client = client_for(settings, lambda request: httpx.Response(500))

        result = await client.init_payment("PAY 1/2", Decimal("100"), "x")

        assert result.unwrap_err().kind is ErrorKind.VALIDATION

    async def test_provider_error_code(self, settings) -> None:
        client = client_for(
            settings, lambda request: httpx.Response(200, json={"code": "609", "message": "AUTH_NOT_FOUND"})
        )

        error = (await client.init_payment("PAY-1", Decimal("100"), "x")).unwrap_err()

        assert error.kind is ErrorKind.GATEWAY_UNAVAILABLE
        assert error.details["provider_code"] == "609"
        assert "Incorrect API key" in error.message

    async def test_missing_checkout_data(self, settings) -> None:
        client = client_for(settings, lambda request: httpx.Response(200, json={"code": "201", "data": {}}))

        result = await client.init_payment("PAY-1", Decimal("100"), "x")

        assert result.unwrap_err().kind is ErrorKind.GATEWAY_UNAVAILABLE

    async def test_timeout(self, settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        error = (await client_for(settings, handler).init_payment("PAY-1", Decimal("100"), "x")).unwrap_err()

        assert error.kind is ErrorKind.GATEWAY_TIMEOUT
        assert error.retryable

    async def test_connection_error(self, settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        error = (await client_for(settings, handler).init_payment("PAY-1", Decimal("100"), "x")).unwrap_err()

        assert error.kind is ErrorKind.GATEWAY_UNAVAILABLE

    async def test_non_json_body(self, settings) -> None:
        client = client_for(settings, lambda request: httpx.Response(502, text="Bad gateway"))

        error = (await client.init_payment("PAY-1", Decimal("100"), "x")).unwrap_err()

        assert error.kind is ErrorKind.GATEWAY_UNAVAILABLE
        assert error.details["http_status"] == 502
