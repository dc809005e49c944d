"""Unit tests for starting a checkout on a saved quote."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from policy_issuance.core.errors import ErrorKind, fail
from policy_issuance.core.result_types import Ok
from policy_issuance.models.payment import (
    Aggregator,
    BeneficiaryInput,
    PaymentMethod,
    PaymentStatus,
)
from policy_issuance.models.quote import QuoteStatus
from policy_issuance.services.payments.checkout import CheckoutService, check_beneficiaries
from policy_issuance.services.payments.gateway import GatewayCheckout


@pytest.fixture
def gateway() -> MagicMock:
    client = MagicMock()
    client.init_payment = AsyncMock(
        return_value=Ok(
            GatewayCheckout(
                payment_url="https://checkout.example/pay/abc",
                payment_token="tok-abc",
                transaction_id="PAY-1",
            )
        )
    )
    return client


@pytest.fixture
def gateway_checkout(lifecycle, payment_repo, catalog, clock, gateway) -> CheckoutService:
    return CheckoutService(lifecycle, payment_repo, catalog, gateway, clock=clock)


class TestStartCheckout:
    async def test_creates_pending_payment_and_moves_quote(
        self, pending_checkout, saved_quote, payment_repo
    ) -> None:
        payment = pending_checkout.payment

        assert pending_checkout.quote.status is QuoteStatus.AWAITING_PAYMENT
        assert pending_checkout.checkout is None
        assert payment.status is PaymentStatus.PENDING
        assert payment.amount == Decimal("12500.00")
        assert payment.quote_id == saved_quote.id
        assert payment.reference.startswith("PAY-1741944600000-")
        assert payment_repo.payments[payment.id] == payment

    async def test_unowned_simulation_is_forbidden(
        self, checkout_service, simulation, owner_id
    ) -> None:
        result = await checkout_service.start_checkout(
            simulation.id, owner_id, PaymentMethod.WAVE
        )

        assert result.unwrap_err().kind is ErrorKind.FORBIDDEN

    async def test_other_owner_is_forbidden(self, checkout_service, saved_quote) -> None:
        result = await checkout_service.start_checkout(
            saved_quote.id, uuid4(), PaymentMethod.WAVE
        )

        assert result.unwrap_err().kind is ErrorKind.FORBIDDEN

    async def test_retry_while_awaiting_payment(
        self, checkout_service, pending_checkout, owner_id, payment_repo
    ) -> None:
        result = await checkout_service.start_checkout(
            pending_checkout.quote.id, owner_id, PaymentMethod.ORANGE_MONEY
        )

        session = result.unwrap()
        assert session.payment.id != pending_checkout.payment.id
        assert session.quote.status is QuoteStatus.AWAITING_PAYMENT
        assert len(payment_repo.payments) == 2

    async def test_paid_quote_is_rejected(
        self, checkout_service, pending_checkout, lifecycle, owner_id
    ) -> None:
        await lifecycle.on_payment_succeeded(pending_checkout.quote.id)

        result = await checkout_service.start_checkout(
            pending_checkout.quote.id, owner_id, PaymentMethod.WAVE
        )

        error = result.unwrap_err()
        assert error.kind is ErrorKind.INVALID_STATE
        assert error.details["status"] == "paid"

    async def test_too_many_beneficiaries(
        self, checkout_service, saved_quote, owner_id, payment_repo
    ) -> None:
        beneficiaries = [
            BeneficiaryInput(full_name=name, relationship="enfant") for name in "ABC"
        ]

        result = await checkout_service.start_checkout(
            saved_quote.id, owner_id, PaymentMethod.WAVE, beneficiaries=beneficiaries
        )

        assert result.unwrap_err().kind is ErrorKind.VALIDATION
        assert payment_repo.payments == {}

    async def test_beneficiaries_are_kept_on_payment(
        self, checkout_service, saved_quote, owner_id
    ) -> None:
        beneficiaries = [BeneficiaryInput(full_name="Awa", relationship="conjoint")]

        session = (
            await checkout_service.start_checkout(
                saved_quote.id, owner_id, PaymentMethod.WAVE, beneficiaries=beneficiaries
            )
        ).unwrap()

        assert session.payment.beneficiaries == beneficiaries

    def test_required_beneficiaries(self, life_product) -> None:
        product = life_product.model_copy(update={"requires_beneficiaries": True})

        assert check_beneficiaries(product, []).unwrap_err().kind is ErrorKind.VALIDATION


class TestGatewayCheckout:
    async def test_cinetpay_goes_through_gateway(
        self, gateway_checkout, gateway, saved_quote, owner_id
    ) -> None:
        session = (
            await gateway_checkout.start_checkout(
                saved_quote.id,
                owner_id,
                PaymentMethod.CINETPAY,
                Aggregator.CINETPAY,
                customer_phone="0700000000",
            )
        ).unwrap()

        assert session.checkout.payment_url == "https://checkout.example/pay/abc"
        gateway.init_payment.assert_awaited_once()
        args, kwargs = gateway.init_payment.call_args
        assert args[0] == session.payment.reference
        assert args[1] == Decimal("12500.00")
        assert kwargs["customer_phone"] == "0700000000"
        assert kwargs["metadata"] == {"quote_id": str(saved_quote.id)}

    async def test_direct_aggregators_skip_gateway(
        self, gateway_checkout, gateway, saved_quote, owner_id
    ) -> None:
        session = (
            await gateway_checkout.start_checkout(
                saved_quote.id, owner_id, PaymentMethod.WAVE, Aggregator.WAVE
            )
        ).unwrap()

        assert session.checkout is None
        gateway.init_payment.assert_not_awaited()

    async def test_gateway_failure_leaves_payment_pending(
        self, gateway_checkout, gateway, saved_quote, owner_id, payment_repo, lifecycle
    ) -> None:
        gateway.init_payment.return_value = fail(ErrorKind.GATEWAY_TIMEOUT, "timed out")

        result = await gateway_checkout.start_checkout(
            saved_quote.id, owner_id, PaymentMethod.CINETPAY, Aggregator.CINETPAY
        )

        error = result.unwrap_err()
        assert error.kind is ErrorKind.GATEWAY_TIMEOUT
        assert error.retryable
        [payment] = payment_repo.payments.values()
        assert payment.status is PaymentStatus.PENDING
        quote = (await lifecycle.get(saved_quote.id)).unwrap()
        assert quote.status is QuoteStatus.AWAITING_PAYMENT
