"""Unit tests for payment callback reconciliation."""

import asyncio
import json

import pytest

from conftest import T0
from policy_issuance.core.errors import ErrorKind
from policy_issuance.models.payment import (
    Aggregator,
    BeneficiaryInput,
    PaymentMethod,
    PaymentStatus,
)
from policy_issuance.models.quote import QuoteStatus


def wave_payload(reference: str, status: str, **extra: str) -> dict[str, str]:
    return {"merchant_reference": reference, "status": status, **extra}


class TestSuccessfulPayment:
    """Test a success callback all the way to the issued contract."""

    async def test_success_issues_contract(
        self, reconciliation, pending_checkout, lifecycle, payment_repo
    ) -> None:
        # Setup
        payment = pending_checkout.payment

        # Execute
        result = await reconciliation.handle_callback(
            Aggregator.WAVE, wave_payload(payment.reference, "succeeded", wave_id="W-1")
        )

        # Assert
        outcome = result.unwrap()
        assert outcome.status_changed is True
        assert outcome.warning is None
        assert outcome.contract.number == "101-23000001"
        assert outcome.payment.status is PaymentStatus.SUCCEEDED
        assert outcome.payment.paid_at == T0
        assert outcome.payment.external_transaction_id == "W-1"

        quote = (await lifecycle.get(payment.quote_id)).unwrap()
        assert quote.status is QuoteStatus.CONVERTED
        assert payment_repo.payments[payment.id].contract_id == outcome.contract.id

    async def test_duplicate_delivery_is_idempotent(
        self, reconciliation, pending_checkout, contract_repo, payment_repo
    ) -> None:
        payload = wave_payload(pending_checkout.payment.reference, "succeeded")

        first = (await reconciliation.handle_callback(Aggregator.WAVE, payload)).unwrap()
        second = (await reconciliation.handle_callback(Aggregator.WAVE, payload)).unwrap()

        assert second.status_changed is False
        assert second.contract.id == first.contract.id
        assert len(contract_repo.contracts) == 1
        assert len(payment_repo.payments[pending_checkout.payment.id].callback_history) == 2

    async def test_concurrent_deliveries_issue_one_contract(
        self, reconciliation, pending_checkout, contract_repo
    ) -> None:
        payload = wave_payload(pending_checkout.payment.reference, "succeeded")

        results = await asyncio.gather(
            reconciliation.handle_callback(Aggregator.WAVE, payload),
            reconciliation.handle_callback(Aggregator.WAVE, payload),
        )

        outcomes = [result.unwrap() for result in results]
        assert len(contract_repo.contracts) == 1
        assert {outcome.contract.number for outcome in outcomes} == {"101-23000001"}
        assert sorted(outcome.status_changed for outcome in outcomes) == [False, True]

    async def test_lookup_by_external_id(
        self, reconciliation, pending_checkout, payment_repo
    ) -> None:
        reference = pending_checkout.payment.reference
        await reconciliation.handle_callback(
            Aggregator.WAVE, wave_payload(reference, "processing", wave_id="W-9")
        )

        result = await reconciliation.handle_callback(
            Aggregator.WAVE, {"status": "succeeded", "id": "W-9"}
        )

        outcome = result.unwrap()
        assert outcome.payment.id == pending_checkout.payment.id
        assert outcome.contract is not None

    async def test_pending_callback_changes_nothing(
        self, reconciliation, pending_checkout, lifecycle
    ) -> None:
        result = await reconciliation.handle_callback(
            Aggregator.WAVE, wave_payload(pending_checkout.payment.reference, "pending")
        )

        outcome = result.unwrap()
        assert outcome.status_changed is False
        assert outcome.contract is None
        quote = (await lifecycle.get(pending_checkout.quote.id)).unwrap()
        assert quote.status is QuoteStatus.AWAITING_PAYMENT


class TestFailedPayment:
    async def test_failure_returns_quote_to_saved(
        self, reconciliation, pending_checkout, lifecycle
    ) -> None:
        result = await reconciliation.handle_callback(
            Aggregator.WAVE,
            wave_payload(
                pending_checkout.payment.reference, "failed", error_message="Solde insuffisant"
            ),
        )

        outcome = result.unwrap()
        assert outcome.payment.status is PaymentStatus.FAILED
        assert outcome.payment.failure_message == "Solde insuffisant"
        quote = (await lifecycle.get(pending_checkout.quote.id)).unwrap()
        assert quote.status is QuoteStatus.SAVED

    async def test_late_success_overturns_failure(
        self, reconciliation, pending_checkout, lifecycle, contract_repo, clock
    ) -> None:
        # Setup
        reference = pending_checkout.payment.reference
        await reconciliation.handle_callback(
            Aggregator.WAVE, wave_payload(reference, "failed", error_message="Timeout operateur")
        )
        clock.advance(minutes=5)

        # Execute
        late = await reconciliation.handle_callback(
            Aggregator.WAVE, wave_payload(reference, "succeeded")
        )

        # Assert
        outcome = late.unwrap()
        assert outcome.status_changed is True
        assert outcome.warning is None
        assert outcome.payment.status is PaymentStatus.SUCCEEDED
        assert outcome.payment.failure_message is None
        assert outcome.payment.paid_at == clock()
        assert outcome.contract.number == "101-23000001"
        assert len(contract_repo.contracts) == 1
        quote = (await lifecycle.get(pending_checkout.quote.id)).unwrap()
        assert quote.status is QuoteStatus.CONVERTED

    async def test_success_is_final(
        self, reconciliation, pending_checkout, lifecycle, contract_repo
    ) -> None:
        reference = pending_checkout.payment.reference
        first = await reconciliation.handle_callback(
            Aggregator.WAVE, wave_payload(reference, "succeeded")
        )

        late = await reconciliation.handle_callback(
            Aggregator.WAVE, wave_payload(reference, "failed")
        )

        outcome = late.unwrap()
        assert outcome.status_changed is False
        assert outcome.payment.status is PaymentStatus.SUCCEEDED
        assert outcome.payment.paid_at == first.unwrap().payment.paid_at
        assert outcome.contract.id == first.unwrap().contract.id
        assert len(contract_repo.contracts) == 1
        quote = (await lifecycle.get(pending_checkout.quote.id)).unwrap()
        assert quote.status is QuoteStatus.CONVERTED

    async def test_cancelled_payment_stays_cancelled(
        self, reconciliation, pending_checkout, contract_repo
    ) -> None:
        reference = pending_checkout.payment.reference
        await reconciliation.handle_callback(Aggregator.WAVE, wave_payload(reference, "cancelled"))

        late = await reconciliation.handle_callback(
            Aggregator.WAVE, wave_payload(reference, "succeeded")
        )

        outcome = late.unwrap()
        assert outcome.status_changed is False
        assert outcome.payment.status is PaymentStatus.CANCELLED
        assert contract_repo.contracts == {}


class TestRetriedCheckout:
    """A second checkout while the first payment is still unresolved."""

    async def test_stale_failure_keeps_quote_awaiting_payment(
        self,
        reconciliation,
        checkout_service,
        pending_checkout,
        owner_id,
        lifecycle,
        contract_repo,
    ) -> None:
        # Setup
        first = pending_checkout.payment
        retry = (
            await checkout_service.start_checkout(
                pending_checkout.quote.id, owner_id, PaymentMethod.WAVE
            )
        ).unwrap()
        assert retry.payment.reference != first.reference

        # Execute: the first payment's failure arrives after the retry started
        failed = await reconciliation.handle_callback(
            Aggregator.WAVE, wave_payload(first.reference, "failed")
        )

        # Assert
        assert failed.unwrap().payment.status is PaymentStatus.FAILED
        quote = (await lifecycle.get(first.quote_id)).unwrap()
        assert quote.status is QuoteStatus.AWAITING_PAYMENT

        succeeded = await reconciliation.handle_callback(
            Aggregator.WAVE, wave_payload(retry.payment.reference, "succeeded")
        )

        outcome = succeeded.unwrap()
        assert outcome.warning is None
        assert outcome.contract is not None
        assert len(contract_repo.contracts) == 1
        quote = (await lifecycle.get(first.quote_id)).unwrap()
        assert quote.status is QuoteStatus.CONVERTED

    async def test_last_open_payment_failing_returns_quote_to_saved(
        self, reconciliation, checkout_service, pending_checkout, owner_id, lifecycle
    ) -> None:
        first = pending_checkout.payment
        retry = (
            await checkout_service.start_checkout(
                pending_checkout.quote.id, owner_id, PaymentMethod.WAVE
            )
        ).unwrap()

        await reconciliation.handle_callback(
            Aggregator.WAVE, wave_payload(first.reference, "failed")
        )
        await reconciliation.handle_callback(
            Aggregator.WAVE, wave_payload(retry.payment.reference, "failed")
        )

        quote = (await lifecycle.get(first.quote_id)).unwrap()
        assert quote.status is QuoteStatus.SAVED


class TestCallbackMetadata:
    async def test_quote_id_locates_payment(
        self, reconciliation, pending_checkout, payment_repo
    ) -> None:
        # Setup: the aggregator echoes only our metadata
        metadata = json.dumps({"quote_id": str(pending_checkout.quote.id)})

        # Execute
        result = await reconciliation.handle_callback(
            Aggregator.GENERIC, {"status": "success", "metadata": metadata}
        )

        # Assert
        outcome = result.unwrap()
        assert outcome.payment.id == pending_checkout.payment.id
        assert outcome.contract is not None
        assert payment_repo.payments[pending_checkout.payment.id].status is (
            PaymentStatus.SUCCEEDED
        )

    async def test_callback_beneficiaries_reach_the_contract(
        self, reconciliation, pending_checkout, payment_repo
    ) -> None:
        metadata = {
            "beneficiaries": [
                {"full_name": "Awa Kone", "relationship": "conjoint", "rank": 1}
            ]
        }

        result = await reconciliation.handle_callback(
            Aggregator.WAVE,
            {**wave_payload(pending_checkout.payment.reference, "succeeded"), "metadata": metadata},
        )

        outcome = result.unwrap()
        stored = payment_repo.payments[pending_checkout.payment.id]
        assert [b.full_name for b in stored.beneficiaries] == ["Awa Kone"]
        assert [b.full_name for b in outcome.contract.beneficiaries] == ["Awa Kone"]

    async def test_checkout_beneficiaries_are_not_replaced(
        self, reconciliation, checkout_service, saved_quote, owner_id, payment_repo
    ) -> None:
        session = (
            await checkout_service.start_checkout(
                saved_quote.id,
                owner_id,
                PaymentMethod.WAVE,
                beneficiaries=[
                    BeneficiaryInput(full_name="Moussa Traore", relationship="fils")
                ],
            )
        ).unwrap()
        metadata = {
            "beneficiaries": [{"full_name": "Awa Kone", "relationship": "conjoint"}]
        }

        await reconciliation.handle_callback(
            Aggregator.WAVE,
            {**wave_payload(session.payment.reference, "pending"), "metadata": metadata},
        )

        stored = payment_repo.payments[session.payment.id]
        assert [b.full_name for b in stored.beneficiaries] == ["Moussa Traore"]


class TestRejectedCallbacks:
    async def test_unknown_reference(self, reconciliation, pending_checkout) -> None:
        result = await reconciliation.handle_callback(
            Aggregator.WAVE, wave_payload("PAY-0-0000", "succeeded")
        )

        error = result.unwrap_err()
        assert error.kind is ErrorKind.PAYMENT_NOT_FOUND
        assert error.details["payment_reference"] == "PAY-0-0000"

    @pytest.mark.parametrize("payload", [{}, {"merchant_reference": "PAY-1", "status": "??"}])
    async def test_invalid_payload_leaves_payment_alone(
        self, reconciliation, pending_checkout, payment_repo, payload
    ) -> None:
        result = await reconciliation.handle_callback(Aggregator.WAVE, payload)

        assert result.unwrap_err().kind is ErrorKind.INVALID_CALLBACK
        stored = payment_repo.payments[pending_checkout.payment.id]
        assert stored.status is PaymentStatus.PENDING
        assert stored.callback_history == []


class TestPartialFailure:
    async def test_missing_category_is_a_warning_then_recovers(
        self,
        reconciliation,
        pending_checkout,
        catalog,
        category,
        lifecycle,
        contract_repo,
    ) -> None:
        # Setup
        catalog.categories.clear()
        payload = wave_payload(pending_checkout.payment.reference, "succeeded")

        # Execute
        first = (await reconciliation.handle_callback(Aggregator.WAVE, payload)).unwrap()

        # Assert: payment recorded, quote paid, no contract yet
        assert first.warning.kind is ErrorKind.MISSING_CATEGORY
        assert first.payment.status is PaymentStatus.SUCCEEDED
        assert first.contract is None
        assert (await lifecycle.get(pending_checkout.quote.id)).unwrap().status is QuoteStatus.PAID
        assert contract_repo.contracts == {}

        # Redelivery after the catalog is fixed finishes the job
        catalog.categories[category.id] = category
        second = (await reconciliation.handle_callback(Aggregator.WAVE, payload)).unwrap()

        assert second.warning is None
        assert second.contract.number == "101-23000001"
        assert (
            (await lifecycle.get(pending_checkout.quote.id)).unwrap().status
            is QuoteStatus.CONVERTED
        )
