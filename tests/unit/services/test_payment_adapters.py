"""Unit tests for aggregator callback adapters."""

import json
from uuid import uuid4

import pytest

from policy_issuance.core.errors import ErrorKind
from policy_issuance.models.payment import Aggregator, CanonicalStatus
from policy_issuance.services.payments.adapters import (
    CinetPayAdapter,
    GenericAdapter,
    OrangeMoneyAdapter,
    WaveAdapter,
    adapter_for,
    canonical_status,
    parse_aggregator,
)


class TestCanonicalStatus:
    @pytest.mark.parametrize(
        "word,expected",
        [
            ("SUCCESS", CanonicalStatus.SUCCEEDED),
            (" completed ", CanonicalStatus.SUCCEEDED),
            ("Refused", CanonicalStatus.FAILED),
            ("expired", CanonicalStatus.FAILED),
            ("processing", CanonicalStatus.PENDING),
            ("canceled", CanonicalStatus.CANCELLED),
            ("teleported", None),
            (None, None),
        ],
    )
    def test_status_words(self, word, expected) -> None:
        assert canonical_status(word) is expected


class TestGenericAdapter:
    def test_french_field_names(self) -> None:
        result = GenericAdapter().adapt(
            {
                "reference_paiement": "PAY-1-0001",
                "statut": "SUCCESS",
                "reference_externe": "EXT-9",
            }
        )

        event = result.unwrap()
        assert event.aggregator is Aggregator.GENERIC
        assert event.payment_reference == "PAY-1-0001"
        assert event.status is CanonicalStatus.SUCCEEDED
        assert event.external_transaction_id == "EXT-9"

    def test_failure_message(self) -> None:
        event = GenericAdapter().adapt(
            {"reference": "PAY-1-0001", "status": "failed", "error_message": "Solde insuffisant"}
        ).unwrap()

        assert event.status is CanonicalStatus.FAILED
        assert event.error_message == "Solde insuffisant"

    def test_metadata_string_carries_beneficiaries(self) -> None:
        quote_id = uuid4()
        metadata = json.dumps(
            {
                "quote_id": str(quote_id),
                "beneficiaries": [
                    {"full_name": "Awa Kone", "relationship": "conjoint", "birth_date": "02/04/1988"}
                ],
            }
        )

        event = GenericAdapter().adapt(
            {"reference": "PAY-1-0001", "status": "success", "metadata": metadata}
        ).unwrap()

        assert event.quote_id == quote_id
        assert [b.full_name for b in event.beneficiaries] == ["Awa Kone"]
        assert event.beneficiaries[0].birth_date.year == 1988

    def test_free_text_metadata_is_ignored(self) -> None:
        event = GenericAdapter().adapt(
            {"reference": "PAY-1-0001", "status": "success", "metadata": "commande 42"}
        ).unwrap()

        assert event.quote_id is None
        assert event.beneficiaries == []

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"reference": "PAY-1-0001"},
            {"reference": "PAY-1-0001", "status": "teleported"},
            {"status": "success"},
            {"reference": "   ", "status": "success"},
            {"reference": "PAY-1-0001", "status": "success", "metadata": {"quote_id": "nope"}},
            {
                "reference": "PAY-1-0001",
                "status": "success",
                "metadata": {"beneficiaries": [{"full_name": "X", "relationship": "fils", "rank": 9}]},
            },
        ],
    )
    def test_invalid_payloads(self, payload) -> None:
        error = GenericAdapter().adapt(payload).unwrap_err()

        assert error.kind is ErrorKind.INVALID_CALLBACK
        assert error.details["aggregator"] == "generic"


class TestAggregatorAdapters:
    def test_wave(self) -> None:
        event = WaveAdapter().adapt(
            {"client_reference": "PAY-1-0001", "payment_status": "succeeded", "id": "T_123"}
        ).unwrap()

        assert event.payment_reference == "PAY-1-0001"
        assert event.status is CanonicalStatus.SUCCEEDED
        assert event.external_transaction_id == "T_123"

    def test_orange_money(self) -> None:
        event = OrangeMoneyAdapter().adapt(
            {"order_id": "PAY-1-0001", "status": "FAILED", "txnid": "MP250314"}
        ).unwrap()

        assert event.status is CanonicalStatus.FAILED
        assert event.external_transaction_id == "MP250314"

    def test_wave_accepts_generic_field_names(self) -> None:
        event = WaveAdapter().adapt(
            {"reference_paiement": "PAY-1-0001", "status": "success", "transaction_id": "T_9"}
        ).unwrap()

        assert event.payment_reference == "PAY-1-0001"
        assert event.status is CanonicalStatus.SUCCEEDED
        assert event.external_transaction_id == "T_9"

    def test_orange_money_accepts_generic_field_names(self) -> None:
        event = OrangeMoneyAdapter().adapt(
            {"reference_paiement": "PAY-1-0001", "status": "SUCCESS", "transaction_id": "MP9"}
        ).unwrap()

        assert event.payment_reference == "PAY-1-0001"
        assert event.external_transaction_id == "MP9"

    def test_native_field_names_take_precedence(self) -> None:
        event = WaveAdapter().adapt(
            {
                "merchant_reference": "PAY-1-0001",
                "reference_paiement": "PAY-2-0002",
                "wave_id": "W-1",
                "transaction_id": "T_9",
                "status": "success",
            }
        ).unwrap()

        assert event.payment_reference == "PAY-1-0001"
        assert event.external_transaction_id == "W-1"

    def test_quote_id_alone_is_enough(self) -> None:
        quote_id = uuid4()

        event = WaveAdapter().adapt(
            {"status": "success", "metadata": {"quote_id": str(quote_id)}}
        ).unwrap()

        assert event.payment_reference is None
        assert event.external_transaction_id is None
        assert event.quote_id == quote_id

    def test_external_id_alone_is_enough(self) -> None:
        event = OrangeMoneyAdapter().adapt({"status": "SUCCESS", "txn_id": "MP1"}).unwrap()

        assert event.payment_reference is None
        assert event.external_transaction_id == "MP1"

    @pytest.mark.parametrize(
        "code,expected",
        [("00", CanonicalStatus.SUCCEEDED), ("627", CanonicalStatus.FAILED), ("600", CanonicalStatus.FAILED)],
    )
    def test_cinetpay_result_codes(self, code, expected) -> None:
        event = CinetPayAdapter().adapt(
            {
                "cpm_trans_id": "PAY-1-0001",
                "cpm_result": code,
                "cpm_payid": "CP-1",
                "cpm_phone_prefixe": "225",
            }
        ).unwrap()

        assert event.status is expected
        assert event.operator_id == "225"

    def test_cinetpay_status_word_wins_over_code(self) -> None:
        event = CinetPayAdapter().adapt(
            {"cpm_trans_id": "PAY-1-0001", "status": "ACCEPTED", "cpm_result": "627"}
        ).unwrap()

        assert event.status is CanonicalStatus.SUCCEEDED

    def test_adapter_for(self) -> None:
        assert isinstance(adapter_for(Aggregator.CINETPAY), CinetPayAdapter)


class TestParseAggregator:
    @pytest.mark.parametrize("name", ["wave", "Orange_Money", " cinetpay "])
    def test_known(self, name) -> None:
        assert parse_aggregator(name).is_ok()

    def test_unknown(self) -> None:
        error = parse_aggregator("paypal").unwrap_err()

        assert error.kind is ErrorKind.INVALID_CALLBACK
        assert "generic" in error.details["supported"]
