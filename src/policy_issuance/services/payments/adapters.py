"""Translate aggregator callback payloads into :class:`CanonicalEvent`.

Each aggregator posts its own field names and status vocabulary. An adapter
lists the aliases it accepts for every canonical field, first match wins.
"""

import json
from collections.abc import Mapping
from typing import Any, ClassVar, Final
from uuid import UUID

from beartype import beartype
from pydantic import ValidationError

from ...core.errors import DomainError, ErrorKind, fail
from ...core.logging_utils import get_logger, render_payload
from ...core.result_types import Ok, Result
from ...models.payment import Aggregator, BeneficiaryInput, CanonicalEvent, CanonicalStatus

logger = get_logger(__name__)

STATUS_WORDS: Final[dict[str, CanonicalStatus]] = {
    **dict.fromkeys(
        ("success", "succeeded", "successful", "completed", "paid", "accepted", "00"),
        CanonicalStatus.SUCCEEDED,
    ),
    **dict.fromkeys(
        ("failed", "failure", "error", "rejected", "refused", "declined", "expired"),
        CanonicalStatus.FAILED,
    ),
    **dict.fromkeys(
        ("pending", "processing", "initiated", "waiting"), CanonicalStatus.PENDING
    ),
    **dict.fromkeys(("cancelled", "canceled"), CanonicalStatus.CANCELLED),
}


@beartype
def canonical_status(word: Any) -> CanonicalStatus | None:
    """Map a status word (case-insensitive) to its canonical status."""
    if word is None:
        return None
    return STATUS_WORDS.get(str(word).strip().lower())


def _first(payload: Mapping[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = payload.get(key)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


class CallbackAdapter:
    """Alias-driven adapter; subclasses only declare their field names."""

    aggregator: ClassVar[Aggregator]
    reference_keys: ClassVar[tuple[str, ...]]
    status_keys: ClassVar[tuple[str, ...]]
    external_id_keys: ClassVar[tuple[str, ...]]
    error_keys: ClassVar[tuple[str, ...]]
    operator_keys: ClassVar[tuple[str, ...]] = ("operator_id", "operator")

    @beartype
    def adapt(self, payload: Mapping[str, Any]) -> Result[CanonicalEvent, DomainError]:
        if not payload:
            return self._invalid(payload, "Empty callback payload")

        status = self.status(payload)
        if status is None:
            return self._invalid(
                payload,
                "Unrecognised payment status",
                status=_first(payload, self.status_keys),
            )

        metadata = self._metadata(payload)
        try:
            beneficiaries = [
                BeneficiaryInput.model_validate(item)
                for item in metadata.get("beneficiaries") or []
            ]
            quote_id = metadata.get("quote_id")
            event = CanonicalEvent(
                aggregator=self.aggregator,
                payment_reference=_first(payload, self.reference_keys),
                status=status,
                external_transaction_id=_first(payload, self.external_id_keys),
                operator_id=_first(payload, self.operator_keys),
                error_message=_first(payload, self.error_keys),
                quote_id=UUID(str(quote_id)) if quote_id else None,
                beneficiaries=beneficiaries,
            )
        except (ValidationError, ValueError, TypeError) as e:
            return self._invalid(payload, f"Malformed callback metadata: {e}")
        if (
            event.payment_reference is None
            and event.external_transaction_id is None
            and event.quote_id is None
        ):
            return self._invalid(payload, "Callback carries no payment reference")
        return Ok(event)

    def status(self, payload: Mapping[str, Any]) -> CanonicalStatus | None:
        return canonical_status(_first(payload, self.status_keys))

    @staticmethod
    def _metadata(payload: Mapping[str, Any]) -> dict[str, Any]:
        raw = payload.get("metadata")
        if isinstance(raw, str) and raw.strip():
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError:
                # Free text metadata is allowed; it just carries nothing for us
                return {}
        return dict(raw) if isinstance(raw, Mapping) else {}

    def _invalid(
        self, payload: Mapping[str, Any], message: str, **details: Any
    ) -> Result[CanonicalEvent, DomainError]:
        logger.warning(
            "Invalid %s callback (%s): %s",
            self.aggregator.value,
            message,
            render_payload(payload),
        )
        return fail(
            ErrorKind.INVALID_CALLBACK,
            message,
            aggregator=self.aggregator.value,
            **details,
        )


class GenericAdapter(CallbackAdapter):
    aggregator = Aggregator.GENERIC
    reference_keys = ("reference_paiement", "payment_reference", "reference")
    status_keys = ("statut", "status")
    external_id_keys = ("reference_externe", "transaction_id")
    error_keys = ("message_erreur", "error_message")


class WaveAdapter(CallbackAdapter):
    aggregator = Aggregator.WAVE
    reference_keys = ("merchant_reference", "reference_paiement", "client_reference")
    status_keys = ("status", "payment_status")
    external_id_keys = ("wave_id", "transaction_id", "id")
    error_keys = ("error_message",)


class OrangeMoneyAdapter(CallbackAdapter):
    aggregator = Aggregator.ORANGE_MONEY
    reference_keys = ("order_id", "reference_paiement")
    status_keys = ("status",)
    external_id_keys = ("txnid", "txn_id", "transaction_id")
    error_keys = ("error", "message")


class CinetPayAdapter(CallbackAdapter):
    """CinetPay notifications.

    ``cpm_result`` is a result code rather than a word: ``00`` is an accepted
    payment and every other code is a refusal.
    """

    aggregator = Aggregator.CINETPAY
    reference_keys = ("cpm_trans_id", "transaction_id")
    status_keys = ("status",)
    external_id_keys = ("cpm_payid", "payment_token")
    error_keys = ("cpm_error_message", "message")
    operator_keys = ("cpm_phone_prefixe", "operator_id")

    def status(self, payload: Mapping[str, Any]) -> CanonicalStatus | None:
        word = _first(payload, self.status_keys)
        if word is not None:
            return canonical_status(word)
        code = _first(payload, ("cpm_result",))
        if code is None:
            return None
        return CanonicalStatus.SUCCEEDED if code == "00" else CanonicalStatus.FAILED


ADAPTERS: Final[dict[Aggregator, CallbackAdapter]] = {
    adapter.aggregator: adapter
    for adapter in (GenericAdapter(), WaveAdapter(), OrangeMoneyAdapter(), CinetPayAdapter())
}


@beartype
def adapter_for(aggregator: Aggregator) -> CallbackAdapter:
    return ADAPTERS[aggregator]


@beartype
def parse_aggregator(name: str) -> Result[Aggregator, DomainError]:
    """Resolve an aggregator path segment; unknown names are invalid callbacks."""
    try:
        return Ok(Aggregator(name.strip().lower()))
    except ValueError:
        return fail(
            ErrorKind.INVALID_CALLBACK,
            f"Unknown aggregator {name!r}",
            supported=[a.value for a in Aggregator],
        )
