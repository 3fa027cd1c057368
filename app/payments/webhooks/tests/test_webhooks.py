"""
Tests for the provider webhook endpoints.

Tests cover:
- Mollie form notifications reconciled through a status re-fetch
- Duplicate deliveries
- Unknown payment ids and bad signatures answered with 401
- Ponto event parsing
- Noda signature verification
- Acknowledgement of every other failure
"""

import json
from dataclasses import replace
from unittest.mock import patch

import httpx
import pytest
from django.urls import reverse

from payments.adapters import NodaAdapter, ProviderRegistry, set_provider_registry
from payments.models import PaymentAuditEntry
from payments.state_machines import (
    PaymentProvider,
    PaymentStatus,
    ReconciliationChannel,
    ReconciliationOutcome,
)
from payments.tests.fakes import mollie_payment, noda_payment, ponto_payment_request
from payments.webhooks.handlers import WEBHOOK_RECEIVERS


MOLLIE_URL = reverse("payments:mollie_webhook")
PONTO_URL = reverse("payments:ponto_webhook")
NODA_URL = reverse("payments:noda_webhook")


def post_noda(client, body, secret="noda-webhook-secret", signature=None):
    raw = json.dumps(body).encode()
    headers = {}
    if signature is None and secret:
        signature = NodaAdapter.compute_signature(secret, raw)
    if signature:
        headers["HTTP_X_NODA_SIGNATURE"] = signature
    return client.post(NODA_URL, data=raw, content_type="application/json", **headers)


def ponto_event(payment_request_id, event_type="pontoConnect.paymentRequest.closed"):
    return {
        "data": {
            "type": event_type,
            "id": "evt-1",
            "attributes": {"paymentRequestId": payment_request_id},
        }
    }


# =============================================================================
# Mollie
# =============================================================================


@pytest.mark.django_db
class TestMollieWebhook:
    """Tests for the Mollie endpoint."""

    def test_paid_notification(self, client, mollie_registration, provider_registry, fake_provider_api):
        payment_id = mollie_registration.provider_payment_id
        fake_provider_api.payments[payment_id] = mollie_payment(
            payment_id,
            "paid",
            paid_at="2026-05-12T10:00:00+00:00",
            method="bancontact",
            metadata={"internalPaymentId": mollie_registration.internal_payment_id},
        )

        response = client.post(MOLLIE_URL, {"id": payment_id})

        assert response.status_code == 200
        mollie_registration.refresh_from_db()
        assert mollie_registration.payment_status == PaymentStatus.PAID
        assert mollie_registration.paid is True
        entry = PaymentAuditEntry.objects.get(registration=mollie_registration)
        assert entry.channel == ReconciliationChannel.WEBHOOK
        assert entry.outcome == ReconciliationOutcome.APPLIED

    def test_body_status_is_not_trusted(self, client, mollie_registration, provider_registry):
        """Only the re-fetched status counts."""
        response = client.post(
            MOLLIE_URL,
            data=json.dumps({"id": mollie_registration.provider_payment_id, "status": "paid"}),
            content_type="application/json",
        )

        assert response.status_code == 200
        mollie_registration.refresh_from_db()
        assert mollie_registration.payment_status == PaymentStatus.OPEN

    def test_duplicate_delivery(self, client, mollie_registration, provider_registry, fake_provider_api):
        payment_id = mollie_registration.provider_payment_id
        fake_provider_api.payments[payment_id]["status"] = "paid"
        fake_provider_api.payments[payment_id]["paidAt"] = "2026-05-12T10:00:00+00:00"

        first = client.post(MOLLIE_URL, {"id": payment_id})
        mollie_registration.refresh_from_db()
        version = mollie_registration.version
        second = client.post(MOLLIE_URL, {"id": payment_id})

        assert first.status_code == second.status_code == 200
        mollie_registration.refresh_from_db()
        assert mollie_registration.version == version
        outcomes = list(
            PaymentAuditEntry.objects.filter(registration=mollie_registration)
            .order_by("id")
            .values_list("outcome", flat=True)
        )
        assert sorted(outcomes) == sorted(
            [ReconciliationOutcome.APPLIED, ReconciliationOutcome.DUPLICATE]
        )

    def test_unknown_payment_id(self, client, provider_registry):
        response = client.post(MOLLIE_URL, {"id": "tr_forged"})

        assert response.status_code == 401

    def test_missing_id_is_acknowledged(self, client, provider_registry, fake_provider_api):
        response = client.post(MOLLIE_URL, {})

        assert response.status_code == 200
        assert fake_provider_api.requests == []

    def test_get_not_allowed(self, client):
        assert client.get(MOLLIE_URL).status_code == 405

    def test_registration_not_found(self, client, provider_registry, fake_provider_api):
        fake_provider_api.payments["tr_orphan"] = mollie_payment("tr_orphan", "paid")

        response = client.post(MOLLIE_URL, {"id": "tr_orphan"})

        assert response.status_code == 200
        entry = PaymentAuditEntry.objects.get(provider_payment_id="tr_orphan")
        assert entry.outcome == ReconciliationOutcome.REGISTRATION_NOT_FOUND
        assert entry.registration is None

    def test_resolves_by_metadata(self, client, mollie_registration, provider_registry, fake_provider_api):
        """Correlation metadata wins over the stored provider payment id."""
        fake_provider_api.payments["tr_other"] = mollie_payment(
            "tr_other",
            "failed",
            metadata={"internalPaymentId": mollie_registration.internal_payment_id},
        )

        response = client.post(MOLLIE_URL, {"id": "tr_other"})

        assert response.status_code == 200
        entry = PaymentAuditEntry.objects.get(provider_payment_id="tr_other")
        assert entry.registration == mollie_registration
        assert entry.outcome == ReconciliationOutcome.SUPERSEDED
        mollie_registration.refresh_from_db()
        assert mollie_registration.payment_status == PaymentStatus.OPEN

    def test_replaced_attempt_paid(self, client, mollie_registration, provider_registry, fake_provider_api):
        """A replaced attempt that settles is adopted instead of dropped."""
        fake_provider_api.payments["tr_replaced"] = mollie_payment(
            "tr_replaced",
            "paid",
            amount="25.00",
            paid_at="2026-05-12T10:00:00+00:00",
            metadata={
                "clubId": mollie_registration.club_id,
                "operationId": mollie_registration.operation_id,
                "participantId": mollie_registration.participant_id,
            },
        )

        response = client.post(MOLLIE_URL, {"id": "tr_replaced"})

        assert response.status_code == 200
        mollie_registration.refresh_from_db()
        assert mollie_registration.paid is True
        assert mollie_registration.provider_payment_id == "tr_replaced"
        entry = PaymentAuditEntry.objects.get(provider_payment_id="tr_replaced")
        assert entry.outcome == ReconciliationOutcome.APPLIED

    def test_provider_unavailable(self, client, mollie_registration, provider_registry, fake_provider_api):
        fake_provider_api.error = httpx.ReadTimeout("timed out")

        response = client.post(MOLLIE_URL, {"id": mollie_registration.provider_payment_id})

        assert response.status_code == 200
        entry = PaymentAuditEntry.objects.get(registration=mollie_registration)
        assert entry.outcome == ReconciliationOutcome.PROVIDER_ERROR

    def test_provider_not_configured(self, client, provider_registry, provider_config):
        set_provider_registry(ProviderRegistry(replace(provider_config, mollie_api_key="")))

        response = client.post(MOLLIE_URL, {"id": "tr_1"})

        assert response.status_code == 200
        assert response.content == b"Provider not configured"

    def test_unexpected_error_is_acknowledged(self, client, mollie_registration, provider_registry):
        with patch(
            "payments.webhooks.handlers.PaymentReconciler.reconcile_status_result",
            side_effect=RuntimeError("boom"),
        ):
            response = client.post(MOLLIE_URL, {"id": mollie_registration.provider_payment_id})

        assert response.status_code == 200


# =============================================================================
# Ponto
# =============================================================================


@pytest.mark.django_db
class TestPontoWebhook:
    """Tests for the Ponto endpoint."""

    def test_payment_request_closed(self, client, ponto_registration, provider_registry, fake_provider_api):
        payment_id = ponto_registration.provider_payment_id
        fake_provider_api.payments[payment_id] = ponto_payment_request(
            payment_id, "2026-05-12T10:00:00Z", "2026-05-12T10:01:00Z"
        )

        response = client.post(
            PONTO_URL, data=json.dumps(ponto_event(payment_id)), content_type="application/json"
        )

        assert response.status_code == 200
        ponto_registration.refresh_from_db()
        assert ponto_registration.paid is True
        assert ponto_registration.payment_method == "ponto"

    def test_relationship_id(self, client, ponto_registration, provider_registry, fake_provider_api):
        payment_id = ponto_registration.provider_payment_id
        fake_provider_api.payments[payment_id] = ponto_payment_request(
            payment_id, signed_at="2026-05-12T10:00:00Z"
        )
        body = {
            "data": {
                "type": "pontoConnect.paymentRequest.signed",
                "relationships": {"paymentRequest": {"data": {"id": payment_id}}},
            }
        }

        client.post(PONTO_URL, data=json.dumps(body), content_type="application/json")

        ponto_registration.refresh_from_db()
        assert ponto_registration.payment_status == PaymentStatus.PENDING

    def test_other_event_ignored(self, client, provider_registry, fake_provider_api):
        body = {"data": {"type": "pontoConnect.account.transactionsCreated", "id": "evt-2"}}

        response = client.post(PONTO_URL, data=json.dumps(body), content_type="application/json")

        assert response.status_code == 200
        assert fake_provider_api.requests == []

    def test_malformed_body(self, client, provider_registry):
        response = client.post(PONTO_URL, data="not json", content_type="application/json")

        assert response.status_code == 200


# =============================================================================
# Noda
# =============================================================================


@pytest.mark.django_db
class TestNodaWebhook:
    """Tests for the Noda endpoint."""

    def test_signed_notification(self, client, noda_registration, provider_registry, fake_provider_api):
        payment_id = noda_registration.provider_payment_id
        fake_provider_api.payments[payment_id] = noda_payment(
            payment_id,
            "done",
            paid_at="2026-05-12T10:00:00Z",
            metadata={"internalPaymentId": noda_registration.internal_payment_id},
        )

        response = post_noda(client, {"payment_id": payment_id, "status": "done"})

        assert response.status_code == 200
        noda_registration.refresh_from_db()
        assert noda_registration.payment_status == PaymentStatus.PAID

    def test_bad_signature(self, client, noda_registration, provider_registry, fake_provider_api):
        response = post_noda(
            client, {"payment_id": noda_registration.provider_payment_id}, signature="deadbeef"
        )

        assert response.status_code == 401
        assert fake_provider_api.requests == []

    def test_missing_signature(self, client, noda_registration, provider_registry):
        response = post_noda(
            client, {"payment_id": noda_registration.provider_payment_id}, secret=None
        )

        assert response.status_code == 401

    def test_prefixed_signature(self, client, noda_registration, provider_registry):
        body = {"paymentId": noda_registration.provider_payment_id}
        signature = NodaAdapter.compute_signature("noda-webhook-secret", json.dumps(body).encode())

        response = post_noda(client, body, signature=f"sha256={signature}")

        assert response.status_code == 200
        assert PaymentAuditEntry.objects.filter(
            registration=noda_registration,
            outcome=ReconciliationOutcome.DUPLICATE,
        ).exists()


def test_every_provider_has_a_receiver():
    assert set(WEBHOOK_RECEIVERS) == {
        PaymentProvider.MOLLIE,
        PaymentProvider.PONTO,
        PaymentProvider.NODA,
    }
