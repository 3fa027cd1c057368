"""
Tests for PaymentStatusPoller.

Tests cover:
- Argument validation and registration lookup
- Authorization boundary
- Paid short-circuit
- Reconciliation of the fetched status
- Provider failures mapped to error codes
"""

from dataclasses import replace
from unittest.mock import patch

import httpx
import pytest

from payments.adapters import ProviderRegistry, set_provider_registry
from payments.models import PaymentAuditEntry
from payments.services import PaymentStatusPoller
from payments.state_machines import PaymentStatus, ReconciliationChannel, ReconciliationOutcome
from payments.tests.factories import RegistrationFactory
from payments.tests.fakes import MOLLIE_HOST, mollie_payment, noda_payment, ponto_payment_request


def check(user, registration, **kwargs):
    return PaymentStatusPoller.check_status(
        user,
        club_id=registration.club_id,
        participant_id=registration.participant_id,
        **kwargs,
    )


# =============================================================================
# Validation and lookup
# =============================================================================


class TestLookup:
    """Tests for argument validation and registration resolution."""

    @pytest.mark.parametrize(
        "club_id,participant_id,missing",
        [(None, "p-1", "club_id"), ("club-1", "", "participant_id")],
    )
    def test_missing_ids(self, member, club_id, participant_id, missing):
        result = PaymentStatusPoller.check_status(member, club_id, participant_id)

        assert result.error_code == "INVALID_ARGUMENT"
        assert missing in result.errors

    def test_not_found(self, member, provider_registry):
        result = PaymentStatusPoller.check_status(member, "club-x", "nobody")

        assert result.error_code == "NOT_FOUND"

    def test_ambiguous_without_operation(self, member, provider_registry):
        first = RegistrationFactory(member=member, mollie=True, participant_id="p-1")
        RegistrationFactory(
            member=member, mollie=True, club_id=first.club_id, participant_id="p-1"
        )

        result = check(member, first)

        assert result.error_code == "INVALID_ARGUMENT"
        assert "operation_id" in result.errors

    def test_operation_disambiguates(self, member, provider_registry, fake_provider_api):
        first = RegistrationFactory(member=member, mollie=True, participant_id="p-1")
        RegistrationFactory(
            member=member, mollie=True, club_id=first.club_id, participant_id="p-1"
        )
        fake_provider_api.payments[first.provider_payment_id] = mollie_payment(
            first.provider_payment_id, "pending"
        )

        result = check(member, first, operation_id=first.operation_id)

        assert result.success
        assert result.data.registration_id == first.pk
        assert result.data.status == PaymentStatus.PENDING


# =============================================================================
# Preconditions
# =============================================================================


class TestPreconditions:
    """Tests for checks made before any provider call."""

    def test_other_member_denied(self, other_member, mollie_registration, provider_registry, fake_provider_api):
        """The caller must own the registration; the provider is not contacted."""
        result = check(other_member, mollie_registration)

        assert result.error_code == "PERMISSION_DENIED"
        assert fake_provider_api.requests == []

    def test_no_payment_attempt(self, member, registration, provider_registry):
        result = check(member, registration)

        assert result.error_code == "FAILED_PRECONDITION"

    def test_already_paid_uses_stored_state(self, member, paid_registration, provider_registry, fake_provider_api):
        result = check(member, paid_registration)

        assert result.success
        assert result.data.paid is True
        assert result.data.paid_at == paid_registration.paid_at
        assert fake_provider_api.requests == []


# =============================================================================
# Reconciliation
# =============================================================================


class TestReconciliation:
    """Tests for the fetched status being reconciled."""

    def test_paid_at_provider(self, member, mollie_registration, provider_registry, fake_provider_api):
        fake_provider_api.payments[mollie_registration.provider_payment_id] = mollie_payment(
            mollie_registration.provider_payment_id,
            "paid",
            paid_at="2026-05-12T10:00:00+00:00",
            method="bancontact",
        )

        result = check(member, mollie_registration)

        assert result.success
        snapshot = result.data
        assert snapshot.status == PaymentStatus.PAID
        assert snapshot.paid is True
        assert snapshot.method == "bancontact"
        assert snapshot.provider_payment_id == mollie_registration.provider_payment_id
        mollie_registration.refresh_from_db()
        assert mollie_registration.paid is True
        entry = PaymentAuditEntry.objects.get(registration=mollie_registration)
        assert entry.channel == ReconciliationChannel.POLL
        assert entry.outcome == ReconciliationOutcome.APPLIED

    def test_still_open(self, member, mollie_registration, provider_registry):
        result = check(member, mollie_registration)

        assert result.success
        assert result.data.status == PaymentStatus.OPEN
        assert result.data.paid is False

    def test_uses_poll_timeout(self, member, mollie_registration, provider_registry, fake_provider_api, provider_config):
        check(member, mollie_registration)

        request = fake_provider_api.requests_to(MOLLIE_HOST)[0]
        assert request.extensions["timeout"]["read"] == provider_config.poll_timeout_seconds

    def test_ponto(self, member, ponto_registration, provider_registry, fake_provider_api):
        fake_provider_api.payments[ponto_registration.provider_payment_id] = ponto_payment_request(
            ponto_registration.provider_payment_id,
            signed_at="2026-05-12T10:00:00Z",
            closed_at="2026-05-12T10:02:00Z",
        )

        result = check(member, ponto_registration)

        assert result.data.paid is True
        assert result.data.method == "ponto"

    def test_noda_failure(self, member, noda_registration, provider_registry, fake_provider_api):
        fake_provider_api.payments[noda_registration.provider_payment_id] = noda_payment(
            noda_registration.provider_payment_id, "failed"
        )

        result = check(member, noda_registration)

        assert result.data.status == PaymentStatus.FAILED
        assert result.data.paid is False

    def test_store_error(self, member, mollie_registration, provider_registry):
        with patch(
            "payments.services.status_poller.PaymentReconciler.reconcile_status_result"
        ) as reconcile:
            reconcile.return_value.outcome = ReconciliationOutcome.STORE_ERROR
            result = check(member, mollie_registration)

        assert result.error_code == "INTERNAL"


# =============================================================================
# Provider failures
# =============================================================================


class TestProviderFailures:
    """Tests for provider errors mapped to result codes."""

    def test_unavailable(self, member, mollie_registration, provider_registry, fake_provider_api):
        fake_provider_api.error = httpx.ConnectTimeout("timed out")

        result = check(member, mollie_registration)

        assert result.error_code == "PROVIDER_UNAVAILABLE"
        mollie_registration.refresh_from_db()
        assert mollie_registration.payment_status == PaymentStatus.OPEN
        entry = PaymentAuditEntry.objects.get(registration=mollie_registration)
        assert entry.outcome == ReconciliationOutcome.PROVIDER_ERROR

    def test_server_error(self, member, mollie_registration, provider_registry, fake_provider_api):
        fake_provider_api.error = 503

        assert check(member, mollie_registration).error_code == "PROVIDER_UNAVAILABLE"

    def test_provider_lost_payment(self, member, mollie_registration, provider_registry, fake_provider_api):
        """A 404 skips reconciliation."""
        fake_provider_api.payments.clear()

        result = check(member, mollie_registration)

        assert result.error_code == "NOT_FOUND"
        mollie_registration.refresh_from_db()
        assert mollie_registration.payment_status == PaymentStatus.OPEN

    def test_rejected_request(self, member, mollie_registration, provider_registry, fake_provider_api):
        fake_provider_api.error = 401

        assert check(member, mollie_registration).error_code == "INTERNAL"

    def test_provider_not_configured(self, member, mollie_registration, provider_registry, provider_config):
        set_provider_registry(ProviderRegistry(replace(provider_config, mollie_api_key="")))

        result = check(member, mollie_registration)

        assert result.error_code == "PROVIDER_UNAVAILABLE"

    def test_unexpected_error(self, member, mollie_registration, provider_registry):
        with patch(
            "payments.services.status_poller.PaymentReconciler.reconcile_status_result",
            side_effect=RuntimeError("boom"),
        ):
            result = check(member, mollie_registration)

        assert result.error_code == "INTERNAL"
        assert "boom" not in result.error
