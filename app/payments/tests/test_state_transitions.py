"""
Tests for Registration payment status transitions using django-fsm.

Covers the allowed transitions, the PAID sink and the settlement
fields each transition maintains.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from django_fsm import TransitionNotAllowed, can_proceed

from payments.state_machines import (
    FAILURE_STATUSES,
    PaymentProvider,
    PaymentStatus,
    status_rank,
)
from payments.tests.factories import RegistrationFactory


# =============================================================================
# Status ranking
# =============================================================================


class TestStatusRank:
    """Tests for the reconciliation ordering."""

    def test_ordering(self):
        """Should order open < pending < failures < paid."""
        assert status_rank(PaymentStatus.OPEN) < status_rank(PaymentStatus.PENDING)
        for failure in FAILURE_STATUSES:
            assert status_rank(PaymentStatus.PENDING) < status_rank(failure)
            assert status_rank(failure) < status_rank(PaymentStatus.PAID)

    def test_failures_share_a_rank(self):
        """Failure statuses should be mutually unordered."""
        assert len({status_rank(status) for status in FAILURE_STATUSES}) == 1

    def test_none_is_lowest(self):
        """NONE should rank below every provider status."""
        assert status_rank(PaymentStatus.NONE) < status_rank(PaymentStatus.OPEN)

    def test_accepts_plain_strings(self):
        """Should rank raw status values."""
        assert status_rank("paid") == status_rank(PaymentStatus.PAID)


# =============================================================================
# Registration Transition Tests
# =============================================================================


class TestRegistrationTransitions:
    """Tests for Registration state machine transitions."""

    # -------------------------------------------------------------------------
    # Valid Transitions
    # -------------------------------------------------------------------------

    def test_open_to_pending(self, db):
        """Should transition from open to pending without touching paid."""
        registration = RegistrationFactory(mollie=True)

        registration.mark_pending()
        registration.save()

        assert registration.payment_status == PaymentStatus.PENDING
        assert registration.paid is False

    def test_pending_to_paid(self, db):
        """Should set paid and paid_at."""
        registration = RegistrationFactory(mollie=True, payment_status=PaymentStatus.PENDING)
        paid_at = timezone.now() - timedelta(minutes=2)

        registration.mark_paid(paid_at=paid_at, payment_method="bancontact")
        registration.save()

        registration.refresh_from_db()
        assert registration.payment_status == PaymentStatus.PAID
        assert registration.paid is True
        assert registration.paid_at == paid_at
        assert registration.payment_method == "bancontact"

    def test_paid_without_timestamp_uses_now(self, db):
        """Should default paid_at to the current time."""
        registration = RegistrationFactory(mollie=True)
        before = timezone.now()

        registration.mark_paid()

        assert registration.paid_at >= before

    def test_paid_keeps_method_when_not_reported(self, db):
        """Should not erase a known payment method."""
        registration = RegistrationFactory(mollie=True, payment_method="kbc")

        registration.mark_paid()

        assert registration.payment_method == "kbc"

    @pytest.mark.parametrize(
        "method_name,target",
        [
            ("mark_failed", PaymentStatus.FAILED),
            ("mark_canceled", PaymentStatus.CANCELED),
            ("mark_expired", PaymentStatus.EXPIRED),
        ],
    )
    def test_open_to_failure(self, db, method_name, target):
        """Should move to a failure status with paid cleared."""
        registration = RegistrationFactory(mollie=True)

        getattr(registration, method_name)()
        registration.save()

        assert registration.payment_status == target
        assert registration.paid is False
        assert registration.paid_at is None

    @pytest.mark.parametrize("failure", FAILURE_STATUSES)
    def test_failure_to_paid(self, db, failure):
        """A late settlement should still be accepted after a failure."""
        registration = RegistrationFactory(mollie=True, payment_status=failure)

        registration.mark_paid()
        registration.save()

        assert registration.payment_status == PaymentStatus.PAID

    def test_start_attempt_replaces_failed_attempt(self, db):
        """Should reset a failed registration onto the new attempt."""
        registration = RegistrationFactory(mollie=True, payment_status=PaymentStatus.FAILED)

        registration.start_attempt(
            provider=PaymentProvider.NODA,
            provider_payment_id="noda-new",
            amount=Decimal("30.00"),
            currency="EUR",
        )
        registration.save()

        assert registration.payment_status == PaymentStatus.OPEN
        assert registration.provider == PaymentProvider.NODA
        assert registration.provider_payment_id == "noda-new"
        assert registration.amount == Decimal("30.00")

    def test_start_attempt_records_payment_method(self, db):
        """Should store the method chosen at checkout on the new attempt."""
        registration = RegistrationFactory()

        registration.start_attempt(
            provider=PaymentProvider.MOLLIE,
            provider_payment_id="tr_new",
            amount=Decimal("25.00"),
            payment_method="bancontact",
        )
        registration.save()

        registration.refresh_from_db()
        assert registration.payment_status == PaymentStatus.OPEN
        assert registration.payment_method == "bancontact"

    # -------------------------------------------------------------------------
    # Invalid Transitions
    # -------------------------------------------------------------------------

    @pytest.mark.parametrize(
        "method_name",
        ["mark_open", "mark_pending", "mark_paid", "mark_failed", "mark_canceled", "mark_expired"],
    )
    def test_paid_is_a_sink(self, db, paid_registration, method_name):
        """No transition should leave PAID."""
        transition = getattr(paid_registration, method_name)

        assert not can_proceed(transition)
        with pytest.raises(TransitionNotAllowed):
            transition()

    def test_start_attempt_refused_when_paid(self, db, paid_registration):
        """A paid registration cannot start a new attempt."""
        with pytest.raises(TransitionNotAllowed):
            paid_registration.start_attempt(
                provider=PaymentProvider.MOLLIE,
                provider_payment_id="tr_again",
                amount=Decimal("25.00"),
            )

    def test_pending_cannot_go_back_to_open(self, db):
        """Should not transition from pending to open."""
        registration = RegistrationFactory(mollie=True, payment_status=PaymentStatus.PENDING)

        with pytest.raises(TransitionNotAllowed):
            registration.mark_open()

    def test_failure_to_other_failure_not_allowed(self, db):
        """Failure statuses should not replace one another."""
        registration = RegistrationFactory(mollie=True, payment_status=PaymentStatus.FAILED)

        with pytest.raises(TransitionNotAllowed):
            registration.mark_expired()

    # -------------------------------------------------------------------------
    # transition_for
    # -------------------------------------------------------------------------

    def test_transition_for_maps_each_status(self, db):
        """Should return the bound method moving to the given status."""
        registration = RegistrationFactory(mollie=True)

        assert registration.transition_for(PaymentStatus.PAID) == registration.mark_paid
        assert registration.transition_for("expired") == registration.mark_expired

    def test_transition_for_none_is_unsupported(self, db):
        """NONE is never a transition target."""
        registration = RegistrationFactory()

        with pytest.raises(KeyError):
            registration.transition_for(PaymentStatus.NONE)
