"""
Reconciler: the only writer of a registration's payment state.

Webhooks and status polls both end here with a normalized status taken
from the provider. The reconciler applies it under a row lock when it
ranks strictly higher than the stored status:

    open(0) < pending(1) < failed/canceled/expired(2) < paid(3)

Everything else is a recorded no-op, so repeated or reordered
observations from either channel converge on the same final state.
PAID is a sink.

Usage:
    from payments.services import PaymentReconciler

    result = PaymentReconciler.reconcile(
        registration.id,
        PaymentStatus.PAID,
        channel=ReconciliationChannel.WEBHOOK,
        provider_payment_id="tr_123",
        paid_at=status.paid_at,
    )
    if result.applied:
        ...
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from django_fsm import can_proceed

from core.services import BaseService

from payments.models import Registration
from payments.services.audit_log import PaymentAuditLog
from payments.state_machines import (
    PaymentProvider,
    PaymentStatus,
    ReconciliationOutcome,
    status_rank,
)

if TYPE_CHECKING:
    from typing import Any

    from payments.adapters import PaymentStatusResult


@dataclass
class ReconciliationResult:
    """
    Outcome of one reconciliation attempt.

    Attributes:
        outcome: ReconciliationOutcome value
        registration: Registration after the attempt (None if not found)
        previous_status: Status before the attempt
        resulting_status: Status after the attempt
        amount_mismatch: Provider amount/currency differed from the stored one
    """

    outcome: str
    registration: Registration | None = None
    previous_status: str | None = None
    resulting_status: str | None = None
    amount_mismatch: bool = False

    @property
    def applied(self) -> bool:
        return self.outcome == ReconciliationOutcome.APPLIED


class PaymentReconciler(BaseService):
    """
    Applies provider status observations to registrations.

    Safety Guarantees:
        - One transaction per observation, row locked with select_for_update
        - Transitions go through the django-fsm methods on Registration
        - Never raises; any failure while applying is outcome STORE_ERROR
        - Every attempt is audited after the write
    """

    @classmethod
    def reconcile(
        cls,
        registration_id: uuid.UUID | str,
        status: str,
        *,
        channel: str,
        provider: str | None = None,
        paid_at: datetime | None = None,
        method: str | None = None,
        provider_payment_id: str | None = None,
        amount: Decimal | None = None,
        currency: str | None = None,
        raw_payload: dict[str, Any] | None = None,
    ) -> ReconciliationResult:
        """
        Apply one normalized status observation to a registration.

        Args:
            registration_id: Registration to update
            status: Normalized PaymentStatus reported by the provider
            channel: ReconciliationChannel the observation came through
            paid_at: Settlement time reported by the provider
            method: Payment method reported by the provider
            provider: Provider the observation came from; needed when a
                superseded attempt reports paid and is adopted
            provider_payment_id: Provider payment the observation is about;
                when it differs from the stored attempt the observation
                is discarded, unless it reports paid on an unpaid
                registration
            amount/currency: Amount reported by the provider
            raw_payload: Provider response, kept on the audit entry

        Returns:
            ReconciliationResult describing what happened
        """
        logger = cls.get_logger()
        status = PaymentStatus(status)
        log_context = {
            "registration_id": str(registration_id),
            "incoming_status": status.value,
            "channel": channel,
            "provider_payment_id": provider_payment_id,
        }

        registration: Registration | None = None
        previous_status: str | None = None
        result: ReconciliationResult
        message = ""

        try:
            with cls.atomic():
                try:
                    registration = Registration.objects.select_for_update().get(
                        pk=registration_id
                    )
                except Registration.DoesNotExist:
                    result = ReconciliationResult(
                        outcome=ReconciliationOutcome.REGISTRATION_NOT_FOUND,
                    )
                else:
                    previous_status = registration.payment_status
                    result = cls._apply(
                        registration,
                        status,
                        provider=provider,
                        paid_at=paid_at,
                        method=method,
                        provider_payment_id=provider_payment_id,
                        amount=amount,
                        currency=currency,
                    )
        except Exception as e:
            logger.exception("Failed to store reconciled payment status", extra=log_context)
            message = str(e)
            result = ReconciliationResult(
                outcome=ReconciliationOutcome.STORE_ERROR,
                registration=registration,
                previous_status=previous_status,
                resulting_status=previous_status,
            )

        log_context = {**log_context, "outcome": result.outcome}
        if result.applied:
            logger.info(
                "Payment status applied",
                extra={
                    **log_context,
                    "previous_status": result.previous_status,
                    "resulting_status": result.resulting_status,
                },
            )
        elif result.outcome == ReconciliationOutcome.REGISTRATION_NOT_FOUND:
            logger.warning("Registration not found for reconciliation", extra=log_context)
        else:
            logger.info("Payment status observation not applied", extra=log_context)

        if result.amount_mismatch and not message:
            message = (
                f"Provider reported {amount} {currency}, registration expects "
                f"{registration.amount} {registration.currency}"
            )

        PaymentAuditLog.record(
            registration=result.registration,
            provider=registration.provider if registration else PaymentProvider.NONE,
            provider_payment_id=provider_payment_id
            or (registration.provider_payment_id if registration else None),
            channel=channel,
            outcome=result.outcome,
            incoming_status=status,
            previous_status=result.previous_status,
            resulting_status=result.resulting_status,
            amount_mismatch=result.amount_mismatch,
            message=message,
            raw_payload=raw_payload,
        )
        return result

    @classmethod
    def reconcile_status_result(
        cls,
        registration_id: uuid.UUID | str,
        status_result: PaymentStatusResult,
        *,
        channel: str,
        provider: str | None = None,
    ) -> ReconciliationResult:
        """Reconcile an adapter PaymentStatusResult."""
        return cls.reconcile(
            registration_id,
            status_result.status,
            channel=channel,
            provider=provider,
            paid_at=status_result.paid_at,
            method=status_result.method,
            provider_payment_id=status_result.provider_payment_id,
            amount=status_result.amount,
            currency=status_result.currency,
            raw_payload=status_result.raw_response,
        )

    # =========================================================================
    # Transition policy
    # =========================================================================

    @classmethod
    def _apply(
        cls,
        registration: Registration,
        status: PaymentStatus,
        *,
        provider: str | None,
        paid_at: datetime | None,
        method: str | None,
        provider_payment_id: str | None,
        amount: Decimal | None,
        currency: str | None,
    ) -> ReconciliationResult:
        """Decide and perform the transition on a locked registration."""
        previous = registration.payment_status

        def unchanged(outcome: str, mismatch: bool = False) -> ReconciliationResult:
            return ReconciliationResult(
                outcome=outcome,
                registration=registration,
                previous_status=previous,
                resulting_status=previous,
                amount_mismatch=mismatch,
            )

        if not registration.has_payment:
            return unchanged(ReconciliationOutcome.NO_PAYMENT)

        if provider_payment_id and provider_payment_id != registration.provider_payment_id:
            if status != PaymentStatus.PAID:
                return unchanged(ReconciliationOutcome.SUPERSEDED)

            log_extra = {
                "registration_id": str(registration.pk),
                "provider_payment_id": provider_payment_id,
                "current_provider_payment_id": registration.provider_payment_id,
            }
            if registration.paid:
                cls.get_logger().warning(
                    "Paid observation for a superseded payment attempt", extra=log_extra
                )
                return unchanged(ReconciliationOutcome.SUPERSEDED)

            # A replaced attempt was settled anyway: it becomes the current one
            cls.get_logger().warning("Adopting paid superseded payment attempt", extra=log_extra)
            cls._adopt_attempt(registration, provider, provider_payment_id, amount, currency)

        mismatch = cls._amount_mismatch(registration, amount, currency)

        if status == previous:
            return unchanged(ReconciliationOutcome.DUPLICATE, mismatch)

        if status_rank(status) <= status_rank(previous):
            return unchanged(ReconciliationOutcome.STALE, mismatch)

        transition = registration.transition_for(status)
        if not can_proceed(transition):
            return unchanged(ReconciliationOutcome.STALE, mismatch)

        if status == PaymentStatus.PAID:
            transition(paid_at=paid_at, payment_method=method)
        else:
            transition()
        registration.save()

        return ReconciliationResult(
            outcome=ReconciliationOutcome.APPLIED,
            registration=registration,
            previous_status=previous,
            resulting_status=registration.payment_status,
            amount_mismatch=mismatch,
        )

    @staticmethod
    def _adopt_attempt(
        registration: Registration,
        provider: str | None,
        provider_payment_id: str,
        amount: Decimal | None,
        currency: str | None,
    ) -> None:
        """Point the registration at a settled attempt it had replaced."""
        if provider:
            registration.provider = provider
        registration.provider_payment_id = provider_payment_id
        if amount is not None:
            registration.amount = Decimal(amount)
        if currency:
            registration.currency = currency.upper()

    @classmethod
    def _amount_mismatch(
        cls,
        registration: Registration,
        amount: Decimal | None,
        currency: str | None,
    ) -> bool:
        mismatch = False
        if amount is not None and registration.amount is not None:
            mismatch = Decimal(amount) != registration.amount
        if currency and registration.currency:
            mismatch = mismatch or currency.upper() != registration.currency.upper()
        if mismatch:
            cls.get_logger().warning(
                "Provider amount differs from registration amount",
                extra={
                    "registration_id": str(registration.pk),
                    "provider_amount": str(amount),
                    "provider_currency": currency,
                    "expected_amount": str(registration.amount),
                    "expected_currency": registration.currency,
                },
            )
        return mismatch
