"""
Status poller: on-demand status check requested by the paying member.

The app calls this after returning from the provider's checkout page.
It performs at most one provider fetch with a short timeout, feeds the
result to the reconciler and returns the resulting snapshot. Failures
come back as ServiceResult error codes, never as exceptions:

    INVALID_ARGUMENT      missing ids, or several registrations match
    NOT_FOUND             no registration, or the provider lost the payment
    PERMISSION_DENIED     caller is not the registration's member
    FAILED_PRECONDITION   no payment attempt has been started
    PROVIDER_UNAVAILABLE  provider unreachable or not configured
    INTERNAL              anything unexpected

Usage:
    from payments.services import PaymentStatusPoller

    result = PaymentStatusPoller.check_status(
        request.user, club_id="club-1", participant_id="p-1"
    )
    if result.success:
        result.data.paid
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from core.services import BaseService, ServiceResult

from payments.adapters import get_provider_registry
from payments.exceptions import (
    ProviderError,
    ProviderNotConfiguredError,
    ProviderPaymentNotFoundError,
    ProviderUnavailableError,
)
from payments.models import Registration
from payments.services.audit_log import PaymentAuditLog
from payments.services.reconciler import PaymentReconciler
from payments.state_machines import ReconciliationChannel, ReconciliationOutcome

if TYPE_CHECKING:
    from typing import Any

    from django.contrib.auth.models import AbstractBaseUser


@dataclass
class PaymentStatusSnapshot:
    """Payment fields of a registration as returned to the caller."""

    registration_id: uuid.UUID
    provider: str
    provider_payment_id: str | None
    status: str
    paid: bool
    paid_at: datetime | None
    method: str | None
    updated_at: datetime

    @classmethod
    def from_registration(cls, registration: Registration) -> PaymentStatusSnapshot:
        return cls(
            registration_id=registration.pk,
            provider=registration.provider,
            provider_payment_id=registration.provider_payment_id,
            status=registration.payment_status,
            paid=registration.paid,
            paid_at=registration.paid_at,
            method=registration.payment_method,
            updated_at=registration.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class PaymentStatusPoller(BaseService):
    """Checks and reconciles the payment of one registration on request."""

    @classmethod
    def check_status(
        cls,
        user: AbstractBaseUser,
        club_id: str | None,
        participant_id: str | None,
        operation_id: str | None = None,
    ) -> ServiceResult[PaymentStatusSnapshot]:
        """
        Check the payment status of the caller's registration.

        Args:
            user: Authenticated caller
            club_id: Club of the registration
            participant_id: Participant of the registration
            operation_id: Operation, needed when the participant has several

        Returns:
            ServiceResult with a PaymentStatusSnapshot on success
        """
        validation = cls.validate_required(club_id=club_id, participant_id=participant_id)
        if validation is not None:
            return validation

        try:
            return cls._check_status(user, club_id, participant_id, operation_id)
        except Exception as e:
            result = cls.handle_exception(e, "Payment status check failed", error_code="INTERNAL")
            result.error = "Internal error while checking payment status"
            return result

    @classmethod
    def _check_status(
        cls,
        user: AbstractBaseUser,
        club_id: str,
        participant_id: str,
        operation_id: str | None,
    ) -> ServiceResult[PaymentStatusSnapshot]:
        logger = cls.get_logger()
        log_context = {
            "club_id": club_id,
            "participant_id": participant_id,
            "operation_id": operation_id,
            "user_id": str(user.pk),
        }

        matches = list(
            Registration.objects.for_participant(club_id, participant_id, operation_id)[:2]
        )
        if not matches:
            return ServiceResult.failure("Registration not found", error_code="NOT_FOUND")
        if len(matches) > 1:
            return ServiceResult.failure(
                "Several registrations match, operation_id is required",
                error_code="INVALID_ARGUMENT",
                errors={"operation_id": ["This field is required."]},
            )
        registration = matches[0]

        if registration.member_id != user.pk:
            logger.warning(
                "Payment status requested for another member's registration",
                extra={**log_context, "registration_id": str(registration.pk)},
            )
            return ServiceResult.failure(
                "You can only check your own payments",
                error_code="PERMISSION_DENIED",
            )

        if not registration.has_payment or not registration.provider_payment_id:
            return ServiceResult.failure(
                "No payment has been started for this registration",
                error_code="FAILED_PRECONDITION",
            )

        if registration.paid:
            return ServiceResult.success(PaymentStatusSnapshot.from_registration(registration))

        registry = get_provider_registry()
        try:
            adapter = registry.get(registration.provider)
            status_result = adapter.fetch_status(
                registration.provider_payment_id,
                timeout=registry.config.poll_timeout_seconds,
            )
        except ProviderNotConfiguredError as e:
            logger.error(
                "Payment provider not configured",
                extra={**log_context, "provider": registration.provider},
            )
            return ServiceResult.failure(e.message, error_code="PROVIDER_UNAVAILABLE")
        except ProviderPaymentNotFoundError as e:
            cls._audit_provider_error(registration, e)
            return ServiceResult.failure(
                "Payment not found at the provider",
                error_code="NOT_FOUND",
            )
        except ProviderUnavailableError as e:
            cls._audit_provider_error(registration, e)
            return ServiceResult.failure(
                "Payment provider is temporarily unavailable, try again later",
                error_code="PROVIDER_UNAVAILABLE",
            )
        except ProviderError as e:
            cls._audit_provider_error(registration, e)
            logger.error("Payment provider rejected status request", extra=log_context)
            return ServiceResult.failure(
                "Internal error while checking payment status",
                error_code="INTERNAL",
            )

        reconciliation = PaymentReconciler.reconcile_status_result(
            registration.pk,
            status_result,
            channel=ReconciliationChannel.POLL,
        )
        if reconciliation.outcome == ReconciliationOutcome.STORE_ERROR:
            return ServiceResult.failure(
                "Internal error while checking payment status",
                error_code="INTERNAL",
            )

        registration.refresh_from_db()
        return ServiceResult.success(PaymentStatusSnapshot.from_registration(registration))

    @classmethod
    def _audit_provider_error(cls, registration: Registration, error: ProviderError) -> None:
        PaymentAuditLog.record(
            registration=registration,
            provider=registration.provider,
            provider_payment_id=registration.provider_payment_id,
            channel=ReconciliationChannel.POLL,
            outcome=ReconciliationOutcome.PROVIDER_ERROR,
            previous_status=registration.payment_status,
            resulting_status=registration.payment_status,
            message=str(error),
        )
