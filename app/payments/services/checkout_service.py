"""
Checkout service: starts a payment attempt for a registration.

Three phases keep the provider call out of any database transaction:

    1. Claim (transaction, row lock): validate ownership and state, stamp a
       fresh internal_payment_id and payment_initiated_at.
    2. Create the payment at the provider (no transaction).
    3. Complete (transaction, row lock): record the provider payment as the
       current attempt in the OPEN state.

If phase 2 fails the claim is released and the previous attempt (if any)
stays current. A second request within PAYMENT_INITIATION_GUARD_SECONDS
of an unfinished attempt is refused with PAYMENT_IN_PROGRESS.

Usage:
    from payments.services import PaymentCheckoutService

    result = PaymentCheckoutService.create_payment(
        request.user,
        club_id="club-1",
        operation_id="op-1",
        participant_id="p-1",
        provider="mollie",
        amount=Decimal("25.00"),
        description="Dive 12/05",
        method="bancontact",
    )
    if result.success:
        redirect_to(result.data.checkout_url)
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING
from urllib.parse import urlencode

from django.conf import settings
from django.utils import timezone

from core.services import BaseService, ServiceResult

from payments.adapters import MOLLIE_METHODS, CreatePaymentParams, get_provider_registry
from payments.exceptions import (
    ProviderError,
    ProviderInvalidRequestError,
    ProviderUnavailableError,
)
from payments.models import Registration, generate_internal_payment_id
from payments.state_machines import PaymentProvider, PaymentStatus

if TYPE_CHECKING:
    from typing import Any

    from django.contrib.auth.models import AbstractBaseUser

    from payments.adapters import CheckoutResult


@dataclass
class CheckoutSnapshot:
    """What the app needs to send the payer to the provider."""

    registration_id: uuid.UUID
    provider: str
    provider_payment_id: str
    internal_payment_id: str
    checkout_url: str | None
    status: str
    amount: Decimal
    currency: str
    expires_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class _Claim:
    """State replaced by a claim, restored if the provider call fails."""

    registration_id: uuid.UUID
    internal_payment_id: str
    previous_provider: str
    previous_provider_payment_id: str | None
    previous_internal_payment_id: str | None
    previous_initiated_at: datetime | None


class PaymentCheckoutService(BaseService):
    """
    Creates provider payments for registrations.

    All methods are class methods - no instance state is maintained.
    """

    @classmethod
    def create_payment(
        cls,
        user: AbstractBaseUser,
        club_id: str | None,
        operation_id: str | None,
        participant_id: str | None,
        provider: str | None,
        amount: Decimal | str | float | None,
        description: str | None,
        method: str | None = None,
        locale: str | None = None,
        currency: str = "EUR",
    ) -> ServiceResult[CheckoutSnapshot]:
        """
        Start a payment attempt.

        Returns:
            ServiceResult with a CheckoutSnapshot on success. Error codes:
            INVALID_ARGUMENT, FAILED_PRECONDITION, NOT_FOUND,
            PERMISSION_DENIED, ALREADY_PAID, PAYMENT_IN_PROGRESS,
            PROVIDER_UNAVAILABLE, INVALID_REQUEST, INTERNAL
        """
        validation = cls.validate_required(
            club_id=club_id,
            operation_id=operation_id,
            participant_id=participant_id,
            provider=provider,
            description=description,
        )
        if validation is not None:
            return validation

        validation, amount = cls._validate_payment(provider, amount, method)
        if validation is not None:
            return validation

        registry = get_provider_registry()
        if not registry.is_enabled(provider):
            cls.get_logger().error(
                "Checkout requested for an unconfigured provider",
                extra={"provider": provider},
            )
            return ServiceResult.failure(
                f"Payment provider '{provider}' is not configured",
                error_code="FAILED_PRECONDITION",
            )

        claim_result = cls._claim(user, club_id, operation_id, participant_id, provider)
        if not claim_result.success:
            return claim_result
        claim: _Claim = claim_result.data

        params = CreatePaymentParams(
            amount=amount,
            currency=currency,
            description=description,
            internal_payment_id=claim.internal_payment_id,
            redirect_url=cls.build_redirect_url(
                registry.config.redirect_url,
                provider=provider,
                internal_payment_id=claim.internal_payment_id,
                club_id=club_id,
                operation_id=operation_id,
            ),
            webhook_url=registry.config.webhook_url(provider),
            metadata={
                "internalPaymentId": claim.internal_payment_id,
                "clubId": club_id,
                "operationId": operation_id,
                "participantId": participant_id,
                "userId": str(user.pk),
            },
            reference=f"{club_id}_{operation_id}_{participant_id}",
            method=method if provider == PaymentProvider.MOLLIE else None,
            locale=locale,
        )

        try:
            checkout = registry.get(provider).create_payment(params)
        except ProviderUnavailableError as e:
            cls._release(claim)
            cls.get_logger().warning(
                "Provider unavailable during checkout",
                extra={"provider": provider, "registration_id": str(claim.registration_id)},
            )
            return ServiceResult.failure(e.message, error_code="PROVIDER_UNAVAILABLE")
        except ProviderInvalidRequestError as e:
            cls._release(claim)
            cls.get_logger().error(
                "Provider rejected checkout request",
                extra={"provider": provider, "registration_id": str(claim.registration_id)},
            )
            return ServiceResult.failure(e.message, error_code="INVALID_REQUEST")
        except ProviderError as e:
            cls._release(claim)
            return cls.handle_exception(e, "Checkout failed", error_code="INTERNAL")
        except Exception as e:
            cls._release(claim)
            result = cls.handle_exception(e, "Checkout failed", error_code="INTERNAL")
            result.error = "Internal error while creating the payment"
            return result

        return cls._complete(claim, provider, checkout, amount, currency, method)

    @staticmethod
    def build_redirect_url(base_url: str, **params: str) -> str:
        """App deep link the provider sends the payer back to."""
        query = urlencode(
            {
                "provider": params["provider"],
                "internalPaymentId": params["internal_payment_id"],
                "clubId": params["club_id"],
                "operationId": params["operation_id"],
            }
        )
        separator = "&" if "?" in base_url else "?"
        return f"{base_url}{separator}{query}"

    # =========================================================================
    # Validation
    # =========================================================================

    @classmethod
    def _validate_payment(
        cls,
        provider: str,
        amount: Decimal | str | float | None,
        method: str | None,
    ) -> tuple[ServiceResult | None, Decimal | None]:
        if provider not in (PaymentProvider.MOLLIE, PaymentProvider.PONTO, PaymentProvider.NODA):
            return (
                ServiceResult.failure(
                    f"Unsupported payment provider '{provider}'",
                    error_code="INVALID_ARGUMENT",
                    errors={"provider": ["Unsupported provider."]},
                ),
                None,
            )

        try:
            amount = Decimal(str(amount)).quantize(Decimal("0.01"))
        except (InvalidOperation, ValueError):
            amount = None
        max_amount = Decimal(settings.PAYMENT_MAX_AMOUNT)
        if amount is None or not amount.is_finite() or amount <= 0 or amount > max_amount:
            return (
                ServiceResult.failure(
                    f"Amount must be between 0 and {max_amount} euros",
                    error_code="INVALID_ARGUMENT",
                    errors={"amount": ["Out of range."]},
                ),
                None,
            )

        if provider == PaymentProvider.MOLLIE and method and method not in MOLLIE_METHODS:
            return (
                ServiceResult.failure(
                    f"Unsupported payment method '{method}'",
                    error_code="INVALID_ARGUMENT",
                    errors={"method": [f"Choose one of: {', '.join(MOLLIE_METHODS)}."]},
                ),
                None,
            )

        return None, amount

    # =========================================================================
    # Claim / release / complete
    # =========================================================================

    @classmethod
    def _claim(
        cls,
        user: AbstractBaseUser,
        club_id: str,
        operation_id: str,
        participant_id: str,
        provider: str,
    ) -> ServiceResult[_Claim]:
        now = timezone.now()
        guard = timedelta(seconds=settings.PAYMENT_INITIATION_GUARD_SECONDS)

        with cls.atomic():
            try:
                registration = Registration.objects.select_for_update().get(
                    club_id=club_id,
                    operation_id=operation_id,
                    participant_id=participant_id,
                )
            except Registration.DoesNotExist:
                return ServiceResult.failure("Registration not found", error_code="NOT_FOUND")

            if registration.member_id != user.pk:
                cls.get_logger().warning(
                    "Checkout requested for another member's registration",
                    extra={"registration_id": str(registration.pk), "user_id": str(user.pk)},
                )
                return ServiceResult.failure(
                    "You cannot pay for another member's registration",
                    error_code="PERMISSION_DENIED",
                )

            if registration.paid:
                return ServiceResult.failure("Payment already completed", error_code="ALREADY_PAID")

            recently_started = (
                registration.payment_initiated_at is not None
                and now - registration.payment_initiated_at < guard
            )
            unfinished = registration.provider_payment_id is None or registration.payment_status in (
                PaymentStatus.OPEN,
                PaymentStatus.PENDING,
            )
            if registration.has_payment and recently_started and unfinished:
                return ServiceResult.failure(
                    "A payment is already being created, please wait a moment",
                    error_code="PAYMENT_IN_PROGRESS",
                )

            claim = _Claim(
                registration_id=registration.pk,
                internal_payment_id=generate_internal_payment_id(),
                previous_provider=registration.provider,
                previous_provider_payment_id=registration.provider_payment_id,
                previous_internal_payment_id=registration.internal_payment_id,
                previous_initiated_at=registration.payment_initiated_at,
            )
            registration.provider = provider
            registration.provider_payment_id = None
            registration.internal_payment_id = claim.internal_payment_id
            registration.payment_initiated_at = now
            registration.save()

        cls.get_logger().info(
            "Payment attempt claimed",
            extra={
                "registration_id": str(claim.registration_id),
                "internal_payment_id": claim.internal_payment_id,
                "provider": provider,
            },
        )
        return ServiceResult.success(claim)

    @classmethod
    def _release(cls, claim: _Claim) -> None:
        """Restore the attempt that was current before the claim."""
        with cls.atomic():
            registration = Registration.objects.select_for_update().get(pk=claim.registration_id)
            if registration.internal_payment_id != claim.internal_payment_id:
                return
            registration.provider = claim.previous_provider
            registration.provider_payment_id = claim.previous_provider_payment_id
            registration.internal_payment_id = claim.previous_internal_payment_id
            registration.payment_initiated_at = claim.previous_initiated_at
            registration.save()

    @classmethod
    def _complete(
        cls,
        claim: _Claim,
        provider: str,
        checkout: CheckoutResult,
        amount: Decimal,
        currency: str,
        method: str | None,
    ) -> ServiceResult[CheckoutSnapshot]:
        logger = cls.get_logger()
        log_context = {
            "registration_id": str(claim.registration_id),
            "internal_payment_id": claim.internal_payment_id,
            "provider": provider,
            "provider_payment_id": checkout.provider_payment_id,
        }

        with cls.atomic():
            registration = Registration.objects.select_for_update().get(pk=claim.registration_id)
            if registration.paid:
                logger.warning("Registration paid while checkout was in flight", extra=log_context)
                return ServiceResult.failure("Payment already completed", error_code="ALREADY_PAID")
            if registration.internal_payment_id != claim.internal_payment_id:
                logger.warning("Checkout superseded by a newer attempt", extra=log_context)
                return ServiceResult.failure(
                    "Another payment attempt was started",
                    error_code="PAYMENT_IN_PROGRESS",
                )

            registration.start_attempt(
                provider=provider,
                provider_payment_id=checkout.provider_payment_id,
                amount=amount,
                currency=currency,
                payment_method=method,
            )
            registration.save()

        logger.info("Payment attempt created", extra=log_context)
        return ServiceResult.success(
            CheckoutSnapshot(
                registration_id=registration.pk,
                provider=provider,
                provider_payment_id=checkout.provider_payment_id,
                internal_payment_id=claim.internal_payment_id,
                checkout_url=checkout.checkout_url,
                status=registration.payment_status,
                amount=amount,
                currency=currency,
                expires_at=checkout.expires_at,
            )
        )
