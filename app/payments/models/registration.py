"""
Registration model holding the payment state of one participant.

A Registration is one (club, operation, participant) entry. It is created
by the registration subsystem with provider=none and payment_status=none.
A payment attempt sets the provider, its ids and the amount; from then on
the payment fields are written only by the reconciler.

Usage:
    from payments.models import Registration
    from payments.state_machines import PaymentStatus

    registration = Registration.objects.get(
        club_id="club-1", operation_id="op-1", participant_id="p-1"
    )

    # State transitions using django-fsm
    registration.mark_pending()
    registration.save()

    # Other subsystems only read these three fields
    registration.paid, registration.paid_at, registration.payment_status
"""

from __future__ import annotations

import uuid

from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import FAILURE_STATUSES, PaymentProvider, PaymentStatus


def generate_internal_payment_id(prefix: str = "pay") -> str:
    """Return a fresh local correlation id such as ``pay_3f2c...``."""
    return f"{prefix}_{uuid.uuid4().hex}"


class RegistrationQuerySet(models.QuerySet):
    """Lookups used by the webhook receivers and the status poller."""

    def for_provider_payment(self, provider: str, provider_payment_id: str):
        """Registrations whose current attempt is the given provider payment."""
        return self.filter(provider=provider, provider_payment_id=provider_payment_id)

    def for_participant(self, club_id: str, participant_id: str, operation_id: str | None = None):
        """Registrations of one participant in a club, optionally for one operation."""
        queryset = self.filter(club_id=club_id, participant_id=participant_id)
        if operation_id:
            queryset = queryset.filter(operation_id=operation_id)
        return queryset

    def matching_correlation(self, metadata: dict | None):
        """
        Registrations matching correlation metadata sent back by a provider.

        Accepts the camelCase keys embedded at checkout
        (internalPaymentId, clubId, operationId, participantId).
        Returns an empty queryset when the metadata identifies nothing.
        """
        metadata = metadata or {}
        condition = Q()

        internal_payment_id = metadata.get("internalPaymentId")
        if internal_payment_id:
            condition |= Q(internal_payment_id=internal_payment_id)

        club_id = metadata.get("clubId")
        operation_id = metadata.get("operationId")
        participant_id = metadata.get("participantId")
        if club_id and operation_id and participant_id:
            condition |= Q(
                club_id=club_id,
                operation_id=operation_id,
                participant_id=participant_id,
            )

        if not condition:
            return self.none()
        return self.filter(condition)


class Registration(UUIDPrimaryKeyMixin, BaseModel):
    """
    Payment record for one participant of one club operation.

    Uses django-fsm for the payment status and optimistic version
    counting on every save.

    State Flow:
        NONE -> OPEN -> PENDING -> PAID
        NONE/OPEN/PENDING -> FAILED | CANCELED | EXPIRED
        FAILED/CANCELED/EXPIRED -> PAID (late settlement)

    Failure statuses are terminal for the attempt but not for the
    registration: providers can still settle a payment after reporting it
    failed or expired, and money already collected must not be dropped.

    New attempt:
        any status except PAID -> OPEN (start_attempt)

    Fields:
        club_id/operation_id/participant_id: External scoping keys
        member: User who owns the registration and may pay for it
        provider: Processor of the current attempt (none if no attempt)
        provider_payment_id: Provider's id for the current attempt
        internal_payment_id: Local correlation id sent as metadata
        payment_status: Current FSM status
        paid/paid_at/payment_method: Settlement details
        amount/currency: Amount captured at attempt creation
        payment_initiated_at: When the current attempt was started
        version: Incremented on each save

    Note:
        paid is True exactly when payment_status is PAID, and paid_at is
        then set. A database check constraint enforces both.
    """

    # ==========================================================================
    # Scoping
    # ==========================================================================

    club_id = models.CharField(max_length=128, db_index=True)
    operation_id = models.CharField(max_length=128)
    participant_id = models.CharField(max_length=128)

    member = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="registrations",
        help_text="Member who owns this registration",
    )

    # ==========================================================================
    # Payment attempt
    # ==========================================================================

    provider = models.CharField(
        max_length=16,
        choices=PaymentProvider.choices,
        default=PaymentProvider.NONE,
        help_text="Payment processor of the current attempt",
    )

    provider_payment_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Provider payment id (tr_xxx, payment request uuid, ...)",
    )

    internal_payment_id = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        unique=True,
        help_text="Local correlation id embedded in provider metadata",
    )

    payment_initiated_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the current attempt was started",
    )

    amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Amount requested from the provider",
    )

    currency = models.CharField(
        max_length=3,
        default="EUR",
        help_text="ISO 4217 currency code",
    )

    # ==========================================================================
    # Payment state
    # ==========================================================================

    payment_status = FSMField(
        default=PaymentStatus.NONE,
        choices=PaymentStatus.choices,
        db_index=True,
        help_text="Current payment status (managed by FSM)",
    )

    paid = models.BooleanField(default=False)
    paid_at = models.DateTimeField(null=True, blank=True)
    payment_method = models.CharField(max_length=64, null=True, blank=True)

    version = models.PositiveIntegerField(
        default=1,
        help_text="Incremented on each save",
    )

    objects = RegistrationQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Registration"
        verbose_name_plural = "Registrations"
        indexes = [
            models.Index(
                fields=["club_id", "participant_id"],
                name="payments_re_club_id_4b8f2d_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["club_id", "operation_id", "participant_id"],
                name="registration_unique_participant",
            ),
            models.UniqueConstraint(
                fields=["provider", "provider_payment_id"],
                condition=Q(provider_payment_id__isnull=False),
                name="registration_unique_provider_payment",
            ),
            models.CheckConstraint(
                condition=(
                    Q(paid=False) & ~Q(payment_status=PaymentStatus.PAID)
                )
                | (
                    Q(paid=True)
                    & Q(payment_status=PaymentStatus.PAID)
                    & Q(paid_at__isnull=False)
                ),
                name="registration_paid_consistent",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"Registration({self.club_id}/{self.operation_id}/{self.participant_id}, "
            f"{self.provider}, {self.payment_status})"
        )

    def save(self, *args, **kwargs):
        """Save, incrementing the version counter on updates."""
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    @property
    def has_payment(self) -> bool:
        return self.provider != PaymentProvider.NONE

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=payment_status,
        source=[
            PaymentStatus.NONE,
            PaymentStatus.OPEN,
            PaymentStatus.PENDING,
            *FAILURE_STATUSES,
        ],
        target=PaymentStatus.OPEN,
    )
    def start_attempt(
        self,
        provider: str,
        provider_payment_id: str,
        amount,
        currency: str = "EUR",
        payment_method: str | None = None,
    ):
        """
        Record a freshly created provider payment as the current attempt.

        Transition: any non-paid status -> OPEN

        The previous attempt (if any) is replaced in place; its later
        observations no longer match provider_payment_id.
        """
        self.provider = provider
        self.provider_payment_id = provider_payment_id
        self.amount = amount
        self.currency = currency
        self.payment_method = payment_method
        self.paid = False
        self.paid_at = None

    @transition(
        field=payment_status,
        source=PaymentStatus.NONE,
        target=PaymentStatus.OPEN,
    )
    def mark_open(self):
        """Transition: NONE -> OPEN"""

    @transition(
        field=payment_status,
        source=[PaymentStatus.NONE, PaymentStatus.OPEN],
        target=PaymentStatus.PENDING,
    )
    def mark_pending(self):
        """Transition: NONE/OPEN -> PENDING"""

    @transition(
        field=payment_status,
        source=[
            PaymentStatus.NONE,
            PaymentStatus.OPEN,
            PaymentStatus.PENDING,
            *FAILURE_STATUSES,
        ],
        target=PaymentStatus.PAID,
    )
    def mark_paid(self, paid_at=None, payment_method: str | None = None):
        """
        Mark the registration as paid.

        Transition: any non-paid status -> PAID

        PAID is a sink: no transition leaves it.
        """
        self.paid = True
        self.paid_at = paid_at or timezone.now()
        if payment_method:
            self.payment_method = payment_method

    @transition(
        field=payment_status,
        source=[PaymentStatus.NONE, PaymentStatus.OPEN, PaymentStatus.PENDING],
        target=PaymentStatus.FAILED,
    )
    def mark_failed(self):
        """Transition: NONE/OPEN/PENDING -> FAILED"""
        self._clear_settlement()

    @transition(
        field=payment_status,
        source=[PaymentStatus.NONE, PaymentStatus.OPEN, PaymentStatus.PENDING],
        target=PaymentStatus.CANCELED,
    )
    def mark_canceled(self):
        """Transition: NONE/OPEN/PENDING -> CANCELED"""
        self._clear_settlement()

    @transition(
        field=payment_status,
        source=[PaymentStatus.NONE, PaymentStatus.OPEN, PaymentStatus.PENDING],
        target=PaymentStatus.EXPIRED,
    )
    def mark_expired(self):
        """Transition: NONE/OPEN/PENDING -> EXPIRED"""
        self._clear_settlement()

    def _clear_settlement(self):
        self.paid = False
        self.paid_at = None

    def transition_for(self, status: str):
        """
        Return the bound transition method that moves to ``status``.

        Used by the reconciler so the status-to-method mapping lives
        next to the transitions themselves.
        """
        return {
            PaymentStatus.OPEN: self.mark_open,
            PaymentStatus.PENDING: self.mark_pending,
            PaymentStatus.PAID: self.mark_paid,
            PaymentStatus.FAILED: self.mark_failed,
            PaymentStatus.CANCELED: self.mark_canceled,
            PaymentStatus.EXPIRED: self.mark_expired,
        }[PaymentStatus(status)]
