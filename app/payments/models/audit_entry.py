"""
PaymentAuditEntry model: append-only trail of reconciliation attempts.

One row is written for every reconciliation attempt, including no-ops,
observations for unknown registrations and provider failures. Rows are
never updated or deleted.

Usage:
    from payments.models import PaymentAuditEntry

    PaymentAuditEntry.objects.filter(registration=registration).order_by("created_at")
"""

from __future__ import annotations

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models

from core.models import BaseModel
from core.model_mixins import AppendOnlyMixin, UUIDPrimaryKeyMixin

from payments.state_machines import (
    PaymentProvider,
    PaymentStatus,
    ReconciliationChannel,
    ReconciliationOutcome,
)


class PaymentAuditEntry(AppendOnlyMixin, UUIDPrimaryKeyMixin, BaseModel):
    """
    Immutable record of one reconciliation attempt.

    Fields:
        registration: Registration the observation was matched to (null when
            no registration matched)
        provider: Provider that produced the observation
        provider_payment_id: Provider payment id observed
        channel: webhook or poll
        incoming_status: Normalized status reported by the provider
        previous_status: Registration status before the attempt
        resulting_status: Registration status after the attempt
        outcome: What the reconciler did (applied, duplicate, stale, ...)
        amount_mismatch: Provider amount/currency differed from the stored one
        message: Free-form detail (error text, mismatch description)
        raw_payload: Provider response used for the decision
    """

    registration = models.ForeignKey(
        "payments.Registration",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="audit_entries",
    )

    provider = models.CharField(max_length=16, choices=PaymentProvider.choices)
    provider_payment_id = models.CharField(max_length=255, blank=True, default="")

    channel = models.CharField(max_length=16, choices=ReconciliationChannel.choices)

    incoming_status = models.CharField(
        max_length=16,
        choices=PaymentStatus.choices,
        blank=True,
        default="",
    )
    previous_status = models.CharField(
        max_length=16,
        choices=PaymentStatus.choices,
        blank=True,
        default="",
    )
    resulting_status = models.CharField(
        max_length=16,
        choices=PaymentStatus.choices,
        blank=True,
        default="",
    )

    outcome = models.CharField(
        max_length=32,
        choices=ReconciliationOutcome.choices,
        db_index=True,
    )

    amount_mismatch = models.BooleanField(default=False)
    message = models.TextField(blank=True, default="")

    raw_payload = models.JSONField(
        default=dict,
        blank=True,
        encoder=DjangoJSONEncoder,
        help_text="Provider response the decision was based on",
    )

    class Meta:
        ordering = ["created_at"]
        verbose_name = "Payment audit entry"
        verbose_name_plural = "Payment audit entries"
        indexes = [
            models.Index(
                fields=["provider", "provider_payment_id"],
                name="payments_pa_provide_7c1e9a_idx",
            ),
            models.Index(
                fields=["registration", "created_at"],
                name="payments_pa_registr_2d6b0f_idx",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"PaymentAuditEntry({self.provider}:{self.provider_payment_id}, "
            f"{self.channel}, {self.outcome})"
        )
