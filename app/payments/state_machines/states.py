"""
State enums for payment models.

This module defines the enums used by the payment models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machine Overview:

Registration payment status:
    none → open → pending → paid
    none/open/pending → failed | canceled | expired
    failed/canceled/expired → paid (late settlement confirmed by provider)

    Ranks order every observation: open(0) < pending(1) <
    failed/canceled/expired(2) < paid(3). An observation is applied only
    when it ranks strictly higher than the stored status, which makes the
    outcome independent of delivery order. PAID is a sink.
"""

from django.db import models


class PaymentProvider(models.TextChoices):
    """
    External payment processors a registration can be paid through.

    NONE means no payment attempt has been started for the registration.
    """

    NONE = "none", "None"
    MOLLIE = "mollie", "Mollie"
    PONTO = "ponto", "Ponto"
    NODA = "noda", "Noda"


class PaymentStatus(models.TextChoices):
    """
    Normalized payment status stored on a Registration.

    Every provider vocabulary is translated into these values inside
    its adapter; nothing outside the adapters sees provider strings.
    """

    NONE = "none", "No payment"
    OPEN = "open", "Open"
    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    CANCELED = "canceled", "Canceled"
    EXPIRED = "expired", "Expired"


class ReconciliationChannel(models.TextChoices):
    """How a status observation reached the reconciler."""

    WEBHOOK = "webhook", "Webhook"
    POLL = "poll", "Status poll"


class ReconciliationOutcome(models.TextChoices):
    """
    Result of one reconciliation attempt, recorded on every audit entry.

    APPLIED: the registration changed.
    DUPLICATE: the observation repeated the stored status.
    STALE: the observation ranked at or below the stored status.
    SUPERSEDED: the observation belonged to an earlier payment attempt.
    NO_PAYMENT: the registration has no provider.
    REGISTRATION_NOT_FOUND: no registration matched the provider payment.
    PROVIDER_ERROR: the provider could not be queried.
    STORE_ERROR: the database write failed.
    """

    APPLIED = "applied", "Applied"
    DUPLICATE = "duplicate", "Duplicate"
    STALE = "stale", "Stale"
    SUPERSEDED = "superseded", "Superseded attempt"
    NO_PAYMENT = "no_payment", "No payment"
    REGISTRATION_NOT_FOUND = "registration_not_found", "Registration not found"
    PROVIDER_ERROR = "provider_error", "Provider error"
    STORE_ERROR = "store_error", "Store error"


FAILURE_STATUSES = (
    PaymentStatus.FAILED,
    PaymentStatus.CANCELED,
    PaymentStatus.EXPIRED,
)

# NONE ranks below every observable status so any observation can start the chain.
STATUS_RANK = {
    PaymentStatus.NONE: -1,
    PaymentStatus.OPEN: 0,
    PaymentStatus.PENDING: 1,
    PaymentStatus.FAILED: 2,
    PaymentStatus.CANCELED: 2,
    PaymentStatus.EXPIRED: 2,
    PaymentStatus.PAID: 3,
}


def status_rank(status: str) -> int:
    """Return the rank of a status value (plain strings accepted)."""
    return STATUS_RANK[PaymentStatus(status)]


__all__ = [
    "PaymentProvider",
    "PaymentStatus",
    "ReconciliationChannel",
    "ReconciliationOutcome",
    "FAILURE_STATUSES",
    "STATUS_RANK",
    "status_rank",
]
