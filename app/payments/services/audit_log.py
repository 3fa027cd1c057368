"""
Append-only audit trail for reconciliation attempts.

Every reconciliation attempt is recorded, including no-ops, observations
for unknown registrations and provider failures. Recording is
best-effort: a failed audit write is logged and never propagates, and it
runs in its own savepoint so it cannot roll back the registration update
it describes.

Usage:
    from payments.services import PaymentAuditLog

    PaymentAuditLog.record(
        provider="mollie",
        provider_payment_id="tr_123",
        channel=ReconciliationChannel.WEBHOOK,
        outcome=ReconciliationOutcome.REGISTRATION_NOT_FOUND,
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import transaction

from core.services import BaseService

from payments.models import PaymentAuditEntry

if TYPE_CHECKING:
    from typing import Any

    from payments.models import Registration


class PaymentAuditLog(BaseService):
    """Writes PaymentAuditEntry rows without ever failing the caller."""

    @classmethod
    def record(
        cls,
        *,
        provider: str,
        channel: str,
        outcome: str,
        provider_payment_id: str | None = None,
        registration: Registration | None = None,
        incoming_status: str | None = None,
        previous_status: str | None = None,
        resulting_status: str | None = None,
        amount_mismatch: bool = False,
        message: str = "",
        raw_payload: dict[str, Any] | None = None,
    ) -> PaymentAuditEntry | None:
        """
        Append one audit entry.

        Returns:
            The created entry, or None if the write failed
        """
        try:
            with transaction.atomic():
                return PaymentAuditEntry.objects.create(
                    registration=registration,
                    provider=provider,
                    provider_payment_id=provider_payment_id or "",
                    channel=channel,
                    outcome=outcome,
                    incoming_status=incoming_status or "",
                    previous_status=previous_status or "",
                    resulting_status=resulting_status or "",
                    amount_mismatch=amount_mismatch,
                    message=message,
                    raw_payload=raw_payload or {},
                )
        except Exception:
            cls.get_logger().exception(
                "Failed to write payment audit entry",
                extra={
                    "provider": provider,
                    "provider_payment_id": provider_payment_id,
                    "channel": channel,
                    "outcome": outcome,
                    "registration_id": str(registration.pk) if registration else None,
                },
            )
            return None
