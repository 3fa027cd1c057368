"""
Payment services for coordinating payment operations.

This module provides:
- PaymentReconciler: Applies provider status observations to registrations
- PaymentAuditLog: Append-only trail of reconciliation attempts
- PaymentStatusPoller: On-demand status check by the paying member
- PaymentCheckoutService: Starts a payment attempt at a provider

Usage:
    from payments.services import PaymentCheckoutService, PaymentStatusPoller

    result = PaymentCheckoutService.create_payment(user, ...)
    result = PaymentStatusPoller.check_status(user, club_id, participant_id)
"""

from payments.services.audit_log import PaymentAuditLog
from payments.services.checkout_service import CheckoutSnapshot, PaymentCheckoutService
from payments.services.reconciler import PaymentReconciler, ReconciliationResult
from payments.services.status_poller import PaymentStatusPoller, PaymentStatusSnapshot

__all__ = [
    "CheckoutSnapshot",
    "PaymentAuditLog",
    "PaymentCheckoutService",
    "PaymentReconciler",
    "PaymentStatusPoller",
    "PaymentStatusSnapshot",
    "ReconciliationResult",
]
