"""
Payments app for club registration payments.

This app handles:
- Payment attempts at Mollie, Ponto and Noda
- Provider webhooks (status re-fetched, never trusted from the body)
- Member-initiated status checks
- Reconciliation of provider status into the registration
- Audit trail of every reconciliation attempt

Related apps:
    - core: BaseService, ServiceResult, exception hierarchy

Usage:
    from payments.services import PaymentReconciler

    result = PaymentReconciler.reconcile(
        registration.id, PaymentStatus.PAID, channel=ReconciliationChannel.POLL
    )
"""
