"""
Payment domain models.

This module contains all payment-related models:
- Registration: Payment state of one participant in one club operation
- PaymentAuditEntry: Append-only trail of reconciliation attempts
"""

from payments.models.audit_entry import PaymentAuditEntry
from payments.models.registration import (
    Registration,
    RegistrationQuerySet,
    generate_internal_payment_id,
)

__all__ = [
    "PaymentAuditEntry",
    "Registration",
    "RegistrationQuerySet",
    "generate_internal_payment_id",
]
