"""
State machine enums and helpers for payment models.

This module defines the state enums used by payment models with django-fsm.
"""

from payments.state_machines.states import (
    FAILURE_STATUSES,
    STATUS_RANK,
    PaymentProvider,
    PaymentStatus,
    ReconciliationChannel,
    ReconciliationOutcome,
    status_rank,
)

__all__ = [
    "FAILURE_STATUSES",
    "STATUS_RANK",
    "PaymentProvider",
    "PaymentStatus",
    "ReconciliationChannel",
    "ReconciliationOutcome",
    "status_rank",
]
