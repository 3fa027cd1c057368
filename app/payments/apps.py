"""
Payments app configuration.

This app provides payment status reconciliation for club registrations:
- Mollie, Ponto and Noda provider adapters
- Webhook receivers and an on-demand status poller
- A reconciler that treats ``paid`` as final
- An append-only audit trail
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
