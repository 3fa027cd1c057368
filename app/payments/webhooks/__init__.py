"""
Webhook handling for payment provider notifications.

This module provides views and receivers for Mollie, Ponto and Noda
webhooks. Notifications are authenticated, their status re-fetched from
the provider and reconciled synchronously.

Usage:
    # In urls.py
    from payments.webhooks.views import mollie_webhook, noda_webhook, ponto_webhook

    urlpatterns = [
        path("webhooks/mollie/", mollie_webhook, name="mollie_webhook"),
    ]
"""

from payments.webhooks.handlers import handle_webhook, register_receiver
from payments.webhooks.views import mollie_webhook, noda_webhook, ponto_webhook

__all__ = [
    "handle_webhook",
    "mollie_webhook",
    "noda_webhook",
    "ponto_webhook",
    "register_receiver",
]
