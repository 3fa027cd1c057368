"""
URL configuration for the payments app.

Routes:
    - POST /status/ - Payment status check
    - POST /checkout/ - Payment attempt creation
    - POST /webhooks/mollie/ - Mollie webhook endpoint
    - POST /webhooks/ponto/ - Ponto webhook endpoint
    - POST /webhooks/noda/ - Noda webhook endpoint

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("payments/", include("payments.urls")),
    ]
"""

from django.urls import path

from payments.views import CreatePaymentView, PaymentStatusView
from payments.webhooks.views import mollie_webhook, noda_webhook, ponto_webhook

app_name = "payments"

urlpatterns = [
    path("status/", PaymentStatusView.as_view(), name="payment_status"),
    path("checkout/", CreatePaymentView.as_view(), name="create_payment"),
    # Webhook endpoints
    path("webhooks/mollie/", mollie_webhook, name="mollie_webhook"),
    path("webhooks/ponto/", ponto_webhook, name="ponto_webhook"),
    path("webhooks/noda/", noda_webhook, name="noda_webhook"),
]
