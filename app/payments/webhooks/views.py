"""
Webhook endpoint views for the payment providers.

Each view:
1. Authenticates the notification (signature and/or status re-fetch)
2. Re-fetches the authoritative status through the provider adapter
3. Hands it to the reconciler
4. Returns 200, unless the notification could not be authenticated

Providers retry on non-2xx responses, so anything other than an
authentication failure is acknowledged and left to logs and the audit
trail. Repeated deliveries are harmless.

Usage:
    # In urls.py
    from payments.webhooks.views import mollie_webhook

    urlpatterns = [
        path("webhooks/mollie/", mollie_webhook, name="mollie_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.exceptions import WebhookAuthenticationError
from payments.state_machines import PaymentProvider
from payments.webhooks.handlers import handle_webhook


logger = logging.getLogger(__name__)


def _receive(provider: str, request: HttpRequest) -> HttpResponse:
    try:
        result = handle_webhook(provider, request)
    except WebhookAuthenticationError as e:
        logger.warning(
            "Webhook authentication failed",
            extra={"provider": provider, "error": e.message, **e.details},
        )
        return HttpResponse("Unauthorized", status=401)
    except Exception as e:
        logger.error(
            f"Unexpected error handling {provider} webhook: {type(e).__name__}",
            extra={"provider": provider},
            exc_info=True,
        )
        return HttpResponse("Accepted", status=200)

    return HttpResponse(result.message, status=200)


@csrf_exempt
@require_POST
def mollie_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive Mollie payment notifications.

    Mollie posts only ``id=tr_xxx``; the status is fetched from the API.
    A payment id Mollie does not know is answered with 401.
    """
    return _receive(PaymentProvider.MOLLIE, request)


@csrf_exempt
@require_POST
def ponto_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive Ponto Connect events.

    Only payment request events are reconciled; other events are
    acknowledged and ignored.
    """
    return _receive(PaymentProvider.PONTO, request)


@csrf_exempt
@require_POST
def noda_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive Noda payment notifications.

    Requires a valid X-Noda-Signature when NODA_WEBHOOK_SECRET is set.
    """
    return _receive(PaymentProvider.NODA, request)
