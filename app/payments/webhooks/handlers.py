"""
Webhook receivers for payment provider notifications.

One receiver per provider knows how to authenticate a notification and
pull the provider payment id out of it. Everything after that is shared:
the authoritative status is re-fetched through the adapter (the body's
own status is never trusted), the registration is resolved and the
reconciler applies the result.

A receiver raises WebhookAuthenticationError only when the notification
cannot be authenticated; every other problem is logged and acknowledged
so providers do not keep retrying.

Usage:
    from payments.webhooks.handlers import handle_webhook

    result = handle_webhook("mollie", request)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from payments.adapters import get_provider_registry
from payments.exceptions import (
    ProviderError,
    ProviderNotConfiguredError,
    ProviderPaymentNotFoundError,
    WebhookAuthenticationError,
)
from payments.models import Registration
from payments.services import PaymentAuditLog, PaymentReconciler
from payments.state_machines import (
    PaymentProvider,
    ReconciliationChannel,
    ReconciliationOutcome,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any

    from django.http import HttpRequest

    from payments.adapters import PaymentProviderAdapter, PaymentStatusResult


logger = logging.getLogger(__name__)


@dataclass
class WebhookResult:
    """
    What happened to one notification.

    Attributes:
        outcome: ReconciliationOutcome, or "ignored"/"provider_disabled"
            when nothing was reconciled
        message: Short text returned in the response body
        provider_payment_id: Payment id the notification referenced
    """

    outcome: str
    message: str
    provider_payment_id: str | None = None


# Registry of webhook receivers by provider
WEBHOOK_RECEIVERS: dict[str, WebhookReceiver] = {}


def register_receiver(provider: str) -> Callable:
    """
    Class decorator registering a webhook receiver for a provider.

    Usage:
        @register_receiver(PaymentProvider.MOLLIE)
        class MollieWebhookReceiver(WebhookReceiver):
            ...
    """

    def decorator(receiver_class: type[WebhookReceiver]) -> type[WebhookReceiver]:
        WEBHOOK_RECEIVERS[provider] = receiver_class()
        logger.debug(f"Registered webhook receiver for {provider}")
        return receiver_class

    return decorator


# =============================================================================
# Receivers
# =============================================================================


class WebhookReceiver:
    """Base receiver: no authentication beyond the status re-fetch."""

    provider: str = ""

    def authenticate(self, request: HttpRequest, adapter: PaymentProviderAdapter) -> None:
        """Raise WebhookAuthenticationError if the request is not genuine."""

    def extract_payment_id(self, request: HttpRequest) -> str | None:
        raise NotImplementedError

    @staticmethod
    def json_body(request: HttpRequest) -> dict[str, Any]:
        try:
            body = json.loads(request.body or b"{}")
        except (ValueError, UnicodeDecodeError):
            return {}
        return body if isinstance(body, dict) else {}


@register_receiver(PaymentProvider.MOLLIE)
class MollieWebhookReceiver(WebhookReceiver):
    """Mollie posts ``id=tr_xxx`` as a form; JSON bodies are accepted too."""

    provider = PaymentProvider.MOLLIE

    def extract_payment_id(self, request: HttpRequest) -> str | None:
        payment_id = request.POST.get("id")
        if not payment_id and request.content_type == "application/json":
            payment_id = self.json_body(request).get("id")
        return payment_id or None


@register_receiver(PaymentProvider.PONTO)
class PontoWebhookReceiver(WebhookReceiver):
    """
    Ponto posts JSON:API events; only payment request events are handled.

    The payment request id is read from ``data.attributes.paymentRequestId``
    or ``data.relationships.paymentRequest.data.id``.
    """

    provider = PaymentProvider.PONTO

    def extract_payment_id(self, request: HttpRequest) -> str | None:
        data = self.json_body(request).get("data")
        if not isinstance(data, dict):
            return None

        event_type = data.get("type") or ""
        if "paymentRequest" not in event_type:
            logger.info(
                "Ignoring Ponto event that is not about a payment request",
                extra={"event_type": event_type},
            )
            return None

        attributes = data.get("attributes") or {}
        if attributes.get("paymentRequestId"):
            return attributes["paymentRequestId"]

        relationship = (data.get("relationships") or {}).get("paymentRequest") or {}
        return (relationship.get("data") or {}).get("id")


@register_receiver(PaymentProvider.NODA)
class NodaWebhookReceiver(WebhookReceiver):
    """Noda signs the raw body; the id is in ``payment_id`` (or ``paymentId``)."""

    provider = PaymentProvider.NODA
    signature_header = "X-Noda-Signature"

    def authenticate(self, request: HttpRequest, adapter: PaymentProviderAdapter) -> None:
        signature = request.headers.get(self.signature_header)
        if not adapter.verify_webhook_signature(request.body, signature):
            raise WebhookAuthenticationError(
                "Invalid Noda webhook signature",
                details={"provider": self.provider, "signature_present": bool(signature)},
            )

    def extract_payment_id(self, request: HttpRequest) -> str | None:
        body = self.json_body(request)
        return body.get("payment_id") or body.get("paymentId") or body.get("id")


# =============================================================================
# Shared flow
# =============================================================================


def resolve_registration(provider: str, status_result: PaymentStatusResult) -> Registration | None:
    """
    Find the registration a provider payment belongs to.

    Correlation metadata echoed by the provider wins; otherwise the stored
    (provider, provider_payment_id) pair is used.
    """
    registration = Registration.objects.matching_correlation(status_result.metadata).first()
    if registration is None:
        registration = Registration.objects.for_provider_payment(
            provider, status_result.provider_payment_id
        ).first()
    return registration


def handle_webhook(provider: str, request: HttpRequest) -> WebhookResult:
    """
    Authenticate, re-fetch and reconcile one provider notification.

    Raises:
        WebhookAuthenticationError: Bad signature, or the provider does not
            know the referenced payment
    """
    receiver = WEBHOOK_RECEIVERS[provider]
    log_context: dict[str, Any] = {"provider": provider}

    try:
        adapter = get_provider_registry().get(provider)
    except ProviderNotConfiguredError:
        logger.error("Webhook received for unconfigured provider", extra=log_context)
        return WebhookResult(outcome="provider_disabled", message="Provider not configured")

    receiver.authenticate(request, adapter)

    payment_id = receiver.extract_payment_id(request)
    if not payment_id:
        logger.warning("Webhook without payment id", extra=log_context)
        return WebhookResult(outcome="ignored", message="No payment id")

    log_context["provider_payment_id"] = payment_id
    logger.info("Webhook received", extra=log_context)

    try:
        status_result = adapter.fetch_status(payment_id)
    except ProviderPaymentNotFoundError as e:
        logger.warning("Webhook references unknown payment", extra=log_context)
        raise WebhookAuthenticationError(
            "Unknown payment id",
            details={"provider": provider, "provider_payment_id": payment_id},
        ) from e
    except ProviderError as e:
        logger.warning(
            "Could not fetch payment status for webhook",
            extra={**log_context, "error_code": e.error_code},
        )
        PaymentAuditLog.record(
            registration=Registration.objects.for_provider_payment(provider, payment_id).first(),
            provider=provider,
            provider_payment_id=payment_id,
            channel=ReconciliationChannel.WEBHOOK,
            outcome=ReconciliationOutcome.PROVIDER_ERROR,
            message=str(e),
        )
        return WebhookResult(
            outcome=ReconciliationOutcome.PROVIDER_ERROR,
            message="Provider unavailable",
            provider_payment_id=payment_id,
        )

    registration = resolve_registration(provider, status_result)
    if registration is None:
        logger.warning("No registration for webhook payment", extra=log_context)
        PaymentAuditLog.record(
            provider=provider,
            provider_payment_id=status_result.provider_payment_id,
            channel=ReconciliationChannel.WEBHOOK,
            outcome=ReconciliationOutcome.REGISTRATION_NOT_FOUND,
            incoming_status=status_result.status,
            raw_payload=status_result.raw_response,
        )
        return WebhookResult(
            outcome=ReconciliationOutcome.REGISTRATION_NOT_FOUND,
            message="Registration not found",
            provider_payment_id=payment_id,
        )

    reconciliation = PaymentReconciler.reconcile_status_result(
        registration.pk,
        status_result,
        channel=ReconciliationChannel.WEBHOOK,
        provider=provider,
    )
    return WebhookResult(
        outcome=reconciliation.outcome,
        message="Webhook processed",
        provider_payment_id=payment_id,
    )
