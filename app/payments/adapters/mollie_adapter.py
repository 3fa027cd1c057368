"""
Mollie API adapter.

Mollie webhooks carry only the payment id; the status is always pulled
from ``GET /payments/{id}``. Amounts travel as strings ("25.00").

Configuration (via settings):
- MOLLIE_API_KEY: live_xxx or test_xxx key (empty disables the provider)
- MOLLIE_API_URL: API root (default: https://api.mollie.com/v2)
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from payments.adapters.base import (
    CheckoutResult,
    CreatePaymentParams,
    PaymentProviderAdapter,
    PaymentStatusResult,
    to_datetime,
    to_decimal,
)
from payments.state_machines import PaymentProvider, PaymentStatus

MOLLIE_METHODS = ("bancontact", "kbc", "belfius", "creditcard", "applepay")
DEFAULT_LOCALE = "nl_BE"


class MollieAdapter(PaymentProviderAdapter):
    """
    Adapter for the Mollie Payments API v2.

    Usage:
        adapter = MollieAdapter(config)
        checkout = adapter.create_payment(params)
        status = adapter.fetch_status(checkout.provider_payment_id)
    """

    provider = PaymentProvider.MOLLIE
    status_map = {
        "open": PaymentStatus.OPEN,
        "pending": PaymentStatus.PENDING,
        "authorized": PaymentStatus.PENDING,
        "paid": PaymentStatus.PAID,
        "failed": PaymentStatus.FAILED,
        "canceled": PaymentStatus.CANCELED,
        "expired": PaymentStatus.EXPIRED,
    }

    def base_url(self) -> str:
        return self.config.mollie_api_url

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.config.mollie_api_key}"}

    @staticmethod
    def format_amount(amount: Decimal) -> str:
        """Mollie expects exactly two decimals as a string."""
        return f"{Decimal(amount):.2f}"

    def create_payment(self, params: CreatePaymentParams) -> CheckoutResult:
        payload: dict[str, Any] = {
            "amount": {
                "currency": params.currency,
                "value": self.format_amount(params.amount),
            },
            "description": params.description,
            "redirectUrl": params.redirect_url,
            "metadata": params.metadata,
            "locale": params.locale or DEFAULT_LOCALE,
        }
        if params.webhook_url:
            payload["webhookUrl"] = params.webhook_url
        if params.method:
            payload["method"] = params.method

        response = self._request(
            "POST",
            "/payments",
            operation="create_payment",
            json=payload,
            headers={"Idempotency-Key": params.internal_payment_id},
            log_context={"internal_payment_id": params.internal_payment_id},
        )
        body = self._json(response)
        links = body.get("_links") or {}

        return CheckoutResult(
            provider_payment_id=body["id"],
            checkout_url=(links.get("checkout") or {}).get("href"),
            status=self.normalize_status(body.get("status")),
            expires_at=to_datetime(body.get("expiresAt")),
            raw_response=body,
        )

    def fetch_status(
        self,
        provider_payment_id: str,
        timeout: float | None = None,
    ) -> PaymentStatusResult:
        response = self._request(
            "GET",
            f"/payments/{provider_payment_id}",
            operation="fetch_status",
            timeout=timeout,
            log_context={"provider_payment_id": provider_payment_id},
        )
        body = self._json(response)
        amount = body.get("amount") or {}

        return PaymentStatusResult(
            provider_payment_id=body.get("id") or provider_payment_id,
            status=self.normalize_status(body.get("status")),
            provider_status=body.get("status"),
            paid_at=to_datetime(body.get("paidAt")),
            method=body.get("method"),
            amount=to_decimal(amount.get("value")),
            currency=amount.get("currency"),
            metadata=body.get("metadata") or {},
            raw_response=body,
        )
