"""
Noda open banking API adapter.

Noda pushes the full payment body to the webhook and signs it with
HMAC-SHA256 over the raw request body (``X-Noda-Signature``). The status
is still re-fetched before reconciling.

Configuration (via settings):
- NODA_API_KEY: API key (empty disables the provider)
- NODA_API_URL: API root (default: https://api.noda.live/v1)
- NODA_WEBHOOK_SECRET: Signing secret (empty skips signature checks)
"""

from __future__ import annotations

import hashlib
import hmac
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


class NodaAdapter(PaymentProviderAdapter):
    """Adapter for the Noda payments API."""

    provider = PaymentProvider.NODA
    status_map = {
        "new": PaymentStatus.OPEN,
        "created": PaymentStatus.OPEN,
        "pending": PaymentStatus.PENDING,
        "processing": PaymentStatus.PENDING,
        "done": PaymentStatus.PAID,
        "completed": PaymentStatus.PAID,
        "succeeded": PaymentStatus.PAID,
        "failed": PaymentStatus.FAILED,
        "cancelled": PaymentStatus.CANCELED,
        "canceled": PaymentStatus.CANCELED,
        "expired": PaymentStatus.EXPIRED,
    }

    def base_url(self) -> str:
        return self.config.noda_api_url

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.config.noda_api_key}"}

    def create_payment(self, params: CreatePaymentParams) -> CheckoutResult:
        payload: dict[str, Any] = {
            "amount": float(params.amount),
            "currency": params.currency,
            "description": params.description,
            "reference": params.reference or params.internal_payment_id,
            "return_url": params.redirect_url,
            "metadata": params.metadata,
        }
        if params.webhook_url:
            payload["webhook_url"] = params.webhook_url

        response = self._request(
            "POST",
            "/payments",
            operation="create_payment",
            json=payload,
            log_context={"internal_payment_id": params.internal_payment_id},
        )
        body = self._json(response)

        return CheckoutResult(
            provider_payment_id=body.get("payment_id") or body["id"],
            checkout_url=body.get("payment_url") or body.get("url"),
            status=self.normalize_status(body.get("status") or "new"),
            expires_at=to_datetime(body.get("expires_at")),
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

        return PaymentStatusResult(
            provider_payment_id=body.get("payment_id") or body.get("id") or provider_payment_id,
            status=self.normalize_status(body.get("status")),
            provider_status=body.get("status"),
            paid_at=to_datetime(body.get("paid_at") or body.get("completed_at")),
            method=body.get("method") or body.get("payment_method"),
            amount=to_decimal(body.get("amount")),
            currency=body.get("currency"),
            metadata=body.get("metadata") or {},
            raw_response=body,
        )

    # =========================================================================
    # Webhook signature
    # =========================================================================

    @staticmethod
    def compute_signature(secret: str, body: bytes) -> str:
        """Hex HMAC-SHA256 of the raw request body."""
        return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()

    def verify_webhook_signature(self, body: bytes, signature: str | None) -> bool:
        """
        Check the X-Noda-Signature header against the raw body.

        Returns True when no secret is configured. A ``sha256=`` prefix
        on the header is accepted.
        """
        secret = self.config.noda_webhook_secret
        if not secret:
            return True
        if not signature:
            return False
        if signature.startswith("sha256="):
            signature = signature[len("sha256="):]
        expected = self.compute_signature(secret, body)
        return hmac.compare_digest(expected, signature.strip().lower())
