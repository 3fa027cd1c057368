"""
Ponto Connect (Ibanity) payment request adapter.

Ponto is pull-oriented: a payment request has no status string, only
``signedAt``/``closedAt`` timestamps. Calls need an OAuth2 client
credentials token (valid 30 minutes, cached 25) and the id of the
organization's account (cached as well). Both live in the Django cache
so every worker process shares them.

Configuration (via settings):
- PONTO_CLIENT_ID / PONTO_CLIENT_SECRET: OAuth client (empty disables)
- PONTO_API_URL: API root (default: https://api.ibanity.com)
"""

from __future__ import annotations

import hashlib
import time
import uuid
from typing import Any

import httpx
from django.core.cache import cache

from payments.adapters.base import (
    CheckoutResult,
    CreatePaymentParams,
    PaymentProviderAdapter,
    PaymentStatusResult,
    to_datetime,
    to_decimal,
)
from payments.exceptions import ProviderInvalidRequestError, ProviderUnavailableError
from payments.state_machines import PaymentProvider, PaymentStatus

TOKEN_CACHE_SECONDS = 25 * 60
ACCOUNT_CACHE_SECONDS = 24 * 60 * 60
END_TO_END_ID_MAX_LENGTH = 35
REMITTANCE_MAX_LENGTH = 140
JSON_API = "application/vnd.api+json"


class PontoAdapter(PaymentProviderAdapter):
    """
    Adapter for Ponto Connect payment requests.

    Status derivation (when no explicit status attribute is present):
        closedAt + signedAt -> PAID
        closedAt only       -> CANCELED
        signedAt only       -> PENDING
        neither             -> OPEN
    """

    provider = PaymentProvider.PONTO
    status_map = {
        "unsigned": PaymentStatus.OPEN,
        "signed": PaymentStatus.PENDING,
        "accepted": PaymentStatus.PAID,
        "executed": PaymentStatus.PAID,
        "rejected": PaymentStatus.FAILED,
        "expired": PaymentStatus.EXPIRED,
        "canceled": PaymentStatus.CANCELED,
        "cancelled": PaymentStatus.CANCELED,
    }

    def base_url(self) -> str:
        return self.config.ponto_api_url

    # =========================================================================
    # Credentials
    # =========================================================================

    @property
    def _cache_prefix(self) -> str:
        client_hash = hashlib.sha256(self.config.ponto_client_id.encode()).hexdigest()[:12]
        return f"payments:ponto:{client_hash}"

    @property
    def _token_cache_key(self) -> str:
        return f"{self._cache_prefix}:access_token"

    @property
    def _account_cache_key(self) -> str:
        return f"{self._cache_prefix}:account_id"

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.get_access_token()}"}

    def get_access_token(self) -> str:
        """Return a cached token, requesting a new one when needed."""
        token = cache.get(self._token_cache_key)
        if token:
            return token

        response = self._request(
            "POST",
            "/oauth2/token",
            operation="obtain_token",
            authenticate=False,
            data={"grant_type": "client_credentials"},
            auth=(self.config.ponto_client_id, self.config.ponto_client_secret),
        )
        token = self._json(response).get("access_token")
        if not token:
            raise ProviderUnavailableError(
                "Ponto token response had no access_token",
                provider=self.provider,
            )
        cache.set(self._token_cache_key, token, TOKEN_CACHE_SECONDS)
        return token

    def get_account_id(self) -> str:
        """Return the first account of the organization (cached)."""
        account_id = cache.get(self._account_cache_key)
        if account_id:
            return account_id

        response = self._request(
            "GET",
            "/ponto-connect/accounts",
            operation="list_accounts",
            headers={"Accept": JSON_API},
        )
        accounts = self._json(response).get("data") or []
        if not accounts:
            raise ProviderInvalidRequestError(
                "No Ponto account is linked to this client",
                error_code="PONTO_NO_ACCOUNT",
                provider=self.provider,
            )
        account_id = accounts[0]["id"]
        cache.set(self._account_cache_key, account_id, ACCOUNT_CACHE_SECONDS)
        return account_id

    def _handle_error_response(self, response: httpx.Response, log_context: dict[str, Any]) -> None:
        # An expired or revoked token: drop it so the next call re-authenticates.
        if response.status_code == 401 and log_context.get("operation") != "obtain_token":
            cache.delete(self._token_cache_key)
            self.get_logger().warning("Ponto token rejected", extra=log_context)
            raise ProviderUnavailableError(
                "Ponto access token was rejected",
                provider=self.provider,
                status_code=401,
            )
        super()._handle_error_response(response, log_context)

    # =========================================================================
    # Operations
    # =========================================================================

    @staticmethod
    def build_end_to_end_id(reference: str) -> str:
        """SEPA end-to-end id: prefix, base36 timestamp, reference; max 35 chars."""
        stamp = _base36(int(time.time() * 1000)).upper()
        return f"CALY{stamp}{reference[:10]}"[:END_TO_END_ID_MAX_LENGTH]

    def create_payment(self, params: CreatePaymentParams) -> CheckoutResult:
        account_id = self.get_account_id()
        end_to_end_id = self.build_end_to_end_id(params.reference or params.internal_payment_id)

        payload = {
            "data": {
                "type": "paymentRequest",
                "attributes": {
                    "amount": float(params.amount),
                    "currency": params.currency,
                    "remittanceInformation": params.description[:REMITTANCE_MAX_LENGTH],
                    "remittanceInformationType": "unstructured",
                    "endToEndId": end_to_end_id,
                    "redirectUri": params.redirect_url,
                },
            }
        }

        response = self._request(
            "POST",
            f"/ponto-connect/accounts/{account_id}/payment-requests",
            operation="create_payment",
            json=payload,
            headers={
                "Content-Type": JSON_API,
                "Accept": JSON_API,
                "Ibanity-Idempotency-Key": str(
                    uuid.uuid5(uuid.NAMESPACE_URL, params.internal_payment_id)
                ),
            },
            log_context={"internal_payment_id": params.internal_payment_id},
        )
        body = self._json(response)
        data = body.get("data") or {}
        redirect = (data.get("links") or {}).get("redirect") or (body.get("links") or {}).get(
            "redirect"
        )

        return CheckoutResult(
            provider_payment_id=data["id"],
            checkout_url=redirect,
            status=self._derive_status(data.get("attributes") or {}),
            raw_response=body,
        )

    def fetch_status(
        self,
        provider_payment_id: str,
        timeout: float | None = None,
    ) -> PaymentStatusResult:
        account_id = self.get_account_id()
        response = self._request(
            "GET",
            f"/ponto-connect/accounts/{account_id}/payment-requests/{provider_payment_id}",
            operation="fetch_status",
            timeout=timeout,
            headers={"Accept": JSON_API},
            log_context={"provider_payment_id": provider_payment_id},
        )
        body = self._json(response)
        data = body.get("data") or {}
        attributes = data.get("attributes") or {}
        status = self._derive_status(attributes)

        return PaymentStatusResult(
            provider_payment_id=data.get("id") or provider_payment_id,
            status=status,
            provider_status=attributes.get("status"),
            paid_at=to_datetime(attributes.get("closedAt")) if status == PaymentStatus.PAID else None,
            method="ponto",
            amount=to_decimal(attributes.get("amount")),
            currency=attributes.get("currency"),
            raw_response=body,
        )

    def _derive_status(self, attributes: dict[str, Any]) -> str:
        if attributes.get("status"):
            return self.normalize_status(attributes["status"])
        signed = bool(attributes.get("signedAt"))
        closed = bool(attributes.get("closedAt"))
        if closed:
            return PaymentStatus.PAID if signed else PaymentStatus.CANCELED
        if signed:
            return PaymentStatus.PENDING
        return PaymentStatus.OPEN


def _base36(number: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    result = ""
    while number:
        number, remainder = divmod(number, 36)
        result = digits[remainder] + result
    return result or "0"
