"""
Common interface and HTTP plumbing for payment provider adapters.

Every provider adapter turns "create a payment" and "fetch the status of
a payment" into the same shapes (CheckoutResult, PaymentStatusResult) and
translates its provider's status vocabulary into PaymentStatus. Nothing
outside the adapters sees provider-specific strings.

Features:
- One httpx.Client per adapter with base URL, auth headers and timeout
- Automatic error translation to domain exceptions
- Structured logging with timing metrics
- Per-call timeout override (used by the status poller)

Usage:
    from payments.adapters import get_provider_registry

    adapter = get_provider_registry().get("mollie")
    result = adapter.fetch_status("tr_WDqYK6vllg", timeout=5)
    result.status  # PaymentStatus.PAID
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

import httpx
from django.utils.dateparse import parse_datetime

from payments.exceptions import (
    ProviderError,
    ProviderInvalidRequestError,
    ProviderPaymentNotFoundError,
    ProviderUnavailableError,
)
from payments.state_machines import PaymentStatus

if TYPE_CHECKING:
    from payments.adapters.registry import PaymentProviderConfig


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CreatePaymentParams:
    """
    Parameters for creating a provider payment.

    Attributes:
        amount: Amount in major currency units (e.g. Decimal("25.00"))
        currency: ISO 4217 currency code
        description: Text shown to the payer (and remittance information)
        internal_payment_id: Local correlation id, also used for idempotency
        redirect_url: Where the provider sends the payer afterwards
        webhook_url: Where the provider posts notifications (optional)
        metadata: Correlation metadata echoed back by the provider
        reference: Provider-side reference (optional)
        method: Preferred payment method (Mollie only)
        locale: Checkout page locale (Mollie only)
    """

    amount: Decimal
    currency: str
    description: str
    internal_payment_id: str
    redirect_url: str
    webhook_url: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    reference: str | None = None
    method: str | None = None
    locale: str | None = None

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        if self.amount is None or Decimal(self.amount) <= 0:
            raise ValueError("amount must be positive")
        if not self.description:
            raise ValueError("description is required")
        if not self.internal_payment_id:
            raise ValueError("internal_payment_id is required")
        if not self.currency:
            raise ValueError("currency is required")


@dataclass
class CheckoutResult:
    """
    Result of creating a provider payment.

    Attributes:
        provider_payment_id: Provider's id for the new payment
        checkout_url: URL the payer is redirected to
        status: Normalized status of the new payment (normally OPEN)
        expires_at: When the provider expires the payment, if known
        raw_response: Full provider response (for debugging)
    """

    provider_payment_id: str
    checkout_url: str | None
    status: str = PaymentStatus.OPEN
    expires_at: datetime | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentStatusResult:
    """
    Authoritative status of one provider payment.

    Attributes:
        provider_payment_id: Provider's id for the payment
        status: Normalized PaymentStatus
        provider_status: Status string as the provider reported it
        paid_at: Settlement time reported by the provider
        method: Payment method used, if reported
        amount: Amount reported by the provider
        currency: Currency reported by the provider
        metadata: Correlation metadata echoed back by the provider
        raw_response: Full provider response
    """

    provider_payment_id: str
    status: str
    provider_status: str | None = None
    paid_at: datetime | None = None
    method: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Helpers
# =============================================================================


def to_decimal(value: Any) -> Decimal | None:
    """Convert a provider amount ("25.00", 25, 25.0) to Decimal."""
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        return None


def to_datetime(value: Any) -> datetime | None:
    """Parse an ISO 8601 timestamp from a provider response."""
    if not value or not isinstance(value, str):
        return None
    try:
        return parse_datetime(value)
    except ValueError:
        return None


# =============================================================================
# Adapter Base Class
# =============================================================================


class PaymentProviderAdapter(ABC):
    """
    Base class for payment provider adapters.

    Subclasses set ``provider`` and ``status_map`` and implement
    ``base_url``, ``auth_headers``, ``create_payment`` and
    ``fetch_status``. HTTP calls go through ``_request`` which adds
    timing logs and translates failures:

    - connection errors, timeouts, 429, 5xx -> ProviderUnavailableError
    - 404 -> ProviderPaymentNotFoundError
    - other 4xx -> ProviderInvalidRequestError

    Adapters hold no state beyond their HTTP client (and, for Ponto,
    a cached token) and are safe to share between threads.
    """

    provider: str = ""
    status_map: dict[str, str] = {}

    def __init__(
        self,
        config: PaymentProviderConfig,
        transport: httpx.BaseTransport | None = None,
    ):
        self.config = config
        self._client = httpx.Client(
            base_url=self.base_url(),
            timeout=config.timeout_seconds,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Interface
    # =========================================================================

    @abstractmethod
    def base_url(self) -> str:
        """Root URL of the provider API."""

    @abstractmethod
    def auth_headers(self) -> dict[str, str]:
        """Authorization headers for one API call."""

    @abstractmethod
    def create_payment(self, params: CreatePaymentParams) -> CheckoutResult:
        """
        Create a payment at the provider.

        Raises:
            ProviderUnavailableError: Provider unreachable or overloaded
            ProviderInvalidRequestError: Provider rejected the request
        """

    @abstractmethod
    def fetch_status(
        self,
        provider_payment_id: str,
        timeout: float | None = None,
    ) -> PaymentStatusResult:
        """
        Fetch the authoritative status of a payment.

        Raises:
            ProviderPaymentNotFoundError: Provider does not know the id
            ProviderUnavailableError: Provider unreachable or overloaded
        """

    def normalize_status(self, provider_status: str | None) -> str:
        """
        Translate a provider status string into a PaymentStatus.

        Unknown values map to PENDING, which is non-terminal and never
        flips the paid flag.
        """
        normalized = self.status_map.get((provider_status or "").lower())
        if normalized is None:
            self.get_logger().warning(
                "Unknown provider status, treating as pending",
                extra={"provider": self.provider, "provider_status": provider_status},
            )
            return PaymentStatus.PENDING
        return normalized

    def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        self._client.close()

    # =========================================================================
    # HTTP
    # =========================================================================

    def _request(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        timeout: float | None = None,
        log_context: dict[str, Any] | None = None,
        authenticate: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Perform one API call and translate failures to domain exceptions.

        Set authenticate=False for calls that carry their own credentials
        (token endpoints).

        Returns:
            The successful (2xx) response
        """
        logger = self.get_logger()
        log_context = {
            "provider": self.provider,
            "operation": operation,
            **(log_context or {}),
        }
        headers = {
            **(self.auth_headers() if authenticate else {}),
            **kwargs.pop("headers", {}),
        }
        if timeout is not None:
            kwargs["timeout"] = timeout

        start_time = time.time()
        logger.debug("Starting provider operation", extra=log_context)

        try:
            response = self._client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.warning(
                "Provider request timed out",
                extra={**log_context, "duration_ms": duration_ms},
            )
            raise ProviderUnavailableError(
                f"{self.provider} request timed out",
                error_code="PROVIDER_TIMEOUT",
                provider=self.provider,
            ) from e
        except httpx.TransportError as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.warning(
                "Provider unreachable",
                extra={**log_context, "duration_ms": duration_ms, "error": str(e)},
            )
            raise ProviderUnavailableError(
                f"{self.provider} is unreachable",
                provider=self.provider,
            ) from e

        duration_ms = (time.time() - start_time) * 1000
        log_context = {
            **log_context,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        }

        if response.is_success:
            logger.info("Provider operation completed", extra=log_context)
            return response

        self._handle_error_response(response, log_context)
        raise ProviderError(  # pragma: no cover - _handle_error_response always raises
            f"{self.provider} returned HTTP {response.status_code}",
            provider=self.provider,
            status_code=response.status_code,
        )

    def _handle_error_response(
        self,
        response: httpx.Response,
        log_context: dict[str, Any],
    ) -> None:
        """
        Translate a non-2xx response into a domain exception.

        Raises:
            ProviderPaymentNotFoundError: HTTP 404
            ProviderUnavailableError: HTTP 429 or 5xx
            ProviderInvalidRequestError: Any other 4xx
        """
        logger = self.get_logger()
        status_code = response.status_code
        detail = self._error_detail(response)

        if status_code == 404:
            logger.info("Provider payment not found", extra=log_context)
            raise ProviderPaymentNotFoundError(
                detail or f"{self.provider} payment not found",
                provider=self.provider,
                status_code=status_code,
            )

        if status_code == 429 or status_code >= 500:
            logger.warning(
                "Provider temporarily unavailable",
                extra={**log_context, "detail": detail},
            )
            raise ProviderUnavailableError(
                detail or f"{self.provider} is temporarily unavailable",
                error_code="PROVIDER_RATE_LIMITED" if status_code == 429 else None,
                provider=self.provider,
                status_code=status_code,
            )

        logger.error(
            "Provider rejected request",
            extra={**log_context, "detail": detail},
        )
        raise ProviderInvalidRequestError(
            detail or f"{self.provider} rejected the request",
            provider=self.provider,
            status_code=status_code,
        )

    @staticmethod
    def _error_detail(response: httpx.Response) -> str | None:
        """Extract a human-readable message from an error body."""
        try:
            body = response.json()
        except ValueError:
            return response.text[:200] or None
        if not isinstance(body, dict):
            return None
        errors = body.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            return errors[0].get("detail") or errors[0].get("title") or errors[0].get("code")
        return body.get("detail") or body.get("message") or body.get("title")

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        """Decode a JSON object body; anything else becomes an empty dict."""
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
