"""
Payment-specific exceptions for payment operations.

This module provides the exceptions raised by provider adapters, webhook
receivers and payment services. Services convert expected failures into
ServiceResult failures; views map error codes to HTTP statuses.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── ProviderError - Base for all provider API errors
    │   ├── ProviderUnavailableError - Network/timeout/429/5xx (transient, retry)
    │   ├── ProviderInvalidRequestError - Provider rejected the request (permanent)
    │   ├── ProviderPaymentNotFoundError - Provider does not know the payment id
    │   └── ProviderNotConfiguredError - Provider credentials missing
    └── WebhookAuthenticationError - Webhook could not be authenticated

Usage:
    from payments.exceptions import ProviderError, ProviderUnavailableError

    try:
        result = adapter.fetch_status(provider_payment_id)
    except ProviderUnavailableError:
        # transient, caller may retry later
        ...
    except ProviderError as e:
        logger.error(f"Provider failed: {e}")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for all payment operations.

    All payment-specific exceptions inherit from this class,
    which itself inherits from BaseApplicationError for
    consistent API error responses.
    """

    default_error_code: str = "PAYMENT_ERROR"


# =============================================================================
# Provider Exceptions
# =============================================================================


class ProviderError(PaymentError):
    """
    Base exception for all payment provider errors.

    Provides common attributes for provider error handling:
    - provider: Which provider raised the error
    - status_code: HTTP status returned by the provider, if any
    - is_retryable: Whether the operation can be retried

    Use is_retryable to determine retry behavior:
    - True: Transient error, safe to retry later
    - False: Permanent error, do not retry

    Example:
        try:
            MollieAdapter(config).create_payment(params)
        except ProviderError as e:
            if e.is_retryable:
                return ServiceResult.failure(e.message, "PROVIDER_UNAVAILABLE")
            raise
    """

    default_error_code: str = "PROVIDER_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        provider: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if provider:
            details["provider"] = provider
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, error_code=error_code, details=details)
        self.provider = provider
        self.status_code = status_code


class ProviderUnavailableError(ProviderError):
    """
    Provider could not be reached or answered with a transient error.

    Raised for connection errors, timeouts, HTTP 429 and HTTP 5xx.
    """

    default_error_code: str = "PROVIDER_UNAVAILABLE"
    is_retryable: bool = True


class ProviderInvalidRequestError(ProviderError):
    """
    Provider rejected the request (HTTP 4xx other than 404 and 429).

    Usually a bad amount, an unsupported method or invalid credentials.
    """

    default_error_code: str = "INVALID_REQUEST"
    is_retryable: bool = False


class ProviderPaymentNotFoundError(ProviderError):
    """
    Provider does not know the payment id (HTTP 404).

    Distinct from an "open" payment. For webhooks this means the
    notification references a payment the provider never issued,
    so it is treated as an authentication failure.
    """

    default_error_code: str = "NOT_FOUND"
    is_retryable: bool = False


class ProviderNotConfiguredError(ProviderError):
    """Raised when a provider is requested whose credentials are empty."""

    default_error_code: str = "PROVIDER_NOT_CONFIGURED"
    is_retryable: bool = False


# =============================================================================
# Webhook Exceptions
# =============================================================================


class WebhookAuthenticationError(PaymentError):
    """
    Raised when an inbound webhook cannot be authenticated.

    Covers a missing or mismatched signature header and notifications
    whose payment id the provider does not recognize. Webhook views
    answer these with HTTP 401; every other failure is acknowledged.
    """

    default_error_code: str = "WEBHOOK_AUTHENTICATION_FAILED"

