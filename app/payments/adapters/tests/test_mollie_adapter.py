"""
Tests for the Mollie adapter.

Tests cover:
- Create payment request shape and checkout result
- Status fetch and normalization
- Error translation for each failure class
- Per-call timeout override
"""

import json
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from payments.adapters import CreatePaymentParams, MollieAdapter
from payments.exceptions import (
    ProviderInvalidRequestError,
    ProviderPaymentNotFoundError,
    ProviderUnavailableError,
)
from payments.state_machines import PaymentStatus
from payments.tests.fakes import mollie_payment


# =============================================================================
# Setup
# =============================================================================


@pytest.fixture
def captured():
    """Requests seen by the mock transport."""
    return []


def make_adapter(provider_config, captured, response=None, exc=None):
    """Adapter whose transport answers every request with ``response``."""

    def handler(request):
        captured.append(request)
        if exc is not None:
            raise exc
        return response

    return MollieAdapter(provider_config, transport=httpx.MockTransport(handler))


@pytest.fixture
def params():
    return CreatePaymentParams(
        amount=Decimal("25"),
        currency="EUR",
        description="Dive 12/05",
        internal_payment_id="pay_abc123",
        redirect_url="calymob://payment/return?provider=mollie",
        webhook_url="https://payments.example.com/api/v1/payments/webhooks/mollie/",
        metadata={"internalPaymentId": "pay_abc123", "clubId": "club-1"},
        method="bancontact",
    )


# =============================================================================
# CreatePaymentParams Tests
# =============================================================================


class TestCreatePaymentParams:
    """Tests for CreatePaymentParams validation."""

    def test_rejects_non_positive_amount(self):
        with pytest.raises(ValueError, match="amount"):
            CreatePaymentParams(
                amount=Decimal("0"),
                currency="EUR",
                description="Dive",
                internal_payment_id="pay_1",
                redirect_url="calymob://return",
            )

    def test_requires_description(self):
        with pytest.raises(ValueError, match="description"):
            CreatePaymentParams(
                amount=Decimal("10"),
                currency="EUR",
                description="",
                internal_payment_id="pay_1",
                redirect_url="calymob://return",
            )


# =============================================================================
# Create Payment Tests
# =============================================================================


class TestCreatePayment:
    """Tests for MollieAdapter.create_payment."""

    def test_request_shape(self, provider_config, captured, params):
        """Should post amount as a two-decimal string with metadata and webhook."""
        adapter = make_adapter(
            provider_config, captured, httpx.Response(201, json=mollie_payment("tr_new"))
        )

        adapter.create_payment(params)

        request = captured[0]
        payload = json.loads(request.content)
        assert request.method == "POST"
        assert request.url.path == "/v2/payments"
        assert request.headers["Authorization"] == "Bearer test_mollie_key"
        assert request.headers["Idempotency-Key"] == "pay_abc123"
        assert payload["amount"] == {"currency": "EUR", "value": "25.00"}
        assert payload["webhookUrl"] == params.webhook_url
        assert payload["redirectUrl"] == params.redirect_url
        assert payload["metadata"] == params.metadata
        assert payload["method"] == "bancontact"
        assert payload["locale"] == "nl_BE"

    def test_checkout_result(self, provider_config, captured, params):
        """Should return the payment id and checkout link."""
        body = mollie_payment("tr_new")
        body["expiresAt"] = "2026-05-12T10:15:00+00:00"
        adapter = make_adapter(provider_config, captured, httpx.Response(201, json=body))

        result = adapter.create_payment(params)

        assert result.provider_payment_id == "tr_new"
        assert result.checkout_url == "https://www.mollie.com/checkout/tr_new"
        assert result.status == PaymentStatus.OPEN
        assert result.expires_at == datetime(2026, 5, 12, 10, 15, tzinfo=timezone.utc)

    def test_omits_method_and_webhook_when_absent(self, provider_config, captured, params):
        params.method = None
        params.webhook_url = None
        adapter = make_adapter(
            provider_config, captured, httpx.Response(201, json=mollie_payment("tr_new"))
        )

        adapter.create_payment(params)

        payload = json.loads(captured[0].content)
        assert "method" not in payload
        assert "webhookUrl" not in payload

    def test_rejected_request(self, provider_config, captured, params):
        """422 should become ProviderInvalidRequestError with the provider detail."""
        adapter = make_adapter(
            provider_config,
            captured,
            httpx.Response(422, json={"status": 422, "detail": "The amount is too low"}),
        )

        with pytest.raises(ProviderInvalidRequestError) as exc_info:
            adapter.create_payment(params)

        assert exc_info.value.message == "The amount is too low"
        assert exc_info.value.status_code == 422
        assert exc_info.value.is_retryable is False


# =============================================================================
# Fetch Status Tests
# =============================================================================


class TestFetchStatus:
    """Tests for MollieAdapter.fetch_status."""

    @pytest.mark.parametrize(
        "mollie_status,expected",
        [
            ("open", PaymentStatus.OPEN),
            ("pending", PaymentStatus.PENDING),
            ("authorized", PaymentStatus.PENDING),
            ("paid", PaymentStatus.PAID),
            ("failed", PaymentStatus.FAILED),
            ("canceled", PaymentStatus.CANCELED),
            ("expired", PaymentStatus.EXPIRED),
            ("something-new", PaymentStatus.PENDING),
        ],
    )
    def test_status_normalization(self, provider_config, captured, mollie_status, expected):
        adapter = make_adapter(
            provider_config,
            captured,
            httpx.Response(200, json=mollie_payment("tr_1", mollie_status)),
        )

        assert adapter.fetch_status("tr_1").status == expected

    def test_paid_details(self, provider_config, captured):
        """Should expose paid_at, method, amount and metadata."""
        body = mollie_payment(
            "tr_1",
            "paid",
            amount="42.50",
            metadata={"internalPaymentId": "pay_1"},
            paid_at="2026-05-12T10:00:00+00:00",
            method="kbc",
        )
        adapter = make_adapter(provider_config, captured, httpx.Response(200, json=body))

        result = adapter.fetch_status("tr_1")

        assert captured[0].url.path == "/v2/payments/tr_1"
        assert result.provider_payment_id == "tr_1"
        assert result.provider_status == "paid"
        assert result.paid_at == datetime(2026, 5, 12, 10, 0, tzinfo=timezone.utc)
        assert result.method == "kbc"
        assert result.amount == Decimal("42.50")
        assert result.currency == "EUR"
        assert result.metadata == {"internalPaymentId": "pay_1"}
        assert result.raw_response == body

    def test_not_found(self, provider_config, captured):
        """404 is distinct from an open payment."""
        adapter = make_adapter(
            provider_config, captured, httpx.Response(404, json={"detail": "No payment exists"})
        )

        with pytest.raises(ProviderPaymentNotFoundError):
            adapter.fetch_status("tr_missing")

    @pytest.mark.parametrize("status_code", [429, 500, 502, 503])
    def test_transient_http_errors(self, provider_config, captured, status_code):
        adapter = make_adapter(provider_config, captured, httpx.Response(status_code))

        with pytest.raises(ProviderUnavailableError) as exc_info:
            adapter.fetch_status("tr_1")

        assert exc_info.value.is_retryable is True

    def test_rate_limit_error_code(self, provider_config, captured):
        adapter = make_adapter(provider_config, captured, httpx.Response(429))

        with pytest.raises(ProviderUnavailableError) as exc_info:
            adapter.fetch_status("tr_1")

        assert exc_info.value.error_code == "PROVIDER_RATE_LIMITED"

    def test_timeout(self, provider_config, captured):
        adapter = make_adapter(provider_config, captured, exc=httpx.ReadTimeout("timed out"))

        with pytest.raises(ProviderUnavailableError) as exc_info:
            adapter.fetch_status("tr_1")

        assert exc_info.value.error_code == "PROVIDER_TIMEOUT"

    def test_connection_error(self, provider_config, captured):
        adapter = make_adapter(provider_config, captured, exc=httpx.ConnectError("refused"))

        with pytest.raises(ProviderUnavailableError):
            adapter.fetch_status("tr_1")

    def test_timeout_override(self, provider_config, captured):
        """The poller's shorter timeout should reach the request."""
        adapter = make_adapter(
            provider_config, captured, httpx.Response(200, json=mollie_payment("tr_1"))
        )

        adapter.fetch_status("tr_1", timeout=0.5)
        adapter.fetch_status("tr_1")

        assert captured[0].extensions["timeout"]["read"] == 0.5
        assert captured[1].extensions["timeout"]["read"] == provider_config.timeout_seconds
