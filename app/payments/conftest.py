"""
Pytest fixtures shared by all payment tests.

Provider HTTP calls never leave the process: the provider registry is
replaced by one whose adapters talk to FakeProviderAPI through
httpx.MockTransport.

Sections:
    - Provider Fixtures: config, fake API, installed registry
    - User Fixtures
    - Registration Fixtures

Usage:
    def test_poll(member, mollie_registration, fake_provider_api):
        fake_provider_api.payments[...] = mollie_payment(..., "paid")
"""

from decimal import Decimal

import httpx
import pytest
from django.utils import timezone

from payments.adapters import (
    PaymentProviderConfig,
    ProviderRegistry,
    reset_provider_registry,
    set_provider_registry,
)
from payments.state_machines import PaymentStatus
from payments.tests.factories import RegistrationFactory, UserFactory
from payments.tests.fakes import (
    MOLLIE_HOST,
    NODA_HOST,
    PONTO_HOST,
    FakeProviderAPI,
    mollie_payment,
    noda_payment,
    ponto_payment_request,
)


# =============================================================================
# Provider Fixtures
# =============================================================================


@pytest.fixture
def provider_config():
    """Configuration with all three providers enabled against fake hosts."""
    return PaymentProviderConfig(
        mollie_api_key="test_mollie_key",
        mollie_api_url=f"https://{MOLLIE_HOST}/v2",
        ponto_client_id="ponto-client",
        ponto_client_secret="ponto-secret",
        ponto_api_url=f"https://{PONTO_HOST}",
        noda_api_key="noda-key",
        noda_api_url=f"https://{NODA_HOST}/v1",
        noda_webhook_secret="noda-webhook-secret",
        timeout_seconds=2.0,
        poll_timeout_seconds=1.0,
        webhook_base_url="https://payments.example.com",
        redirect_url="calymob://payment/return",
    )


@pytest.fixture
def fake_provider_api():
    """In-memory provider APIs."""
    return FakeProviderAPI()


@pytest.fixture
def provider_registry(provider_config, fake_provider_api):
    """Install a registry backed by the fake APIs for the duration of a test."""
    registry = ProviderRegistry(
        provider_config,
        transport=httpx.MockTransport(fake_provider_api),
    )
    set_provider_registry(registry)
    yield registry
    reset_provider_registry()


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def member(db):
    """Member owning the registrations under test."""
    return UserFactory()


@pytest.fixture
def other_member(db):
    """A different member."""
    return UserFactory()


# =============================================================================
# Registration Fixtures
# =============================================================================


@pytest.fixture
def registration(db, member):
    """Registration without a payment attempt."""
    return RegistrationFactory(member=member)


@pytest.fixture
def mollie_registration(db, member, fake_provider_api):
    """Registration with an open Mollie attempt known to the fake API."""
    registration = RegistrationFactory(member=member, mollie=True)
    fake_provider_api.payments[registration.provider_payment_id] = mollie_payment(
        registration.provider_payment_id,
        "open",
        metadata={"internalPaymentId": registration.internal_payment_id},
    )
    return registration


@pytest.fixture
def ponto_registration(db, member, fake_provider_api):
    """Registration with an open Ponto payment request known to the fake API."""
    registration = RegistrationFactory(member=member, ponto=True)
    fake_provider_api.payments[registration.provider_payment_id] = ponto_payment_request(
        registration.provider_payment_id
    )
    return registration


@pytest.fixture
def noda_registration(db, member, fake_provider_api):
    """Registration with an open Noda attempt known to the fake API."""
    registration = RegistrationFactory(member=member, noda=True)
    fake_provider_api.payments[registration.provider_payment_id] = noda_payment(
        registration.provider_payment_id,
        "new",
        metadata={"internalPaymentId": registration.internal_payment_id},
    )
    return registration


@pytest.fixture
def paid_registration(db, member):
    """Registration already settled through Mollie."""
    return RegistrationFactory(
        member=member,
        mollie=True,
        payment_status=PaymentStatus.PAID,
        paid=True,
        paid_at=timezone.now(),
        payment_method="bancontact",
        amount=Decimal("25.00"),
    )
