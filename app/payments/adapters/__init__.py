"""
Payment adapters for external services.

This module provides adapters for the payment providers (Mollie, Ponto,
Noda). All provider API calls go through these adapters to ensure
consistent error handling, timeouts and observability.

Usage:
    from payments.adapters import get_provider_registry

    adapter = get_provider_registry().get("mollie")
    result = adapter.fetch_status("tr_WDqYK6vllg")
"""

from payments.adapters.base import (
    CheckoutResult,
    CreatePaymentParams,
    PaymentProviderAdapter,
    PaymentStatusResult,
)
from payments.adapters.mollie_adapter import MOLLIE_METHODS, MollieAdapter
from payments.adapters.noda_adapter import NodaAdapter
from payments.adapters.ponto_adapter import PontoAdapter
from payments.adapters.registry import (
    PaymentProviderConfig,
    ProviderRegistry,
    get_provider_registry,
    reset_provider_registry,
    set_provider_registry,
)

__all__ = [
    "MOLLIE_METHODS",
    "CheckoutResult",
    "CreatePaymentParams",
    "MollieAdapter",
    "NodaAdapter",
    "PaymentProviderAdapter",
    "PaymentProviderConfig",
    "PaymentStatusResult",
    "PontoAdapter",
    "ProviderRegistry",
    "get_provider_registry",
    "reset_provider_registry",
    "set_provider_registry",
]
