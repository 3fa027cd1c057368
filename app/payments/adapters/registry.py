"""
Provider configuration and adapter registry.

All provider credentials and endpoints are read once into an immutable
PaymentProviderConfig. The ProviderRegistry hands out one adapter per
provider (created on first use) and closes their HTTP clients on
``close()``.

Usage:
    from payments.adapters import get_provider_registry

    registry = get_provider_registry()
    if registry.is_enabled("noda"):
        adapter = registry.get("noda")

    # Tests and scripts can build their own registry
    with ProviderRegistry(PaymentProviderConfig.from_settings(), transport=mock) as registry:
        registry.get("mollie").fetch_status("tr_123")
"""

from __future__ import annotations

import atexit
import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings

from payments.adapters.mollie_adapter import MollieAdapter
from payments.adapters.noda_adapter import NodaAdapter
from payments.adapters.ponto_adapter import PontoAdapter
from payments.exceptions import ProviderNotConfiguredError
from payments.state_machines import PaymentProvider

if TYPE_CHECKING:
    import httpx

    from payments.adapters.base import PaymentProviderAdapter

logger = logging.getLogger(__name__)

ADAPTER_CLASSES: dict[str, type[PaymentProviderAdapter]] = {
    PaymentProvider.MOLLIE: MollieAdapter,
    PaymentProvider.PONTO: PontoAdapter,
    PaymentProvider.NODA: NodaAdapter,
}


@dataclass(frozen=True)
class PaymentProviderConfig:
    """
    Immutable provider configuration.

    A provider whose credentials are empty is disabled.
    """

    mollie_api_key: str = ""
    mollie_api_url: str = "https://api.mollie.com/v2"
    ponto_client_id: str = ""
    ponto_client_secret: str = ""
    ponto_api_url: str = "https://api.ibanity.com"
    noda_api_key: str = ""
    noda_api_url: str = "https://api.noda.live/v1"
    noda_webhook_secret: str = ""
    timeout_seconds: float = 10.0
    poll_timeout_seconds: float = 5.0
    webhook_base_url: str = ""
    redirect_url: str = "calymob://payment/return"

    @classmethod
    def from_settings(cls) -> PaymentProviderConfig:
        """Build the configuration from Django settings."""
        return cls(
            mollie_api_key=settings.MOLLIE_API_KEY,
            mollie_api_url=settings.MOLLIE_API_URL,
            ponto_client_id=settings.PONTO_CLIENT_ID,
            ponto_client_secret=settings.PONTO_CLIENT_SECRET,
            ponto_api_url=settings.PONTO_API_URL,
            noda_api_key=settings.NODA_API_KEY,
            noda_api_url=settings.NODA_API_URL,
            noda_webhook_secret=settings.NODA_WEBHOOK_SECRET,
            timeout_seconds=settings.PAYMENT_PROVIDER_TIMEOUT_SECONDS,
            poll_timeout_seconds=settings.PAYMENT_STATUS_POLL_TIMEOUT_SECONDS,
            webhook_base_url=settings.PAYMENT_WEBHOOK_BASE_URL,
            redirect_url=settings.PAYMENT_REDIRECT_URL,
        )

    def is_enabled(self, provider: str) -> bool:
        if provider == PaymentProvider.MOLLIE:
            return bool(self.mollie_api_key)
        if provider == PaymentProvider.PONTO:
            return bool(self.ponto_client_id and self.ponto_client_secret)
        if provider == PaymentProvider.NODA:
            return bool(self.noda_api_key)
        return False

    def webhook_url(self, provider: str) -> str | None:
        """Public webhook URL for a provider, or None when no base URL is set."""
        if not self.webhook_base_url:
            return None
        return f"{self.webhook_base_url.rstrip('/')}/api/v1/payments/webhooks/{provider}/"


class ProviderRegistry:
    """
    Adapter lookup keyed by provider.

    Adapters are created lazily and reused; ``close()`` releases their
    HTTP connections. An optional httpx transport is passed to every
    adapter (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        config: PaymentProviderConfig,
        transport: httpx.BaseTransport | None = None,
    ):
        self.config = config
        self._transport = transport
        self._adapters: dict[str, PaymentProviderAdapter] = {}
        self._lock = threading.Lock()

    def __enter__(self) -> ProviderRegistry:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def is_enabled(self, provider: str) -> bool:
        return provider in ADAPTER_CLASSES and self.config.is_enabled(provider)

    def enabled_providers(self) -> list[str]:
        return [provider for provider in ADAPTER_CLASSES if self.config.is_enabled(provider)]

    def get(self, provider: str) -> PaymentProviderAdapter:
        """
        Return the adapter for a provider.

        Raises:
            ProviderNotConfiguredError: Unknown provider or empty credentials
        """
        if not self.is_enabled(provider):
            raise ProviderNotConfiguredError(
                f"Payment provider '{provider}' is not configured",
                provider=str(provider),
            )
        with self._lock:
            adapter = self._adapters.get(provider)
            if adapter is None:
                adapter = ADAPTER_CLASSES[provider](self.config, transport=self._transport)
                self._adapters[provider] = adapter
            return adapter

    def close(self) -> None:
        with self._lock:
            adapters = list(self._adapters.values())
            self._adapters.clear()
        for adapter in adapters:
            adapter.close()


_registry: ProviderRegistry | None = None
_registry_lock = threading.Lock()


def get_provider_registry() -> ProviderRegistry:
    """Process-wide registry built from settings on first use."""
    global _registry
    with _registry_lock:
        if _registry is None:
            _registry = ProviderRegistry(PaymentProviderConfig.from_settings())
            atexit.register(_registry.close)
            logger.info(
                "Payment provider registry initialized",
                extra={"providers": _registry.enabled_providers()},
            )
        return _registry


def set_provider_registry(registry: ProviderRegistry | None) -> None:
    """Replace the process-wide registry, closing the previous one."""
    global _registry
    with _registry_lock:
        previous, _registry = _registry, registry
    if previous is not None and previous is not registry:
        previous.close()


def reset_provider_registry() -> None:
    """Drop the process-wide registry; the next call rebuilds it from settings."""
    set_provider_registry(None)
