"""Currency-to-provider routing.

The registry is the only place that knows which provider serves which
currency. Adding a provider means one adapter class plus one entry in
`build_registry`; the orchestrator never names a provider.
"""

import httpx

from paygate.common.config import CommonSettings
from paygate.common.errors import NotFoundError, ValidationError
from paygate.services.providers.base import ProviderAdapter
from paygate.services.providers.flutterwave import FlutterwaveAdapter
from paygate.services.providers.paystack import PaystackAdapter


class ProviderRegistry:
    """Maps currency codes to provider names and provider names to adapters."""

    def __init__(self, routes: dict[str, str], adapters: dict[str, ProviderAdapter]) -> None:
        missing = set(routes.values()) - set(adapters)
        if missing:
            raise ValueError(f"routes reference unknown providers: {sorted(missing)}")
        self._routes = {currency.upper(): name for currency, name in routes.items()}
        self._adapters = dict(adapters)

    @property
    def supported_currencies(self) -> tuple[str, ...]:
        return tuple(self._routes)

    @property
    def provider_names(self) -> tuple[str, ...]:
        return tuple(self._adapters)

    def select_provider(self, currency: str) -> str:
        """Return the provider name for an already-validated currency."""

        try:
            return self._routes[currency.upper()]
        except KeyError:
            raise ValidationError([f"Unsupported currency: {currency}"]) from None

    def get(self, name: str) -> ProviderAdapter:
        adapter = self._adapters.get(name)
        if adapter is None:
            raise NotFoundError(f"Unknown payment provider: {name}")
        return adapter


def build_registry(settings: CommonSettings, client: httpx.AsyncClient) -> ProviderRegistry:
    """Wire the configured adapters: domestic currency to Paystack, the rest to Flutterwave."""

    paystack = PaystackAdapter(
        client,
        base_url=settings.paystack_base_url,
        secret_key=settings.paystack_secret_key,
        timeout_seconds=settings.provider_timeout_seconds,
    )
    flutterwave = FlutterwaveAdapter(
        client,
        base_url=settings.flutterwave_base_url,
        secret_key=settings.flutterwave_secret_key,
        webhook_secret=settings.flutterwave_webhook_secret,
        timeout_seconds=settings.provider_timeout_seconds,
    )
    domestic = settings.domestic_currency.upper()
    routes = {
        currency.upper(): paystack.name if currency.upper() == domestic else flutterwave.name
        for currency in settings.supported_currencies
    }
    return ProviderRegistry(routes, {paystack.name: paystack, flutterwave.name: flutterwave})
