"""Currency routing tests for the provider registry."""

import httpx
import pytest

from paygate.common.config import CommonSettings
from paygate.common.errors import NotFoundError, ValidationError
from paygate.services.providers.registry import ProviderRegistry, build_registry


@pytest.fixture
def configured():
    settings = CommonSettings(paystack_secret_key="sk_test", flutterwave_secret_key="flw_test")
    return build_registry(settings, httpx.AsyncClient())


def test_domestic_currency_routes_to_paystack(configured):
    assert configured.select_provider("NGN") == "paystack"


@pytest.mark.parametrize("currency", ["USD", "GHS", "KES"])
def test_foreign_currencies_route_to_flutterwave(configured, currency):
    assert configured.select_provider(currency) == "flutterwave"


def test_selection_is_total_and_deterministic(configured):
    """Every supported currency maps to exactly one known provider, every time."""

    for currency in configured.supported_currencies:
        first = configured.select_provider(currency)
        assert first in configured.provider_names
        assert all(configured.select_provider(currency) == first for _ in range(5))


def test_lowercase_currency_is_normalized(configured):
    assert configured.select_provider("ngn") == "paystack"


def test_unsupported_currency_rejected(configured):
    with pytest.raises(ValidationError):
        configured.select_provider("EUR")


def test_unknown_provider_name(configured):
    with pytest.raises(NotFoundError):
        configured.get("stripe")


def test_routes_must_reference_known_adapters():
    """A route pointing at a provider with no adapter is a wiring bug."""

    with pytest.raises(ValueError):
        ProviderRegistry({"NGN": "missing"}, {})
