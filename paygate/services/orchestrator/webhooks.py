"""Inbound webhook authentication and normalization."""

from paygate.common.errors import AuthError
from paygate.common.logging import logger
from paygate.common.metrics import webhook_events_total, webhook_rejected_total
from paygate.services.providers.base import WebhookEvent
from paygate.services.providers.registry import ProviderRegistry


class WebhookProcessor:
    """Delegates signature checks and decoding to the named provider's adapter.

    An `unhandled` event is a successful decode of an event type we do not act
    on; callers acknowledge it and the provider must not retry.
    """

    def __init__(self, registry: ProviderRegistry) -> None:
        self.registry = registry

    def signature_header(self, provider_name: str) -> str:
        return self.registry.get(provider_name).signature_header

    def process(self, provider_name: str, payload: bytes, signature: str | None) -> WebhookEvent:
        adapter = self.registry.get(provider_name)
        try:
            event = adapter.decode_webhook(payload, signature)
        except AuthError:
            webhook_rejected_total.labels(provider=provider_name, reason="signature").inc()
            logger.warning("webhook_rejected provider=%s reason=signature", provider_name)
            raise
        webhook_events_total.labels(provider=provider_name, kind=event.kind.value).inc()
        logger.info(
            "webhook_decoded provider=%s kind=%s provider_event=%s reference=%s",
            provider_name,
            event.kind.value,
            event.provider_event,
            event.reference,
        )
        return event
