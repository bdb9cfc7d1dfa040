"""Provider adapter contract and the shared outbound-call plumbing.

Every adapter turns a generic `PaymentIntent` into one provider HTTP call and
normalizes the answer. Failures are classified once, here, into the shared
error taxonomy:

* provider said no (non-2xx or a failure flag in the body) -> `ProviderError`
* network error or timeout -> `TransportError` (retryable)
* body we cannot decode -> `InternalError`

Each class is logged with its own message so operators can tell them apart even
though the orchestrator treats them alike.
"""

import hmac
import json
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from time import perf_counter
from typing import Any

import httpx
from pydantic import BaseModel, Field

from paygate.common.errors import AuthError, InternalError, ProviderError, TransportError
from paygate.common.logging import logger
from paygate.common.metrics import provider_call_duration_seconds, provider_calls_total
from paygate.common.tracing import tracer


MINOR_UNIT_FACTOR = Decimal(100)
TWO_PLACES = Decimal("0.01")
DECODE_ERRORS = (KeyError, TypeError, ValueError, ArithmeticError)


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount (e.g. naira) to integer minor units (kobo)."""

    return int((Decimal(amount) * MINOR_UNIT_FACTOR).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(value: Any) -> Decimal:
    return (Decimal(str(value)) / MINOR_UNIT_FACTOR).quantize(TWO_PLACES)


def to_major_units(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(TWO_PLACES)


class EventKind(str, Enum):
    PAYMENT_COMPLETED = "payment_completed"
    PAYMENT_FAILED = "payment_failed"
    UNHANDLED = "unhandled"


class PaymentIntent(BaseModel):
    """Everything an adapter needs to open a checkout with its provider."""

    payment_id: str
    reference: str
    amount: Decimal
    currency: str
    email: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    redirect_url: str


class InitializeResult(BaseModel):
    authorization_url: str
    provider_reference: str


class VerifyResult(BaseModel):
    """Normalized answer to "did this payment complete?"."""

    status: str
    reference: str
    amount: Decimal
    currency: str
    paid_at: datetime | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


class WebhookEvent(BaseModel):
    kind: EventKind
    reference: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    paid_at: datetime | None = None
    provider_event: str | None = None


class ProviderAdapter(ABC):
    """Base class for one payment provider integration."""

    name: str = ""
    signature_header: str = ""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        secret_key: str,
        webhook_secret: str | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret if webhook_secret is not None else secret_key
        self.timeout_seconds = timeout_seconds

    @abstractmethod
    async def initialize(self, intent: PaymentIntent) -> InitializeResult:
        """Open a checkout and return where to send the payer."""

    @abstractmethod
    async def verify(self, reference: str) -> VerifyResult:
        """Ask the provider whether the payment completed."""

    @abstractmethod
    def compute_signature(self, payload: bytes) -> str:
        """Return the signature the provider would send for `payload`."""

    @abstractmethod
    def _map_event(self, body: dict[str, Any]) -> WebhookEvent:
        """Translate the provider's event taxonomy into a `WebhookEvent`."""

    @abstractmethod
    def _succeeded(self, body: dict[str, Any]) -> bool:
        """Whether a decoded response body reports success."""

    def decode_webhook(self, payload: bytes, signature: str | None) -> WebhookEvent:
        """Authenticate and decode one webhook delivery.

        Fails closed: a missing secret, a missing signature or a mismatch all
        raise `AuthError` before the body is parsed.
        """

        if not self.webhook_secret or not signature:
            raise AuthError("Invalid webhook signature")
        expected = self.compute_signature(payload)
        if not hmac.compare_digest(expected, signature.strip().lower()):
            raise AuthError("Invalid webhook signature")

        try:
            body = json.loads(payload)
        except ValueError as exc:
            logger.error("webhook_decode_error provider=%s error=%s", self.name, exc)
            raise InternalError("Webhook body is not valid JSON") from exc
        if not isinstance(body, dict):
            raise InternalError("Webhook body must be a JSON object")

        try:
            return self._map_event(body)
        except DECODE_ERRORS as exc:
            logger.error("webhook_decode_error provider=%s error=%s", self.name, exc)
            raise InternalError("Webhook body is missing required fields") from exc

    def _hmac_hex(self, payload: bytes, digestmod) -> str:
        return hmac.new(self.webhook_secret.encode("utf-8"), payload, digestmod).hexdigest()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, operation: str, method: str, path: str, **kwargs) -> dict[str, Any]:
        """Perform one bounded outbound call and return the decoded success body."""

        url = f"{self.base_url}{path}"
        start = perf_counter()
        outcome = "success"
        with tracer.start_as_current_span(f"provider.{operation}") as span:
            span.set_attribute("provider.name", self.name)
            try:
                resp = await self.client.request(
                    method,
                    url,
                    headers=self._headers(),
                    timeout=self.timeout_seconds,
                    **kwargs,
                )
            except httpx.TimeoutException as exc:
                outcome = "timeout"
                logger.warning("provider_timeout provider=%s operation=%s error=%s", self.name, operation, exc)
                raise TransportError(
                    f"Timed out waiting for {self.name}", provider=self.name, detail=str(exc)
                ) from exc
            except httpx.TransportError as exc:
                outcome = "network_error"
                logger.warning("provider_network_error provider=%s operation=%s error=%s", self.name, operation, exc)
                raise TransportError(
                    f"Network error - unable to connect to {self.name}", provider=self.name, detail=str(exc)
                ) from exc
            finally:
                provider_call_duration_seconds.labels(provider=self.name, operation=operation).observe(
                    max(0.0, perf_counter() - start)
                )
                if outcome != "success":
                    provider_calls_total.labels(provider=self.name, operation=operation, outcome=outcome).inc()

            span.set_attribute("http.status_code", resp.status_code)
            try:
                body = resp.json()
            except ValueError as exc:
                provider_calls_total.labels(provider=self.name, operation=operation, outcome="decode_error").inc()
                logger.error(
                    "provider_decode_error provider=%s operation=%s status_code=%s",
                    self.name,
                    operation,
                    resp.status_code,
                )
                raise InternalError(f"Unreadable response from {self.name}") from exc
            if not isinstance(body, dict):
                provider_calls_total.labels(provider=self.name, operation=operation, outcome="decode_error").inc()
                raise InternalError(f"Unexpected response shape from {self.name}")

            if resp.status_code >= 400 or not self._succeeded(body):
                provider_calls_total.labels(provider=self.name, operation=operation, outcome="rejected").inc()
                message = body.get("message") or f"{self.name} {operation} failed"
                logger.warning(
                    "provider_rejected provider=%s operation=%s status_code=%s message=%s",
                    self.name,
                    operation,
                    resp.status_code,
                    message,
                )
                raise ProviderError(str(message), provider=self.name, detail=f"status_code={resp.status_code}")

            provider_calls_total.labels(provider=self.name, operation=operation, outcome="success").inc()
            return body

    def _decode(self, operation: str, parse, body: dict[str, Any]):
        """Run `parse(body)` and turn missing/garbled fields into `InternalError`."""

        try:
            return parse(body)
        except DECODE_ERRORS as exc:
            logger.error("provider_decode_error provider=%s operation=%s error=%s", self.name, operation, exc)
            raise InternalError(f"Unexpected response shape from {self.name}") from exc

