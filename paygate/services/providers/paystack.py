"""Paystack adapter: the low-latency domestic (NGN) provider.

Paystack takes amounts in kobo, answers with a boolean `status` flag and signs
webhooks with HMAC-SHA512 of the raw body keyed by the secret key.
"""

import hashlib
from typing import Any
from urllib.parse import quote

from paygate.common.state_machine import COMPLETED, FAILED
from paygate.services.providers.base import (
    EventKind,
    InitializeResult,
    PaymentIntent,
    ProviderAdapter,
    VerifyResult,
    WebhookEvent,
    from_minor_units,
    to_minor_units,
)


class PaystackAdapter(ProviderAdapter):
    name = "paystack"
    signature_header = "x-paystack-signature"

    def _succeeded(self, body: dict[str, Any]) -> bool:
        return body.get("status") is True

    def compute_signature(self, payload: bytes) -> str:
        return self._hmac_hex(payload, hashlib.sha512)

    async def initialize(self, intent: PaymentIntent) -> InitializeResult:
        body = await self._request(
            "initialize",
            "POST",
            "/transaction/initialize",
            json={
                "email": intent.email,
                "amount": to_minor_units(intent.amount),
                "currency": intent.currency,
                "reference": intent.reference,
                "callback_url": intent.redirect_url,
                "metadata": {"payment_id": intent.payment_id, **intent.metadata},
            },
        )

        def parse(data: dict[str, Any]) -> InitializeResult:
            data = data["data"]
            return InitializeResult(
                authorization_url=data["authorization_url"],
                provider_reference=data.get("access_code") or data["reference"],
            )

        return self._decode("initialize", parse, body)

    async def verify(self, reference: str) -> VerifyResult:
        body = await self._request("verify", "GET", f"/transaction/verify/{quote(reference, safe='')}")

        def parse(data: dict[str, Any]) -> VerifyResult:
            data = data["data"]
            return VerifyResult(
                status=COMPLETED if data["status"] == "success" else FAILED,
                reference=data["reference"],
                amount=from_minor_units(data["amount"]),
                currency=data["currency"],
                paid_at=data.get("paid_at"),
                raw={
                    "gateway_status": data["status"],
                    "channel": data.get("channel"),
                    "fees": str(from_minor_units(data["fees"])) if data.get("fees") is not None else None,
                    "gateway_response": data.get("gateway_response"),
                },
            )

        return self._decode("verify", parse, body)

    def _map_event(self, body: dict[str, Any]) -> WebhookEvent:
        event = body.get("event")
        if event not in ("charge.success", "charge.failed"):
            return WebhookEvent(kind=EventKind.UNHANDLED, provider_event=event)

        data = body["data"]
        completed = event == "charge.success"
        return WebhookEvent(
            kind=EventKind.PAYMENT_COMPLETED if completed else EventKind.PAYMENT_FAILED,
            reference=data["reference"],
            amount=from_minor_units(data["amount"]),
            currency=data["currency"],
            paid_at=data.get("paid_at") if completed else None,
            provider_event=event,
        )
