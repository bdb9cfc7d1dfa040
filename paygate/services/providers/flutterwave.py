"""Flutterwave adapter: the multi-currency provider for every non-domestic currency."""

import hashlib
from typing import Any

from paygate.common.state_machine import COMPLETED, FAILED
from paygate.services.providers.base import (
    EventKind,
    InitializeResult,
    PaymentIntent,
    ProviderAdapter,
    VerifyResult,
    WebhookEvent,
    to_major_units,
)


# Payment channels Flutterwave offers per currency; anything else gets cards only.
PAYMENT_OPTIONS: dict[str, str] = {
    "USD": "card",
    "GHS": "card,mobilemoneyghana",
    "KES": "card,mpesa",
}


class FlutterwaveAdapter(ProviderAdapter):
    name = "flutterwave"
    signature_header = "verif-hash"

    def _succeeded(self, body: dict[str, Any]) -> bool:
        return body.get("status") == "success"

    def compute_signature(self, payload: bytes) -> str:
        return self._hmac_hex(payload, hashlib.sha256)

    async def initialize(self, intent: PaymentIntent) -> InitializeResult:
        # Flutterwave takes major units, so no minor-unit conversion on this side.
        body = await self._request(
            "initialize",
            "POST",
            "/payments",
            json={
                "tx_ref": intent.reference,
                "amount": str(intent.amount),
                "currency": intent.currency,
                "redirect_url": intent.redirect_url,
                "payment_options": PAYMENT_OPTIONS.get(intent.currency, "card"),
                "customer": {
                    "email": intent.email,
                    "name": intent.metadata.get("customer_name") or "Customer",
                },
                "customizations": {
                    "title": "Payment Gateway Service",
                    "description": intent.metadata.get("description") or "Payment for items in cart",
                },
                "meta": {"payment_id": intent.payment_id, **intent.metadata},
            },
        )

        def parse(data: dict[str, Any]) -> InitializeResult:
            data = data["data"]
            return InitializeResult(
                authorization_url=data["link"],
                provider_reference=str(data.get("id") or intent.reference),
            )

        return self._decode("initialize", parse, body)

    async def verify(self, reference: str) -> VerifyResult:
        body = await self._request(
            "verify",
            "GET",
            "/transactions/verify_by_reference",
            params={"tx_ref": reference},
        )

        def parse(data: dict[str, Any]) -> VerifyResult:
            data = data["data"]
            return VerifyResult(
                status=COMPLETED if data["status"] == "successful" else FAILED,
                reference=data["tx_ref"],
                amount=to_major_units(data["amount"]),
                currency=data["currency"],
                paid_at=data.get("created_at"),
                raw={
                    "gateway_status": data["status"],
                    "flw_ref": data.get("flw_ref"),
                    "channel": data.get("payment_type"),
                    "fees": data.get("app_fee"),
                    "processor_response": data.get("processor_response"),
                },
            )

        return self._decode("verify", parse, body)

    def _map_event(self, body: dict[str, Any]) -> WebhookEvent:
        event = body.get("event")
        if event not in ("charge.completed", "charge.failed"):
            return WebhookEvent(kind=EventKind.UNHANDLED, provider_event=event)

        data = body["data"]
        # `charge.completed` is also sent for failed charges; the data status decides
        # and a missing status is a malformed delivery.
        completed = event == "charge.completed" and data["status"] == "successful"
        return WebhookEvent(
            kind=EventKind.PAYMENT_COMPLETED if completed else EventKind.PAYMENT_FAILED,
            reference=data["tx_ref"],
            amount=to_major_units(data["amount"]),
            currency=data["currency"],
            paid_at=data.get("created_at") if completed else None,
            provider_event=event,
        )
