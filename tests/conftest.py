"""Shared fixtures: an in-memory store and scripted provider adapters."""

import hashlib
import json
from decimal import Decimal
from typing import Any

import pytest

from paygate.common.db import Base, make_engine, make_session_factory
from paygate.common.state_machine import COMPLETED
from paygate.services.orchestrator.service import OrchestratorService
from paygate.services.orchestrator.store import PaymentStore
from paygate.services.providers.base import (
    EventKind,
    InitializeResult,
    PaymentIntent,
    ProviderAdapter,
    VerifyResult,
    WebhookEvent,
)
from paygate.services.providers.registry import ProviderRegistry


class FakeAdapter(ProviderAdapter):
    """Provider double that records calls and answers from scripted fields."""

    signature_header = "x-fake-signature"

    def __init__(self, name: str) -> None:
        super().__init__(None, base_url="https://fake.invalid", secret_key=f"{name}-secret")
        self.name = name
        self.initialize_calls: list[PaymentIntent] = []
        self.verify_calls: list[str] = []
        self.initialize_error: Exception | None = None
        self.verify_error: Exception | None = None
        self.verify_status = COMPLETED
        self.intents: dict[str, PaymentIntent] = {}

    async def initialize(self, intent: PaymentIntent) -> InitializeResult:
        self.initialize_calls.append(intent)
        self.intents[intent.reference] = intent
        if self.initialize_error is not None:
            raise self.initialize_error
        return InitializeResult(
            authorization_url=f"https://checkout.{self.name}.test/{intent.reference}",
            provider_reference=f"{self.name}-{intent.reference}",
        )

    async def verify(self, reference: str) -> VerifyResult:
        self.verify_calls.append(reference)
        if self.verify_error is not None:
            raise self.verify_error
        intent = self.intents[reference]
        return VerifyResult(
            status=self.verify_status,
            reference=reference,
            amount=intent.amount,
            currency=intent.currency,
            paid_at="2026-10-17T09:30:00Z" if self.verify_status == COMPLETED else None,
        )

    def compute_signature(self, payload: bytes) -> str:
        return self._hmac_hex(payload, hashlib.sha256)

    def _succeeded(self, body: dict[str, Any]) -> bool:
        return True

    def _map_event(self, body: dict[str, Any]) -> WebhookEvent:
        kinds = {"paid": EventKind.PAYMENT_COMPLETED, "declined": EventKind.PAYMENT_FAILED}
        kind = kinds.get(body["event"], EventKind.UNHANDLED)
        if kind == EventKind.UNHANDLED:
            return WebhookEvent(kind=kind, provider_event=body["event"])
        return WebhookEvent(
            kind=kind,
            reference=body["reference"],
            amount=Decimal(str(body.get("amount", "0"))),
            currency=body.get("currency"),
            provider_event=body["event"],
        )

    def signed(self, body: dict[str, Any]) -> tuple[bytes, str]:
        payload = json.dumps(body).encode("utf-8")
        return payload, self.compute_signature(payload)


@pytest.fixture
def store() -> PaymentStore:
    engine = make_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield PaymentStore(make_session_factory(engine))
    engine.dispose()


@pytest.fixture
def domestic() -> FakeAdapter:
    return FakeAdapter("domestic")


@pytest.fixture
def foreign() -> FakeAdapter:
    return FakeAdapter("foreign")


@pytest.fixture
def registry(domestic: FakeAdapter, foreign: FakeAdapter) -> ProviderRegistry:
    return ProviderRegistry(
        {"NGN": domestic.name, "USD": foreign.name, "GHS": foreign.name, "KES": foreign.name},
        {domestic.name: domestic, foreign.name: foreign},
    )


@pytest.fixture
def service(store: PaymentStore, registry: ProviderRegistry) -> OrchestratorService:
    return OrchestratorService(store, registry, redirect_url="http://localhost:3000/payment/callback")

