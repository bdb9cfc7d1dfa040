"""Adapter tests against mocked provider HTTP APIs."""

import hashlib
import hmac
import json
from decimal import Decimal

import httpx
import pytest

from paygate.common.errors import AuthError, InternalError, ProviderError, TransportError
from paygate.services.providers.base import EventKind, PaymentIntent, from_minor_units, to_minor_units
from paygate.services.providers.flutterwave import FlutterwaveAdapter
from paygate.services.providers.paystack import PaystackAdapter


def make_intent(**overrides) -> PaymentIntent:
    values = {
        "payment_id": "pay-1",
        "reference": "PAY_TEST0001",
        "amount": Decimal("1000"),
        "currency": "NGN",
        "email": "a@b.com",
        "metadata": {"order_id": "ord-9"},
        "redirect_url": "http://localhost:3000/payment/callback",
    }
    values.update(overrides)
    return PaymentIntent(**values)


def paystack(handler) -> PaystackAdapter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PaystackAdapter(client, base_url="https://api.paystack.test", secret_key="sk_test")


def flutterwave(handler, webhook_secret: str = "flw-hash") -> FlutterwaveAdapter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FlutterwaveAdapter(
        client,
        base_url="https://api.flutterwave.test/v3",
        secret_key="flw_test",
        webhook_secret=webhook_secret,
    )


def test_minor_unit_conversion_round_trips():
    for amount in ["0.01", "1", "1000", "1234.56", "99999999.99"]:
        assert from_minor_units(to_minor_units(Decimal(amount))) == Decimal(amount)


async def test_paystack_initialize_sends_kobo_and_metadata():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "status": True,
                "message": "Authorization URL created",
                "data": {
                    "authorization_url": "https://checkout.paystack.com/abc",
                    "access_code": "abc",
                    "reference": "PAY_TEST0001",
                },
            },
        )

    result = await paystack(handler).initialize(make_intent())

    assert seen["url"] == "https://api.paystack.test/transaction/initialize"
    assert seen["auth"] == "Bearer sk_test"
    assert seen["body"]["amount"] == 100000
    assert seen["body"]["reference"] == "PAY_TEST0001"
    assert seen["body"]["metadata"] == {"payment_id": "pay-1", "order_id": "ord-9"}
    assert result.authorization_url == "https://checkout.paystack.com/abc"
    assert result.provider_reference == "abc"


async def test_paystack_amount_round_trips_through_verify():
    """Kobo sent at initialize comes back as the original naira amount at verify."""

    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/transaction/initialize"):
            captured["amount"] = json.loads(request.content)["amount"]
            return httpx.Response(
                200,
                json={"status": True, "data": {"authorization_url": "https://x", "access_code": "c", "reference": "r"}},
            )
        return httpx.Response(
            200,
            json={
                "status": True,
                "data": {
                    "status": "success",
                    "reference": "PAY_TEST0001",
                    "amount": captured["amount"],
                    "currency": "NGN",
                    "paid_at": "2026-10-17T09:30:00.000Z",
                    "channel": "card",
                    "fees": 1500,
                },
            },
        )

    adapter = paystack(handler)
    await adapter.initialize(make_intent(amount=Decimal("1234.56")))
    result = await adapter.verify("PAY_TEST0001")

    assert result.amount == Decimal("1234.56")
    assert result.status == "completed"
    assert result.paid_at is not None
    assert result.raw["fees"] == "15.00"


async def test_paystack_verify_maps_non_success_to_failed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "status": True,
                "data": {"status": "abandoned", "reference": "PAY_X", "amount": 5000, "currency": "NGN"},
            },
        )

    result = await paystack(handler).verify("PAY_X")

    assert result.status == "failed"
    assert result.amount == Decimal("50.00")


async def test_provider_business_failure_is_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"status": False, "message": "Invalid Email Address Passed"})

    with pytest.raises(ProviderError) as excinfo:
        await paystack(handler).initialize(make_intent())

    assert excinfo.value.message == "Invalid Email Address Passed"
    assert excinfo.value.provider == "paystack"
    assert not excinfo.value.retryable


async def test_failure_flag_on_200_is_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "error", "message": "Invalid currency"})

    with pytest.raises(ProviderError):
        await flutterwave(handler).initialize(make_intent(currency="USD"))


async def test_timeout_is_retryable_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(TransportError) as excinfo:
        await paystack(handler).verify("PAY_X")

    assert excinfo.value.retryable


async def test_connection_failure_is_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError):
        await flutterwave(handler).initialize(make_intent(currency="USD"))


async def test_unreadable_body_is_internal_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>gateway error</html>")

    with pytest.raises(InternalError):
        await paystack(handler).initialize(make_intent())


async def test_missing_fields_is_internal_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": True, "data": {}})

    with pytest.raises(InternalError):
        await paystack(handler).verify("PAY_X")


async def test_flutterwave_initialize_and_verify():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"status": "success", "data": {"link": "https://checkout.flutterwave.com/v3/hosted/pay/xyz"}},
            )
        seen["tx_ref"] = request.url.params["tx_ref"]
        return httpx.Response(
            200,
            json={
                "status": "success",
                "data": {
                    "status": "successful",
                    "tx_ref": "PAY_TEST0001",
                    "flw_ref": "FLW-1",
                    "amount": 250.5,
                    "currency": "USD",
                    "created_at": "2026-10-17T09:30:00.000Z",
                },
            },
        )

    adapter = flutterwave(handler)
    init = await adapter.initialize(make_intent(currency="USD", amount=Decimal("250.50")))
    result = await adapter.verify("PAY_TEST0001")

    assert seen["body"]["tx_ref"] == "PAY_TEST0001"
    assert Decimal(seen["body"]["amount"]) == Decimal("250.50")
    assert seen["body"]["customer"]["email"] == "a@b.com"
    assert seen["body"]["meta"]["payment_id"] == "pay-1"
    assert init.authorization_url.endswith("/xyz")
    assert seen["tx_ref"] == "PAY_TEST0001"
    assert result.status == "completed"
    assert result.amount == Decimal("250.50")
    assert result.raw["flw_ref"] == "FLW-1"


def test_paystack_webhook_with_valid_signature():
    adapter = paystack(lambda request: httpx.Response(500))
    body = json.dumps(
        {
            "event": "charge.success",
            "data": {"reference": "PAY_X", "amount": 100000, "currency": "NGN", "paid_at": "2026-10-17T09:30:00Z"},
        }
    ).encode()
    signature = hmac.new(b"sk_test", body, hashlib.sha512).hexdigest()

    event = adapter.decode_webhook(body, signature)

    assert event.kind == EventKind.PAYMENT_COMPLETED
    assert event.reference == "PAY_X"
    assert event.amount == Decimal("1000.00")


def test_paystack_webhook_failed_and_unhandled_events():
    adapter = paystack(lambda request: httpx.Response(500))
    failed = json.dumps(
        {"event": "charge.failed", "data": {"reference": "PAY_X", "amount": 100, "currency": "NGN"}}
    ).encode()
    other = json.dumps({"event": "transfer.success", "data": {}}).encode()

    assert adapter.decode_webhook(failed, adapter.compute_signature(failed)).kind == EventKind.PAYMENT_FAILED
    assert adapter.decode_webhook(other, adapter.compute_signature(other)).kind == EventKind.UNHANDLED


@pytest.mark.parametrize("signature", [None, "", "deadbeef"])
def test_webhook_fails_closed_on_bad_signature(signature):
    adapter = paystack(lambda request: httpx.Response(500))
    body = b'{"event": "charge.success", "data": {"reference": "PAY_X"}}'

    with pytest.raises(AuthError):
        adapter.decode_webhook(body, signature)


def test_webhook_signature_over_tampered_body_rejected():
    adapter = flutterwave(lambda request: httpx.Response(500))
    body = b'{"event": "charge.completed", "data": {"tx_ref": "PAY_X", "amount": 10, "currency": "USD"}}'
    signature = adapter.compute_signature(body)

    with pytest.raises(AuthError):
        adapter.decode_webhook(body.replace(b"10", b"99"), signature)


def test_webhook_without_configured_secret_rejects_everything():
    adapter = flutterwave(lambda request: httpx.Response(500), webhook_secret="")
    body = b'{"event": "charge.completed"}'

    with pytest.raises(AuthError):
        adapter.decode_webhook(body, hmac.new(b"", body, hashlib.sha256).hexdigest())


def test_flutterwave_charge_completed_uses_data_status():
    adapter = flutterwave(lambda request: httpx.Response(500))
    ok = json.dumps(
        {"event": "charge.completed", "data": {"tx_ref": "PAY_X", "status": "successful", "amount": 10, "currency": "USD"}}
    ).encode()
    bad = json.dumps(
        {"event": "charge.completed", "data": {"tx_ref": "PAY_X", "status": "failed", "amount": 10, "currency": "USD"}}
    ).encode()

    ok_sig = hmac.new(b"flw-hash", ok, hashlib.sha256).hexdigest()
    assert adapter.decode_webhook(ok, ok_sig).kind == EventKind.PAYMENT_COMPLETED
    assert adapter.decode_webhook(bad, adapter.compute_signature(bad)).kind == EventKind.PAYMENT_FAILED


def test_flutterwave_charge_completed_without_status_is_not_a_completion():
    adapter = flutterwave(lambda request: httpx.Response(500))
    body = json.dumps(
        {"event": "charge.completed", "data": {"tx_ref": "PAY_X", "amount": 10, "currency": "USD"}}
    ).encode()

    with pytest.raises(InternalError):
        adapter.decode_webhook(body, adapter.compute_signature(body))


def test_signed_but_malformed_webhook_is_internal_error():
    adapter = paystack(lambda request: httpx.Response(500))
    body = b"not json"

    with pytest.raises(InternalError):
        adapter.decode_webhook(body, adapter.compute_signature(body))
