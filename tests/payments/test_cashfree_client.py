import json
import time
from decimal import Decimal

import httpx
import pytest

from application.dtos.payments import CreateOrder, TransferRequest
from core.settings import GatewaySettings, PayoutSettings, WebhookSettings
from domain.payment.events import (
    PaymentFailedEvent,
    PaymentSucceededEvent,
    PayoutFailedEvent,
    PayoutSucceededEvent,
)
from domain.payment.exceptions import (
    GatewayAuthMismatch,
    GatewayRejected,
    GatewayUnavailable,
    MalformedWebhook,
    PayoutDispatchError,
    WebhookSignatureError,
)
from infrastructure.external.payments.cashfree_client import (
    CashfreeClient,
    compute_signature,
    parse_gateway_event,
)
from infrastructure.external.payments.cashfree_payouts import CashfreePayoutClient, parse_payout_event


class Recorder:
    """httpx.MockTransport handler returning canned responses."""

    def __init__(self, status_code: int = 200, payload=None):
        self.status_code = status_code
        self.payload = payload or {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.payload)

    @property
    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


def _gateway(recorder: Recorder, **gateway) -> CashfreeClient:
    gateway.setdefault("app_id", "app_test")
    gateway.setdefault("secret_key", "secret_test")
    return CashfreeClient(
        GatewaySettings(**gateway),
        webhook=WebhookSettings(secret="whsec_test"),
        transport=httpx.MockTransport(recorder),
    )


def _order(**overrides) -> CreateOrder:
    fields = dict(
        order_token="uplink_abc",
        amount=Decimal("100.00"),
        currency="INR",
        customer_id="user_2",
        customer_name="Ravi",
        customer_email="ravi@example.com",
        return_url="https://shop.test/return",
        notify_url="https://api.test/api/v1/payments/webhook",
        tags={"file_id": "3"},
    )
    fields.update(overrides)
    return CreateOrder(**fields)


@pytest.mark.asyncio
async def test_create_order_request_and_mapping():
    recorder = Recorder(payload={"cf_order_id": 2149460581, "payment_session_id": "session_abc", "order_status": "ACTIVE"})
    client = _gateway(recorder)

    order = await client.create_order(_order())
    await client.aclose()

    request = recorder.requests[0]
    assert request.method == "POST"
    assert str(request.url) == "https://sandbox.cashfree.com/pg/orders"
    assert request.headers["x-client-id"] == "app_test"
    assert request.headers["x-api-version"] == "2023-08-01"
    body = recorder.last_json
    assert body["order_id"] == "uplink_abc"
    assert body["order_amount"] == 100.0
    assert body["customer_details"]["customer_phone"] == "9999999999"
    assert body["order_meta"]["return_url"] == "https://shop.test/return?order_id=uplink_abc"
    assert body["order_tags"] == {"file_id": "3"}

    assert order.external_order_token == "2149460581"
    assert order.checkout_session_token == "session_abc"
    assert order.status == "pending"


@pytest.mark.asyncio
async def test_production_base_url():
    recorder = Recorder(payload={"cf_order_id": "1"})
    client = _gateway(recorder, environment="production")
    await client.create_order(_order())
    assert str(recorder.requests[0].url) == "https://api.cashfree.com/pg/orders"


@pytest.mark.asyncio
async def test_authentication_failure_is_environment_mismatch():
    client = _gateway(Recorder(401, {"message": "authentication Failed", "type": "authentication_error"}))
    with pytest.raises(GatewayAuthMismatch) as exc:
        await client.create_order(_order())
    assert exc.value.details["environment"] == "sandbox"


@pytest.mark.asyncio
async def test_api_error_is_rejection():
    client = _gateway(
        Recorder(400, {"message": "order_amount : invalid value", "code": "order_amount_invalid", "type": "invalid_request_error"})
    )
    with pytest.raises(GatewayRejected) as exc:
        await client.create_order(_order())
    assert exc.value.details["provider_code"] == "order_amount_invalid"
    assert exc.value.details["status_code"] == 400


@pytest.mark.asyncio
async def test_missing_cf_order_id_is_rejection():
    client = _gateway(Recorder(payload={"order_status": "ACTIVE"}))
    with pytest.raises(GatewayRejected):
        await client.create_order(_order())


@pytest.mark.asyncio
async def test_unconfigured_client_never_calls_out():
    recorder = Recorder()
    client = _gateway(recorder, secret_key=None)
    assert client.configured is False
    with pytest.raises(GatewayUnavailable):
        await client.create_order(_order())
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_query_order_snapshot():
    client = _gateway(
        Recorder(payload={"cf_order_id": 77, "order_status": "PAID", "order_amount": 100.0, "order_currency": "INR"})
    )
    snapshot = await client.query_order("uplink_abc")
    assert snapshot.status == "completed"
    assert snapshot.provider_status == "PAID"
    assert snapshot.amount == Decimal("100.0")
    assert snapshot.external_order_token == "77"


@pytest.mark.asyncio
async def test_verify_credentials_treats_not_found_as_success():
    recorder = Recorder(404, {"message": "order not found", "code": "order_not_found"})
    result = await _gateway(recorder).verify_credentials()
    assert result["authenticated"] is True
    assert recorder.requests[0].url.path.startswith("/pg/orders/test_order_")


@pytest.mark.asyncio
async def test_verify_credentials_auth_error():
    client = _gateway(Recorder(401, {"message": "authentication Failed"}))
    with pytest.raises(GatewayAuthMismatch):
        await client.verify_credentials()


def test_signed_webhook_roundtrip():
    client = _gateway(Recorder())
    body = json.dumps(
        {
            "type": "PAYMENT_SUCCESS_WEBHOOK",
            "data": {
                "order": {"order_id": "uplink_abc", "cf_order_id": 42},
                "payment": {"cf_payment_id": 99, "payment_group": "credit_card", "bank_reference": "1234"},
            },
        }
    ).encode()
    timestamp = str(int(time.time() * 1000))
    headers = {"X-Webhook-Timestamp": timestamp, "X-Webhook-Signature": compute_signature("whsec_test", timestamp, body)}

    event = client.parse_webhook(headers, body)

    assert isinstance(event, PaymentSucceededEvent)
    assert event.order_token == "uplink_abc"
    assert event.external_order_token == "42"
    assert event.external_payment_token == "99"
    assert event.payment_method == "credit_card"
    assert event.bank_reference == "1234"


def test_stale_webhook_timestamp_rejected():
    client = _gateway(Recorder())
    body = b'{"type": "PAYMENT_USER_DROPPED_WEBHOOK", "data": {"order": {"order_id": "x"}}}'
    timestamp = str(int((time.time() - 3600) * 1000))
    headers = {"x-webhook-timestamp": timestamp, "x-webhook-signature": compute_signature("whsec_test", timestamp, body)}
    with pytest.raises(WebhookSignatureError):
        client.parse_webhook(headers, body)


def test_failed_event_reason_fallback():
    event = parse_gateway_event(
        {"type": "PAYMENT_FAILED_WEBHOOK", "data": {"order": {"order_id": "uplink_abc"}, "payment": {}}}
    )
    assert isinstance(event, PaymentFailedEvent)
    assert event.reason == "Payment failed"
    assert event.lookup_key == "uplink_abc"


def test_payment_method_from_nested_object():
    event = parse_gateway_event(
        {
            "type": "PAYMENT_SUCCESS_WEBHOOK",
            "data": {"order": {"order_id": "o"}, "payment": {"payment_method": {"upi": {"upi_id": "x@okhdfc"}}}},
        }
    )
    assert event.payment_method == "upi"


def test_unparseable_event():
    with pytest.raises(MalformedWebhook):
        parse_gateway_event(["not", "an", "object"])


def _payouts(recorder: Recorder, *, require_signature: bool = False, **payout) -> CashfreePayoutClient:
    payout.setdefault("client_id", "payout_id")
    payout.setdefault("client_secret", "payout_secret")
    return CashfreePayoutClient(
        PayoutSettings(**payout),
        webhook=WebhookSettings(require_signature=require_signature),
        transport=httpx.MockTransport(recorder),
    )


def _transfer(destination: str) -> TransferRequest:
    return TransferRequest(
        transfer_id="payout_1_abc",
        amount=Decimal("90.00"),
        destination=destination,
        beneficiary_name="Asha",
        beneficiary_email="asha@example.com",
    )


@pytest.mark.asyncio
async def test_transfer_to_vpa():
    recorder = Recorder(payload={"transfer_id": "payout_1_abc", "cf_transfer_id": "CF123", "status": "RECEIVED"})
    accepted = await _payouts(recorder).request_transfer(_transfer("asha@okaxis"))

    assert str(recorder.requests[0].url) == "https://sandbox.cashfree.com/payout/transfers"
    body = recorder.last_json
    assert body["transfer_amount"] == 90.0
    assert body["beneficiary_details"]["beneficiary_instrument_details"] == {"vpa": "asha@okaxis"}
    assert accepted.provider_ref == "CF123"
    assert accepted.status == "processing"


@pytest.mark.asyncio
async def test_transfer_to_phone():
    recorder = Recorder(payload={"cf_transfer_id": "CF124", "status": "PENDING"})
    await _payouts(recorder).request_transfer(_transfer("9876543210"))
    contact = recorder.last_json["beneficiary_details"]["beneficiary_contact_details"]
    assert contact["beneficiary_phone"] == "9876543210"
    assert contact["beneficiary_email"] == "asha@example.com"


@pytest.mark.asyncio
async def test_transfer_auth_failure():
    with pytest.raises(GatewayAuthMismatch):
        await _payouts(Recorder(401, {"message": "Unauthorized"})).request_transfer(_transfer("asha@okaxis"))


@pytest.mark.asyncio
async def test_transfer_rejected_synchronously():
    recorder = Recorder(payload={"status": "REJECTED", "status_description": "Beneficiary blacklisted"})
    with pytest.raises(PayoutDispatchError) as exc:
        await _payouts(recorder).request_transfer(_transfer("asha@okaxis"))
    assert exc.value.message == "Beneficiary blacklisted"


@pytest.mark.asyncio
async def test_transfer_requires_configuration():
    recorder = Recorder()
    with pytest.raises(GatewayUnavailable):
        await _payouts(recorder, enabled=False).request_transfer(_transfer("asha@okaxis"))
    assert recorder.requests == []


def test_payout_events():
    success = parse_payout_event({"type": "TRANSFER_SUCCESS", "data": {"transfer_id": "payout_1", "transfer_utr": "UTR9"}})
    reversed_ = parse_payout_event({"type": "TRANSFER_REVERSED", "data": {"transfer_id": "payout_1"}})

    assert isinstance(success, PayoutSucceededEvent) and success.utr == "UTR9"
    assert isinstance(reversed_, PayoutFailedEvent) and reversed_.reason == "TRANSFER_REVERSED"
    with pytest.raises(MalformedWebhook):
        parse_payout_event({"type": "TRANSFER_SUCCESS", "data": {}})


def test_payout_webhook_signature():
    client = _payouts(Recorder(), require_signature=True, webhook_secret="payout_whsec")
    body = b'{"type": "TRANSFER_SUCCESS", "data": {"transfer_id": "payout_1"}}'
    timestamp = str(int(time.time() * 1000))

    event = client.parse_webhook(
        {"x-webhook-timestamp": timestamp, "x-webhook-signature": compute_signature("payout_whsec", timestamp, body)},
        body,
    )
    assert event.payout_token == "payout_1"

    with pytest.raises(WebhookSignatureError):
        client.parse_webhook({"x-webhook-timestamp": timestamp, "x-webhook-signature": "forged"}, body)
    with pytest.raises(MalformedWebhook):
        _payouts(Recorder()).parse_webhook({}, b"{")


def test_replayed_payout_webhook_rejected():
    client = _payouts(Recorder(), require_signature=True, webhook_secret="payout_whsec")
    body = b'{"type": "TRANSFER_SUCCESS", "data": {"transfer_id": "payout_1"}}'
    stale = str(int((time.time() - 3600) * 1000))
    headers = {"x-webhook-timestamp": stale, "x-webhook-signature": compute_signature("payout_whsec", stale, body)}

    with pytest.raises(WebhookSignatureError) as exc:
        client.parse_webhook(headers, body)
    assert exc.value.message == "Webhook timestamp outside tolerance"
