import json

import httpx
import pytest
import pytest_asyncio

from api.dependencies import (
    get_order_gateway_client,
    get_payout_gateway_client,
    get_storage_port,
    get_uow_factory,
)
from core.config import StorageSettings
from core.settings import GatewaySettings, WebhookSettings
from infrastructure.external.payments.cashfree_client import CashfreeClient
from infrastructure.external.storage.providers.local import LocalProvider
from main import app
from shared.codes import BusinessCode


@pytest_asyncio.fixture
async def client(uow_factory, order_gateway, payout_gateway, marketplace):
    app.dependency_overrides[get_uow_factory] = lambda: uow_factory
    app.dependency_overrides[get_order_gateway_client] = lambda: order_gateway
    app.dependency_overrides[get_payout_gateway_client] = lambda: payout_gateway
    app.dependency_overrides[get_storage_port] = lambda: LocalProvider(StorageSettings())
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    app.dependency_overrides.clear()


def _as(user) -> dict:
    return {"X-User-Id": str(user.id)}


def _admin(user) -> dict:
    return {"X-User-Id": str(user.id), "X-User-Role": "admin"}


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "healthy"


@pytest.mark.asyncio
async def test_identity_required(client):
    resp = await client.get("/api/v1/payments/me")
    assert resp.status_code == 401
    assert resp.json()["code"] == BusinessCode.UNAUTHORIZED

    bad = await client.get("/api/v1/payments/me", headers={"X-User-Id": "abc"})
    assert bad.status_code == 401


@pytest.mark.asyncio
async def test_checkout_and_poll(client, marketplace):
    resp = await client.post("/api/v1/payments/orders", json={"file_id": marketplace.paid.id}, headers=_as(marketplace.payer))

    assert resp.status_code == 200
    order = resp.json()["data"]
    assert order["order_token"].startswith("uplink_")
    assert order["state"] == "pending"
    assert order["checkout_session_token"] == "session_1"

    status = await client.get(f"/api/v1/payments/orders/{order['order_token']}/status", headers=_as(marketplace.payer))
    assert status.status_code == 200
    assert status.json()["data"]["state"] == "pending"

    other = await client.get(f"/api/v1/payments/orders/{order['order_token']}/status", headers=_as(marketplace.creator))
    assert other.status_code == 403


@pytest.mark.asyncio
async def test_checkout_conflicts(client, marketplace):
    own = await client.post("/api/v1/payments/orders", json={"file_id": marketplace.paid.id}, headers=_as(marketplace.creator))
    free = await client.post("/api/v1/payments/orders", json={"file_id": marketplace.free.id}, headers=_as(marketplace.payer))
    missing = await client.post("/api/v1/payments/orders", json={"file_id": 9999}, headers=_as(marketplace.payer))

    assert own.status_code == 409
    assert own.json()["error"]["type"] == "SelfPurchase"
    assert free.status_code == 409
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_checkout_gateway_unconfigured(client, order_gateway, marketplace):
    order_gateway.configured = False
    resp = await client.post("/api/v1/payments/orders", json={"file_id": marketplace.paid.id}, headers=_as(marketplace.payer))
    assert resp.status_code == 503


@pytest.mark.asyncio
async def test_webhook_settles_and_always_acknowledges(client, uow_factory, payout_gateway, marketplace, make_intent):
    gateway = CashfreeClient(
        GatewaySettings(app_id="app_test", secret_key="secret_test"),
        webhook=WebhookSettings(require_signature=False),
    )
    app.dependency_overrides[get_order_gateway_client] = lambda: gateway
    await make_intent("uplink_api")
    body = {
        "type": "PAYMENT_SUCCESS_WEBHOOK",
        "data": {"order": {"order_id": "uplink_api"}, "payment": {"cf_payment_id": 1, "payment_group": "upi"}},
    }

    applied = await client.post("/api/v1/payments/webhook", content=json.dumps(body))
    garbage = await client.post("/api/v1/payments/webhook", content=b"garbage")

    assert applied.status_code == 200
    assert applied.json()["data"]["result"] == "applied"
    assert garbage.status_code == 200
    assert garbage.json()["data"]["result"] == "rejected"
    assert len(payout_gateway.requests) == 1

    async with uow_factory(readonly=True) as uow:
        intent = await uow.payment_repository.get_by_order_token("uplink_api")
    transfer = {"type": "TRANSFER_SUCCESS", "data": {"transfer_id": intent.payout_token, "transfer_utr": "UTR1"}}
    confirmed = await client.post("/api/v1/payments/payouts/webhook", content=json.dumps(transfer))
    assert confirmed.status_code == 200
    assert confirmed.json()["data"]["result"] == "applied"
    assert confirmed.json()["data"]["detail"] == "completed"


@pytest.mark.asyncio
async def test_unsigned_webhook_rejected_with_200(client, marketplace, make_intent):
    gateway = CashfreeClient(
        GatewaySettings(app_id="app_test", secret_key="secret_test"),
        webhook=WebhookSettings(secret="whsec_test"),
    )
    app.dependency_overrides[get_order_gateway_client] = lambda: gateway
    await make_intent("uplink_api")
    body = {"type": "PAYMENT_SUCCESS_WEBHOOK", "data": {"order": {"order_id": "uplink_api"}}}

    resp = await client.post("/api/v1/payments/webhook", content=json.dumps(body))

    assert resp.status_code == 200
    assert resp.json()["data"]["result"] == "rejected"


@pytest.mark.asyncio
async def test_download_gating(client, marketplace, make_intent, complete_intent):
    anonymous = await client.get(f"/api/v1/files/{marketplace.paid.id}/download")
    private = await client.get(f"/api/v1/files/{marketplace.private.id}/download", headers=_as(marketplace.payer))
    free = await client.get(f"/api/v1/files/{marketplace.free.id}/download")

    assert anonymous.status_code == 402
    assert anonymous.json()["error"]["details"]["price"] == "100.00"
    assert private.status_code == 403
    assert free.status_code == 200
    assert "signature=" in free.json()["data"]["url"]

    await complete_intent(await make_intent())
    paid = await client.get(f"/api/v1/files/{marketplace.paid.id}/download", headers=_as(marketplace.payer))
    assert paid.status_code == 200
    assert paid.json()["data"]["filename"] == "beat.mp3"

    verdict = await client.get(f"/api/v1/files/{marketplace.paid.id}/access", headers=_as(marketplace.payer))
    assert verdict.json()["data"]["verdict"] == "authorized"


@pytest.mark.asyncio
async def test_ledger_views(client, marketplace, make_intent, complete_intent):
    intent = await complete_intent(await make_intent())

    mine = await client.get("/api/v1/payments/me", headers=_as(marketplace.payer))
    earnings = await client.get("/api/v1/payments/earnings", headers=_as(marketplace.creator))
    stats = await client.get("/api/v1/payments/stats", params={"days": 7}, headers=_as(marketplace.creator))
    detail = await client.get(f"/api/v1/payments/{intent.id}", headers=_as(marketplace.creator))

    assert mine.json()["data"]["total"] == 1
    assert mine.json()["data"]["pages"] == 1
    assert earnings.json()["data"]["summary"]["total_sales"] == 1
    assert stats.json()["data"]["successful_payments"] == 1
    assert detail.json()["data"]["order_token"] == "uplink_test_1"


@pytest.mark.asyncio
async def test_refund_is_admin_only(client, marketplace, make_intent, complete_intent):
    intent = await complete_intent(await make_intent())

    denied = await client.post(f"/api/v1/payments/{intent.id}/refund", json={}, headers=_as(marketplace.payer))
    refunded = await client.post(
        f"/api/v1/payments/{intent.id}/refund", json={"reason": "Chargeback"}, headers=_admin(marketplace.payer)
    )
    again = await client.post(f"/api/v1/payments/{intent.id}/refund", json={}, headers=_admin(marketplace.payer))

    assert denied.status_code == 403
    assert refunded.status_code == 200
    assert refunded.json()["data"]["state"] == "refunded"
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_admin_maintenance_endpoints(client, payout_gateway, marketplace):
    health = await client.get("/api/v1/payments/gateway/health", headers=_admin(marketplace.creator))
    expire = await client.post("/api/v1/payments/expire", headers=_admin(marketplace.creator))
    retry = await client.post("/api/v1/payments/payouts/retry", headers=_admin(marketplace.creator))

    assert health.json()["data"]["authenticated"] is True
    assert expire.json()["data"] == {"expired": 0, "skipped": 0}
    assert retry.json()["data"] == []
