"""
Cashfree Payment Gateway adapter (REST API version 2023-08-01).

Orders are created server side; the returned ``payment_session_id`` is handed
to the browser checkout. Settlement is reported through signed webhooks.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from decimal import Decimal
from typing import Any, Optional

import httpx

from application.dtos.payments import CreateOrder, GatewayOrder, OrderSnapshot
from core.settings import GatewaySettings, PaymentSettings, WebhookSettings, payment_settings
from domain.payment.events import (
    PaymentEvent,
    PaymentFailedEvent,
    PaymentSucceededEvent,
    PaymentUserDroppedEvent,
)
from domain.payment.exceptions import (
    GatewayAuthMismatch,
    GatewayRejected,
    GatewayUnavailable,
    MalformedWebhook,
    WebhookSignatureError,
)
from infrastructure.external.payments.base import BaseGatewayClient
from shared.codes.payment_codes import GATEWAY_ORDER_STATUS_TO_INTERNAL

PROVIDER = "cashfree"

EVENT_PAYMENT_SUCCESS = "PAYMENT_SUCCESS_WEBHOOK"
EVENT_PAYMENT_FAILED = "PAYMENT_FAILED_WEBHOOK"
EVENT_PAYMENT_USER_DROPPED = "PAYMENT_USER_DROPPED_WEBHOOK"

DEFAULT_FAILURE_REASON = "Payment failed"
DROPPED_REASON = "Payment dropped by user"

# Cashfree rejects orders without a customer phone
_FALLBACK_PHONE = "9999999999"


def _str_or_none(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _payment_method(payment: dict[str, Any]) -> Optional[str]:
    group = payment.get("payment_group")
    if isinstance(group, str) and group:
        return group.lower()
    method = payment.get("payment_method")
    if isinstance(method, dict) and method:
        return str(next(iter(method))).lower()
    if isinstance(method, str) and method:
        return method.lower()
    return None


def parse_gateway_event(payload: dict[str, Any], *, provider: str = PROVIDER) -> PaymentEvent:
    """Translate a decoded webhook payload into one of the payment events."""
    if not isinstance(payload, dict):
        raise MalformedWebhook("Webhook payload must be an object")
    event_type = payload.get("type")
    data = payload.get("data")
    if not isinstance(data, dict):
        raise MalformedWebhook("Webhook payload has no data", details={"type": event_type})
    order = data.get("order") or {}
    payment = data.get("payment") or {}
    if not isinstance(order, dict) or not isinstance(payment, dict):
        raise MalformedWebhook("Webhook order/payment must be objects", details={"type": event_type})

    order_token = _str_or_none(order.get("order_id"))
    external_order_token = _str_or_none(order.get("cf_order_id"))
    if not order_token and not external_order_token:
        raise MalformedWebhook("Webhook carries no order reference", details={"type": event_type})

    payment_token = _str_or_none(payment.get("cf_payment_id"))
    common = {
        "provider": provider,
        "order_token": order_token,
        "external_order_token": external_order_token,
        "event_id": f"{event_type}:{payment_token or order_token or external_order_token}",
    }

    if event_type == EVENT_PAYMENT_SUCCESS:
        return PaymentSucceededEvent(
            **common,
            external_payment_token=payment_token,
            payment_method=_payment_method(payment),
            bank_reference=_str_or_none(payment.get("payment_id")) or _str_or_none(payment.get("bank_reference")),
        )
    if event_type == EVENT_PAYMENT_FAILED:
        reason = payment.get("payment_message")
        if not reason:
            error_details = payment.get("error_details") or data.get("error_details") or {}
            if isinstance(error_details, dict):
                reason = error_details.get("error_description")
        return PaymentFailedEvent(**common, reason=reason or DEFAULT_FAILURE_REASON)
    if event_type == EVENT_PAYMENT_USER_DROPPED:
        return PaymentUserDroppedEvent(**common)

    raise MalformedWebhook(f"Unsupported webhook type: {event_type}", details={"type": event_type})


def compute_signature(secret: str, timestamp: str, body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), timestamp.encode("utf-8") + body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_webhook_signature(
    secret: Optional[str],
    headers: dict[str, str],
    body: bytes,
    *,
    tolerance_seconds: int,
    provider: str,
) -> None:
    """Check ``x-webhook-signature`` and reject replays outside the tolerance window.

    ``headers`` must already be lower-cased.
    """
    if not secret:
        raise WebhookSignatureError("Webhook secret not configured", provider=provider)
    signature = headers.get("x-webhook-signature")
    timestamp = headers.get("x-webhook-timestamp")
    if not signature or not timestamp:
        raise WebhookSignatureError("Missing webhook signature headers", provider=provider)

    if tolerance_seconds > 0:
        try:
            ts = int(timestamp)
        except ValueError as exc:
            raise WebhookSignatureError("Invalid webhook timestamp", provider=provider) from exc
        # Cashfree sends epoch milliseconds
        ts_seconds = ts / 1000 if ts > 10**11 else ts
        if abs(time.time() - ts_seconds) > tolerance_seconds:
            raise WebhookSignatureError("Webhook timestamp outside tolerance", provider=provider)

    if not hmac.compare_digest(compute_signature(secret, timestamp, body), signature):
        raise WebhookSignatureError("Webhook signature mismatch", provider=provider)


class CashfreeClient(BaseGatewayClient):
    provider = PROVIDER

    def __init__(
        self,
        gateway: Optional[GatewaySettings] = None,
        *,
        webhook: Optional[WebhookSettings] = None,
        settings: Optional[PaymentSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        cfg = settings or payment_settings
        self._gateway = gateway or cfg.gateway
        self._webhook = webhook or cfg.webhook
        super().__init__(
            base_url=self._gateway.base_url,
            headers={
                "x-client-id": self._gateway.app_id or "",
                "x-client-secret": self._gateway.secret_key or "",
                "x-api-version": self._gateway.api_version,
                "Content-Type": "application/json",
            },
            timeouts=cfg.timeouts.model_dump(),
            retry={"max": cfg.retry.max, "base": cfg.retry.base_backoff},
            transport=transport,
        )

    @property
    def environment(self) -> str:
        return self._gateway.environment

    @property
    def configured(self) -> bool:
        return self._gateway.configured

    def _ensure_configured(self) -> None:
        if not self.configured:
            raise GatewayUnavailable(provider=self.provider, details={"reason": "credentials_missing"})

    def _raise_for_error(self, resp: httpx.Response, *, operation: str) -> dict[str, Any]:
        data = self._json(resp)
        if resp.status_code < 400:
            return data
        error_type = data.get("type")
        message = str(data.get("message") or f"Cashfree {operation} failed")
        self._log_error(
            "gateway_error",
            operation=operation,
            status_code=resp.status_code,
            error_type=error_type,
            error_code=data.get("code"),
            environment=self.environment,
        )
        if resp.status_code == 401 or error_type == "authentication_error" or "authentication" in message.lower():
            raise GatewayAuthMismatch(
                provider=self.provider,
                environment=self.environment,
                details={
                    "suggestion": "Check that the App ID/Secret Key match the configured environment",
                    "base_url": self._gateway.base_url,
                },
            )
        raise GatewayRejected(
            message,
            provider=self.provider,
            provider_code=_str_or_none(data.get("code")) or error_type,
            details={"status_code": resp.status_code},
        )

    async def create_order(self, req: CreateOrder) -> GatewayOrder:
        self._ensure_configured()
        body: dict[str, Any] = {
            "order_id": req.order_token,
            "order_amount": float(req.amount),
            "order_currency": req.currency,
            "customer_details": {
                "customer_id": req.customer_id,
                "customer_name": req.customer_name or "Customer",
                "customer_email": req.customer_email,
                "customer_phone": req.customer_phone or _FALLBACK_PHONE,
            },
            "order_meta": {
                "return_url": f"{req.return_url}?order_id={req.order_token}" if req.return_url else None,
                "notify_url": req.notify_url,
            },
        }
        if req.note:
            body["order_note"] = req.note
        if req.tags:
            body["order_tags"] = req.tags
        if req.expires_at:
            body["order_expiry_time"] = req.expires_at.isoformat(timespec="seconds")

        self._log("gateway_create_order", order_token=req.order_token, amount=str(req.amount), environment=self.environment)
        resp = await self._send("POST", "/orders", json=body)
        data = self._raise_for_error(resp, operation="create_order")

        cf_order_id = _str_or_none(data.get("cf_order_id"))
        if not cf_order_id:
            raise GatewayRejected("Cashfree response missing cf_order_id", provider=self.provider)
        self._log("gateway_order_created", order_token=req.order_token, external_order_token=cf_order_id)
        return GatewayOrder(
            provider=self.provider,
            order_token=req.order_token,
            external_order_token=cf_order_id,
            checkout_session_token=_str_or_none(data.get("payment_session_id")),
            status=self._map_status(data.get("order_status"), GATEWAY_ORDER_STATUS_TO_INTERNAL),
        )

    async def query_order(self, order_token: str) -> OrderSnapshot:
        self._ensure_configured()
        resp = await self._send("GET", f"/orders/{order_token}")
        data = self._raise_for_error(resp, operation="query_order")
        amount = data.get("order_amount")
        return OrderSnapshot(
            provider=self.provider,
            order_token=order_token,
            external_order_token=_str_or_none(data.get("cf_order_id")),
            status=self._map_status(data.get("order_status"), GATEWAY_ORDER_STATUS_TO_INTERNAL),
            provider_status=_str_or_none(data.get("order_status")),
            amount=Decimal(str(amount)) if amount is not None else None,
            currency=_str_or_none(data.get("order_currency")),
        )

    async def verify_credentials(self) -> dict[str, Any]:
        """Look up a non-existent order: 404 means the credentials were accepted."""
        self._ensure_configured()
        missing = f"test_order_{int(time.time() * 1000)}"
        resp = await self._send("GET", f"/orders/{missing}")
        details = {"environment": self.environment, "base_url": self._gateway.base_url}
        if resp.status_code == 404 or "not found" in str(self._json(resp).get("message", "")).lower():
            self._log("gateway_auth_ok", environment=self.environment)
            return {"authenticated": True, "message": "Authentication successful", **details}
        self._raise_for_error(resp, operation="verify_credentials")
        return {"authenticated": True, "message": "Authentication successful", **details}

    def _verify_signature(self, headers: dict[str, str], body: bytes) -> None:
        verify_webhook_signature(
            self._webhook.secret or self._gateway.secret_key,
            headers,
            body,
            tolerance_seconds=self._webhook.tolerance_seconds,
            provider=self.provider,
        )

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> PaymentEvent:
        lowered = {str(k).lower(): str(v) for k, v in (headers or {}).items()}
        if self._webhook.require_signature:
            self._verify_signature(lowered, body)
        try:
            payload = json.loads(body or b"")
        except ValueError as exc:
            raise MalformedWebhook("Webhook body is not valid JSON") from exc
        return parse_gateway_event(payload, provider=self.provider)
