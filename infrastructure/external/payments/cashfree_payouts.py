"""
Cashfree Payouts adapter (transfers API v2).

``request_transfer`` only registers the transfer; the final outcome arrives
through the payout webhook and is applied by the payout service.
"""
from __future__ import annotations

import json
from typing import Any, Optional

import httpx

from application.dtos.payments import TransferAccepted, TransferRequest
from core.settings import PaymentSettings, PayoutSettings, WebhookSettings, payment_settings
from domain.payment.events import PayoutConfirmation, PayoutFailedEvent, PayoutSucceededEvent
from domain.payment.exceptions import (
    GatewayAuthMismatch,
    GatewayUnavailable,
    MalformedWebhook,
    PayoutDispatchError,
    WebhookSignatureError,
)
from infrastructure.external.payments.base import BaseGatewayClient
from infrastructure.external.payments.cashfree_client import verify_webhook_signature
from shared.codes.payment_codes import GATEWAY_TRANSFER_STATUS_TO_INTERNAL

EVENT_TRANSFER_SUCCESS = "TRANSFER_SUCCESS"
EVENT_TRANSFER_FAILED = "TRANSFER_FAILED"
EVENT_TRANSFER_REVERSED = "TRANSFER_REVERSED"
EVENT_TRANSFER_REJECTED = "TRANSFER_REJECTED"

_FAILED_EVENTS = {EVENT_TRANSFER_FAILED, EVENT_TRANSFER_REVERSED, EVENT_TRANSFER_REJECTED}


def parse_payout_event(payload: dict[str, Any], *, provider: str = "cashfree") -> PayoutConfirmation:
    if not isinstance(payload, dict):
        raise MalformedWebhook("Payout webhook payload must be an object")
    event_type = payload.get("type") or payload.get("event")
    data = payload.get("data")
    if not isinstance(data, dict):
        raise MalformedWebhook("Payout webhook has no data", details={"type": event_type})
    transfer_id = data.get("transfer_id")
    if not transfer_id:
        raise MalformedWebhook("Payout webhook carries no transfer_id", details={"type": event_type})
    event_id = f"{event_type}:{data.get('cf_transfer_id') or transfer_id}"

    if event_type == EVENT_TRANSFER_SUCCESS:
        utr = data.get("transfer_utr") or data.get("utr")
        return PayoutSucceededEvent(
            provider=provider,
            payout_token=str(transfer_id),
            event_id=event_id,
            utr=str(utr) if utr else None,
        )
    if event_type in _FAILED_EVENTS:
        reason = data.get("status_description") or data.get("reason") or event_type
        return PayoutFailedEvent(
            provider=provider,
            payout_token=str(transfer_id),
            event_id=event_id,
            reason=str(reason),
        )
    raise MalformedWebhook(f"Unsupported payout webhook type: {event_type}", details={"type": event_type})


class CashfreePayoutClient(BaseGatewayClient):
    provider = "cashfree"

    def __init__(
        self,
        payout: Optional[PayoutSettings] = None,
        *,
        webhook: Optional[WebhookSettings] = None,
        settings: Optional[PaymentSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        cfg = settings or payment_settings
        self._payout = payout or cfg.payout
        self._webhook = webhook or cfg.webhook
        super().__init__(
            base_url=self._payout.base_url,
            headers={
                "x-client-id": self._payout.client_id or "",
                "x-client-secret": self._payout.client_secret or "",
                "x-api-version": self._payout.api_version,
                "Content-Type": "application/json",
            },
            timeouts=cfg.timeouts.model_dump(),
            retry={"max": cfg.retry.max, "base": cfg.retry.base_backoff},
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return self._payout.configured

    async def request_transfer(self, req: TransferRequest) -> TransferAccepted:
        if not self.configured:
            raise GatewayUnavailable(
                "Payout service is not configured",
                provider=self.provider,
                details={"reason": "credentials_missing"},
            )
        beneficiary: dict[str, Any] = {
            "beneficiary_name": req.beneficiary_name or "Creator",
            "beneficiary_contact_details": {},
        }
        if "@" in req.destination:
            beneficiary["beneficiary_instrument_details"] = {"vpa": req.destination}
        else:
            beneficiary["beneficiary_contact_details"]["beneficiary_phone"] = req.destination
        if req.beneficiary_email:
            beneficiary["beneficiary_contact_details"]["beneficiary_email"] = req.beneficiary_email

        body = {
            "transfer_id": req.transfer_id,
            "transfer_amount": float(req.amount),
            "transfer_currency": req.currency,
            "transfer_mode": "upi",
            "transfer_remarks": req.remarks or "Creator payout",
            "beneficiary_details": beneficiary,
        }
        self._log("payout_transfer_requested", transfer_id=req.transfer_id, amount=str(req.amount))
        resp = await self._send("POST", "/transfers", json=body)
        data = self._json(resp)
        if resp.status_code == 401 or data.get("type") == "authentication_error":
            raise GatewayAuthMismatch(provider=self.provider, environment=self._payout.environment)
        if resp.status_code >= 400:
            self._log_error(
                "payout_transfer_rejected",
                transfer_id=req.transfer_id,
                status_code=resp.status_code,
                error_code=data.get("code"),
            )
            raise PayoutDispatchError(
                str(data.get("message") or "Transfer request rejected"),
                provider=self.provider,
                provider_code=str(data.get("code")) if data.get("code") else None,
            )

        status = self._map_status(data.get("status"), GATEWAY_TRANSFER_STATUS_TO_INTERNAL)
        if status == "failed":
            raise PayoutDispatchError(
                str(data.get("status_description") or "Transfer failed"),
                provider=self.provider,
                provider_code=str(data.get("status")),
            )
        cf_transfer_id = data.get("cf_transfer_id")
        return TransferAccepted(
            provider=self.provider,
            transfer_id=req.transfer_id,
            provider_ref=str(cf_transfer_id) if cf_transfer_id else None,
            status=status,
        )

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> PayoutConfirmation:
        lowered = {str(k).lower(): str(v) for k, v in (headers or {}).items()}
        if self._webhook.require_signature:
            verify_webhook_signature(
                self._payout.webhook_secret or self._payout.client_secret,
                lowered,
                body,
                tolerance_seconds=self._webhook.tolerance_seconds,
                provider=self.provider,
            )
        try:
            payload = json.loads(body or b"")
        except ValueError as exc:
            raise MalformedWebhook("Payout webhook body is not valid JSON") from exc
        return parse_payout_event(payload, provider=self.provider)
