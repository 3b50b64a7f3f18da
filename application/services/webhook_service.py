"""
Gateway webhook ingestion and ledger reconciliation (application/services).

``ingest`` never raises: the endpoint always acknowledges the delivery and
the outcome is reported for logging. The repository's conditional update is
the idempotency guard; the optional redis marker only short-circuits exact
re-deliveries before the database is touched.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Callable, Optional

from application.ports.dedupe import DedupeStore
from application.ports.payment_gateway import OrderGateway
from application.services.expiry_service import EXPIRED_REASON
from application.services.payout_service import PayoutService
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import PaymentIntent, PaymentState
from domain.payment.events import (
    PaymentEvent,
    PaymentFailedEvent,
    PaymentSucceededEvent,
    PaymentUserDroppedEvent,
)
from domain.payment.exceptions import GatewayUnavailable, MalformedWebhook, WebhookSignatureError


logger = get_logger(__name__)

APPLIED = "applied"
DUPLICATE = "duplicate"
UNKNOWN_ORDER = "unknown_order"
REJECTED = "rejected"
ERROR = "error"

DROPPED_REASON = "Payment dropped by user"
DEFAULT_FAILURE_REASON = "Payment failed"
SETTLED_AFTER_FAILURE = "settled_after_failure"


@dataclass(frozen=True)
class WebhookOutcome:
    result: str
    detail: Optional[str] = None
    intent_id: Optional[int] = None


class WebhookService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: OrderGateway,
        payouts: Optional[PayoutService] = None,
        *,
        dedupe: Optional[DedupeStore] = None,
        dedupe_ttl: int = 86400,
        payout_queue: Optional[Callable[[int], Any]] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._payouts = payouts
        self._dedupe = dedupe
        self._dedupe_ttl = dedupe_ttl
        self._payout_queue = payout_queue

    async def ingest(self, headers: dict[str, Any], body: bytes) -> WebhookOutcome:
        try:
            event = self._gateway.parse_webhook(headers, body)
        except WebhookSignatureError as exc:
            logger.warning("webhook_rejected", reason="signature", error=exc.message)
            return WebhookOutcome(REJECTED, detail=exc.message)
        except MalformedWebhook as exc:
            logger.warning("webhook_rejected", reason="malformed", error=exc.message, details=exc.details)
            return WebhookOutcome(REJECTED, detail=exc.message)

        if not await self._first_delivery(body):
            logger.info("webhook_redelivery_skipped", event_id=event.event_id)
            return WebhookOutcome(DUPLICATE, detail="redelivery")

        try:
            return await self.apply(event)
        except Exception as exc:
            logger.error(
                "webhook_processing_error",
                event_id=event.event_id,
                event_type=type(event).__name__,
                order_token=event.order_token,
                external_order_token=event.external_order_token,
                error=str(exc),
                exc_info=True,
            )
            await self._forget(body)
            return WebhookOutcome(ERROR, detail="processing_error")

    async def apply(self, event: PaymentEvent) -> WebhookOutcome:
        """Reconcile a parsed event against the ledger."""
        async with self._uow_factory() as uow:
            repo = uow.payment_repository
            intent = await self._lookup(repo, event)
            if intent is None:
                logger.warning(
                    "webhook_unknown_order",
                    order_token=event.order_token,
                    external_order_token=event.external_order_token,
                    event_type=type(event).__name__,
                )
                return WebhookOutcome(UNKNOWN_ORDER, detail=event.lookup_key)

            if intent.state == PaymentState.FAILED and isinstance(event, PaymentSucceededEvent):
                # 网关已扣款但账本已失败（过期或先收到失败回调），需人工对账退款
                logger.error(
                    "webhook_settled_after_failure",
                    intent_id=intent.id,
                    order_token=intent.order_token,
                    external_payment_token=event.external_payment_token,
                    bank_reference=event.bank_reference,
                    failure_reason=intent.failure_reason,
                    expired=intent.failure_reason == EXPIRED_REASON,
                )
                return WebhookOutcome(DUPLICATE, detail=SETTLED_AFTER_FAILURE, intent_id=intent.id)

            if intent.is_settled():
                logger.info(
                    "webhook_duplicate",
                    intent_id=intent.id,
                    state=intent.state.value,
                    event_type=type(event).__name__,
                )
                return WebhookOutcome(DUPLICATE, detail=intent.state.value, intent_id=intent.id)

            observed = intent.state
            if isinstance(event, PaymentSucceededEvent):
                intent.mark_completed(
                    event.external_payment_token,
                    payment_method=event.payment_method,
                    bank_reference=event.bank_reference,
                )
            elif isinstance(event, PaymentFailedEvent):
                intent.mark_failed(event.reason or DEFAULT_FAILURE_REASON)
            elif isinstance(event, PaymentUserDroppedEvent):
                intent.mark_failed(DROPPED_REASON)
            else:
                raise TypeError(f"Unsupported payment event: {type(event).__name__}")

            saved = await repo.save_transition(intent, observed)
            if saved is None:
                return WebhookOutcome(DUPLICATE, detail="lost_race", intent_id=intent.id)
            await uow.commit()

        logger.info(
            "payment_intent_settled",
            intent_id=saved.id,
            state=saved.state.value,
            payout_state=saved.payout_state.value,
            external_payment_token=saved.external_payment_token,
            failure_reason=saved.failure_reason,
        )
        if saved.state == PaymentState.COMPLETED:
            await self._trigger_payout(saved)
        return WebhookOutcome(APPLIED, detail=saved.state.value, intent_id=saved.id)

    async def ingest_payout(self, headers: dict[str, Any], body: bytes) -> WebhookOutcome:
        """Payout confirmations; same never-raise contract as ``ingest``."""
        if self._payouts is None:
            return WebhookOutcome(REJECTED, detail="payouts_disabled")
        try:
            event = self._payouts.parse_webhook(headers, body)
        except (WebhookSignatureError, MalformedWebhook, GatewayUnavailable) as exc:
            logger.warning("payout_webhook_rejected", error_type=exc.error_type, error=exc.message)
            return WebhookOutcome(REJECTED, detail=exc.message)

        try:
            saved = await self._payouts.confirm(event)
        except Exception as exc:
            logger.error(
                "payout_webhook_processing_error",
                event_id=event.event_id,
                payout_token=event.payout_token,
                error=str(exc),
                exc_info=True,
            )
            return WebhookOutcome(ERROR, detail="processing_error")
        if saved is None:
            return WebhookOutcome(DUPLICATE, detail=event.payout_token)
        return WebhookOutcome(APPLIED, detail=saved.payout_state.value, intent_id=saved.id)

    async def _lookup(self, repo, event: PaymentEvent) -> Optional[PaymentIntent]:
        intent = None
        if event.external_order_token:
            intent = await repo.get_by_external_order_token(event.external_order_token)
        if intent is None and event.order_token:
            intent = await repo.get_by_order_token(event.order_token)
        return intent

    async def _trigger_payout(self, intent: PaymentIntent) -> None:
        if self._payout_queue is not None:
            try:
                self._payout_queue(intent.id)
            except Exception as exc:
                # payout stays pending; retry_deferred_payouts picks it up
                logger.error("payout_enqueue_failed", intent_id=intent.id, error=str(exc), exc_info=True)
                return
            logger.info("payout_enqueued", intent_id=intent.id)
            return
        if self._payouts is None:
            return
        try:
            result = await self._payouts.schedule_payout(intent.id)
        except BusinessException as exc:
            # completed stays completed; payout keeps its own retry state
            logger.error("payout_trigger_failed", intent_id=intent.id, error_type=exc.error_type, error=exc.message)
            return
        except Exception as exc:
            logger.error("payout_trigger_failed", intent_id=intent.id, error=str(exc), exc_info=True)
            return
        logger.info("payout_triggered", intent_id=intent.id, result=result.result, reason=result.reason)

    @staticmethod
    def _body_key(body: bytes) -> str:
        return f"webhook:{hashlib.sha256(body).hexdigest()}"

    async def _first_delivery(self, body: bytes) -> bool:
        if self._dedupe is None:
            return True
        try:
            return await self._dedupe.set_if_absent(self._body_key(body), "1", self._dedupe_ttl)
        except Exception as exc:
            logger.warning("webhook_dedupe_unavailable", error=str(exc))
            return True

    async def _forget(self, body: bytes) -> None:
        if self._dedupe is None:
            return
        try:
            await self._dedupe.delete(self._body_key(body))
        except Exception as exc:
            logger.warning("webhook_dedupe_unavailable", error=str(exc))
