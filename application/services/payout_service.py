"""
Creator payout orchestration (application/services).

Payouts are two-phase: ``payout_state`` moves to ``processing`` before the
transfer is requested, and only the provider's payout webhook resolves it to
``completed`` or ``failed``. A transfer that is accepted is still in flight.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional

from application.dtos.payments import TransferRequest
from application.ports.payout_gateway import PayoutGateway
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import PaymentIntent, PaymentState, PayoutState
from domain.payment.events import PayoutConfirmation, PayoutFailedEvent, PayoutSucceededEvent
from domain.payment.exceptions import (
    GatewayUnavailable,
    PaymentIntentNotFoundException,
    PayoutDestinationMissing,
)


logger = get_logger(__name__)

DESTINATION_MISSING = "DestinationMissing"
GATEWAY_UNAVAILABLE = "payout_gateway_unavailable"


@dataclass(frozen=True)
class PayoutResult:
    intent_id: int
    result: str  # dispatched | deferred | failed | skipped
    payout_token: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def dispatched(cls, intent_id: int, payout_token: str) -> "PayoutResult":
        return cls(intent_id, "dispatched", payout_token=payout_token)

    @classmethod
    def deferred(cls, intent_id: int, reason: str) -> "PayoutResult":
        return cls(intent_id, "deferred", reason=reason)


def _new_transfer_id(intent: PaymentIntent) -> str:
    return f"payout_{intent.id}_{uuid.uuid4().hex[:12]}"


class PayoutService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: Optional[PayoutGateway],
        *,
        transfer_id_factory: Callable[[PaymentIntent], str] = _new_transfer_id,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._transfer_id_factory = transfer_id_factory

    async def schedule_payout(self, intent_id: int) -> PayoutResult:
        # Phase 1: validate and write the in-flight marker
        async with self._uow_factory() as uow:
            intent = await uow.payment_repository.get_by_id(intent_id)
            if intent is None:
                raise PaymentIntentNotFoundException(str(intent_id))
            if intent.state != PaymentState.COMPLETED or intent.payout_state != PayoutState.PENDING:
                logger.info(
                    "payout_skipped",
                    intent_id=intent_id,
                    state=intent.state.value,
                    payout_state=intent.payout_state.value,
                )
                return PayoutResult(intent_id, "skipped", reason=f"payout_{intent.payout_state.value}")

            creator = await uow.user_repository.get_by_id(intent.creator_id)
            destination = creator.payout_destination() if creator else None
            if destination is None:
                intent.mark_payout_failed(DESTINATION_MISSING)
                await uow.payment_repository.save_payout_transition(intent, PayoutState.PENDING)
                err = PayoutDestinationMissing(intent.creator_id)
                logger.warning(
                    "payout_destination_missing",
                    intent_id=intent_id,
                    creator_id=intent.creator_id,
                    error_type=err.error_type,
                )
                return PayoutResult(intent_id, "failed", reason=DESTINATION_MISSING)

            if self._gateway is None or not self._gateway.configured:
                logger.warning("payout_deferred", intent_id=intent_id, reason=GATEWAY_UNAVAILABLE)
                return PayoutResult.deferred(intent_id, GATEWAY_UNAVAILABLE)

            transfer_id = self._transfer_id_factory(intent)
            intent.mark_payout_processing(transfer_id)
            saved = await uow.payment_repository.save_payout_transition(intent, PayoutState.PENDING)
            if saved is None:
                # another worker already claimed this payout
                return PayoutResult(intent_id, "skipped", reason="payout_claimed")
            await uow.commit()

        transfer = TransferRequest(
            transfer_id=transfer_id,
            amount=saved.creator_share,
            currency=saved.currency,
            destination=destination,
            beneficiary_name=creator.name,
            beneficiary_email=creator.email,
            remarks=f"Payout for order {saved.order_token}",
        )

        # Phase 2: request the transfer; completion arrives by webhook
        try:
            accepted = await self._gateway.request_transfer(transfer)
        except BusinessException as exc:
            logger.error(
                "payout_dispatch_failed",
                intent_id=intent_id,
                payout_token=transfer_id,
                error_type=exc.error_type,
                error=exc.message,
            )
            async with self._uow_factory() as uow:
                saved.mark_payout_failed(exc.message)
                await uow.payment_repository.save_payout_transition(saved, PayoutState.PROCESSING)
            return PayoutResult(intent_id, "failed", payout_token=transfer_id, reason=exc.message)

        logger.info(
            "payout_dispatched",
            intent_id=intent_id,
            payout_token=transfer_id,
            provider_ref=accepted.provider_ref,
            amount=str(saved.creator_share),
        )
        return PayoutResult.dispatched(intent_id, transfer_id)

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> PayoutConfirmation:
        if self._gateway is None:
            raise GatewayUnavailable("Payout gateway is not configured", provider="payout")
        return self._gateway.parse_webhook(headers, body)

    async def confirm(self, event: PayoutConfirmation) -> Optional[PaymentIntent]:
        """Apply the provider's asynchronous transfer outcome; duplicates are no-ops."""
        async with self._uow_factory() as uow:
            repo = uow.payment_repository
            intent = await repo.get_by_payout_token(event.payout_token)
            if intent is None:
                logger.warning("payout_confirmation_unknown", payout_token=event.payout_token)
                return None
            if intent.payout_state != PayoutState.PROCESSING:
                logger.info(
                    "payout_confirmation_duplicate",
                    intent_id=intent.id,
                    payout_state=intent.payout_state.value,
                )
                return None

            if isinstance(event, PayoutSucceededEvent):
                intent.mark_payout_completed(event.utr)
            elif isinstance(event, PayoutFailedEvent):
                intent.mark_payout_failed(event.reason or "Payout failed")
            else:
                raise TypeError(f"Unsupported payout event: {type(event).__name__}")

            saved = await repo.save_payout_transition(intent, PayoutState.PROCESSING)
            if saved is not None:
                logger.info(
                    "payout_resolved",
                    intent_id=saved.id,
                    payout_state=saved.payout_state.value,
                    payout_utr=saved.payout_utr,
                    reason=saved.payout_failure_reason,
                )
            return saved

    async def retry_deferred(self, limit: int = 50) -> list[PayoutResult]:
        """Re-attempt completed intents whose payout never left ``pending``."""
        async with self._uow_factory(readonly=True) as uow:
            waiting = await uow.payment_repository.list_awaiting_payout(limit)
        results = []
        for intent in waiting:
            results.append(await self.schedule_payout(intent.id))
        return results
