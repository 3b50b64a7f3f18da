"""Manual refund transition (admin)."""
from __future__ import annotations

from typing import Callable, Optional

from application.dtos.payments import PaymentIntentDTO
from core.logging_config import get_logger
from domain.common.exceptions import ConflictException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import PaymentState
from domain.payment.exceptions import PaymentIntentNotFoundException


logger = get_logger(__name__)


class RefundService:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]) -> None:
        self._uow_factory = uow_factory

    async def refund(self, intent_id: int, reason: Optional[str] = None) -> PaymentIntentDTO:
        """
        completed -> refunded. The gateway-side refund is issued out of band;
        this only records it so downloads stop on the next access check.
        """
        async with self._uow_factory() as uow:
            repo = uow.payment_repository
            intent = await repo.get_by_id(intent_id)
            if intent is None:
                raise PaymentIntentNotFoundException(str(intent_id))
            if intent.state != PaymentState.COMPLETED:
                raise ConflictException(
                    f"Only completed payments can be refunded (current: {intent.state.value})",
                    details={"intent_id": intent_id, "state": intent.state.value},
                )
            intent.mark_refunded(reason or "Refunded")
            saved = await repo.save_transition(intent, PaymentState.COMPLETED)
            if saved is None:
                raise ConflictException(
                    "Payment state changed concurrently",
                    details={"intent_id": intent_id},
                )

        logger.info(
            "payment_intent_refunded",
            intent_id=intent_id,
            payout_state=saved.payout_state.value,
            reason=saved.failure_reason,
        )
        return PaymentIntentDTO.model_validate(saved)
