"""Sweep abandoned checkouts out of ``pending``."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import PaymentState


logger = get_logger(__name__)

EXPIRED_REASON = "expired"


@dataclass(frozen=True)
class ExpirySweep:
    expired: int
    skipped: int


class ExpiryService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        pending_expiry_minutes: int = 60,
        batch_size: int = 100,
    ) -> None:
        self._uow_factory = uow_factory
        self._ttl = timedelta(minutes=pending_expiry_minutes)
        self._batch_size = batch_size

    async def expire_stale_pending(self, now: Optional[datetime] = None) -> ExpirySweep:
        now = now or datetime.now(timezone.utc)
        cutoff = now - self._ttl
        expired = skipped = 0
        async with self._uow_factory() as uow:
            repo = uow.payment_repository
            for intent in await repo.list_stale_pending(cutoff, limit=self._batch_size):
                intent.mark_failed(EXPIRED_REASON)
                # a webhook may have settled it since the listing
                if await repo.save_transition(intent, PaymentState.PENDING) is None:
                    skipped += 1
                else:
                    expired += 1

        if expired or skipped:
            logger.info("pending_intents_expired", expired=expired, skipped=skipped, cutoff=cutoff.isoformat())
        return ExpirySweep(expired=expired, skipped=skipped)
