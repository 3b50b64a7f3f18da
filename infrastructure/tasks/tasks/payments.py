"""
Celery tasks for ledger maintenance: payout dispatch, deferred payout retry
and stale pending expiry.
"""
from __future__ import annotations

import asyncio
from typing import Callable

from celery import shared_task

from application.ports.payout_gateway import PayoutGateway
from application.services.expiry_service import ExpiryService
from application.services.payout_service import PayoutService
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import engine
from infrastructure.external.payments import get_payout_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork
from ..utils.base_task import PAYOUT_TASK, BaseTask


logger = get_logger(__name__)

# 任务体通过模块级工厂取依赖，测试时可替换
uow_factory: Callable[..., AbstractUnitOfWork] = SQLAlchemyUnitOfWork
payout_gateway_factory: Callable[[], PayoutGateway] = get_payout_gateway


def _run(fn):
    """Run one coroutine per task; pooled connections are bound to the loop."""

    async def _main():
        try:
            return await fn()
        finally:
            await engine.dispose()

    return asyncio.run(_main())


async def _with_payouts(call):
    gateway = payout_gateway_factory()
    try:
        return await call(PayoutService(uow_factory=uow_factory, gateway=gateway))
    finally:
        await gateway.aclose()


@shared_task(name=PAYOUT_TASK, bind=True, base=BaseTask, max_retries=3, default_retry_delay=30)
def task_schedule_payout(self, intent_id: int):
    try:
        result = _run(lambda: _with_payouts(lambda s: s.schedule_payout(intent_id)))
    except Exception as exc:  # pragma: no cover
        logger.error("payout_task_failed", intent_id=intent_id, error=str(exc))
        raise self.retry(exc=exc)
    return {"intent_id": result.intent_id, "result": result.result, "reason": result.reason}


@shared_task(name="payments.retry_deferred_payouts", base=BaseTask)
def task_retry_deferred_payouts(limit: int = 50):
    results = _run(lambda: _with_payouts(lambda s: s.retry_deferred(limit)))
    summary: dict[str, int] = {}
    for r in results:
        summary[r.result] = summary.get(r.result, 0) + 1
    logger.info("deferred_payouts_retried", total=len(results), **summary)
    return summary


@shared_task(name="payments.expire_stale_pending", base=BaseTask)
def task_expire_stale_pending():
    service = ExpiryService(
        uow_factory=uow_factory,
        pending_expiry_minutes=payment_settings.pending_expiry_minutes,
    )
    sweep = _run(service.expire_stale_pending)
    return {"expired": sweep.expired, "skipped": sweep.skipped}


def enqueue_payout(intent_id: int) -> None:
    """Hand a completed intent to the payouts queue (see ``task_routes``)."""
    task_schedule_payout.apply_async(args=[intent_id])
