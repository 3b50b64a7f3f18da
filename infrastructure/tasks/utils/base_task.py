"""Common base task for ledger maintenance jobs"""
from __future__ import annotations

from celery import Task
from core.logging_config import get_logger

logger = get_logger(__name__)


PAYOUT_TASK = "payments.schedule_payout"


def _intent_id(name, args, kwargs):
    if kwargs and "intent_id" in kwargs:
        return kwargs["intent_id"]
    if name == PAYOUT_TASK and args:
        return args[0]
    return None


class BaseTask(Task):
    """Structured lifecycle logging; payout tasks carry their intent id."""

    def on_failure(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.error(
            "celery_task_failure",
            task_id=task_id,
            task_name=self.name,
            intent_id=_intent_id(self.name, args, kwargs),
            retries=self.request.retries,
            exc=str(exc),
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.warning(
            "celery_task_retry",
            task_id=task_id,
            task_name=self.name,
            intent_id=_intent_id(self.name, args, kwargs),
            retries=self.request.retries,
            exc=str(exc),
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):  # type: ignore[override]
        logger.info(
            "celery_task_success",
            task_id=task_id,
            task_name=self.name,
            result=retval,
        )
        super().on_success(retval, task_id, args, kwargs)
