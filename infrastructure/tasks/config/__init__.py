"""Celery app and the ledger maintenance beat schedule."""
from .beat import CELERY_BEAT_SCHEDULE
from .celery import celery_app

__all__ = ["celery_app", "CELERY_BEAT_SCHEDULE"]
