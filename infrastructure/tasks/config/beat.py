"""Celery beat schedule configuration.

Periodic ledger maintenance; task names match ``infrastructure.tasks.tasks.payments``.
"""
from __future__ import annotations

CELERY_BEAT_SCHEDULE = {
    "expire-stale-pending-intents": {
        "task": "payments.expire_stale_pending",
        "schedule": 300,  # every 5 minutes
    },
    "retry-deferred-payouts": {
        "task": "payments.retry_deferred_payouts",
        "schedule": 600,
        "kwargs": {"limit": 50},
    },
}
