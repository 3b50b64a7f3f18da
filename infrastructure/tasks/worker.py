"""Local worker runner for payout dispatch and ledger maintenance.

Consumes every ledger queue and embeds beat so the pending-expiry sweep and
deferred payout retries run without a separate scheduler process.
"""
from __future__ import annotations

import sys

from .config.celery import celery_app

QUEUES = ("payouts", "default", "maintenance")


def main(argv: list[str] | None = None) -> None:
    args = [
        "worker",
        "--hostname=uplink@%h",
        f"--queues={','.join(QUEUES)}",
        "--loglevel=INFO",
        "--beat",
    ]
    # 额外参数原样透传给 celery worker
    args.extend(argv if argv is not None else sys.argv[1:])
    celery_app.worker_main(args)


if __name__ == "__main__":
    main()
