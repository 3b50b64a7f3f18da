"""
Payment specific codes and gateway status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Gateway/Network errors (6xxxx)
    GATEWAY_REJECTED = 60000
    GATEWAY_UNAVAILABLE = 60001
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003
    GATEWAY_AUTH_MISMATCH = 60004
    MALFORMED_WEBHOOK = 60005

    # Payout errors (61xxx)
    PAYOUT_DESTINATION_MISSING = 61000
    PAYOUT_DISPATCH_FAILED = 61001


# Gateway order_status -> internal snapshot status. Only used for the
# read-only polling snapshot; ledger state is driven by webhooks.
GATEWAY_ORDER_STATUS_TO_INTERNAL = {
    "cashfree": {
        "ACTIVE": "pending",
        "PAID": "completed",
        "EXPIRED": "failed",
        "TERMINATED": "failed",
        "TERMINATION_REQUESTED": "failed",
    },
}

# Gateway payout transfer status -> internal payout status.
GATEWAY_TRANSFER_STATUS_TO_INTERNAL = {
    "cashfree": {
        "RECEIVED": "processing",
        "PENDING": "processing",
        "APPROVAL_PENDING": "processing",
        "SUCCESS": "completed",
        "FAILED": "failed",
        "REJECTED": "failed",
        "REVERSED": "failed",
    },
}
