"""
Download access decision.

Pure function, no I/O: callers load the file and the requester's most recent
completed intent for it (older settled purchases are not hidden by newer
pending orders) and pass both in. Must be evaluated on every download request.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.file_asset import FileAsset
from domain.payment.entity import PaymentIntent, PaymentState


class AccessVerdict(str, Enum):
    AUTHORIZED = "authorized"
    PAYMENT_REQUIRED = "payment_required"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class AccessDecision:
    verdict: AccessVerdict
    price: Optional[Decimal] = None
    reason: str = ""

    @property
    def authorized(self) -> bool:
        return self.verdict == AccessVerdict.AUTHORIZED


def decide_access(
    file: FileAsset,
    requester_id: Optional[int],
    purchase: Optional[PaymentIntent],
) -> AccessDecision:
    """
    Rules, in order:
    - the creator always has access
    - private files are forbidden to everyone else
    - paid public files need a completed intent for (file, requester)
    - free public files are open
    """
    if requester_id is not None and file.belongs_to(requester_id):
        return AccessDecision(AccessVerdict.AUTHORIZED, reason="owner")

    if not file.is_public:
        return AccessDecision(AccessVerdict.FORBIDDEN, reason="private")

    if file.is_paid():
        if (
            purchase is not None
            and purchase.file_id == file.id
            and purchase.payer_id == requester_id
            and purchase.state == PaymentState.COMPLETED
        ):
            return AccessDecision(AccessVerdict.AUTHORIZED, reason="purchased")
        return AccessDecision(AccessVerdict.PAYMENT_REQUIRED, price=file.price, reason="unpaid")

    return AccessDecision(AccessVerdict.AUTHORIZED, reason="free")
