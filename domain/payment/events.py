"""
Inbound gateway events.

A closed set of frozen dataclasses: adapters translate provider payloads
into exactly one of these, and reject anything else as malformed. Services
dispatch on the concrete type and treat any other type as an error.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Union
import uuid


@dataclass(frozen=True)
class GatewayEvent:
    provider: str
    # Gateway-assigned order id; preferred reconciliation key.
    external_order_token: Optional[str] = None
    # Merchant order id we sent at creation time.
    order_token: Optional[str] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def lookup_key(self) -> str:
        return self.external_order_token or self.order_token or ""


@dataclass(frozen=True)
class PaymentSucceededEvent(GatewayEvent):
    external_payment_token: Optional[str] = None
    payment_method: Optional[str] = None
    bank_reference: Optional[str] = None


@dataclass(frozen=True)
class PaymentFailedEvent(GatewayEvent):
    reason: Optional[str] = None


@dataclass(frozen=True)
class PaymentUserDroppedEvent(GatewayEvent):
    pass


PaymentEvent = Union[PaymentSucceededEvent, PaymentFailedEvent, PaymentUserDroppedEvent]


@dataclass(frozen=True)
class PayoutEvent:
    provider: str
    payout_token: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass(frozen=True)
class PayoutSucceededEvent(PayoutEvent):
    utr: Optional[str] = None


@dataclass(frozen=True)
class PayoutFailedEvent(PayoutEvent):
    reason: Optional[str] = None


PayoutConfirmation = Union[PayoutSucceededEvent, PayoutFailedEvent]
