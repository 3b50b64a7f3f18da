"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.types import condecimal

SUPPORTED_CURRENCIES = {"INR"}


# ---------------------------------------------------------------------------
# Gateway port DTOs
# ---------------------------------------------------------------------------
class CreateOrder(BaseModel):
    order_token: str
    amount: condecimal(gt=0, decimal_places=2)  # type: ignore[valid-type]
    currency: str = Field(default="INR")
    customer_id: str
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    return_url: Optional[str] = None
    notify_url: Optional[str] = None
    note: Optional[str] = None
    tags: Optional[dict[str, str]] = None
    # 网关侧订单失效时间，与账本的 pending 过期窗口对齐
    expires_at: Optional[datetime] = None

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        u = (v or "").upper()
        if len(u) != 3 or not u.isalpha():
            raise ValueError("currency must be ISO-4217 alpha-3")
        if u not in SUPPORTED_CURRENCIES:
            raise ValueError("unsupported currency")
        return u


class GatewayOrder(BaseModel):
    provider: str
    order_token: str
    external_order_token: str
    checkout_session_token: Optional[str] = None
    status: str = "pending"


class OrderSnapshot(BaseModel):
    """Read-only view of the gateway's order; never written to the ledger."""

    provider: str
    order_token: str
    external_order_token: Optional[str] = None
    status: str
    provider_status: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None


class TransferRequest(BaseModel):
    transfer_id: str
    amount: condecimal(gt=0, decimal_places=2)  # type: ignore[valid-type]
    currency: str = "INR"
    destination: str
    beneficiary_name: Optional[str] = None
    beneficiary_email: Optional[str] = None
    remarks: Optional[str] = None


class TransferAccepted(BaseModel):
    provider: str
    transfer_id: str
    provider_ref: Optional[str] = None
    status: str = "processing"


# ---------------------------------------------------------------------------
# API DTOs
# ---------------------------------------------------------------------------
class CreateOrderRequest(BaseModel):
    file_id: int = Field(gt=0)


class OrderCreatedDTO(BaseModel):
    intent_id: int
    order_token: str
    checkout_session_token: Optional[str] = None
    amount: Decimal
    currency: str
    state: str


class PaymentStatusDTO(BaseModel):
    intent_id: int
    order_token: str
    file_id: int
    state: str
    amount: Decimal
    currency: str
    settled_at: Optional[datetime] = None
    gateway: Optional[OrderSnapshot] = None


class PaymentIntentDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_token: str
    file_id: int
    creator_id: int
    payer_id: int
    amount: Decimal
    currency: str
    platform_share: Decimal
    creator_share: Decimal
    state: str
    payout_state: str
    payment_method: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None
    payout_at: Optional[datetime] = None

    @field_validator("state", "payout_state", mode="before")
    @classmethod
    def _enum_value(cls, v: Any) -> Any:
        return getattr(v, "value", v)


class EarningsSummaryDTO(BaseModel):
    total_sales: int = 0
    total_revenue: Decimal = Decimal("0")
    earnings: Decimal = Decimal("0")
    platform_fees: Decimal = Decimal("0")


class CreatorEarningsDTO(BaseModel):
    items: list[PaymentIntentDTO]
    total: int
    page: int
    size: int
    summary: EarningsSummaryDTO


class StateBreakdownDTO(BaseModel):
    state: str
    count: int
    amount: Decimal


class PaymentStatsDTO(BaseModel):
    period_days: int
    total_payments: int
    successful_payments: int
    failed_payments: int
    pending_payments: int
    refunded_payments: int
    total_revenue: Decimal
    total_earnings: Decimal
    platform_fees: Decimal
    success_rate: Decimal
    breakdown: list[StateBreakdownDTO]


class RefundRequestDTO(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class WebhookOutcomeDTO(BaseModel):
    result: Literal["applied", "duplicate", "unknown_order", "rejected", "error"]
    detail: Optional[str] = None
    intent_id: Optional[int] = None


class AccessDecisionDTO(BaseModel):
    file_id: int
    verdict: str
    price: Optional[Decimal] = None


class DownloadGrantDTO(BaseModel):
    file_id: int
    url: str
    expires_in: int
    filename: Optional[str] = None


class PayoutResultDTO(BaseModel):
    intent_id: int
    result: Literal["dispatched", "deferred", "failed", "skipped"]
    payout_token: Optional[str] = None
    reason: Optional[str] = None


class ExpirySweepDTO(BaseModel):
    expired: int
    skipped: int


class GatewayHealthDTO(BaseModel):
    provider: str
    environment: str
    configured: bool
    authenticated: bool
    message: str
