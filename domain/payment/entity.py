"""
支付领域实体 - PaymentIntent 聚合根（账本记录）
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from domain.payment.exceptions import InvalidStateTransitionException


class PaymentState(str, Enum):
    """支付状态枚举"""
    PENDING = "pending"           # 待支付
    PROCESSING = "processing"     # 调用方在长耗时操作前设置的乐观锁标记
    COMPLETED = "completed"       # 已结算
    FAILED = "failed"             # 失败/用户放弃/过期
    REFUNDED = "refunded"         # 已退款


class PayoutState(str, Enum):
    """创作者打款状态枚举"""
    PENDING = "pending"
    PROCESSING = "processing"     # 已提交外部打款，等待确认
    COMPLETED = "completed"
    FAILED = "failed"
    NOT_REQUIRED = "not_required"


STATE_TRANSITIONS: dict[PaymentState, frozenset[PaymentState]] = {
    PaymentState.PENDING: frozenset({PaymentState.PROCESSING, PaymentState.COMPLETED, PaymentState.FAILED}),
    PaymentState.PROCESSING: frozenset({PaymentState.COMPLETED, PaymentState.FAILED}),
    PaymentState.COMPLETED: frozenset({PaymentState.REFUNDED}),
    PaymentState.FAILED: frozenset(),
    PaymentState.REFUNDED: frozenset(),
}

PAYOUT_TRANSITIONS: dict[PayoutState, frozenset[PayoutState]] = {
    PayoutState.PENDING: frozenset({PayoutState.PROCESSING, PayoutState.FAILED, PayoutState.NOT_REQUIRED}),
    PayoutState.PROCESSING: frozenset({PayoutState.COMPLETED, PayoutState.FAILED}),
    PayoutState.COMPLETED: frozenset(),
    PayoutState.FAILED: frozenset(),
    PayoutState.NOT_REQUIRED: frozenset(),
}

# States from which gateway webhooks no longer apply.
SETTLED_STATES = frozenset({PaymentState.COMPLETED, PaymentState.FAILED, PaymentState.REFUNDED})

PAYOUT_FINAL_STATES = frozenset({PayoutState.COMPLETED, PayoutState.FAILED, PayoutState.NOT_REQUIRED})


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def assert_transition(current: PaymentState, target: PaymentState) -> None:
    if target not in STATE_TRANSITIONS[current]:
        raise InvalidStateTransitionException(current.value, target.value)


def assert_payout_transition(current: PayoutState, target: PayoutState) -> None:
    if target not in PAYOUT_TRANSITIONS[current]:
        raise InvalidStateTransitionException(current.value, target.value, kind="payout_state")


@dataclass
class PaymentIntent:
    """
    账本记录 - 一次购买尝试从创建到结算的完整生命周期

    业务规则：
    1. 付款人不能是创作者
    2. 金额必须大于0
    3. platform_share + creator_share == amount
    4. 状态转换必须遵循状态机；终态记录永不删除
    """

    id: Optional[int]
    order_token: str  # 调用方生成的幂等令牌，同时作为网关的商户订单号
    file_id: int
    creator_id: int
    payer_id: int
    amount: Decimal
    currency: str
    platform_share: Decimal
    creator_share: Decimal
    state: PaymentState = PaymentState.PENDING
    payout_state: PayoutState = PayoutState.PENDING

    # 网关信息
    external_order_token: Optional[str] = None
    checkout_session_token: Optional[str] = None
    external_payment_token: Optional[str] = None
    payment_method: Optional[str] = None
    bank_reference: Optional[str] = None
    failure_reason: Optional[str] = None

    # 打款信息
    payout_token: Optional[str] = None
    payout_utr: Optional[str] = None
    payout_failure_reason: Optional[str] = None

    # 时间戳
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None
    payout_at: Optional[datetime] = None

    def __post_init__(self):
        self.state = PaymentState(self.state)
        self.payout_state = PayoutState(self.payout_state)
        self._validate_parties()
        self._validate_amounts()
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.settled_at = _ensure_utc(self.settled_at)
        self.payout_at = _ensure_utc(self.payout_at)

    def _validate_parties(self) -> None:
        if self.payer_id == self.creator_id:
            raise DomainValidationException("付款人不能是创作者", field="payer_id")

    def _validate_amounts(self) -> None:
        if self.amount <= 0:
            raise DomainValidationException(f"支付金额必须大于0: {self.amount}", field="amount")
        if self.platform_share < 0 or self.creator_share < 0:
            raise DomainValidationException("分成金额不能为负", field="platform_share")
        if self.platform_share + self.creator_share != self.amount:
            raise DomainValidationException(
                f"分成之和 {self.platform_share + self.creator_share} 不等于金额 {self.amount}",
                field="creator_share",
            )

    # ------------------------------------------------------------------
    # State machine (mutates the in-memory copy; persistence is a CAS in the
    # repository keyed on the state observed before the mutation)
    # ------------------------------------------------------------------
    def is_settled(self) -> bool:
        return self.state in SETTLED_STATES

    def is_paid(self) -> bool:
        return self.state == PaymentState.COMPLETED

    def mark_processing(self) -> None:
        assert_transition(self.state, PaymentState.PROCESSING)
        self.state = PaymentState.PROCESSING
        self.updated_at = datetime.now(timezone.utc)

    def mark_completed(
        self,
        external_payment_token: Optional[str] = None,
        *,
        payment_method: Optional[str] = None,
        bank_reference: Optional[str] = None,
    ) -> None:
        assert_transition(self.state, PaymentState.COMPLETED)
        self.state = PaymentState.COMPLETED
        if external_payment_token:
            self.external_payment_token = external_payment_token
        if payment_method:
            self.payment_method = payment_method.lower()
        if bank_reference:
            self.bank_reference = bank_reference
        self.failure_reason = None
        self.settled_at = datetime.now(timezone.utc)
        self.updated_at = self.settled_at

    def mark_failed(self, reason: Optional[str] = None) -> None:
        assert_transition(self.state, PaymentState.FAILED)
        self.state = PaymentState.FAILED
        self.failure_reason = reason or "Payment failed"
        # 未收款，无需打款
        if self.payout_state == PayoutState.PENDING:
            self.payout_state = PayoutState.NOT_REQUIRED
        self.updated_at = datetime.now(timezone.utc)

    def mark_refunded(self, reason: Optional[str] = None) -> None:
        assert_transition(self.state, PaymentState.REFUNDED)
        self.state = PaymentState.REFUNDED
        if reason:
            self.failure_reason = reason
        self.updated_at = datetime.now(timezone.utc)

    # ------------------------------------------------------------------
    # Payout sub-state
    # ------------------------------------------------------------------
    def mark_payout_processing(self, payout_token: Optional[str] = None) -> None:
        assert_payout_transition(self.payout_state, PayoutState.PROCESSING)
        self.payout_state = PayoutState.PROCESSING
        if payout_token:
            self.payout_token = payout_token
        self.payout_failure_reason = None
        self.updated_at = datetime.now(timezone.utc)

    def mark_payout_completed(self, utr: Optional[str] = None) -> None:
        assert_payout_transition(self.payout_state, PayoutState.COMPLETED)
        self.payout_state = PayoutState.COMPLETED
        if utr:
            self.payout_utr = utr
        self.payout_at = datetime.now(timezone.utc)
        self.updated_at = self.payout_at

    def mark_payout_failed(self, reason: str) -> None:
        assert_payout_transition(self.payout_state, PayoutState.FAILED)
        self.payout_state = PayoutState.FAILED
        self.payout_failure_reason = reason
        self.updated_at = datetime.now(timezone.utc)

    def belongs_to(self, user_id: int) -> bool:
        """付款人或创作者可查看"""
        return user_id in (self.payer_id, self.creator_id)
