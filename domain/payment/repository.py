"""
支付账本仓储接口 - 定义 PaymentIntent 数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from .entity import PaymentIntent, PaymentState, PayoutState


@dataclass
class StateSummary:
    """按状态聚合的统计行"""
    state: PaymentState
    count: int
    total_amount: Decimal
    total_creator_share: Decimal
    total_platform_share: Decimal


class PaymentIntentRepository(ABC):
    """
    账本仓储抽象接口

    写入约定：状态变更一律通过 save_transition / save_payout_transition，
    以"当前状态等于预期状态"为条件原子更新；条件不满足时返回 None，不写入。
    """

    @abstractmethod
    async def create(self, intent: PaymentIntent) -> PaymentIntent:
        """创建账本记录"""
        pass

    @abstractmethod
    async def delete(self, intent_id: int) -> bool:
        """删除账本记录（仅用于下单失败时回滚 pending 记录）"""
        pass

    @abstractmethod
    async def get_by_id(self, intent_id: int) -> Optional[PaymentIntent]:
        pass

    @abstractmethod
    async def get_by_order_token(self, order_token: str) -> Optional[PaymentIntent]:
        pass

    @abstractmethod
    async def get_by_external_order_token(self, external_order_token: str) -> Optional[PaymentIntent]:
        pass

    @abstractmethod
    async def get_by_payout_token(self, payout_token: str) -> Optional[PaymentIntent]:
        pass

    @abstractmethod
    async def get_completed_for(self, file_id: int, payer_id: int) -> Optional[PaymentIntent]:
        """获取 (文件, 付款人) 最近一笔已完成的账本记录；存在即视为已购买"""
        pass

    @abstractmethod
    async def attach_external_order(
        self,
        intent_id: int,
        external_order_token: str,
        checkout_session_token: Optional[str],
    ) -> PaymentIntent:
        """记录网关订单号（只允许设置一次）"""
        pass

    @abstractmethod
    async def save_transition(
        self,
        intent: PaymentIntent,
        expected_state: PaymentState,
    ) -> Optional[PaymentIntent]:
        """当库中状态仍为 expected_state 时写入 intent 的状态与结算字段"""
        pass

    @abstractmethod
    async def save_payout_transition(
        self,
        intent: PaymentIntent,
        expected_payout_state: PayoutState,
    ) -> Optional[PaymentIntent]:
        """当库中打款状态仍为 expected_payout_state 时写入打款字段"""
        pass

    @abstractmethod
    async def list_by_payer(
        self,
        payer_id: int,
        skip: int = 0,
        limit: int = 100,
        state: Optional[PaymentState] = None,
    ) -> List[PaymentIntent]:
        pass

    @abstractmethod
    async def count_by_payer(self, payer_id: int, state: Optional[PaymentState] = None) -> int:
        pass

    @abstractmethod
    async def list_by_creator(
        self,
        creator_id: int,
        skip: int = 0,
        limit: int = 100,
        state: Optional[PaymentState] = None,
    ) -> List[PaymentIntent]:
        pass

    @abstractmethod
    async def count_by_creator(self, creator_id: int, state: Optional[PaymentState] = None) -> int:
        pass

    @abstractmethod
    async def summarize_by_state(
        self,
        creator_id: int,
        since: Optional[datetime] = None,
    ) -> List[StateSummary]:
        pass

    @abstractmethod
    async def list_stale_pending(self, older_than: datetime, limit: int = 100) -> List[PaymentIntent]:
        """获取创建时间早于 older_than 的 pending 记录"""
        pass

    @abstractmethod
    async def list_awaiting_payout(self, limit: int = 100) -> List[PaymentIntent]:
        """获取已结算但打款仍为 pending 的记录"""
        pass
