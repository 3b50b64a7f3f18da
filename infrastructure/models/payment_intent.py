"""
支付意图（账本）数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Text, Index, ForeignKey
)
from datetime import datetime, timezone

from .base import Base


class PaymentIntentModel(Base):
    """
    账本表映射

    所有业务规则都在 domain.payment.entity.PaymentIntent 中；
    状态列的更新必须通过仓储的条件更新（WHERE state = :expected）完成。
    """
    __tablename__ = "payment_intents"

    id = Column(Integer, primary_key=True, index=True)

    order_token = Column(String(100), unique=True, index=True, nullable=False, comment="商户订单号/幂等令牌")

    file_id = Column(Integer, ForeignKey("file_assets.id"), nullable=False, index=True, comment="文件ID")
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True, comment="创作者ID")
    payer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True, comment="付款人ID")

    # 金额信息（Numeric 精确到分）
    amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="支付金额")
    currency = Column(String(3), nullable=False, default="INR", comment="货币代码 ISO-4217")
    platform_share = Column(Numeric(precision=15, scale=2), nullable=False, comment="平台佣金")
    creator_share = Column(Numeric(precision=15, scale=2), nullable=False, comment="创作者收益")

    state = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="支付状态: pending/processing/completed/failed/refunded"
    )
    payout_state = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="打款状态: pending/processing/completed/failed/not_required"
    )

    # 网关信息
    external_order_token = Column(String(100), unique=True, nullable=True, comment="网关订单号 cf_order_id")
    checkout_session_token = Column(String(500), nullable=True, comment="前端收银台会话凭证")
    external_payment_token = Column(String(100), unique=True, nullable=True, comment="网关支付流水号")
    payment_method = Column(String(50), nullable=True, comment="支付方式")
    bank_reference = Column(String(100), nullable=True, comment="银行参考号")
    failure_reason = Column(Text, nullable=True, comment="失败原因")

    # 打款信息
    payout_token = Column(String(100), unique=True, nullable=True, comment="打款转账ID")
    payout_utr = Column(String(100), nullable=True, comment="打款 UTR")
    payout_failure_reason = Column(Text, nullable=True, comment="打款失败原因")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )
    settled_at = Column(DateTime(timezone=True), nullable=True, comment="结算时间")
    payout_at = Column(DateTime(timezone=True), nullable=True, comment="打款完成时间")

    __table_args__ = (
        Index("ix_payment_intents_file_payer", "file_id", "payer_id", "created_at"),
        Index("ix_payment_intents_creator_state", "creator_id", "state"),
        Index("ix_payment_intents_payer_state", "payer_id", "state"),
    )

    def __repr__(self):
        return (
            f"<PaymentIntentModel(id={self.id}, order_token='{self.order_token}', "
            f"amount={self.amount}, state='{self.state}', payout_state='{self.payout_state}')>"
        )
