"""
支付账本仓储实现 - 使用SQLAlchemy实现数据访问

状态列只通过条件更新写入：UPDATE ... WHERE id = :id AND state = :expected。
受影响行数为 0 说明并发方已抢先推进状态，调用方据此把本次事件视为重复。
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError

from domain.common.exceptions import ConflictException
from domain.payment.entity import PaymentIntent, PaymentState, PayoutState
from domain.payment.exceptions import PaymentIntentNotFoundException
from domain.payment.repository import PaymentIntentRepository, StateSummary
from infrastructure.models.payment_intent import PaymentIntentModel
from core.logging_config import get_logger


logger = get_logger(__name__)


def _dec(value) -> Decimal:
    return Decimal(str(value if value is not None else 0))


class SQLAlchemyPaymentIntentRepository(PaymentIntentRepository):
    """账本仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentIntentModel) -> PaymentIntent:
        """将数据库模型转换为领域实体"""
        return PaymentIntent(
            id=model.id,
            order_token=model.order_token,
            file_id=model.file_id,
            creator_id=model.creator_id,
            payer_id=model.payer_id,
            amount=_dec(model.amount),
            currency=model.currency,
            platform_share=_dec(model.platform_share),
            creator_share=_dec(model.creator_share),
            state=PaymentState(model.state),
            payout_state=PayoutState(model.payout_state),
            external_order_token=model.external_order_token,
            checkout_session_token=model.checkout_session_token,
            external_payment_token=model.external_payment_token,
            payment_method=model.payment_method,
            bank_reference=model.bank_reference,
            failure_reason=model.failure_reason,
            payout_token=model.payout_token,
            payout_utr=model.payout_utr,
            payout_failure_reason=model.payout_failure_reason,
            created_at=model.created_at,
            updated_at=model.updated_at,
            settled_at=model.settled_at,
            payout_at=model.payout_at,
        )

    def _to_model(self, entity: PaymentIntent) -> PaymentIntentModel:
        """将领域实体转换为数据库模型"""
        return PaymentIntentModel(
            id=entity.id,
            order_token=entity.order_token,
            file_id=entity.file_id,
            creator_id=entity.creator_id,
            payer_id=entity.payer_id,
            amount=entity.amount,
            currency=entity.currency,
            platform_share=entity.platform_share,
            creator_share=entity.creator_share,
            state=entity.state.value,
            payout_state=entity.payout_state.value,
            external_order_token=entity.external_order_token,
            checkout_session_token=entity.checkout_session_token,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def _reload(self, intent_id: int) -> Optional[PaymentIntent]:
        result = await self.session.execute(
            select(PaymentIntentModel)
            .where(PaymentIntentModel.id == intent_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def _one(self, *criteria) -> Optional[PaymentIntent]:
        result = await self.session.execute(select(PaymentIntentModel).where(*criteria))
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def create(self, intent: PaymentIntent) -> PaymentIntent:
        """创建账本记录"""
        try:
            model = self._to_model(intent)
            self.session.add(model)
            await self.session.flush()
            await self.session.refresh(model)
            logger.info(
                "payment_intent_created",
                intent_id=model.id,
                order_token=model.order_token,
                file_id=model.file_id,
                amount=str(model.amount),
            )
            return self._to_entity(model)
        except IntegrityError as e:
            await self.session.rollback()
            if "order_token" in str(e).lower():
                logger.warning("payment_intent_create_conflict", order_token=intent.order_token)
                raise ConflictException(
                    "Order token already exists",
                    error_type="DuplicateOrderToken",
                    details={"order_token": intent.order_token},
                )
            raise

    async def delete(self, intent_id: int) -> bool:
        result = await self.session.execute(
            delete(PaymentIntentModel)
            .where(
                PaymentIntentModel.id == intent_id,
                PaymentIntentModel.state == PaymentState.PENDING.value,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def get_by_id(self, intent_id: int) -> Optional[PaymentIntent]:
        return await self._one(PaymentIntentModel.id == intent_id)

    async def get_by_order_token(self, order_token: str) -> Optional[PaymentIntent]:
        return await self._one(PaymentIntentModel.order_token == order_token)

    async def get_by_external_order_token(self, external_order_token: str) -> Optional[PaymentIntent]:
        return await self._one(PaymentIntentModel.external_order_token == external_order_token)

    async def get_by_payout_token(self, payout_token: str) -> Optional[PaymentIntent]:
        return await self._one(PaymentIntentModel.payout_token == payout_token)

    async def get_completed_for(self, file_id: int, payer_id: int) -> Optional[PaymentIntent]:
        result = await self.session.execute(
            select(PaymentIntentModel)
            .where(
                PaymentIntentModel.file_id == file_id,
                PaymentIntentModel.payer_id == payer_id,
                PaymentIntentModel.state == PaymentState.COMPLETED.value,
            )
            .order_by(PaymentIntentModel.created_at.desc(), PaymentIntentModel.id.desc())
            .limit(1)
        )
        model = result.scalars().first()
        return self._to_entity(model) if model else None

    async def attach_external_order(
        self,
        intent_id: int,
        external_order_token: str,
        checkout_session_token: Optional[str],
    ) -> PaymentIntent:
        result = await self.session.execute(
            update(PaymentIntentModel)
            .where(
                PaymentIntentModel.id == intent_id,
                PaymentIntentModel.external_order_token.is_(None),
            )
            .values(
                external_order_token=external_order_token,
                checkout_session_token=checkout_session_token,
            )
            .execution_options(synchronize_session=False)
        )
        current = await self._reload(intent_id)
        if current is None:
            raise PaymentIntentNotFoundException(str(intent_id))
        if result.rowcount == 0 and current.external_order_token != external_order_token:
            raise ConflictException(
                "External order already attached",
                error_type="ExternalOrderAlreadyAttached",
                details={"intent_id": intent_id},
            )
        return current

    async def save_transition(
        self,
        intent: PaymentIntent,
        expected_state: PaymentState,
    ) -> Optional[PaymentIntent]:
        result = await self.session.execute(
            update(PaymentIntentModel)
            .where(
                PaymentIntentModel.id == intent.id,
                PaymentIntentModel.state == expected_state.value,
            )
            .values(
                state=intent.state.value,
                payout_state=intent.payout_state.value,
                external_payment_token=intent.external_payment_token,
                payment_method=intent.payment_method,
                bank_reference=intent.bank_reference,
                failure_reason=intent.failure_reason,
                settled_at=intent.settled_at,
                updated_at=intent.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.info(
                "payment_transition_skipped",
                intent_id=intent.id,
                expected=expected_state.value,
                target=intent.state.value,
            )
            return None
        return await self._reload(intent.id)

    async def save_payout_transition(
        self,
        intent: PaymentIntent,
        expected_payout_state: PayoutState,
    ) -> Optional[PaymentIntent]:
        result = await self.session.execute(
            update(PaymentIntentModel)
            .where(
                PaymentIntentModel.id == intent.id,
                PaymentIntentModel.payout_state == expected_payout_state.value,
            )
            .values(
                payout_state=intent.payout_state.value,
                payout_token=intent.payout_token,
                payout_utr=intent.payout_utr,
                payout_failure_reason=intent.payout_failure_reason,
                payout_at=intent.payout_at,
                updated_at=intent.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.info(
                "payout_transition_skipped",
                intent_id=intent.id,
                expected=expected_payout_state.value,
                target=intent.payout_state.value,
            )
            return None
        return await self._reload(intent.id)

    async def _list(self, criteria, skip: int, limit: int, state: Optional[PaymentState]) -> List[PaymentIntent]:
        query = select(PaymentIntentModel).where(criteria)
        if state:
            query = query.where(PaymentIntentModel.state == state.value)
        query = query.order_by(PaymentIntentModel.created_at.desc(), PaymentIntentModel.id.desc())
        result = await self.session.execute(query.offset(skip).limit(limit))
        return [self._to_entity(m) for m in result.scalars().all()]

    async def _count(self, criteria, state: Optional[PaymentState]) -> int:
        query = select(func.count()).select_from(PaymentIntentModel).where(criteria)
        if state:
            query = query.where(PaymentIntentModel.state == state.value)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def list_by_payer(
        self,
        payer_id: int,
        skip: int = 0,
        limit: int = 100,
        state: Optional[PaymentState] = None,
    ) -> List[PaymentIntent]:
        return await self._list(PaymentIntentModel.payer_id == payer_id, skip, limit, state)

    async def count_by_payer(self, payer_id: int, state: Optional[PaymentState] = None) -> int:
        return await self._count(PaymentIntentModel.payer_id == payer_id, state)

    async def list_by_creator(
        self,
        creator_id: int,
        skip: int = 0,
        limit: int = 100,
        state: Optional[PaymentState] = None,
    ) -> List[PaymentIntent]:
        return await self._list(PaymentIntentModel.creator_id == creator_id, skip, limit, state)

    async def count_by_creator(self, creator_id: int, state: Optional[PaymentState] = None) -> int:
        return await self._count(PaymentIntentModel.creator_id == creator_id, state)

    async def summarize_by_state(
        self,
        creator_id: int,
        since: Optional[datetime] = None,
    ) -> List[StateSummary]:
        query = (
            select(
                PaymentIntentModel.state,
                func.count(PaymentIntentModel.id),
                func.sum(PaymentIntentModel.amount),
                func.sum(PaymentIntentModel.creator_share),
                func.sum(PaymentIntentModel.platform_share),
            )
            .where(PaymentIntentModel.creator_id == creator_id)
            .group_by(PaymentIntentModel.state)
        )
        if since is not None:
            query = query.where(PaymentIntentModel.created_at >= since)
        result = await self.session.execute(query)
        return [
            StateSummary(
                state=PaymentState(state),
                count=count,
                total_amount=_dec(amount),
                total_creator_share=_dec(creator_share),
                total_platform_share=_dec(platform_share),
            )
            for state, count, amount, creator_share, platform_share in result.all()
        ]

    async def list_stale_pending(self, older_than: datetime, limit: int = 100) -> List[PaymentIntent]:
        result = await self.session.execute(
            select(PaymentIntentModel)
            .where(
                PaymentIntentModel.state == PaymentState.PENDING.value,
                PaymentIntentModel.created_at < older_than,
            )
            .order_by(PaymentIntentModel.created_at.asc())
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_awaiting_payout(self, limit: int = 100) -> List[PaymentIntent]:
        result = await self.session.execute(
            select(PaymentIntentModel)
            .where(
                PaymentIntentModel.state == PaymentState.COMPLETED.value,
                PaymentIntentModel.payout_state == PayoutState.PENDING.value,
            )
            .order_by(PaymentIntentModel.settled_at.asc())
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]
