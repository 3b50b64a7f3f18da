"""Read-side ledger queries for payers, creators and dashboards."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional

from application.dtos.payments import (
    CreatorEarningsDTO,
    EarningsSummaryDTO,
    PaymentIntentDTO,
    PaymentStatsDTO,
    StateBreakdownDTO,
)
from domain.common.exceptions import AccessForbiddenException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.commission import round2
from domain.payment.entity import PaymentState
from domain.payment.exceptions import PaymentIntentNotFoundException


def _skip(page: int, size: int) -> int:
    return (page - 1) * size


class LedgerQueryService:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]) -> None:
        self._uow_factory = uow_factory

    async def list_payer_payments(
        self,
        payer_id: int,
        page: int = 1,
        size: int = 20,
        state: Optional[PaymentState] = None,
    ) -> tuple[list[PaymentIntentDTO], int]:
        async with self._uow_factory(readonly=True) as uow:
            repo = uow.payment_repository
            items = await repo.list_by_payer(payer_id, skip=_skip(page, size), limit=size, state=state)
            total = await repo.count_by_payer(payer_id, state=state)
        return [PaymentIntentDTO.model_validate(i) for i in items], total

    async def list_creator_earnings(
        self,
        creator_id: int,
        page: int = 1,
        size: int = 20,
        state: Optional[PaymentState] = None,
    ) -> CreatorEarningsDTO:
        async with self._uow_factory(readonly=True) as uow:
            repo = uow.payment_repository
            items = await repo.list_by_creator(creator_id, skip=_skip(page, size), limit=size, state=state)
            total = await repo.count_by_creator(creator_id, state=state)
            rows = await repo.summarize_by_state(creator_id)

        summary = EarningsSummaryDTO()
        for row in rows:
            if row.state == PaymentState.COMPLETED:
                summary = EarningsSummaryDTO(
                    total_sales=row.count,
                    total_revenue=row.total_amount,
                    earnings=row.total_creator_share,
                    platform_fees=row.total_platform_share,
                )
        return CreatorEarningsDTO(
            items=[PaymentIntentDTO.model_validate(i) for i in items],
            total=total,
            page=page,
            size=size,
            summary=summary,
        )

    async def get_payment(self, intent_id: int, requester_id: int) -> PaymentIntentDTO:
        async with self._uow_factory(readonly=True) as uow:
            intent = await uow.payment_repository.get_by_id(intent_id)
        if intent is None:
            raise PaymentIntentNotFoundException(str(intent_id))
        if not intent.belongs_to(requester_id):
            raise AccessForbiddenException(details={"intent_id": intent_id})
        return PaymentIntentDTO.model_validate(intent)

    async def stats(self, creator_id: int, days: int = 30, *, now: Optional[datetime] = None) -> PaymentStatsDTO:
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(days=days)
        async with self._uow_factory(readonly=True) as uow:
            rows = await uow.payment_repository.summarize_by_state(creator_id, since=since)

        by_state = {row.state: row for row in rows}
        total = sum(row.count for row in rows)

        def count(state: PaymentState) -> int:
            row = by_state.get(state)
            return row.count if row else 0

        completed = by_state.get(PaymentState.COMPLETED)
        successful = count(PaymentState.COMPLETED)
        success_rate = round2(Decimal(successful) * 100 / Decimal(total)) if total else Decimal("0.00")

        return PaymentStatsDTO(
            period_days=days,
            total_payments=total,
            successful_payments=successful,
            failed_payments=count(PaymentState.FAILED),
            pending_payments=count(PaymentState.PENDING) + count(PaymentState.PROCESSING),
            refunded_payments=count(PaymentState.REFUNDED),
            total_revenue=completed.total_amount if completed else Decimal("0"),
            total_earnings=completed.total_creator_share if completed else Decimal("0"),
            platform_fees=completed.total_platform_share if completed else Decimal("0"),
            success_rate=success_rate,
            breakdown=[
                StateBreakdownDTO(state=row.state.value, count=row.count, amount=row.total_amount)
                for row in sorted(rows, key=lambda r: r.state.value)
            ],
        )
