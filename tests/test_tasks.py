"""Celery task bodies executed eagerly against a file-backed SQLite ledger.

Each task owns its event loop (``asyncio.run``), so these tests stay
synchronous and use a NullPool engine whose connections never outlive a loop.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from application.services.expiry_service import EXPIRED_REASON
from domain.file_asset import FileAsset
from domain.payment.commission import CommissionPolicy
from domain.payment.entity import PaymentIntent, PaymentState, PayoutState
from domain.user.entity import User
from infrastructure.models import Base
from infrastructure.tasks.tasks import payments as payment_tasks
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


@pytest.fixture
def ledger(tmp_path, monkeypatch, payout_gateway):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}", poolclass=NullPool)
    sessions = async_sessionmaker(bind=engine, expire_on_commit=False)

    def factory(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory=sessions, readonly=readonly)

    async def _create_all():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create_all())
    monkeypatch.setattr(payment_tasks, "uow_factory", factory)
    monkeypatch.setattr(payment_tasks, "payout_gateway_factory", lambda: payout_gateway)
    yield factory
    asyncio.run(engine.dispose())


def _seed(uow_factory, *, completed: bool, created_at=None) -> int:
    async def _main():
        async with uow_factory() as uow:
            creator = await uow.user_repository.create(
                User(id=None, name="Asha", email="asha@example.com", upi_id="asha@okaxis")
            )
            payer = await uow.user_repository.create(User(id=None, name="Ravi", email="ravi@example.com"))
            asset = await uow.file_asset_repository.create(
                FileAsset(
                    id=None,
                    creator_id=creator.id,
                    storage_key="creators/1/beat.mp3",
                    price=Decimal("100.00"),
                    is_public=True,
                )
            )
            split = CommissionPolicy(rate=Decimal("0.10")).split(asset.price)
            intent = await uow.payment_repository.create(
                PaymentIntent(
                    id=None,
                    order_token="uplink_task_1",
                    file_id=asset.id,
                    creator_id=creator.id,
                    payer_id=payer.id,
                    amount=asset.price,
                    currency="INR",
                    platform_share=split.platform_share,
                    creator_share=split.creator_share,
                    external_order_token="cf_uplink_task_1",
                    created_at=created_at,
                )
            )
            if completed:
                intent.mark_completed("cf_pay_1", payment_method="upi")
                intent = await uow.payment_repository.save_transition(intent, PaymentState.PENDING)
            return intent.id

    return asyncio.run(_main())


def _load(uow_factory, intent_id: int) -> PaymentIntent:
    async def _main():
        async with uow_factory(readonly=True) as uow:
            return await uow.payment_repository.get_by_id(intent_id)

    return asyncio.run(_main())


def test_schedule_payout_task_dispatches(ledger, payout_gateway):
    intent_id = _seed(ledger, completed=True)

    result = payment_tasks.task_schedule_payout.apply(args=[intent_id]).get()

    assert result["intent_id"] == intent_id
    assert result["result"] == "dispatched"
    assert len(payout_gateway.requests) == 1
    assert payout_gateway.requests[0].amount == Decimal("90.00")
    assert _load(ledger, intent_id).payout_state == PayoutState.PROCESSING


def test_retry_deferred_payouts_task_sweeps_pending(ledger, payout_gateway):
    intent_id = _seed(ledger, completed=True)

    summary = payment_tasks.task_retry_deferred_payouts.apply(kwargs={"limit": 10}).get()

    assert summary == {"dispatched": 1}
    assert _load(ledger, intent_id).payout_state == PayoutState.PROCESSING


def test_retry_deferred_payouts_task_with_nothing_waiting(ledger, payout_gateway):
    _seed(ledger, completed=False)

    summary = payment_tasks.task_retry_deferred_payouts.apply().get()

    assert summary == {}
    assert payout_gateway.requests == []


def test_expire_stale_pending_task(ledger):
    intent_id = _seed(ledger, completed=False, created_at=datetime.now(timezone.utc) - timedelta(hours=3))

    sweep = payment_tasks.task_expire_stale_pending.apply().get()

    assert sweep == {"expired": 1, "skipped": 0}
    stored = _load(ledger, intent_id)
    assert stored.state == PaymentState.FAILED
    assert stored.failure_reason == EXPIRED_REASON


def test_expire_task_leaves_fresh_pending(ledger):
    intent_id = _seed(ledger, completed=False)

    sweep = payment_tasks.task_expire_stale_pending.apply().get()

    assert sweep == {"expired": 0, "skipped": 0}
    assert _load(ledger, intent_id).state == PaymentState.PENDING


def test_enqueue_payout_routes_through_celery(monkeypatch):
    sent = []
    monkeypatch.setattr(
        payment_tasks.task_schedule_payout,
        "apply_async",
        lambda args=None, **options: sent.append(args),
    )

    payment_tasks.enqueue_payout(42)

    assert sent == [[42]]
