from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from application.services.expiry_service import EXPIRED_REASON, ExpiryService
from application.services.ledger_query_service import LedgerQueryService
from application.services.refund_service import RefundService
from domain.common.exceptions import AccessForbiddenException, ConflictException
from domain.payment.entity import PaymentState, PayoutState
from domain.payment.exceptions import PaymentIntentNotFoundException


async def _fail(uow_factory, intent, reason="Payment failed"):
    async with uow_factory() as uow:
        intent.mark_failed(reason)
        return await uow.payment_repository.save_transition(intent, PaymentState.PENDING)


@pytest.fixture
def queries(uow_factory):
    return LedgerQueryService(uow_factory)


@pytest.mark.asyncio
async def test_payer_history_with_state_filter(queries, marketplace, make_intent, complete_intent):
    await complete_intent(await make_intent("uplink_a"))
    await make_intent("uplink_b")

    items, total = await queries.list_payer_payments(marketplace.payer.id)
    completed, completed_total = await queries.list_payer_payments(
        marketplace.payer.id, state=PaymentState.COMPLETED
    )

    assert total == 2
    assert {i.order_token for i in items} == {"uplink_a", "uplink_b"}
    assert completed_total == 1
    assert completed[0].state == "completed"
    assert completed[0].payout_state == "pending"


@pytest.mark.asyncio
async def test_payer_history_paginates(queries, marketplace, make_intent):
    now = datetime.now(timezone.utc)
    for n in range(3):
        await make_intent(f"uplink_{n}", created_at=now - timedelta(minutes=n))

    page_two, total = await queries.list_payer_payments(marketplace.payer.id, page=2, size=2)

    assert total == 3
    assert [i.order_token for i in page_two] == ["uplink_2"]


@pytest.mark.asyncio
async def test_creator_earnings_summary(queries, marketplace, make_intent, complete_intent):
    await complete_intent(await make_intent("uplink_a"), payment_token="pay_a")
    await complete_intent(await make_intent("uplink_b"), payment_token="pay_b")
    await make_intent("uplink_c")

    earnings = await queries.list_creator_earnings(marketplace.creator.id)

    assert earnings.total == 3
    assert earnings.summary.total_sales == 2
    assert earnings.summary.total_revenue == Decimal("200.00")
    assert earnings.summary.earnings == Decimal("180.00")
    assert earnings.summary.platform_fees == Decimal("20.00")


@pytest.mark.asyncio
async def test_creator_without_sales(queries, marketplace):
    earnings = await queries.list_creator_earnings(marketplace.payer.id)
    assert earnings.total == 0
    assert earnings.summary.total_sales == 0
    assert earnings.summary.earnings == Decimal("0")


@pytest.mark.asyncio
async def test_payment_detail_visibility(queries, marketplace, make_intent):
    intent = await make_intent()

    assert (await queries.get_payment(intent.id, marketplace.payer.id)).id == intent.id
    assert (await queries.get_payment(intent.id, marketplace.creator.id)).id == intent.id
    with pytest.raises(AccessForbiddenException):
        await queries.get_payment(intent.id, 9999)
    with pytest.raises(PaymentIntentNotFoundException):
        await queries.get_payment(9999, marketplace.payer.id)


@pytest.mark.asyncio
async def test_stats_window(queries, uow_factory, marketplace, make_intent, complete_intent):
    now = datetime.now(timezone.utc)
    await complete_intent(await make_intent("uplink_ok"))
    await _fail(uow_factory, await make_intent("uplink_failed"))
    await make_intent("uplink_open")
    await complete_intent(await make_intent("uplink_ancient", created_at=now - timedelta(days=45)), "pay_old")

    stats = await queries.stats(marketplace.creator.id, days=30, now=now)

    assert stats.period_days == 30
    assert stats.total_payments == 3
    assert stats.successful_payments == 1
    assert stats.failed_payments == 1
    assert stats.pending_payments == 1
    assert stats.refunded_payments == 0
    assert stats.success_rate == Decimal("33.33")
    assert stats.total_revenue == Decimal("100.00")
    assert stats.total_earnings == Decimal("90.00")
    assert stats.platform_fees == Decimal("10.00")
    assert [b.state for b in stats.breakdown] == ["completed", "failed", "pending"]


@pytest.mark.asyncio
async def test_stats_empty(queries, marketplace):
    stats = await queries.stats(marketplace.creator.id)
    assert stats.total_payments == 0
    assert stats.success_rate == Decimal("0.00")
    assert stats.breakdown == []


@pytest.mark.asyncio
async def test_refund_completed_payment(uow_factory, make_intent, complete_intent):
    intent = await complete_intent(await make_intent())

    refunded = await RefundService(uow_factory).refund(intent.id, "Duplicate charge")

    assert refunded.state == "refunded"
    assert refunded.failure_reason == "Duplicate charge"


@pytest.mark.asyncio
async def test_refund_default_reason(uow_factory, make_intent, complete_intent):
    intent = await complete_intent(await make_intent())
    refunded = await RefundService(uow_factory).refund(intent.id)
    assert refunded.failure_reason == "Refunded"


@pytest.mark.asyncio
async def test_refund_requires_completed(uow_factory, make_intent, complete_intent):
    service = RefundService(uow_factory)
    pending = await make_intent("uplink_pending")
    settled = await complete_intent(await make_intent("uplink_settled"))
    await service.refund(settled.id)

    with pytest.raises(ConflictException):
        await service.refund(pending.id)
    with pytest.raises(ConflictException):
        await service.refund(settled.id)
    with pytest.raises(PaymentIntentNotFoundException):
        await service.refund(9999)


@pytest.mark.asyncio
async def test_expire_stale_pending(uow_factory, make_intent, complete_intent):
    now = datetime.now(timezone.utc)
    stale = await make_intent("uplink_stale", created_at=now - timedelta(hours=2))
    fresh = await make_intent("uplink_fresh", created_at=now - timedelta(minutes=5))
    settled = await complete_intent(await make_intent("uplink_paid", created_at=now - timedelta(hours=3)))

    sweep = await ExpiryService(uow_factory, pending_expiry_minutes=60).expire_stale_pending(now=now)

    assert sweep.expired == 1
    assert sweep.skipped == 0
    async with uow_factory(readonly=True) as uow:
        repo = uow.payment_repository
        expired = await repo.get_by_id(stale.id)
        untouched = await repo.get_by_id(fresh.id)
        paid = await repo.get_by_id(settled.id)
    assert expired.state == PaymentState.FAILED
    assert expired.failure_reason == EXPIRED_REASON
    assert expired.payout_state == PayoutState.NOT_REQUIRED
    assert untouched.state == PaymentState.PENDING
    assert paid.state == PaymentState.COMPLETED


@pytest.mark.asyncio
async def test_expire_nothing_to_do(uow_factory, marketplace):
    sweep = await ExpiryService(uow_factory).expire_stale_pending()
    assert (sweep.expired, sweep.skipped) == (0, 0)
