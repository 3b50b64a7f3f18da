from decimal import Decimal

import pytest

from application.services.payout_service import DESTINATION_MISSING, GATEWAY_UNAVAILABLE, PayoutService
from domain.payment.entity import PayoutState
from domain.payment.events import PayoutFailedEvent, PayoutSucceededEvent
from domain.payment.exceptions import PaymentIntentNotFoundException, PayoutDispatchError
from domain.user.entity import User


def _transfer_id(intent):
    return f"payout_{intent.id}"


@pytest.fixture
def payouts(uow_factory, payout_gateway):
    return PayoutService(uow_factory, payout_gateway, transfer_id_factory=_transfer_id)


async def _load(uow_factory, intent_id):
    async with uow_factory(readonly=True) as uow:
        return await uow.payment_repository.get_by_id(intent_id)


@pytest.mark.asyncio
async def test_dispatch_marks_processing(payouts, payout_gateway, uow_factory, make_intent, complete_intent):
    intent = await complete_intent(await make_intent())

    result = await payouts.schedule_payout(intent.id)

    assert result.result == "dispatched"
    assert result.payout_token == f"payout_{intent.id}"
    stored = await _load(uow_factory, intent.id)
    assert stored.payout_state == PayoutState.PROCESSING
    assert stored.payout_token == f"payout_{intent.id}"

    transfer = payout_gateway.requests[0]
    assert transfer.amount == Decimal("90.00")
    assert transfer.destination == "asha@okaxis"
    assert transfer.beneficiary_name == "Asha"
    assert "uplink_test_1" in transfer.remarks


@pytest.mark.asyncio
async def test_confirmation_resolves_payout(payouts, uow_factory, make_intent, complete_intent):
    intent = await complete_intent(await make_intent())
    result = await payouts.schedule_payout(intent.id)

    saved = await payouts.confirm(
        PayoutSucceededEvent(provider="stub", payout_token=result.payout_token, utr="UTR42")
    )

    assert saved.payout_state == PayoutState.COMPLETED
    assert saved.payout_utr == "UTR42"
    assert saved.payout_at is not None

    # delivered twice
    assert await payouts.confirm(PayoutSucceededEvent(provider="stub", payout_token=result.payout_token)) is None
    # late failure after success
    assert await payouts.confirm(PayoutFailedEvent(provider="stub", payout_token=result.payout_token)) is None
    assert (await _load(uow_factory, intent.id)).payout_state == PayoutState.COMPLETED


@pytest.mark.asyncio
async def test_failed_confirmation(payouts, uow_factory, make_intent, complete_intent):
    intent = await complete_intent(await make_intent())
    result = await payouts.schedule_payout(intent.id)

    saved = await payouts.confirm(
        PayoutFailedEvent(provider="stub", payout_token=result.payout_token, reason="Invalid VPA")
    )

    assert saved.payout_state == PayoutState.FAILED
    assert saved.payout_failure_reason == "Invalid VPA"


@pytest.mark.asyncio
async def test_confirmation_for_unknown_transfer(payouts, marketplace):
    assert await payouts.confirm(PayoutSucceededEvent(provider="stub", payout_token="payout_missing")) is None


@pytest.mark.asyncio
async def test_synchronous_rejection_fails_payout(payouts, payout_gateway, uow_factory, make_intent, complete_intent):
    payout_gateway.fail_with = PayoutDispatchError("Insufficient balance in payout account", provider="stub")
    intent = await complete_intent(await make_intent())

    result = await payouts.schedule_payout(intent.id)

    assert result.result == "failed"
    assert result.reason == "Insufficient balance in payout account"
    stored = await _load(uow_factory, intent.id)
    assert stored.payout_state == PayoutState.FAILED
    assert stored.payout_failure_reason == "Insufficient balance in payout account"


@pytest.mark.asyncio
async def test_missing_destination(payouts, payout_gateway, uow_factory, make_intent, complete_intent):
    async with uow_factory() as uow:
        creator = await uow.user_repository.create(User(id=None, name="Nomad", email="nomad@example.com"))
    intent = await complete_intent(await make_intent(creator_id=creator.id))

    result = await payouts.schedule_payout(intent.id)

    assert result.result == "failed"
    assert result.reason == DESTINATION_MISSING
    stored = await _load(uow_factory, intent.id)
    assert stored.payout_state == PayoutState.FAILED
    assert stored.payout_failure_reason == DESTINATION_MISSING
    assert payout_gateway.requests == []


@pytest.mark.asyncio
async def test_phone_destination(payouts, payout_gateway, uow_factory, make_intent, complete_intent):
    async with uow_factory() as uow:
        creator = await uow.user_repository.create(
            User(id=None, name="Meera", email="meera@example.com", phone="+919812345678")
        )
    intent = await complete_intent(await make_intent(creator_id=creator.id))

    await payouts.schedule_payout(intent.id)

    assert payout_gateway.requests[0].destination == "+919812345678"


@pytest.mark.asyncio
async def test_unconfigured_gateway_defers(uow_factory, payout_gateway, make_intent, complete_intent):
    payout_gateway.configured = False
    service = PayoutService(uow_factory, payout_gateway, transfer_id_factory=_transfer_id)
    intent = await complete_intent(await make_intent())

    result = await service.schedule_payout(intent.id)

    assert result.result == "deferred"
    assert result.reason == GATEWAY_UNAVAILABLE
    assert (await _load(uow_factory, intent.id)).payout_state == PayoutState.PENDING
    assert payout_gateway.requests == []

    payout_gateway.configured = True
    retried = await service.retry_deferred()

    assert [r.result for r in retried] == ["dispatched"]
    assert (await _load(uow_factory, intent.id)).payout_state == PayoutState.PROCESSING


@pytest.mark.asyncio
async def test_no_gateway_defers(uow_factory, make_intent, complete_intent):
    service = PayoutService(uow_factory, None)
    intent = await complete_intent(await make_intent())

    result = await service.schedule_payout(intent.id)

    assert result.result == "deferred"


@pytest.mark.asyncio
async def test_skips_unsettled_and_already_claimed(payouts, payout_gateway, make_intent, complete_intent):
    pending = await make_intent("uplink_pending")
    settled = await complete_intent(await make_intent("uplink_settled"))

    skipped = await payouts.schedule_payout(pending.id)
    first = await payouts.schedule_payout(settled.id)
    second = await payouts.schedule_payout(settled.id)

    assert skipped.result == "skipped"
    assert first.result == "dispatched"
    assert second.result == "skipped"
    assert second.reason == "payout_processing"
    assert len(payout_gateway.requests) == 1


@pytest.mark.asyncio
async def test_unknown_intent(payouts, marketplace):
    with pytest.raises(PaymentIntentNotFoundException):
        await payouts.schedule_payout(9999)
