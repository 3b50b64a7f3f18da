from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException
from domain.payment.entity import PaymentIntent, PaymentState, PayoutState
from domain.payment.exceptions import InvalidStateTransitionException


def _intent(**overrides) -> PaymentIntent:
    fields = dict(
        id=1,
        order_token="uplink_abc",
        file_id=10,
        creator_id=1,
        payer_id=2,
        amount=Decimal("100.00"),
        currency="INR",
        platform_share=Decimal("10.00"),
        creator_share=Decimal("90.00"),
    )
    fields.update(overrides)
    return PaymentIntent(**fields)


def test_new_intent_is_pending():
    intent = _intent()
    assert intent.state == PaymentState.PENDING
    assert intent.payout_state == PayoutState.PENDING
    assert not intent.is_settled()


def test_payer_cannot_be_creator():
    with pytest.raises(DomainValidationException):
        _intent(payer_id=1)


def test_shares_must_sum_to_amount():
    with pytest.raises(DomainValidationException):
        _intent(creator_share=Decimal("89.00"))


def test_amount_must_be_positive():
    with pytest.raises(DomainValidationException):
        _intent(amount=Decimal("0"), platform_share=Decimal("0"), creator_share=Decimal("0"))


def test_mark_completed_records_settlement():
    intent = _intent()
    intent.mark_completed("cf_pay_1", payment_method="UPI", bank_reference="ref-1")
    assert intent.state == PaymentState.COMPLETED
    assert intent.external_payment_token == "cf_pay_1"
    assert intent.payment_method == "upi"
    assert intent.bank_reference == "ref-1"
    assert intent.settled_at is not None
    assert intent.is_settled() and intent.is_paid()


def test_processing_can_complete():
    intent = _intent()
    intent.mark_processing()
    intent.mark_completed()
    assert intent.state == PaymentState.COMPLETED


def test_mark_failed_releases_payout():
    intent = _intent()
    intent.mark_failed("Insufficient funds")
    assert intent.state == PaymentState.FAILED
    assert intent.failure_reason == "Insufficient funds"
    assert intent.payout_state == PayoutState.NOT_REQUIRED


def test_mark_failed_default_reason():
    intent = _intent()
    intent.mark_failed()
    assert intent.failure_reason == "Payment failed"


def test_completed_cannot_fail():
    intent = _intent()
    intent.mark_completed()
    with pytest.raises(InvalidStateTransitionException):
        intent.mark_failed("late failure")


def test_failed_is_terminal():
    intent = _intent()
    intent.mark_failed()
    with pytest.raises(InvalidStateTransitionException):
        intent.mark_completed()


def test_refund_only_from_completed():
    intent = _intent()
    with pytest.raises(InvalidStateTransitionException):
        intent.mark_refunded()
    intent.mark_completed()
    intent.mark_refunded("Chargeback")
    assert intent.state == PaymentState.REFUNDED
    assert intent.failure_reason == "Chargeback"


def test_payout_two_phase():
    intent = _intent()
    intent.mark_completed()
    intent.mark_payout_processing("payout_1_abc")
    assert intent.payout_state == PayoutState.PROCESSING
    assert intent.payout_token == "payout_1_abc"
    intent.mark_payout_completed("UTR123")
    assert intent.payout_state == PayoutState.COMPLETED
    assert intent.payout_utr == "UTR123"
    assert intent.payout_at is not None


def test_payout_cannot_complete_without_processing():
    intent = _intent()
    with pytest.raises(InvalidStateTransitionException) as exc:
        intent.mark_payout_completed("UTR123")
    assert exc.value.details["kind"] == "payout_state"


def test_belongs_to_parties_only():
    intent = _intent()
    assert intent.belongs_to(1)
    assert intent.belongs_to(2)
    assert not intent.belongs_to(3)
