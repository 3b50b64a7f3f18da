"""
Commission split between the platform and the asset's creator.

The platform share is rounded once; the creator share is derived by
subtraction so the two always sum to the original amount.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from domain.common.exceptions import DomainValidationException

CENT = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number, *, field: str) -> Decimal:
    """Convert to Decimal; floats go through str() to avoid binary noise."""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise DomainValidationException(f"{field} is not a number: {value!r}", field=field) from exc
    if not result.is_finite():
        raise DomainValidationException(f"{field} must be finite", field=field)
    return result


def round2(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CommissionSplit:
    platform_share: Decimal
    creator_share: Decimal

    @property
    def total(self) -> Decimal:
        return self.platform_share + self.creator_share


def split(amount: Number, rate: Number) -> CommissionSplit:
    """Split ``amount`` using ``rate`` (fraction in [0, 1]) as the platform cut."""
    amount = to_decimal(amount, field="amount")
    rate = to_decimal(rate, field="rate")
    if amount < 0:
        raise DomainValidationException(f"amount cannot be negative: {amount}", field="amount")
    # Amounts finer than the currency's minor unit could push the rounded
    # platform share above the amount itself.
    if amount != amount.quantize(CENT):
        raise DomainValidationException(
            f"amount has more than two decimal places: {amount}", field="amount"
        )
    if rate < 0 or rate > 1:
        raise DomainValidationException(f"rate must be within [0, 1]: {rate}", field="rate")

    platform_share = round2(amount * rate)
    creator_share = amount - platform_share
    return CommissionSplit(platform_share=platform_share, creator_share=creator_share)


@dataclass(frozen=True)
class CommissionPolicy:
    """Configured platform commission, injected into services."""

    rate: Decimal

    def __post_init__(self) -> None:
        rate = to_decimal(self.rate, field="rate")
        if rate < 0 or rate > 1:
            raise DomainValidationException(f"rate must be within [0, 1]: {rate}", field="rate")
        object.__setattr__(self, "rate", rate)

    def split(self, amount: Number) -> CommissionSplit:
        return split(amount, self.rate)
