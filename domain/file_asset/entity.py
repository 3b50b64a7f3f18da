"""Domain entity representing a creator's sellable file."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from domain.common.exceptions import DomainValidationException

_ALLOWED_STATUSES = {"processing", "ready", "deleted"}


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class FileAsset:
    """Aggregate root describing an uploaded asset and its listing terms."""

    id: Optional[int]
    creator_id: int
    storage_key: str
    original_filename: Optional[str] = None
    content_type: Optional[str] = None
    size: int = 0
    price: Decimal = Decimal("0")
    is_public: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)
    status: str = "ready"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.price = Decimal(str(self.price)) if not isinstance(self.price, Decimal) else self.price
        if self.price < 0:
            raise DomainValidationException(
                f"Price cannot be negative: {self.price}",
                field="price",
            )
        if self.status not in _ALLOWED_STATUSES:
            raise DomainValidationException(
                f"Invalid file status: {self.status}",
                field="status",
                details={"allowed": sorted(_ALLOWED_STATUSES)},
            )
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        if self.metadata is None:
            self.metadata = {}

    def is_paid(self) -> bool:
        return self.price > 0

    def is_purchasable(self) -> bool:
        return self.is_public and self.is_paid() and self.status != "deleted"

    def belongs_to(self, user_id: int) -> bool:
        return self.creator_id == user_id

    def update_listing(self, *, price: Optional[Decimal] = None, is_public: Optional[bool] = None) -> None:
        if price is not None:
            if price < 0:
                raise DomainValidationException(f"Price cannot be negative: {price}", field="price")
            self.price = price
        if is_public is not None:
            self.is_public = is_public
        self.updated_at = datetime.now(timezone.utc)
