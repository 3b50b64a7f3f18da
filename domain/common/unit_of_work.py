"""Unit of Work 抽象定义"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.file_asset.repository import FileAssetRepository
from domain.payment.repository import PaymentIntentRepository
from domain.user.repository import UserRepository


class AbstractUnitOfWork(ABC):
    """One ledger transaction.

    A clean exit commits unless the unit is readonly; any exception rolls
    back. Compare-and-set transitions done through ``payment_repository``
    only become visible to other workers once the unit commits.
    """

    user_repository: UserRepository
    file_asset_repository: FileAssetRepository
    payment_repository: PaymentIntentRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.user_repository = None  # type: ignore[assignment]
        self.file_asset_repository = None  # type: ignore[assignment]
        self.payment_repository = None  # type: ignore[assignment]

    @property
    def readonly(self) -> bool:
        return self._readonly

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc is not None:
            await self.rollback()
        elif not (self._readonly or self._committed):
            await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...
