"""Repository abstraction for file assets."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from .entity import FileAsset


class FileAssetRepository(ABC):
    """Contract for persisting and querying file assets."""

    @abstractmethod
    async def create(self, asset: FileAsset) -> FileAsset:
        ...

    @abstractmethod
    async def update(self, asset: FileAsset) -> FileAsset:
        ...

    @abstractmethod
    async def get_by_id(self, asset_id: int) -> Optional[FileAsset]:
        ...
