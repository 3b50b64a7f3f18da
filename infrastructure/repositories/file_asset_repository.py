"""SQLAlchemy-backed repository for file assets."""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.file_asset import FileAsset, FileAssetRepository
from domain.common.exceptions import FileAssetNotFoundException
from infrastructure.models.file_asset import FileAssetModel


class SQLAlchemyFileAssetRepository(FileAssetRepository):
    """Persist file asset aggregates using SQLAlchemy ORM."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: FileAssetModel) -> FileAsset:
        return FileAsset(
            id=model.id,
            creator_id=model.creator_id,
            storage_key=model.key,
            original_filename=model.original_filename,
            content_type=model.content_type,
            size=model.size or 0,
            price=Decimal(str(model.price or 0)),
            is_public=model.is_public,
            metadata=dict(model.extra_metadata or {}),
            status=model.status,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _apply_entity(self, model: FileAssetModel, asset: FileAsset) -> None:
        model.creator_id = asset.creator_id
        model.key = asset.storage_key
        model.original_filename = asset.original_filename
        model.content_type = asset.content_type
        model.size = asset.size
        model.price = asset.price
        model.is_public = asset.is_public
        model.extra_metadata = asset.metadata or {}
        model.status = asset.status

    async def create(self, asset: FileAsset) -> FileAsset:
        model = FileAssetModel()
        self._apply_entity(model, asset)
        if asset.created_at:
            model.created_at = asset.created_at
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def update(self, asset: FileAsset) -> FileAsset:
        if asset.id is None:
            raise ValueError("FileAsset.id is required for update")
        model = await self.session.get(FileAssetModel, asset.id)
        if model is None:
            raise FileAssetNotFoundException(str(asset.id))
        self._apply_entity(model, asset)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def get_by_id(self, asset_id: int) -> Optional[FileAsset]:
        result = await self.session.execute(
            select(FileAssetModel).where(FileAssetModel.id == asset_id)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None
