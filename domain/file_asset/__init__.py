"""Purchasable file assets: pricing, visibility and ownership."""
from .entity import FileAsset
from .repository import FileAssetRepository

__all__ = ["FileAsset", "FileAssetRepository"]
