"""Infrastructure models package exports."""
from .base import Base, metadata
from .user import UserModel
from .file_asset import FileAssetModel
from .payment_intent import PaymentIntentModel

__all__ = [
    "Base",
    "metadata",
    "UserModel",
    "FileAssetModel",
    "PaymentIntentModel",
]
