"""Download signer errors."""
from typing import Optional


class StorageError(Exception):
    """Base error for the signed-download layer."""


class ConfigurationError(StorageError):
    """Provider selected but not usable (missing bucket, unknown type)."""


class SigningError(StorageError):
    """Provider could not sign a URL for the given object key."""

    def __init__(self, key: str, reason: str, code: Optional[str] = None) -> None:
        super().__init__(f"cannot sign {key}: {reason}")
        self.key = key
        self.reason = reason
        self.code = code
