"""Storage signer entry point and lifecycle management."""
from typing import Optional

from application.ports.storage import StoragePort
from core.config import settings
from core.logging_config import get_logger
from .exceptions import ConfigurationError, SigningError, StorageError

logger = get_logger(__name__)

_storage_client: Optional[StoragePort] = None


def create_storage_client() -> StoragePort:
    s = settings.storage
    stype = (s.type or "local").lower()
    if stype == "s3":
        from .providers.s3 import build_s3_provider
        return build_s3_provider(s)
    if stype == "local":
        from .providers.local import LocalProvider
        return LocalProvider(s)
    raise ConfigurationError(f"Storage provider '{stype}' not supported. Available: ['local', 's3']")


def init_storage_client() -> StoragePort:
    """Create the process-wide signer once."""
    global _storage_client
    if _storage_client is None:
        _storage_client = create_storage_client()
        logger.info("storage_client_initialized", provider=_storage_client.info().type)
    return _storage_client


def get_storage_client() -> Optional[StoragePort]:
    return _storage_client


def shutdown_storage_client() -> None:
    global _storage_client
    _storage_client = None


__all__ = [
    "init_storage_client",
    "get_storage_client",
    "shutdown_storage_client",
    "create_storage_client",
    "StorageError",
    "SigningError",
    "ConfigurationError",
]
