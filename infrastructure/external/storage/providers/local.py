"""Local development signer: HMAC-signed, expiring media URLs."""
import hashlib
import hmac
import time
from typing import Optional
from urllib.parse import quote, urlencode

from application.ports.storage import PresignedURL, StorageInfo, StoragePort
from core.config import StorageSettings


class LocalProvider(StoragePort):
    """Signs ``{local_base_url}/{key}?expires=..&signature=..`` links."""

    def __init__(self, config: StorageSettings, *, clock=time.time):
        self.config = config
        self._secret = config.local_signing_secret.encode("utf-8")
        self._clock = clock

    def info(self) -> StorageInfo:
        return StorageInfo(type="local", bucket=None, region=None)

    def _sign(self, key: str, expires: int) -> str:
        return hmac.new(self._secret, f"{key}:{expires}".encode("utf-8"), hashlib.sha256).hexdigest()

    async def generate_presigned_url(
        self,
        key: str,
        expires_in: int = 3600,
        method: str = "GET",
        response_content_disposition: Optional[str] = None,
        response_content_type: Optional[str] = None,
    ) -> PresignedURL:
        if method != "GET":
            raise ValueError(f"Unsupported method: {method}")
        expires = int(self._clock()) + expires_in
        query = {"expires": expires, "signature": self._sign(key, expires)}
        if response_content_disposition:
            query["disposition"] = response_content_disposition
        base = self.config.local_base_url.rstrip("/")
        url = f"{base}/{quote(key.lstrip('/'))}?{urlencode(query)}"
        return PresignedURL(url=url, method="GET", expires_in=expires_in)

    def verify(self, key: str, expires: int, signature: str) -> bool:
        if expires < int(self._clock()):
            return False
        return hmac.compare_digest(self._sign(key, expires), signature)
