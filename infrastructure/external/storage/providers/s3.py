"""S3-compatible storage signer (AWS S3 / Cloudflare R2 / MinIO)."""
from typing import Any, Optional
import anyio
from functools import partial

from application.ports.storage import PresignedURL, StorageInfo, StoragePort
from core.config import StorageSettings
from core.logging_config import get_logger
from ..exceptions import ConfigurationError, SigningError

logger = get_logger(__name__)


class S3Provider(StoragePort):
    """Issues time-limited GET URLs for private objects."""

    def __init__(self, client: Any, config: StorageSettings):
        """
        Args:
            client: Boto3 S3 client instance
            config: Storage configuration
        """
        self.client = client
        self.config = config
        self.bucket = config.bucket
        self.region = config.region or "us-east-1"

    def info(self) -> StorageInfo:
        return StorageInfo(type="s3", bucket=self.bucket, region=self.region)

    async def generate_presigned_url(
        self,
        key: str,
        expires_in: int = 3600,
        method: str = "GET",
        response_content_disposition: Optional[str] = None,
        response_content_type: Optional[str] = None,
    ) -> PresignedURL:
        """Generate presigned URL for S3."""
        if method != "GET":
            raise ValueError(f"Unsupported method: {method}")
        params = {"Bucket": self.bucket, "Key": key}
        if response_content_disposition:
            params["ResponseContentDisposition"] = response_content_disposition
        if response_content_type:
            params["ResponseContentType"] = response_content_type
        try:
            url = await anyio.to_thread.run_sync(
                partial(
                    self.client.generate_presigned_url,
                    ClientMethod="get_object",
                    Params=params,
                    ExpiresIn=expires_in,
                )
            )
        except Exception as e:
            raise self._signing_error(e, key) from e
        return PresignedURL(url=url, method="GET", expires_in=expires_in)

    def _signing_error(self, e: Exception, key: str) -> SigningError:
        # 预签名在本地完成，失败通常是凭证缺失或配置错误
        code = getattr(e, "response", {}).get("Error", {}).get("Code")
        return SigningError(key, type(e).__name__, code=code)


def build_s3_provider(config: StorageSettings) -> S3Provider:
    if not config.bucket:
        raise ConfigurationError("S3 bucket name is required")

    import boto3
    from botocore.config import Config as BotoConfig

    boto_config = BotoConfig(
        region_name=config.region,
        signature_version="s3v4",
        retries={"max_attempts": 3, "mode": "standard"},
    )
    client = boto3.client(
        "s3",
        endpoint_url=config.endpoint,
        aws_access_key_id=config.aws_access_key_id,
        aws_secret_access_key=config.aws_secret_access_key,
        config=boto_config,
    )
    logger.info("storage_provider_created", provider="s3", bucket=config.bucket)
    return S3Provider(client, config)
