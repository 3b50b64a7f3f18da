"""Application-owned storage port abstraction (hexagonal architecture).

Defines the minimal methods needed by application use cases so that
the application layer does not depend on infrastructure details.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable
from dataclasses import dataclass, field


@dataclass
class PresignedURL:
    url: str
    method: str = "GET"
    expires_in: int = 0
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class StorageInfo:
    type: str
    bucket: Optional[str]
    region: Optional[str]


@runtime_checkable
class StoragePort(Protocol):
    def info(self) -> StorageInfo: ...

    async def generate_presigned_url(
        self,
        key: str,
        expires_in: int = 3600,
        method: str = "GET",
        response_content_disposition: Optional[str] = None,
        response_content_type: Optional[str] = None,
    ) -> PresignedURL: ...
