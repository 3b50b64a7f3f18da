"""Delivery dedupe port, implemented by the redis cache."""
from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class DedupeStore(Protocol):
    async def set_if_absent(self, key: str, value: str, ttl: int) -> bool: ...

    async def delete(self, key: str) -> bool: ...
