"""Redis缓存实现（用于 webhook 事件去重）"""
from __future__ import annotations

import asyncio
from typing import Optional

from redis import asyncio as aioredis

from core.config import settings


class RedisCache:
    """基于Redis的简单键值缓存"""

    def __init__(self, client: aioredis.Redis, namespace: str = "") -> None:
        self._client = client
        self._namespace = namespace.strip(":")

    def _format_key(self, key: str) -> str:
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"

    async def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        """SET NX EX：首次写入返回 True，键已存在返回 False"""
        return bool(await self._client.set(self._format_key(key), value, ex=ttl, nx=True))

    async def delete(self, key: str) -> bool:
        return bool(await self._client.delete(self._format_key(key)))

    async def exists(self, key: str) -> bool:
        return bool(await self._client.exists(self._format_key(key)))


_redis_client: Optional[aioredis.Redis] = None
_cache_instance: Optional[RedisCache] = None
_lock = asyncio.Lock()


async def init_redis_cache(namespace: Optional[str] = None) -> Optional[RedisCache]:
    """初始化Redis缓存实例；未配置 REDIS__URL 时返回 None"""
    global _redis_client, _cache_instance

    if _cache_instance is not None:
        return _cache_instance

    async with _lock:
        if _cache_instance is not None:
            return _cache_instance

        if not settings.redis.url:
            return None

        client = aioredis.from_url(
            settings.redis.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.max_connections,
        )

        _redis_client = client
        _cache_instance = RedisCache(
            client=client,
            namespace=namespace or settings.redis.namespace,
        )
        return _cache_instance


def get_redis_cache() -> Optional[RedisCache]:
    """获取已初始化的全局Redis缓存实例（未初始化时为 None）"""
    return _cache_instance


async def shutdown_redis_cache() -> None:
    """关闭Redis连接"""
    global _redis_client, _cache_instance

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        _cache_instance = None
