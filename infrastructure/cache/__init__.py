"""Redis 连接，仅用于 webhook 投递去重"""
from .redis_cache import RedisCache, get_redis_cache, init_redis_cache, shutdown_redis_cache

__all__ = ["RedisCache", "init_redis_cache", "shutdown_redis_cache", "get_redis_cache"]
