"""Relay package: fan feed events out to Redis pub/sub."""
from .client import get_redis, close_redis, check_redis_health
from .publisher import RedisRelay, to_jsonable

__all__ = [
    "get_redis",
    "close_redis",
    "check_redis_health",
    "RedisRelay",
    "to_jsonable",
]
