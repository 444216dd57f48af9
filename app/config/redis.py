# app/config/redis.py
"""Redis clients and the keys the fulfillment service writes"""
import json
from datetime import datetime
from typing import Any, Dict, Optional

import redis as sync_redis
import redis.asyncio as redis

from app.config.settings import get_settings

settings = get_settings()

_redis_pool: Optional[redis.ConnectionPool] = None
_sync_pool: Optional[sync_redis.ConnectionPool] = None


def get_redis_pool() -> redis.ConnectionPool:
    """Shared async pool for the API process"""
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = redis.ConnectionPool.from_url(
            settings.REDIS_URL,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            retry_on_timeout=True,
            decode_responses=True,
        )
    return _redis_pool


async def get_redis() -> redis.Redis:
    return redis.Redis(connection_pool=get_redis_pool())


def get_sync_redis() -> sync_redis.Redis:
    """Blocking client for Celery tasks, which run outside the event loop"""
    global _sync_pool
    if _sync_pool is None:
        _sync_pool = sync_redis.ConnectionPool.from_url(
            settings.REDIS_URL,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            decode_responses=True,
        )
    return sync_redis.Redis(connection_pool=_sync_pool)


class RedisKeys:
    # Heartbeat written by every confirmation sweep run
    CONFIRMATION_SWEEP_LAST_RUN = "fulfillment:confirmation_sweep:last_run"
    CONFIRMATION_SWEEP_LAST_RESULT = "fulfillment:confirmation_sweep:last_result"


def write_sweep_heartbeat(client, started_at: datetime, result: Dict[str, Any]) -> None:
    client.set(RedisKeys.CONFIRMATION_SWEEP_LAST_RUN, started_at.isoformat())
    client.set(RedisKeys.CONFIRMATION_SWEEP_LAST_RESULT, json.dumps(result))


async def read_sweep_heartbeat(client) -> Optional[Dict[str, Any]]:
    """Last sweep run as written by write_sweep_heartbeat; None if no sweep ran yet"""
    last_run = await client.get(RedisKeys.CONFIRMATION_SWEEP_LAST_RUN)
    if not last_run:
        return None
    last_result = await client.get(RedisKeys.CONFIRMATION_SWEEP_LAST_RESULT)
    return {
        "last_run": last_run,
        "last_result": json.loads(last_result) if last_result else None,
    }
