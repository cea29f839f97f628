from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from typing import Any

import redis.asyncio as redis

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
_redis = None


async def get_redis():
    global _redis
    if _redis is None:
        if os.getenv("TESTING") == "1":
            from fakeredis import aioredis
            _redis = aioredis.FakeRedis()
        else:
            _redis = redis.from_url(REDIS_URL)
    return _redis


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _serialize_event(event: dict[str, Any]) -> str:
    return json.dumps(event, default=_json_default)


def application_channel(application_id: str) -> str:
    return f"application:{application_id}"


async def publish_lock_event(application_id: str, event: dict[str, Any]) -> None:
    """Publish a review lock change so polling clients can refresh."""

    # purpose: broadcast lock_acquired / lock_released / lock_extended per application
    r = await get_redis()
    try:
        await r.publish(application_channel(application_id), _serialize_event(event))
    except redis.RedisError as exc:
        logger.warning("lock event %s for application %s not published: %s", event.get("type"), application_id, exc)

