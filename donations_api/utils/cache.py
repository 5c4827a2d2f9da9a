import json
import logging
from datetime import date
from typing import Any

import redis

logger = logging.getLogger(__name__)

PROGRESS_TTL_SECONDS = 30


def redis_client(url: str):
    # from_url does not connect; the first command does
    return redis.Redis.from_url(url, decode_responses=True)


def progress_key(campaign_id) -> str:
    return f"campaign:{campaign_id}:progress:v1"


def json_default(o):
    if isinstance(o, date):
        return o.isoformat()
    return str(o)


def get_json(client, key: str) -> Any | None:
    if client is None:
        return None
    try:
        cached = client.get(key)
    except redis.RedisError as e:
        logger.warning("cache read %s failed: %s", key, e)
        return None
    return json.loads(cached) if cached else None


def set_json(client, key: str, value: Any, ttl: int = PROGRESS_TTL_SECONDS) -> None:
    if client is None:
        return
    try:
        client.setex(key, ttl, json.dumps(value, default=json_default))
    except redis.RedisError as e:
        logger.warning("cache write %s failed: %s", key, e)


def invalidate(client, key: str) -> None:
    if client is None:
        return
    try:
        client.delete(key)
    except redis.RedisError as e:
        logger.warning("cache delete %s failed: %s", key, e)
