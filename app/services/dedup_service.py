"""Short-lived cache of native message ids already taken in.

The partial unique index on messaging_messages is the real guarantee; this
only saves a database round trip for the platform's frequent redeliveries.
"""

from typing import Optional

import redis.asyncio as redis_async
from redis.exceptions import RedisError

from app.config import settings
from app.logging_config import get_logger

logger = get_logger("dedup_service")

SOCKET_TIMEOUT_SECONDS = 0.3

_redis_client = None
_redis_url = None


def get_redis(redis_url: Optional[str] = None):
    """Shared client for the configured URL, or None when the cache is disabled."""
    global _redis_client, _redis_url

    redis_url = redis_url or settings.redis_url
    if not redis_url:
        return None

    if _redis_client is None or _redis_url != redis_url:
        _redis_url = redis_url
        _redis_client = redis_async.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=SOCKET_TIMEOUT_SECONDS,
            socket_timeout=SOCKET_TIMEOUT_SECONDS,
        )
    return _redis_client


def dedup_key(config_id, external_message_id: str) -> str:
    return f"storefront:dedup:{config_id}:{external_message_id}"


async def is_duplicate_delivery(config_id, external_message_id: Optional[str], redis_client=None) -> bool:
    """Mark the id as seen and report whether it already was."""
    if not external_message_id:
        return False

    redis_client = redis_client or get_redis()
    if redis_client is None:
        return False

    try:
        was_set = await redis_client.set(
            dedup_key(config_id, external_message_id),
            "1",
            ex=settings.dedup_ttl_seconds,
            nx=True,
        )
    except (RedisError, OSError) as e:
        logger.warning(f"Dedup redis unavailable, relying on database: {e}")
        return False

    return not was_set


async def forget_delivery(config_id, external_message_id: Optional[str], redis_client=None) -> None:
    """Release a claimed id so the platform's retry is processed."""
    if not external_message_id:
        return

    redis_client = redis_client or get_redis()
    if redis_client is None:
        return

    try:
        await redis_client.delete(dedup_key(config_id, external_message_id))
    except (RedisError, OSError) as e:
        logger.warning(f"Could not release dedup key for {external_message_id}: {e}")
