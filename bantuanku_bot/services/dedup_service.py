"""Inbound message de-duplication.

GOWA occasionally delivers the same webhook twice. Message ids are remembered
for a short window; Redis is used when configured so several workers share the
window, with the in-process guard as fallback.
"""

import threading
import time
from typing import Callable, Optional

import redis.asyncio as redis_async

from bantuanku_bot.logging_config import get_logger

logger = get_logger("dedup")

DEFAULT_TTL_SECONDS = 60

_redis_client = None
_redis_url = None


class DedupGuard:
    """In-memory seen-set with per-entry expiry, swept on every call."""

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._expires_at: dict[str, float] = {}
        self._lock = threading.Lock()

    def seen(self, message_id: str) -> bool:
        """Return True if `message_id` was already seen inside the window; mark it otherwise."""
        now = self._clock()
        with self._lock:
            self._sweep(now)
            if message_id in self._expires_at:
                return True
            self._expires_at[message_id] = now + self.ttl_seconds
            return False

    def _sweep(self, now: float) -> None:
        expired = [key for key, expires_at in self._expires_at.items() if expires_at <= now]
        for key in expired:
            self._expires_at.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._expires_at)


def get_redis_client(redis_url: Optional[str], socket_timeout_seconds: float = 0.3):
    global _redis_client, _redis_url

    if not redis_url:
        return None

    if _redis_client is None or _redis_url != redis_url:
        _redis_url = redis_url
        _redis_client = redis_async.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=socket_timeout_seconds,
            socket_timeout=socket_timeout_seconds,
        )

    return _redis_client


async def is_duplicate_message_id(
    message_id: Optional[str],
    *,
    guard: DedupGuard,
    redis_client=None,
) -> bool:
    if not message_id:
        return False

    if redis_client:
        key = f"bantuanku:dedup:{message_id}"
        try:
            was_set = await redis_client.set(key, "1", ex=int(guard.ttl_seconds), nx=True)
            if not was_set:
                logger.info("Duplicate message_id (redis)", extra={"context": {"message_id": message_id}})
            return not was_set
        except Exception as e:
            logger.warning(f"Dedup redis unavailable, falling back to memory: {e}")

    duplicate = guard.seen(message_id)
    if duplicate:
        logger.info("Duplicate message_id (memory)", extra={"context": {"message_id": message_id}})
    return duplicate
