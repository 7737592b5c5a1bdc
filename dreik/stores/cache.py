"""Token cache: short-lived token -> email mappings.

Redis-backed in deployments, with an in-memory fallback for local runs and tests.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Protocol

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger("dreik.cache")

KEY_PREFIX = "dreik:token:"


class TokenCache(Protocol):
    """Minimal interface for token lookups."""

    def set(self, token: str, email: str, ttl_seconds: int) -> None: ...

    def get(self, token: str) -> str | None: ...

    def delete(self, token: str) -> None: ...


@dataclass
class InMemoryTokenCache:
    """Dict-backed cache with per-key expiry."""

    items: dict[str, tuple[str, float]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def set(self, token: str, email: str, ttl_seconds: int) -> None:
        now = time.monotonic()
        with self._lock:
            for key in [k for k, (_, expires) in self.items.items() if now >= expires]:
                del self.items[key]
            self.items[token] = (email, now + ttl_seconds)

    def get(self, token: str) -> str | None:
        with self._lock:
            entry = self.items.get(token)
            if entry is None:
                return None
            email, expires = entry
            if time.monotonic() >= expires:
                del self.items[token]
                return None
            return email

    def delete(self, token: str) -> None:
        with self._lock:
            self.items.pop(token, None)


@dataclass
class RedisTokenCache:
    """Redis-backed cache using SET with expiry.

    Redis is a lookaside copy of the requests table, so connection problems
    are logged and treated as cache misses.
    """

    url: str

    def __post_init__(self) -> None:
        self.client = redis.Redis.from_url(self.url, decode_responses=True)

    def set(self, token: str, email: str, ttl_seconds: int) -> None:
        try:
            self.client.set(KEY_PREFIX + token, email, ex=ttl_seconds)
        except redis_exceptions.RedisError as e:
            logger.warning("can't cache token: %s", e)

    def get(self, token: str) -> str | None:
        try:
            return self.client.get(KEY_PREFIX + token)
        except redis_exceptions.RedisError as e:
            logger.warning("can't read cached token: %s", e)
            return None

    def delete(self, token: str) -> None:
        try:
            self.client.delete(KEY_PREFIX + token)
        except redis_exceptions.RedisError as e:
            logger.warning("can't evict cached token: %s", e)


def build_token_cache(url: str | None) -> TokenCache:
    """Return a Redis cache when a URL is configured, otherwise an in-memory one."""
    if url:
        return RedisTokenCache(url=url)
    return InMemoryTokenCache()
