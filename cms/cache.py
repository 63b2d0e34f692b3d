import json
import logging

import redis.asyncio as redis

from cms.config import settings

logger = logging.getLogger(__name__)

CONTENT_PREFIX = "content:"
CONTENT_LIST_PREFIX = "content_list:"


class CacheManager:
    """
    Cache-aside gateway backed by Redis.

    Keys live in two namespaces: ``content:id:<id>`` / ``content:slug:<slug>``
    for single entities and ``content_list:<hash>`` for listing pages.
    Values are stored as JSON snapshots; writes never patch an entry in
    place, they evict it.

    All public methods are safe to call even when Redis is unavailable:
    read operations return None and write operations are skipped, so the
    application degrades gracefully without raising exceptions to callers.
    """

    def __init__(self, client: redis.Redis | None = None) -> None:
        self._redis: redis.Redis | None = client
        self._hits: int = 0
        self._misses: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self, url: str | None = None) -> None:
        """Open the connection pool.  Called once at application startup."""
        url = url or settings.REDIS_URL
        self._redis = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", url)
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis ping failed, cache disabled: %s", exc)

    async def disconnect(self) -> None:
        """Close the connection pool.  Called once at application shutdown."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Core cache operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> dict | list | None:
        """Return the cached value for *key*, or None on a miss / error."""
        if not self._redis:
            self._misses += 1
            return None
        try:
            data = await self._redis.get(key)
            if data is not None:
                self._hits += 1
                return json.loads(data)
            self._misses += 1
            return None
        except Exception as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            self._misses += 1
            return None

    async def put(self, key: str, value: dict | list, ttl: int | None = None) -> None:
        """
        Persist *value* under *key* with an optional TTL (seconds).

        Serialisation errors and Redis failures are logged but never
        propagated; a cache write failure must never break a request.
        """
        if not self._redis:
            return
        try:
            serialised = json.dumps(value, default=str)
            await self._redis.set(key, serialised, ex=ttl)
        except Exception as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    async def forget(self, *keys: str) -> None:
        if not self._redis or not keys:
            return
        try:
            await self._redis.delete(*keys)
        except Exception as exc:
            logger.debug("Cache DELETE error for keys=%r: %s", keys, exc)

    async def delete_pattern(self, pattern: str) -> None:
        """Delete all keys matching *pattern* using SCAN (avoids blocking KEYS)."""
        if not self._redis:
            return
        try:
            keys: list[str] = []
            async for key in self._redis.scan_iter(match=pattern):
                keys.append(key)
            if keys:
                await self._redis.delete(*keys)
                logger.debug("Cache invalidated %d key(s) matching %r", len(keys), pattern)
        except Exception as exc:
            logger.debug("Cache DELETE_PATTERN error for pattern=%r: %s", pattern, exc)

    # ------------------------------------------------------------------
    # Content namespace
    # ------------------------------------------------------------------

    @staticmethod
    def content_key(content_id: int | None = None, slug: str | None = None) -> str:
        if content_id is not None:
            return f"{CONTENT_PREFIX}id:{content_id}"
        if slug is not None:
            return f"{CONTENT_PREFIX}slug:{slug}"
        raise ValueError("content_key needs an id or a slug")

    async def get_content(self, key: str) -> dict | None:
        return await self.get(key)

    async def cache_content(self, key: str, data: dict) -> None:
        await self.put(key, data, ttl=settings.CACHE_TTL_CONTENT)

    async def get_content_list(self, key: str) -> dict | None:
        return await self.get(f"{CONTENT_LIST_PREFIX}{key}")

    async def cache_content_list(self, key: str, data: dict) -> None:
        await self.put(f"{CONTENT_LIST_PREFIX}{key}", data, ttl=settings.CACHE_TTL_LIST)

    async def invalidate_content(
        self, content_id: int | None = None, slugs: tuple[str, ...] = ()
    ) -> None:
        """
        Invalidate content caches after any write.

        Always purges the whole list namespace, since any filter might now
        include or exclude the changed row.  When *content_id* or *slugs*
        are known their entity entries are evicted as well.
        """
        await self.delete_pattern(f"{CONTENT_LIST_PREFIX}*")
        keys = [self.content_key(slug=slug) for slug in slugs if slug]
        if content_id is not None:
            keys.append(self.content_key(content_id=content_id))
        await self.forget(*keys)

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def stats(self) -> dict:
        """Return a snapshot of hit/miss counters for the metrics endpoint."""
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }


# Configured once at startup and handed to services by the dependency layer.
cache = CacheManager()
