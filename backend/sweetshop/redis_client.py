"""
Redis helpers: catalog caching and login rate limiting.

Every method degrades to a no-op when Redis is unreachable, so the API keeps
working (uncached, unlimited) without it.
"""
import json
import logging
from typing import Any, Dict, Optional, Tuple

import redis
from fastapi import Request

from sweetshop import config
from sweetshop.errors import TooManyRequests

logger = logging.getLogger(__name__)

CATEGORIES_KEY = "categories:all"
PRODUCT_KEY = "product:{product_id}"


class RedisClient:
    """Thin wrapper over redis-py used for caching and rate limiting"""

    def __init__(self, host: str = None, port: int = None, enabled: bool = None, client=None):
        self.redis_host = host or config.REDIS_HOST
        self.redis_port = port or config.REDIS_PORT
        self.enabled = config.REDIS_ENABLED if enabled is None else enabled
        self.client = client

        if self.client is None and self.enabled:
            try:
                self.client = redis.Redis(
                    host=self.redis_host,
                    port=self.redis_port,
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5
                )
                self.client.ping()
            except redis.RedisError as e:
                logger.warning("Could not connect to Redis at %s:%s: %s", self.redis_host, self.redis_port, e)
                self.client = None

    def is_available(self) -> bool:
        if not self.client:
            return False
        try:
            self.client.ping()
            return True
        except redis.RedisError:
            return False

    def close(self):
        if self.client is not None:
            try:
                self.client.close()
            except redis.RedisError as e:
                logger.warning("Error closing Redis connection: %s", e)

    # ========== Generic JSON cache ==========

    def _get_json(self, key: str) -> Optional[Any]:
        if not self.is_available():
            return None
        try:
            cached = self.client.get(key)
            if cached:
                return json.loads(cached)
        except (redis.RedisError, ValueError) as e:
            logger.warning("Error reading %s from cache: %s", key, e)
        return None

    def _set_json(self, key: str, value: Any, ttl: int) -> bool:
        if not self.is_available():
            return False
        try:
            self.client.setex(key, ttl, json.dumps(value, default=str))
            return True
        except redis.RedisError as e:
            logger.warning("Error caching %s: %s", key, e)
            return False

    def _delete(self, *keys: str) -> bool:
        if not self.is_available() or not keys:
            return False
        try:
            self.client.delete(*keys)
            return True
        except redis.RedisError as e:
            logger.warning("Error invalidating %s: %s", ", ".join(keys), e)
            return False

    # ========== Categories ==========

    def cache_categories(self, categories: Dict, ttl: int = 300) -> bool:
        """
        Caches the category listing payload.
        ttl: lifetime in seconds (5 minutes by default)
        """
        return self._set_json(CATEGORIES_KEY, categories, ttl)

    def get_cached_categories(self) -> Optional[Dict]:
        return self._get_json(CATEGORIES_KEY)

    def invalidate_categories_cache(self) -> bool:
        return self._delete(CATEGORIES_KEY)

    # ========== Products ==========

    def cache_product(self, product_id: int, product: Dict, ttl: int = 120) -> bool:
        return self._set_json(PRODUCT_KEY.format(product_id=product_id), product, ttl)

    def get_cached_product(self, product_id: int) -> Optional[Dict]:
        return self._get_json(PRODUCT_KEY.format(product_id=product_id))

    def invalidate_product_cache(self, *product_ids: int) -> bool:
        return self._delete(*[PRODUCT_KEY.format(product_id=pid) for pid in product_ids])

    def invalidate_all_products_cache(self) -> bool:
        if not self.is_available():
            return False
        try:
            keys = list(self.client.scan_iter(match="product:*"))
            if keys:
                self.client.delete(*keys)
            return True
        except redis.RedisError as e:
            logger.warning("Error invalidating product cache: %s", e)
            return False

    # ========== Rate limiting ==========

    def check_rate_limit(self, key: str, max_requests: int = 10, window: int = 60) -> Tuple[bool, int]:
        """
        Fixed-window counter for ``key``.
        Returns (allowed, remaining requests in the window).
        """
        if not self.is_available():
            return True, max_requests

        try:
            current = self.client.incr(key)
            if current == 1:
                self.client.expire(key, window)

            remaining = max(0, max_requests - current)
            allowed = current <= max_requests

            return allowed, remaining
        except redis.RedisError as e:
            logger.warning("Rate limit check failed: %s", e)
            return True, max_requests

    def get_cache_info(self) -> Dict[str, Any]:
        if not self.is_available():
            return {"status": "unavailable"}
        try:
            return {
                "status": "available",
                "categories_cached": bool(self.client.exists(CATEGORIES_KEY)),
            }
        except redis.RedisError as e:
            return {"status": "error", "error": str(e)}


def get_cache(request: Request) -> RedisClient:
    return request.app.state.cache


def rate_limit(max_requests: int = 10, window: int = 60, key_prefix: str = "rate_limit",
               message: str = None):
    """
    Dependency factory limiting requests per client address.
    max_requests: requests allowed per window
    window: window length in seconds
    """
    def dependency(request: Request):
        cache: RedisClient = request.app.state.cache
        client_host = request.client.host if request.client else "unknown"
        rate_key = f"{key_prefix}:{request.url.path}:{client_host}"

        allowed, _remaining = cache.check_rate_limit(rate_key, max_requests, window)
        if not allowed:
            logger.warning("Rate limit exceeded for %s on %s", client_host, request.url.path)
            raise TooManyRequests(message or f"Rate limit exceeded. Try again in {window} seconds.")

    return dependency
