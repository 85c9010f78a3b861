"""
Redis cache for read-mostly views (active promotions, sales report).

The app works the same with Redis down or disabled: every read misses and the
caller's loader runs. Each module keeps an index set of its keys so a change
signal can drop the whole module in one pipeline.
"""

import logging
import json
from typing import Any, Optional, Callable
from datetime import datetime, date
from decimal import Decimal

import redis
from redis.exceptions import RedisError, ConnectionError, TimeoutError
from flask import Flask, current_app, has_app_context

logger = logging.getLogger(__name__)

_INDEX_KEY = '__keys__'


def _encode(value: Any) -> str:
    """JSON with Decimals tagged so they come back exact."""
    def default(obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return {'__decimal__': str(obj)}
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        raise TypeError(f"Cannot cache {type(obj).__name__}")
    return json.dumps(value, default=default)


def _decode(raw: str) -> Any:
    return json.loads(
        raw,
        object_hook=lambda d: Decimal(d['__decimal__']) if '__decimal__' in d else d
    )


class CacheService:
    """
    Redis-backed cache with graceful degradation.

    Keys: ``{prefix}:{module}:{key}``; index set: ``{prefix}:{module}:__keys__``.
    """

    def __init__(self, app: Optional[Flask] = None):
        self.client: Optional[redis.Redis] = None
        self._enabled: bool = False
        self._prefix: str = 'pos'
        self._default_ttl: int = 60

        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Connect to REDIS_URL unless CACHE_ENABLED is off; disable on failure."""
        self._enabled = app.config.get('CACHE_ENABLED', True)
        self._prefix = app.config.get('CACHE_KEY_PREFIX', 'pos')
        self._default_ttl = app.config.get('CACHE_DEFAULT_TTL', 60)
        redis_url = app.config.get('REDIS_URL', 'redis://redis:6379/0')

        if not self._enabled:
            logger.info("[CACHE] Cache is DISABLED via config")
            return

        try:
            self.client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
                retry_on_timeout=True,
                health_check_interval=30
            )
            self.client.ping()
            logger.info(f"[CACHE] Redis connected: {redis_url}")
        except (ConnectionError, TimeoutError, RedisError) as e:
            logger.warning(f"[CACHE] Redis connection failed: {e}. Cache DISABLED.")
            self._enabled = False
            self.client = None

    def is_available(self) -> bool:
        """Ping Redis; used by health checks and before every operation."""
        if not self._enabled or not self.client:
            return False
        try:
            return bool(self.client.ping())
        except RedisError:
            return False

    def _key(self, module: str, key: str) -> str:
        return f"{self._prefix}:{module}:{key}"

    def get(self, module: str, key: str) -> Optional[Any]:
        if not self.is_available():
            return None
        try:
            raw = self.client.get(self._key(module, key))
            return _decode(raw) if raw is not None else None
        except (RedisError, ValueError) as e:
            logger.warning(f"[CACHE] Get {module}:{key} failed: {e}")
            return None

    def set(self, module: str, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self.is_available():
            return False
        try:
            pipe = self.client.pipeline()
            pipe.setex(self._key(module, key), ttl or self._default_ttl, _encode(value))
            pipe.sadd(self._key(module, _INDEX_KEY), key)
            pipe.execute()
            return True
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] Set {module}:{key} failed: {e}")
            return False

    def get_or_load(self, module: str, key: str, loader: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        """Cache-aside read."""
        value = self.get(module, key)
        if value is None:
            value = loader()
            self.set(module, key, value, ttl)
        return value

    def invalidate_module(self, module: str) -> int:
        """Drop every key cached under ``module``; returns how many were indexed."""
        if not self.is_available():
            return 0
        index = self._key(module, _INDEX_KEY)
        try:
            keys = self.client.smembers(index)
            pipe = self.client.pipeline()
            for key in keys:
                pipe.delete(self._key(module, key))
            pipe.delete(index)
            pipe.execute()
            if keys:
                logger.info(f"[CACHE] INVALIDATE {module} ({len(keys)} keys)")
            return len(keys)
        except RedisError as e:
            logger.warning(f"[CACHE] Invalidate {module} failed: {e}")
            return 0


_cache_service: Optional[CacheService] = None


def init_cache(app: Flask) -> None:
    """Initialize cache service singleton."""
    global _cache_service
    _cache_service = CacheService(app)
    app.extensions['cache'] = _cache_service


def get_cache() -> CacheService:
    if _cache_service is None:
        raise RuntimeError("Cache not initialized.")
    return _cache_service


def cached(module: str, key: str, loader: Callable[[], Any], ttl_setting: Optional[str] = None) -> Any:
    """get_or_load() through the app cache, or just the loader when there is none."""
    if _cache_service is None:
        return loader()
    ttl = current_app.config.get(ttl_setting) if ttl_setting and has_app_context() else None
    return _cache_service.get_or_load(module, key, loader, ttl)


def invalidate(module: str) -> None:
    if _cache_service is not None:
        _cache_service.invalidate_module(module)
