"""
Redis client for the Redis-backed session store.

This module provides a small Redis wrapper with:
- Connection pooling (reuse connections, don't create new ones each time)
- Health checks and automatic reconnection
- Graceful degradation (calls return empty results when Redis is down)
- TTL support for automatic expiration

Environment Variables:
    REDIS_HOST: Redis server host (default: localhost)
    REDIS_PORT: Redis server port (default: 6379)
    REDIS_PASSWORD: Redis password (optional, can be base64 encoded)
    REDIS_DB: Redis database number (default: 0)
"""

import base64
import json
import logging
import os
import time
from typing import Optional, Set

import redis
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from common.constants import REDIS_DB, REDIS_HOST, REDIS_PORT

logger = logging.getLogger(__name__)

_REDIS_ERRORS = (ConnectionError, RedisError, TimeoutError)


def _read_password() -> Optional[str]:
    password = os.getenv("REDIS_PASSWORD", "")
    if not password:
        return None
    # K8s secrets are often base64 encoded
    try:
        decoded = base64.b64decode(password, validate=True).decode("utf-8")
        if decoded and decoded != password:
            return decoded
    except (ValueError, UnicodeDecodeError):
        pass
    return password


class RedisClient:
    """
    Redis client wrapper with connection pooling and automatic reconnection.

    Pass ``client`` to wrap an existing ``redis.Redis``-compatible object
    instead of building a pool from the environment.
    """

    def __init__(self, client: Optional[redis.Redis] = None):
        self.pool: Optional[redis.ConnectionPool] = None
        self.client: Optional[redis.Redis] = client
        self._last_health_check = time.time() if client is not None else 0
        self._health_check_interval = 30  # seconds

        if client is None:
            self.pool = redis.ConnectionPool(
                host=REDIS_HOST,
                port=REDIS_PORT,
                db=REDIS_DB,
                password=_read_password(),
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                max_connections=50,
                health_check_interval=30,
            )
            self._connect()

    def _connect(self) -> None:
        if self.pool is None:
            return
        try:
            self.client = redis.Redis(connection_pool=self.pool)
            self.client.ping()
            self._last_health_check = time.time()
            logger.info("Connected to Redis at %s:%s/%s", REDIS_HOST, REDIS_PORT, REDIS_DB)
        except _REDIS_ERRORS as e:
            self.client = None
            logger.warning("Redis connection failed: %s. Session storage unavailable.", e)

    def _ensure_connected(self) -> bool:
        if not self.client:
            self._connect()
            return self.client is not None

        current_time = time.time()
        if current_time - self._last_health_check > self._health_check_interval:
            try:
                self.client.ping()
                self._last_health_check = current_time
            except _REDIS_ERRORS:
                self.client = None
                self._connect()
                return self.client is not None

        return True

    def is_connected(self) -> bool:
        """Check if Redis is connected and healthy."""
        return self._ensure_connected()

    def _fail(self, op: str, error: Exception) -> None:
        logger.error("Redis %s error: %s", op, error)
        # Reconnect on next use (only when we own the pool)
        if self.pool is not None:
            self.client = None

    def set_json(self, key: str, value: dict, ttl: Optional[int] = None) -> bool:
        """Store a JSON-serializable dict, optionally with a TTL in seconds."""
        if not self.is_connected():
            return False
        try:
            payload = json.dumps(value)
            if ttl:
                return bool(self.client.setex(key, ttl, payload))
            return bool(self.client.set(key, payload))
        except (TypeError, ValueError) as e:
            logger.error("JSON serialization error for key %s: %s", key, e)
            return False
        except _REDIS_ERRORS as e:
            self._fail("set", e)
            return False

    def get_json(self, key: str) -> Optional[dict]:
        if not self.is_connected():
            return None
        try:
            raw = self.client.get(key)
        except _REDIS_ERRORS as e:
            self._fail("get", e)
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.error("JSON deserialization error for key %s: %s", key, e)
            return None

    def delete(self, *keys: str) -> int:
        if not keys or not self.is_connected():
            return 0
        try:
            return int(self.client.delete(*keys))
        except _REDIS_ERRORS as e:
            self._fail("delete", e)
            return 0

    def expire(self, key: str, ttl: int) -> bool:
        if not self.is_connected():
            return False
        try:
            return bool(self.client.expire(key, ttl))
        except _REDIS_ERRORS as e:
            self._fail("expire", e)
            return False

    # ========= Set operations (user_sessions:<user_id>) =========

    def sadd(self, key: str, *values: str) -> int:
        if not values or not self.is_connected():
            return 0
        try:
            return int(self.client.sadd(key, *values))
        except _REDIS_ERRORS as e:
            self._fail("sadd", e)
            return 0

    def srem(self, key: str, *values: str) -> int:
        if not values or not self.is_connected():
            return 0
        try:
            return int(self.client.srem(key, *values))
        except _REDIS_ERRORS as e:
            self._fail("srem", e)
            return 0

    def smembers(self, key: str) -> Set[str]:
        if not self.is_connected():
            return set()
        try:
            return set(self.client.smembers(key) or ())
        except _REDIS_ERRORS as e:
            self._fail("smembers", e)
            return set()

    def close(self) -> None:
        """Close the connection pool. Call on application shutdown."""
        if self.client is not None:
            try:
                self.client.close()
            except _REDIS_ERRORS as e:
                logger.warning("Error closing Redis client: %s", e)
        if self.pool is not None:
            self.pool.disconnect()
