import json
import logging
from typing import Optional, Dict, Any
import redis
from redis.exceptions import RedisError
from marketplace.core.config import settings

logger = logging.getLogger(__name__)


class RedisCache:
    """Redis-backed JSON cache for read-mostly configuration (pricing, plans)"""

    def __init__(self, redis_url: Optional[str] = None, password: Optional[str] = None):
        """Initialize Redis cache (lazy connection)"""
        self._redis_url = redis_url or settings.redis_url
        self._password = password if password is not None else settings.redis_password
        self._client: Optional[redis.Redis] = None
        self._connected = False

    def _connect(self):
        """Connect to Redis server"""
        client_kwargs: Dict[str, Any] = {
            'decode_responses': False,
            'socket_connect_timeout': 2,
            'socket_timeout': 2,
            'retry_on_timeout': False,
        }
        # settings.redis_password takes precedence over a password embedded in the URL
        if self._password:
            client_kwargs['password'] = self._password

        try:
            self._client = redis.from_url(self._redis_url, **client_kwargs)
            self._client.ping()
            self._connected = True
            logger.info("RedisCache: Connected to Redis")
        except (RedisError, ValueError) as e:
            error_msg = str(e)
            if 'auth' in error_msg.lower() or 'password' in error_msg.lower():
                logger.error(f"RedisCache: Authentication failed - {error_msg}. Ensure REDIS_PASSWORD is set correctly.")
            else:
                logger.warning(f"RedisCache: Connection failed - {error_msg}")
            self._connected = False
            self._client = None

    def _ensure_connected(self) -> bool:
        """Ensure Redis connection is established, returns False when Redis is unavailable"""
        if self._connected and self._client is not None:
            return True
        self._connect()
        return self._client is not None

    def get(self, key: str) -> Optional[Dict]:
        """Get cached value if not expired"""
        if not self._ensure_connected():
            logger.warning(f"RedisCache: Cannot get key {key} - Redis not available")
            return None

        try:
            data = self._client.get(key)
            if data is None:
                logger.debug(f"Cache miss: {key}")
                return None

            try:
                decoded = json.loads(data.decode('utf-8'))
                logger.debug(f"Cache hit: {key}")
                return decoded
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                logger.warning(f"RedisCache: Failed to decode value for key {key}: {e}")
                # Delete corrupted entry
                self._client.delete(key)
                return None
        except RedisError as e:
            logger.error(f"RedisCache: Error getting key {key}: {e}")
            self._connected = False
            return None

    def set(self, key: str, value: Dict, ttl_minutes: int):
        """Set cache value with TTL in minutes"""
        if not self._ensure_connected():
            logger.warning(f"RedisCache: Cannot set key {key} - Redis not available")
            return

        try:
            serialized = json.dumps(value).encode('utf-8')
            self._client.setex(key, ttl_minutes * 60, serialized)
            logger.debug(f"Cache set: {key}, TTL: {ttl_minutes} minutes")
        except RedisError as e:
            logger.error(f"RedisCache: Error setting key {key}: {e}")
            self._connected = False

    def delete(self, key: str):
        """Delete cache entry"""
        if not self._ensure_connected():
            logger.warning(f"RedisCache: Cannot delete key {key} - Redis not available")
            return

        try:
            self._client.delete(key)
            logger.debug(f"Cache deleted: {key}")
        except RedisError as e:
            logger.error(f"RedisCache: Error deleting key {key}: {e}")
            self._connected = False

    def ping(self) -> bool:
        """Check if Redis connection is alive"""
        if not self._ensure_connected():
            return False
        try:
            self._client.ping()
            return True
        except RedisError:
            self._connected = False
            return False
