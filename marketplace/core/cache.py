import logging
from typing import Optional, Dict, Any
from marketplace.core.config import settings
from marketplace.core.redis_cache import RedisCache

logger = logging.getLogger(__name__)

PRICING_CACHE_KEY = "pricing_config:active"


# Global cache instance
_cache_instance: Optional[RedisCache] = None


def get_cache() -> RedisCache:
    """Get global Redis cache instance"""
    global _cache_instance
    if _cache_instance is None:
        _cache_instance = RedisCache()
    return _cache_instance


def get_cached_pricing() -> Optional[Dict[str, Any]]:
    """Get the cached map of active pricing config values."""
    if not settings.pricing_cache_enabled:
        return None
    return get_cache().get(PRICING_CACHE_KEY)


def set_cached_pricing(config: Dict[str, Any], ttl_minutes: Optional[int] = None):
    """Cache the map of active pricing config values."""
    if not settings.pricing_cache_enabled:
        return
    get_cache().set(PRICING_CACHE_KEY, config, ttl_minutes or settings.pricing_cache_ttl_minutes)


def invalidate_cached_pricing():
    """Drop the cached pricing map after an administrator edit."""
    if not settings.pricing_cache_enabled:
        return
    get_cache().delete(PRICING_CACHE_KEY)
