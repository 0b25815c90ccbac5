"""
Caching utilities for expensive report queries.

Keys are namespaced by prefix and carry a namespace version; bumping the
version invalidates every key under the prefix on any cache backend. When
Redis is configured the stale keys are also removed with SCAN.
"""
from django.conf import settings
from django.core.cache import cache
from functools import wraps
import hashlib
import logging

logger = logging.getLogger(__name__)

# Cache TTLs (in seconds)
DASHBOARD_CACHE_TTL = 300  # 5 minutes
REPORTS_CACHE_TTL = 600  # 10 minutes
STATEMENTS_CACHE_TTL = 120  # 2 minutes

DASHBOARD_PREFIX = "dashboard"
REPORTS_PREFIX = "reports"
STATEMENTS_PREFIX = "statements"


def _version_key(prefix):
    return f"{prefix}:version"


def get_namespace_version(prefix):
    version = cache.get(_version_key(prefix))
    if version is None:
        version = 1
        cache.set(_version_key(prefix), version, None)
    return version


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments, versioned by the namespace before the first colon"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    namespace = prefix.split(':', 1)[0]
    return f"{prefix}:v{get_namespace_version(namespace)}:{key_hash}"


def cached_query(cache_ttl=60, key_prefix="query"):
    """
    Decorator to cache expensive queries

    Usage:
        @cached_query(cache_ttl=120, key_prefix=REPORTS_PREFIX)
        def inventory_summary_data():
            return data
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            cache_key = make_cache_key(f"{key_prefix}:{func.__name__}", *args, **kwargs)

            cached_data = cache.get(cache_key)
            if cached_data is not None:
                logger.debug(f"Cache HIT for {key_prefix}: {cache_key}")
                return cached_data

            logger.debug(f"Cache MISS for {key_prefix}: {cache_key}")
            result = func(*args, **kwargs)
            cache.set(cache_key, result, cache_ttl)
            return result
        return wrapper
    return decorator


def invalidate_cache_pattern(pattern):
    """
    Delete Redis keys matching a pattern.
    No-op on non-Redis backends, where the version bump already hides them.
    """
    if 'django_redis' not in settings.CACHES['default']['BACKEND']:
        return
    try:
        from django_redis import get_redis_connection
        redis_conn = get_redis_connection("default")

        keys = []
        cursor = 0
        while True:
            cursor, partial_keys = redis_conn.scan(cursor, match=f"*{pattern}*", count=100)
            keys.extend(partial_keys)
            if cursor == 0:
                break

        if keys:
            redis_conn.delete(*keys)
            logger.info(f"Invalidated {len(keys)} cache keys matching pattern: {pattern}")
    except Exception as e:
        logger.warning(f"Could not invalidate cache pattern {pattern}: {str(e)}")


def invalidate_namespace(prefix):
    """Invalidate every cached value stored under prefix"""
    try:
        cache.incr(_version_key(prefix))
    except ValueError:
        cache.set(_version_key(prefix), 2, None)
    invalidate_cache_pattern(f"{prefix}:")


def invalidate_financial_caches():
    for prefix in (DASHBOARD_PREFIX, REPORTS_PREFIX, STATEMENTS_PREFIX):
        invalidate_namespace(prefix)
    logger.debug("Invalidated dashboard, report and statement caches")
