"""
Cache utilities for the hurricane prediction game
Leaderboards and badge definitions are cached; scoring invalidates them
"""

import functools

from flask import current_app

from hurricane_game import cache

LEADERBOARD_CACHE = "leaderboard"
BADGE_DEFINITION_CACHE = "badge_definitions"


def make_query_key(model_name, func_name, *args, **kwargs):
    """Generate a cache key from the query name and its arguments"""
    args_str = "_".join(str(arg) for arg in args)
    kwargs_str = "_".join(f"{k}_{v}" for k, v in sorted(kwargs.items()))
    return f"query_{model_name}_{func_name}_{args_str}_{kwargs_str}"


def cached_query(model_name, timeout=None):
    """
    Decorator for caching database query results

    Cached values must be plain data (dicts, lists) so they survive the
    Redis backend.

    Args:
        model_name: Name of the model for cache key generation
        timeout: Cache timeout in seconds (None uses CACHE_DEFAULT_TIMEOUT)
    """

    def decorator(f):
        @functools.wraps(f)
        def wrapped(*args, **kwargs):
            cache_key = make_query_key(model_name, f.__name__, *args, **kwargs)

            result = cache.get(cache_key)
            if result is not None:
                current_app.logger.debug(f"Query cache hit: {cache_key}")
                return result

            result = f(*args, **kwargs)
            cache.set(cache_key, result, timeout=timeout)
            current_app.logger.debug(f"Query cache set: {cache_key}")

            return result

        return wrapped

    return decorator


def invalidate_cache_pattern(pattern):
    """
    Invalidate cache keys matching a pattern

    Args:
        pattern: Pattern to match cache keys
    """
    # Flask-Caching has no portable pattern delete, so the whole
    # (prefixed) namespace is cleared
    cache.clear()
    current_app.logger.info(f"Cache cleared for pattern: {pattern}")


def invalidate_model_cache(model_name):
    """
    Invalidate all cache entries for a specific model

    Args:
        model_name: Name of the model to invalidate
    """
    invalidate_cache_pattern(f"*{model_name}*")


class CacheManager:
    """Cache management utilities"""

    @staticmethod
    def get_cache_stats():
        """Get cache statistics"""
        return {
            "type": current_app.config.get("CACHE_TYPE", "Unknown"),
            "timeout": current_app.config.get("CACHE_DEFAULT_TIMEOUT", 300),
        }
