"""notifyhub engine — configuration, errors, caching, credentials, logging, health."""

from notifyhub.engine.cache import MemoryCache, RedisCache, create_cache  # noqa: F401
from notifyhub.engine.token_cache import CachedTokens, TokenCache  # noqa: F401

__all__ = [
    "MemoryCache",
    "RedisCache",
    "create_cache",
    "CachedTokens",
    "TokenCache",
]
