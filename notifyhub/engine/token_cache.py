"""
notifyhub Token Cache — Single-slot store for the Zalo credential pair.

The pair is encrypted with CredentialCipher and written to the configured
cache backend under one key. Expiry is tracked twice: the backend TTL
(max(300, expires_in - 300) seconds) and an age check against created_at on
every read, so an entry that outlives its TTL on a lax backend is still purged.

No locking: concurrent refreshes race and the last write wins.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional

from notifyhub.engine.credentials import CredentialCipher
from notifyhub.engine.errors import RelaySecurityError

logger = logging.getLogger("notifyhub.engine.token_cache")

TOKEN_CACHE_KEY = "zalo_tokens"

# Seconds before expiry at which a token counts as "expiring soon"
EXPIRY_MARGIN = 300
MIN_STORE_TTL = 300


@dataclass
class CachedTokens:
    access_token: str
    refresh_token: str
    expires_in: int
    created_at: float

    @property
    def expires_at(self) -> float:
        return self.created_at + self.expires_in

    def age(self, now: float) -> float:
        return now - self.created_at


class TokenCache:
    """
    Explicit credential store handed to every caller that needs the token.

    Args:
        cache: A cache backend (MemoryCache / RedisCache).
        cipher: CredentialCipher used to encrypt the stored blob.
        clock: Returns the current time in seconds.
    """

    def __init__(
        self,
        cache: Any,
        cipher: CredentialCipher,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._cache = cache
        self._cipher = cipher
        self._clock = clock or time.time

    def set_tokens(self, access_token: str, refresh_token: str, expires_in: int) -> CachedTokens:
        """Store a new pair, overwriting any previous one."""
        tokens = CachedTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(expires_in),
            created_at=self._clock(),
        )
        ttl = max(MIN_STORE_TTL, tokens.expires_in - EXPIRY_MARGIN)
        stored = self._cache.set(TOKEN_CACHE_KEY, self._cipher.encrypt(asdict(tokens)), ttl=ttl)
        if not stored:
            logger.warning("Token cache backend rejected write; tokens kept in memory only")
        logger.info(f"Zalo tokens cached (expires in {tokens.expires_in}s, store TTL {ttl}s)")
        return tokens

    def get_tokens(self) -> Optional[CachedTokens]:
        """Return the cached pair, or None if absent, unreadable or expired."""
        blob = self._cache.get(TOKEN_CACHE_KEY)
        if blob is None:
            return None

        try:
            tokens = CachedTokens(**self._cipher.decrypt(blob))
        except (RelaySecurityError, TypeError) as e:
            logger.warning(f"Discarding unreadable cached tokens: {e}")
            self.clear_tokens()
            return None

        if tokens.age(self._clock()) >= tokens.expires_in:
            logger.info("Cached Zalo tokens expired, purging")
            self.clear_tokens()
            return None
        return tokens

    def is_token_expiring_soon(self) -> bool:
        tokens = self.get_tokens()
        if tokens is None:
            return True
        remaining = tokens.expires_in - tokens.age(self._clock())
        return remaining <= EXPIRY_MARGIN

    def get_time_to_live(self) -> Optional[int]:
        """Remaining lifetime of the cached access token in seconds."""
        tokens = self.get_tokens()
        if tokens is None:
            return None
        return max(0, int(tokens.expires_at - self._clock()))

    def clear_tokens(self) -> None:
        self._cache.delete(TOKEN_CACHE_KEY)

    def get_cache_status(self) -> Dict[str, Any]:
        tokens = self.get_tokens()
        return {
            "has_tokens": tokens is not None,
            "time_to_live": self.get_time_to_live() if tokens else None,
            "is_expiring_soon": self.is_token_expiring_soon(),
            "created_at": tokens.created_at if tokens else None,
        }
