"""
notifyhub Credential Cipher — Fernet encryption for cached credential blobs.

The Zalo access/refresh token pair is written to the cache (possibly a shared
Redis) encrypted, so a cache dump never exposes a usable token.

Security model:
    - Fernet (AES-128-CBC + HMAC-SHA256)
    - Key derived from NOTIFYHUB_SECRET_KEY (settings.secret_key) via SHA-256
    - Rotating the secret invalidates cached tokens; they are then purged and
      the service falls back to the refresh flow or re-authentication
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
from typing import Any, Dict

from cryptography.fernet import Fernet, InvalidToken

from notifyhub.engine.errors import RelaySecurityError

logger = logging.getLogger("notifyhub.engine.credentials")


class CredentialCipher:
    """
    Encrypts and decrypts credential dicts to/from cache-safe strings.

    Usage:
        cipher = CredentialCipher(settings.secret_key)
        blob = cipher.encrypt({"access_token": "..."})
        creds = cipher.decrypt(blob)
    """

    def __init__(self, secret_key: str):
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        self._fernet = self._build_fernet(secret_key)

    @staticmethod
    def _build_fernet(secret_key: str) -> Fernet:
        # Derive a 32-byte key from the secret using SHA-256,
        # then base64-encode for Fernet (which requires URL-safe b64 key)
        derived = hashlib.sha256(secret_key.encode("utf-8")).digest()
        return Fernet(base64.urlsafe_b64encode(derived))

    def encrypt(self, credentials: Dict[str, Any]) -> str:
        """Encrypt a credentials dict to an ASCII Fernet token."""
        payload = json.dumps(credentials, sort_keys=True).encode("utf-8")
        return self._fernet.encrypt(payload).decode("ascii")

    def decrypt(self, token: str) -> Dict[str, Any]:
        """
        Decrypt a Fernet token back to a credentials dict.

        Raises:
            RelaySecurityError: wrong key or corrupted data.
        """
        try:
            decrypted = self._fernet.decrypt(token.encode("ascii"))
            return json.loads(decrypted.decode("utf-8"))
        except InvalidToken:
            raise RelaySecurityError(
                "Failed to decrypt credentials — encryption key may have changed",
            )
        except (json.JSONDecodeError, UnicodeError) as e:
            raise RelaySecurityError(f"Corrupted credential data: {e}")
