"""Unit tests for notifyhub.engine.credentials — Fernet credential cipher."""

import pytest

from notifyhub.engine.credentials import CredentialCipher
from notifyhub.engine.errors import RelaySecurityError


class TestCredentialCipher:
    def setup_method(self):
        self.cipher = CredentialCipher("test-secret-key")

    def test_round_trip(self):
        creds = {"access_token": "abc", "refresh_token": "def", "expires_in": 3600}
        assert self.cipher.decrypt(self.cipher.encrypt(creds)) == creds

    def test_ciphertext_hides_plaintext(self):
        blob = self.cipher.encrypt({"access_token": "very-secret-token"})
        assert "very-secret-token" not in blob

    def test_wrong_key_raises_security_error(self):
        blob = self.cipher.encrypt({"a": 1})
        other = CredentialCipher("another-key")
        with pytest.raises(RelaySecurityError, match="encryption key"):
            other.decrypt(blob)

    def test_garbage_raises_security_error(self):
        with pytest.raises(RelaySecurityError):
            self.cipher.decrypt("not-a-fernet-token")

    def test_empty_key_rejected(self):
        with pytest.raises(ValueError):
            CredentialCipher("")
