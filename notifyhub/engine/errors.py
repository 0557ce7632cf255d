"""
notifyhub Error Hierarchy — Plain exceptions with serialisable context.

Errors carry a human-readable message plus whatever keyword context the
raising site attaches (status codes, provider error codes, topic names).
Controllers serialise them with ``to_dict()`` into the uniform
``{"success": false, "message": ..., "error": ...}`` response body.

Hierarchy:
    RelayError
    ├── RelayConfigError          — Invalid configuration / routing table
    ├── RelayValidationError      — Malformed inbound payload
    ├── RelayPreconditionError    — Missing token, refresh token or group id
    ├── RelayIntegrationError     — Provider or network failure
    ├── RelayAuthenticationError  — Token refresh failed; re-authentication needed
    └── RelaySecurityError        — Credential decryption / signature failure
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class RelayError(Exception):
    """Base error for all notifyhub failures."""

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to a JSON-compatible dict for logging and responses."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "timestamp": self.timestamp,
            "context": {k: str(v) for k, v in self.context.items()},
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        return f"{self.error_type}: {self.message}"


class RelayConfigError(RelayError):
    """Configuration error — invalid notifyhub.yaml, env value or topic routing."""
    pass


class RelayValidationError(RelayError):
    """
    Inbound payload failed validation.
    Includes field-level error details when produced by pydantic.
    """

    def __init__(self, message: str, **context: Any):
        self.validation_errors: Optional[list] = context.get("validation_errors")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["validation_errors"] = self.validation_errors
        return d


class RelayPreconditionError(RelayError):
    """A required credential or destination is missing; raised before any I/O."""
    pass


class RelayIntegrationError(RelayError):
    """External system call failed (Zalo API, SMTP, Kafka)."""

    def __init__(self, message: str, **context: Any):
        self.connected_system: Optional[str] = context.get("connected_system")
        self.status_code: Optional[int] = context.get("status_code")
        self.error_code: Optional[int] = context.get("error_code")
        self.response_body: Optional[Any] = context.get("response_body")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["connected_system"] = self.connected_system
        d["status_code"] = self.status_code
        d["error_code"] = self.error_code
        return d


class RelayAuthenticationError(RelayError):
    """The chat platform credential could not be renewed."""
    pass


class RelaySecurityError(RelayError):
    """Credential decryption failed or a webhook signature did not match."""
    pass
