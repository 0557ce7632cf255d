"""
notifyhub Zalo Client — Outbound calls to the Zalo Official Account API.

Owns the in-memory credential pair (seeded from the TokenCache at startup) and
wraps every message send in a single-retry policy:

    attempt → classify failure → (token-class error) refresh once → retry once

Non-token failures propagate after the first attempt. A failed refresh
surfaces as RelayAuthenticationError, not the original provider error.

Endpoints:
    OAuth   {oauth_url}/v4/oa/permission            (browser redirect)
            {oauth_url}/v4/oa/access_token          (code / refresh exchange)
    CS API  {api_url}/v3.0/oa/message/cs            (Bearer auth)
    GMF     {api_url}/v3.0/oa/group/message         (access_token header)
    Profile {api_url}/v2.0/oa/getoa                 (Bearer auth)
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from notifyhub.engine.config import ZaloConfig
from notifyhub.engine.errors import (
    RelayAuthenticationError,
    RelayIntegrationError,
    RelayPreconditionError,
)
from notifyhub.engine.logging import log_integration_call, log_system_event
from notifyhub.engine.token_cache import CachedTokens, TokenCache

logger = logging.getLogger("notifyhub.channels.zalo")

CONNECTED_SYSTEM = "zalo"

# Provider codes for invalid / expired / revoked token and permission problems.
# Zalo reports them negated (e.g. -216), so matching is on absolute value.
TOKEN_ERROR_CODES = frozenset({216, 217, 218, 219, 220})

DEFAULT_EXPIRES_IN = 3600


def is_token_error(error: BaseException) -> bool:
    """True if the failure means the access token must be renewed."""
    if not isinstance(error, RelayIntegrationError) or error.error_code is None:
        return False
    return abs(error.error_code) in TOKEN_ERROR_CODES


def _coerce_code(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def token_preview(token: Optional[str]) -> Optional[str]:
    return f"{token[:10]}..." if token else None


class ZaloClient:
    """
    Zalo OA API client.

    Args:
        config: Zalo section of Settings.
        token_cache: Shared credential store.
        http_client: Optional pre-built httpx.AsyncClient (tests pass one
            backed by httpx.MockTransport).
        log_queue: Optional AsyncLogQueue for integration call records.
    """

    def __init__(
        self,
        config: ZaloConfig,
        token_cache: TokenCache,
        http_client: Optional[httpx.AsyncClient] = None,
        log_queue: Any = None,
    ):
        self._config = config
        self._token_cache = token_cache
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.request_timeout),
        )
        self._log_queue = log_queue
        self._tokens: Optional[CachedTokens] = None

    # -----------------------------------------------------------------------
    # OAuth
    # -----------------------------------------------------------------------

    def get_auth_url(self) -> str:
        """Authorization redirect URL. The state value is not checked on callback."""
        params = urlencode({
            "app_id": self._config.app_id,
            "redirect_uri": self._config.callback_url,
            "state": secrets.token_urlsafe(12),
        })
        return f"{self._oauth('/v4/oa/permission')}?{params}"

    async def handle_callback(self, code: str, state: Optional[str] = None) -> CachedTokens:
        """Exchange an authorization code for a credential pair."""
        logger.info("Processing Zalo OAuth callback")
        body = await self._request(
            "access_token",
            "POST",
            self._oauth("/v4/oa/access_token"),
            headers={"secret_key": self._config.app_secret},
            data={
                "app_id": self._config.app_id,
                "code": code,
                "grant_type": "authorization_code",
            },
        )
        tokens = self._store_tokens(body)
        logger.info("Successfully obtained Zalo tokens")
        self._record(log_system_event("zalo_authenticated", details={"expires_in": tokens.expires_in}))
        return tokens

    async def refresh_token(self) -> CachedTokens:
        """Exchange the held refresh token for a new pair."""
        current = self._current_tokens()
        if current is None or not current.refresh_token:
            raise RelayPreconditionError("No refresh token available")

        body = await self._request(
            "refresh_token",
            "POST",
            self._oauth("/v4/oa/access_token"),
            headers={"secret_key": self._config.app_secret},
            data={
                "app_id": self._config.app_id,
                "refresh_token": current.refresh_token,
                "grant_type": "refresh_token",
            },
        )
        tokens = self._store_tokens(body)
        logger.info("Successfully refreshed Zalo tokens")
        self._record(log_system_event("zalo_token_refreshed", details={"expires_in": tokens.expires_in}))
        return tokens

    async def get_valid_access_token(self) -> str:
        """Current access token, refreshed first when close to expiry."""
        current = self._current_tokens()
        if current is not None and current.refresh_token and self._token_cache.is_token_expiring_soon():
            logger.info("Zalo access token expiring soon, refreshing")
            await self.refresh_token()
        return self._require_access_token()

    def load_cached_tokens(self) -> bool:
        """Seed the in-memory pair from the cache (startup)."""
        cached = self._token_cache.get_tokens()
        if cached is None:
            logger.info("No cached Zalo tokens found")
            return False
        self._tokens = cached
        logger.info("Loaded Zalo tokens from cache")
        return True

    def clear_tokens(self) -> None:
        self._tokens = None
        self._token_cache.clear_tokens()
        logger.info("Zalo tokens cleared")

    def get_token_status(self) -> Dict[str, Any]:
        tokens = self._current_tokens()
        return {
            "has_access_token": bool(tokens and tokens.access_token),
            "has_refresh_token": bool(tokens and tokens.refresh_token),
            "access_token_preview": token_preview(tokens.access_token) if tokens else None,
            "expires_in": tokens.expires_in if tokens else None,
            "cache": self._token_cache.get_cache_status(),
        }

    # -----------------------------------------------------------------------
    # Messaging
    # -----------------------------------------------------------------------

    async def send_group_message(self, message: str, group_id: Optional[str] = None) -> Dict[str, Any]:
        """Send a text message through the customer-support API."""
        target = self._resolve_group_id(group_id)

        async def call(access_token: str) -> Dict[str, Any]:
            return await self._request(
                "send_group_message",
                "POST",
                self._api("/v3.0/oa/message/cs"),
                headers={"Authorization": f"Bearer {access_token}"},
                json={"recipient": {"user_id": target}, "message": {"text": message}},
            )

        result = await self._call_with_retry("send_group_message", call)
        logger.info("Successfully sent message to Zalo group")
        return result

    async def send_group_text_message(self, message: str, group_id: Optional[str] = None) -> Dict[str, Any]:
        """Send a text message through the Group Message Feature (GMF) API."""
        target = self._resolve_group_id(group_id)

        async def call(access_token: str) -> Dict[str, Any]:
            return await self._request(
                "send_group_text_message",
                "POST",
                self._api("/v3.0/oa/group/message"),
                headers={"access_token": access_token},
                json={"recipient": {"group_id": target}, "message": {"text": message}},
            )

        result = await self._call_with_retry("send_group_text_message", call)
        logger.info(f"Successfully sent GMF text message to group {target}")
        return result

    async def send_rich_group_message(
        self,
        title: str,
        subtitle: str,
        elements: Optional[List[Dict[str, Any]]] = None,
        group_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send a list-template message through the customer-support API."""
        target = self._resolve_group_id(group_id)
        attachment = {
            "type": "template",
            "payload": {
                "template_type": "list",
                "elements": elements or [
                    {
                        "title": title,
                        "subtitle": subtitle,
                        "default_action": {
                            "type": "oa.open.url",
                            "url": self._config.callback_url,
                        },
                    }
                ],
            },
        }

        async def call(access_token: str) -> Dict[str, Any]:
            return await self._request(
                "send_rich_group_message",
                "POST",
                self._api("/v3.0/oa/message/cs"),
                headers={"Authorization": f"Bearer {access_token}"},
                json={"recipient": {"user_id": target}, "message": {"attachment": attachment}},
            )

        result = await self._call_with_retry("send_rich_group_message", call)
        logger.info("Successfully sent rich message to Zalo group")
        return result

    async def get_user_info(self) -> Dict[str, Any]:
        """Official Account profile."""
        async def call(access_token: str) -> Dict[str, Any]:
            return await self._request(
                "get_user_info",
                "GET",
                self._api("/v2.0/oa/getoa"),
                headers={"Authorization": f"Bearer {access_token}"},
            )

        body = await self._call_with_retry("get_user_info", call)
        return body.get("data") or {}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # -----------------------------------------------------------------------
    # Retry policy
    # -----------------------------------------------------------------------

    async def _call_with_retry(
        self,
        operation: str,
        call: Callable[[str], Awaitable[Dict[str, Any]]],
    ) -> Dict[str, Any]:
        # Attempt 1
        try:
            return await call(self._require_access_token())
        except RelayIntegrationError as e:
            if not is_token_error(e):
                raise
            logger.warning(
                f"Zalo token error {e.error_code} on {operation}; refreshing token and retrying once"
            )

        # Refresh
        try:
            await self.refresh_token()
        except Exception as refresh_error:
            logger.error(f"Failed to refresh Zalo token: {refresh_error}")
            raise RelayAuthenticationError(
                "Authentication failed. Please re-authenticate.",
                operation=operation,
                cause=str(refresh_error),
            ) from refresh_error

        # Attempt 2 (final)
        return await call(self._require_access_token())

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _current_tokens(self) -> Optional[CachedTokens]:
        if self._tokens is None:
            self._tokens = self._token_cache.get_tokens()
        return self._tokens

    def _require_access_token(self) -> str:
        tokens = self._current_tokens()
        if tokens is None or not tokens.access_token:
            raise RelayPreconditionError("No access token available. Please authenticate first.")
        return tokens.access_token

    def _resolve_group_id(self, group_id: Optional[str]) -> str:
        target = group_id or self._config.group_id
        if not target:
            raise RelayPreconditionError("No Zalo group id provided or configured")
        return target

    def _store_tokens(self, body: Dict[str, Any]) -> CachedTokens:
        # The refresh response nests the pair under "data"
        payload = body.get("data") if isinstance(body.get("data"), dict) else body
        access_token = payload.get("access_token")
        if not access_token:
            raise RelayIntegrationError(
                "Zalo token response did not contain an access token",
                connected_system=CONNECTED_SYSTEM,
                response_body=body,
            )
        refresh_token = payload.get("refresh_token") or (
            self._tokens.refresh_token if self._tokens else ""
        )
        expires_in = _coerce_code(payload.get("expires_in")) or DEFAULT_EXPIRES_IN
        self._tokens = self._token_cache.set_tokens(access_token, refresh_token, expires_in)
        return self._tokens

    def _api(self, path: str) -> str:
        return f"{self._config.api_url.rstrip('/')}{path}"

    def _oauth(self, path: str) -> str:
        return f"{self._config.oauth_url.rstrip('/')}{path}"

    async def _request(
        self,
        operation: str,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Execute one HTTP call and normalise provider errors.

        Raises:
            RelayIntegrationError: transport failure, non-2xx status, or a
                non-zero ``error`` field in the JSON body.
        """
        start = time.monotonic()
        try:
            response = await self._client.request(method, url, headers=headers, json=json, data=data)
        except httpx.HTTPError as e:
            duration_ms = (time.monotonic() - start) * 1000
            self._record(log_integration_call(
                CONNECTED_SYSTEM, operation, method, url, None, duration_ms, False, error=str(e),
            ))
            raise RelayIntegrationError(
                f"Zalo request failed: {e}",
                connected_system=CONNECTED_SYSTEM,
                operation=operation,
            ) from e

        duration_ms = (time.monotonic() - start) * 1000
        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text}
        if not isinstance(body, dict):
            body = {"data": body}

        error_code = _coerce_code(body.get("error"))
        failed = response.status_code >= 400 or bool(error_code)

        self._record(log_integration_call(
            CONNECTED_SYSTEM, operation, method, url, response.status_code, duration_ms,
            not failed, error_code=error_code,
        ))

        if failed:
            detail = (
                body.get("message")
                or body.get("error_description")
                or body.get("error_name")
                or f"HTTP {response.status_code}"
            )
            raise RelayIntegrationError(
                f"Zalo API error: {body.get('error', response.status_code)} - {detail}",
                connected_system=CONNECTED_SYSTEM,
                operation=operation,
                status_code=response.status_code,
                error_code=error_code,
                response_body=body,
            )
        return body

    def _record(self, entry: Any) -> None:
        if self._log_queue is not None:
            self._log_queue.push(entry)
