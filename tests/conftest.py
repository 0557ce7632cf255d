"""
notifyhub Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, List, Tuple

import httpx
import pytest

from notifyhub.engine.cache import MemoryCache
from notifyhub.engine.config import Settings
from notifyhub.engine.credentials import CredentialCipher
from notifyhub.engine.token_cache import TokenCache


# ---------------------------------------------------------------------------
# Global state — reset between tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_globals():
    """Reset global singletons between tests."""
    import notifyhub.engine.config as cfg_mod
    import notifyhub.engine.logging as log_mod

    cfg_mod._settings = None
    yield
    if log_mod._global_queue is not None:
        log_mod.shutdown_logging()
    cfg_mod._settings = None

    # configure_logging detaches the notifyhub tree from root; caplog needs it attached
    root = logging.getLogger("notifyhub")
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.propagate = True
    root.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Time and stores
# ---------------------------------------------------------------------------

class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_cache(clock):
    return MemoryCache(clock=clock)


@pytest.fixture
def cipher():
    return CredentialCipher("test-secret-key")


@pytest.fixture
def token_cache(memory_cache, cipher, clock):
    return TokenCache(memory_cache, cipher, clock=clock)


@pytest.fixture
def settings():
    """Settings for an isolated process: memory cache, no Kafka, Zalo group configured."""
    return Settings(
        secret_key="test-secret-key",
        kafka={"enabled": False},
        cache={"backend": "memory"},
        zalo={
            "app_id": "app-123",
            "app_secret": "shh",
            "group_id": "group-default",
            "api_url": "https://openapi.test",
            "oauth_url": "https://oauth.test",
        },
    )


# ---------------------------------------------------------------------------
# Zalo HTTP stub
# ---------------------------------------------------------------------------

class ZaloStub:
    """
    httpx.MockTransport handler with per-path response queues.

    Each queued response is served once; the last one for a path repeats.
    Unqueued paths answer 404.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self._responses: Dict[str, List[Tuple[int, Any]]] = defaultdict(list)

    def queue(self, path: str, body: Any, status: int = 200) -> None:
        self._responses[path].append((status, body))

    def calls(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queued = self._responses.get(request.url.path)
        if not queued:
            return httpx.Response(404, json={"error": 404, "message": "not mocked"})
        status, body = queued.pop(0) if len(queued) > 1 else queued[0]
        return httpx.Response(status, json=body)


@pytest.fixture
def zalo_stub():
    return ZaloStub()


@pytest.fixture
def http_client(zalo_stub):
    return httpx.AsyncClient(transport=httpx.MockTransport(zalo_stub))
