"""
notifyhub Health Check — Liveness of the relay's moving parts.

Provides:
    - HealthCheckService: registered sync/async checks with failure thresholds
    - Built-in registrations for the cache backend, the Kafka consumer and
      the Zalo credential
    - Platform health summary for GET /notifications/health
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("notifyhub.engine.health")


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class HealthCheckResult:
    """Result of a single health check."""
    name: str
    status: HealthStatus
    latency_ms: float = 0.0
    message: str = ""
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
            "message": self.message,
            "checked_at": self.checked_at.isoformat(),
        }


@dataclass
class HealthCheckConfig:
    """Configuration for a health check."""
    enabled: bool = True
    timeout: int = 5
    unhealthy_threshold: int = 3  # Consecutive failures before marking unhealthy
    critical: bool = True  # Non-critical checks never go beyond DEGRADED


class HealthCheckService:
    """
    Runs registered health checks and aggregates them.

    Usage:
        service = HealthCheckService()
        service.register_cache_check(cache)
        await service.check_all()
        summary = service.get_platform_health()
    """

    def __init__(self):
        self._checks: Dict[str, _RegisteredCheck] = {}
        self._results: Dict[str, HealthCheckResult] = {}

    def register_check(
        self,
        name: str,
        check_fn: Callable,
        config: Optional[HealthCheckConfig] = None,
    ) -> None:
        """
        Register a health check function.

        Args:
            name: Unique check name.
            check_fn: Async or sync callable returning True (healthy) or False.
            config: Health check configuration.
        """
        self._checks[name] = _RegisteredCheck(
            name=name,
            check_fn=check_fn,
            config=config or HealthCheckConfig(),
        )
        self._results[name] = HealthCheckResult(name=name, status=HealthStatus.UNKNOWN)
        logger.debug(f"Registered health check: {name}")

    def register_cache_check(self, cache: Any, name: str = "cache") -> None:
        """Ping the cache backend."""
        self.register_check(name, cache.ping)

    def register_consumer_check(self, consumer: Any, name: str = "kafka") -> None:
        """Healthy while the message consumer reports a live connection."""
        def consumer_check() -> bool:
            return bool(consumer.get_connection_status()["connected"])

        self.register_check(name, consumer_check, HealthCheckConfig(unhealthy_threshold=1))

    def register_token_check(self, zalo_client: Any, name: str = "zalo_token") -> None:
        """A missing chat credential degrades, never fails, the service."""
        def token_check() -> bool:
            return bool(zalo_client.get_token_status()["has_access_token"])

        self.register_check(
            name,
            token_check,
            HealthCheckConfig(unhealthy_threshold=1, critical=False),
        )

    async def check(self, name: str) -> HealthCheckResult:
        """Run a single health check by name and record the result."""
        if name not in self._checks:
            return HealthCheckResult(
                name=name,
                status=HealthStatus.UNKNOWN,
                message=f"No health check registered for '{name}'",
            )

        registered = self._checks[name]
        if not registered.config.enabled:
            return HealthCheckResult(
                name=name,
                status=HealthStatus.UNKNOWN,
                message="Health check disabled",
            )

        start = time.monotonic()
        try:
            check_fn = registered.check_fn
            # Support both sync and async check functions
            if inspect.iscoroutinefunction(check_fn):
                healthy = await asyncio.wait_for(check_fn(), timeout=registered.config.timeout)
            else:
                healthy = check_fn()
            message = "OK" if healthy else None
        except asyncio.TimeoutError:
            healthy = False
            message = f"Timeout after {registered.config.timeout}s"
        except Exception as e:
            healthy = False
            message = str(e)

        latency_ms = (time.monotonic() - start) * 1000

        # Non-critical checks stop at DEGRADED however long they fail
        if healthy:
            registered.consecutive_failures = 0
            status = HealthStatus.HEALTHY
        else:
            registered.consecutive_failures += 1
            if (
                registered.config.critical
                and registered.consecutive_failures >= registered.config.unhealthy_threshold
            ):
                status = HealthStatus.UNHEALTHY
            else:
                status = HealthStatus.DEGRADED
            if message is None:
                message = f"Check returned unhealthy (failures: {registered.consecutive_failures})"

        result = HealthCheckResult(
            name=name,
            status=status,
            latency_ms=latency_ms,
            message=message,
        )
        self._results[name] = result
        return result

    async def check_all(self) -> Dict[str, HealthCheckResult]:
        """Run all registered health checks concurrently."""
        tasks = [self.check(name) for name in self._checks]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return dict(self._results)

    def get_last_result(self, name: str) -> Optional[HealthCheckResult]:
        return self._results.get(name)

    def get_platform_health(self) -> Dict[str, Any]:
        """
        Overall health summary.

        Returns:
            Dict with overall status + individual check results.
        """
        results = dict(self._results)
        statuses = [r.status for r in results.values()]

        if all(s == HealthStatus.HEALTHY for s in statuses):
            overall = "healthy"
        elif any(s == HealthStatus.UNHEALTHY for s in statuses):
            overall = "unhealthy"
        else:
            overall = "degraded"

        return {
            "status": overall,
            "checks": {name: r.to_dict() for name, r in results.items()},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @property
    def registered_checks(self) -> List[str]:
        return list(self._checks.keys())


@dataclass
class _RegisteredCheck:
    """Internal: tracked state for a registered health check."""
    name: str
    check_fn: Callable
    config: HealthCheckConfig
    consecutive_failures: int = 0
