"""
Health check system with component-level checks.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from ..errors import MalformedResponseError
from ..upstream.client import UpstreamClient
from ..upstream.query import UpstreamRequest

logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class HealthCheckResult:
    name: str
    status: HealthStatus
    message: str
    latency_ms: float = 0.0
    details: dict = field(default_factory=dict)


@dataclass
class HealthReport:
    status: HealthStatus
    checks: list[HealthCheckResult]
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp,
            "checks": [
                {
                    "name": c.name,
                    "status": c.status.value,
                    "message": c.message,
                    "latency_ms": round(c.latency_ms, 1),
                    **c.details,
                }
                for c in self.checks
            ],
        }


class HealthChecker:
    """
    Health check orchestrator.

    Usage:
        checker = HealthChecker(client, service_token)
        report = checker.run_all()
    """

    def __init__(self, client: UpstreamClient, service_token: str | None = None):
        self.client = client
        self.service_token = service_token
        self._checks: dict[str, Callable[[], HealthCheckResult]] = {}
        self.add_check("upstream", self._check_upstream)

    def add_check(self, name: str, check_fn: Callable[[], HealthCheckResult]) -> None:
        """Register a health check function."""
        self._checks[name] = check_fn

    def run_all(self) -> HealthReport:
        """Run all health checks; the worst status wins."""
        results = []
        overall_status = HealthStatus.HEALTHY

        for name, check_fn in self._checks.items():
            start = time.monotonic()
            try:
                result = check_fn()
            except Exception as e:
                logger.error(f"Health check '{name}' failed with exception", exc_info=e)
                result = HealthCheckResult(
                    name=name,
                    status=HealthStatus.UNHEALTHY,
                    message=f"Check failed: {e}",
                )

            result.latency_ms = (time.monotonic() - start) * 1000
            results.append(result)

            if result.status == HealthStatus.UNHEALTHY:
                overall_status = HealthStatus.UNHEALTHY
            elif result.status == HealthStatus.DEGRADED and overall_status != HealthStatus.UNHEALTHY:
                overall_status = HealthStatus.DEGRADED

        return HealthReport(
            status=overall_status,
            checks=results,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    def _check_upstream(self) -> HealthCheckResult:
        try:
            outcome = self.client.call(UpstreamRequest("GET", "/server/ping"), self.service_token)
        except MalformedResponseError:
            # /server/ping answers with a plain-text "pong".
            return HealthCheckResult("upstream", HealthStatus.HEALTHY, "Upstream reachable")
        if outcome.ok:
            return HealthCheckResult("upstream", HealthStatus.HEALTHY, "Upstream reachable")
        if outcome.status_code and outcome.status_code < 500:
            # Answering at all means the upstream is up; the ping may need auth.
            return HealthCheckResult(
                "upstream",
                HealthStatus.DEGRADED,
                f"Upstream answered {outcome.status_code}",
            )
        return HealthCheckResult("upstream", HealthStatus.UNHEALTHY, outcome.describe())
