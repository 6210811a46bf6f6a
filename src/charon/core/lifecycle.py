"""
Component lifecycle for long-running Charon services.

BaseComponent gives the exit scheduler (and anything else started by the
CLI) idempotent start/stop, a component-bound structlog logger, and a
health check that never raises: a failing check is reported as UNHEALTHY.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

import structlog


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthStatus(str, Enum):
    """Component health status."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class HealthCheckResult:
    """Result of a health check."""
    status: HealthStatus
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)
    checked_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def healthy(cls, message: str = "OK", **details: Any) -> "HealthCheckResult":
        return cls(status=HealthStatus.HEALTHY, message=message, details=details)

    @classmethod
    def degraded(cls, message: str, **details: Any) -> "HealthCheckResult":
        return cls(status=HealthStatus.DEGRADED, message=message, details=details)

    @classmethod
    def unhealthy(cls, message: str, **details: Any) -> "HealthCheckResult":
        return cls(status=HealthStatus.UNHEALTHY, message=message, details=details)

    def to_dict(self) -> dict[str, Any]:
        """Flat, log-friendly form (status as its string value)."""
        return {
            "status": self.status.value,
            "message": self.message,
            "checked_at": self.checked_at.isoformat(),
            "details": dict(self.details),
        }


class BaseComponent:
    """Base class for Charon's long-running components.

    Subclasses override _do_start, _do_stop and _do_health_check. Starting
    or stopping twice is a no-op; the transitions are logged as
    component_started / component_stopped with the component name bound.
    """

    def __init__(self, name: Optional[str] = None) -> None:
        self._name = name or self.__class__.__name__
        self._running = False
        self._started_at: Optional[datetime] = None
        self._log = structlog.get_logger().bind(component=self._name)

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def uptime_seconds(self) -> float:
        if not self._started_at:
            return 0.0
        return (_utcnow() - self._started_at).total_seconds()

    async def start(self) -> None:
        if self._running:
            return
        try:
            await self._do_start()
        except Exception as e:
            self._running = False
            self._log.error("component_start_failed", error=str(e))
            raise
        self._running = True
        self._started_at = _utcnow()
        self._log.info("component_started")

    async def stop(self) -> None:
        if not self._running:
            return
        uptime = self.uptime_seconds
        await self._do_stop()
        self._running = False
        self._started_at = None
        self._log.info("component_stopped", uptime_seconds=round(uptime, 1))

    async def health_check(self) -> HealthCheckResult:
        if not self._running:
            return HealthCheckResult.unhealthy(f"{self._name} not running")
        try:
            return await self._do_health_check()
        except Exception as e:
            self._log.warning("health_check_failed", error=str(e))
            return HealthCheckResult.unhealthy(f"health check failed: {e}")

    async def _do_start(self) -> None:
        pass

    async def _do_stop(self) -> None:
        pass

    async def _do_health_check(self) -> HealthCheckResult:
        return HealthCheckResult.healthy(uptime_seconds=self.uptime_seconds)
