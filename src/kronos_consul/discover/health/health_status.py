from __future__ import annotations

from enum import StrEnum

from kronos_consul.utils.constant import CheckState


class HealthStatus(StrEnum):
    """Health states for service instances."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"
    UNKNOWN = "unknown"

    @classmethod
    def to_health_status(cls, status: str | None) -> HealthStatus:
        for health_status in cls:
            if health_status.value == status:
                return health_status
        return _CHECK_STATE_TO_HEALTH.get(status or "", HealthStatus.UNKNOWN)


_CHECK_STATE_TO_HEALTH: dict[str, HealthStatus] = {
    CheckState.PASSING.value: HealthStatus.HEALTHY,
    CheckState.WARNING.value: HealthStatus.DEGRADED,
    CheckState.CRITICAL.value: HealthStatus.UNHEALTHY,
    CheckState.MAINTENANCE.value: HealthStatus.UNHEALTHY,
}
