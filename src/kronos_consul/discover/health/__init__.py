from __future__ import annotations

from .health_route import (
    HEALTHY_STATUS_CODE,
    UNHEALTHY_STATUS_CODE,
    HealthCheckProvider,
    health_endpoint,
    health_route,
)
from .health_status import HealthStatus

__all__ = [
    "HEALTHY_STATUS_CODE",
    "UNHEALTHY_STATUS_CODE",
    "HealthCheckProvider",
    "HealthStatus",
    "health_endpoint",
    "health_route",
]
