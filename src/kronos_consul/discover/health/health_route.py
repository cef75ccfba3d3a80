from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.routing import Route

from kronos_consul.utils.constant import DEFAULT_CHECK_PATH

__all__ = [
    "HEALTHY_STATUS_CODE",
    "UNHEALTHY_STATUS_CODE",
    "HealthCheckProvider",
    "health_endpoint",
    "health_route",
]

logger = logging.getLogger(__name__)

HEALTHY_STATUS_CODE = 200
UNHEALTHY_STATUS_CODE = 300


@runtime_checkable
class HealthCheckProvider(Protocol):
    """Answers whether the owning process is healthy."""

    def probe(self) -> bool | Awaitable[bool]:
        """Return True when healthy."""


async def _probe(provider: HealthCheckProvider) -> bool:
    try:
        result = provider.probe()
        if inspect.isawaitable(result):
            result = await result
        return bool(result)
    except Exception:
        logger.exception("Health probe failed")
        return False


def health_endpoint(provider: HealthCheckProvider) -> Callable[[Request], Awaitable[PlainTextResponse]]:
    """Starlette endpoint answering the registry's HTTP check."""

    async def endpoint(request: Request) -> PlainTextResponse:
        healthy = await _probe(provider)
        logger.debug("health: %s", healthy, extra={"health": healthy})
        if healthy:
            return PlainTextResponse("OK", status_code=HEALTHY_STATUS_CODE)
        return PlainTextResponse("ERROR", status_code=UNHEALTHY_STATUS_CODE)

    return endpoint


def health_route(provider: HealthCheckProvider, path: str = DEFAULT_CHECK_PATH) -> Route:
    return Route(path, health_endpoint(provider), methods=["GET"], name="registry-health-check")
