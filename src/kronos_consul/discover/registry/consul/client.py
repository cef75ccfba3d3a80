"""Consul registry client over the agent HTTP API.

Watches are implemented with blocking queries: each read carries the last seen
``X-Consul-Index`` and Consul holds the request open until the index moves or
the wait time elapses. A change is delivered whenever the index differs from
the previous one, the first response included. An index that goes backwards
is reset to 0 so the next read returns at once with the current data.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any
from urllib.parse import quote

import httpx

from kronos_consul.config.models import ConsulConfig
from kronos_consul.discover.entities import CatalogNode, HealthCheck, KVEntry, ServiceRegistration
from kronos_consul.discover.registry.registry_client import RegistryClient, Watch
from kronos_consul.discover.registry.registry_factory import registry
from kronos_consul.exceptions import RegistryConnectionError, WatchError
from kronos_consul.utils.constant import CONSUL_INDEX_HEADER, CONSUL_TOKEN_HEADER, WatchMethod

logger = logging.getLogger(__name__)

ReadSpec = tuple[str, dict[str, Any], Callable[[Any], Any]]


def _kv_path(key: str) -> str:
    return f"/v1/kv/{quote(key.lstrip('/'), safe='/')}"


def _parse_kv(payload: Any) -> list[KVEntry]:
    return [KVEntry.from_consul(item) for item in payload or []]


def _parse_checks(payload: Any) -> list[HealthCheck]:
    return [HealthCheck.from_consul(item) for item in payload or []]


def _parse_nodes(payload: Any) -> list[CatalogNode]:
    return [CatalogNode.from_consul(item) for item in payload or []]


@registry(name="consul")
class ConsulRegistryClient(RegistryClient):
    """Registry client talking to a Consul agent.

    Args:
        config: Agent connection settings. Frozen once the client exists.
        http_client: Optional preconfigured httpx client. When omitted the
            client owns one built from ``config`` and closes it in aclose().
    """

    def __init__(self, config: ConsulConfig | None = None, *, http_client: httpx.AsyncClient | None = None) -> None:
        self._config = config or ConsulConfig()
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            verify=self._config.verify,
            timeout=self._config.timeout,
        )
        self._headers: dict[str, str] = {}
        if self._config.token:
            self._headers[CONSUL_TOKEN_HEADER] = self._config.token

    @property
    def config(self) -> ConsulConfig:
        return self._config

    async def register(self, registration: ServiceRegistration) -> None:
        await self._request("PUT", "/v1/agent/service/register", json=registration.to_consul())
        logger.debug("Registered %s as %s", registration.name, registration.instance_id)

    async def deregister(self, service_id: str) -> None:
        await self._request("PUT", f"/v1/agent/service/deregister/{quote(service_id, safe='')}")
        logger.debug("Deregistered %s", service_id)

    async def kv_get(self, key: str, *, recurse: bool = False) -> list[KVEntry]:
        path, params, parse = self._read_spec(WatchMethod.KV_GET, {"key": key, "recurse": recurse})
        response = await self._request("GET", path, params=params, allow_not_found=True)
        if response.status_code == 404:
            return []
        return parse(response.json())

    async def kv_set(self, key: str, value: str | bytes) -> bool:
        content = value.encode("utf-8") if isinstance(value, str) else value
        response = await self._request("PUT", _kv_path(key), content=content)
        return bool(response.json())

    async def kv_delete(self, key: str, *, recurse: bool = False) -> bool:
        params = {"recurse": "true"} if recurse else None
        response = await self._request("DELETE", _kv_path(key), params=params)
        return bool(response.json())

    async def health_checks(self, service: str) -> list[HealthCheck]:
        return await self.read(WatchMethod.HEALTH_CHECKS, service=service)

    async def catalog_nodes(self, service: str) -> list[CatalogNode]:
        return await self.read(WatchMethod.CATALOG_NODES, service=service)

    async def read(self, method: WatchMethod, **options: Any) -> Any:
        if method == WatchMethod.KV_GET:
            return await self.kv_get(options.get("key", ""), recurse=bool(options.get("recurse", False)))
        path, params, parse = self._read_spec(method, options)
        response = await self._request("GET", path, params=params)
        return parse(response.json())

    async def status_leader(self) -> str:
        response = await self._request("GET", "/v1/status/leader")
        return str(response.json() or "")

    async def status_peers(self) -> list[str]:
        response = await self._request("GET", "/v1/status/peers")
        return [str(peer) for peer in response.json() or []]

    def watch(self, method: WatchMethod, **options: Any) -> ConsulWatch:
        return ConsulWatch(self, WatchMethod(method), options, wait=self._config.watch_wait)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def blocking_read(
        self,
        method: WatchMethod,
        options: dict[str, Any],
        index: int | None,
        wait: float,
    ) -> tuple[Any, int]:
        """Performs one blocking query, returning the data and the new index."""
        path, params, parse = self._read_spec(method, options)
        params = dict(params)
        if index is not None:
            params["index"] = str(index)
            params["wait"] = f"{int(wait)}s"
        # Consul adds up to wait/16 of jitter to the hold time
        timeout = wait + wait / 16 + self._config.timeout
        response = await self._request("GET", path, params=params, timeout=timeout, allow_not_found=True)
        raw_index = response.headers.get(CONSUL_INDEX_HEADER)
        if raw_index is None:
            raise WatchError(message=f"Response for {method} carries no {CONSUL_INDEX_HEADER}")
        data = parse(response.json()) if response.status_code != 404 else parse([])
        return data, int(raw_index)

    def _read_spec(self, method: WatchMethod, options: dict[str, Any]) -> ReadSpec:
        if method == WatchMethod.KV_GET:
            params = {"recurse": "true"} if options.get("recurse") else {}
            return _kv_path(options.get("key", "")), params, _parse_kv
        if method == WatchMethod.HEALTH_CHECKS:
            return f"/v1/health/checks/{quote(options['service'], safe='')}", {}, _parse_checks
        if method == WatchMethod.CATALOG_NODES:
            return f"/v1/catalog/service/{quote(options['service'], safe='')}", {}, _parse_nodes
        raise ValueError(f"Unsupported watch method: {method}")

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        content: bytes | None = None,
        timeout: float | None = None,
        allow_not_found: bool = False,
    ) -> httpx.Response:
        url = f"{self._config.base_url}{path}"
        try:
            response = await self._http.request(
                method,
                url,
                params=params,
                json=json,
                content=content,
                headers=self._headers,
                timeout=timeout if timeout is not None else self._config.timeout,
            )
        except httpx.HTTPError as exc:
            raise RegistryConnectionError(
                message=f"{method} {path} failed: {exc}",
                data={"url": url},
                cause=exc,
            ) from exc
        if response.status_code == 404 and allow_not_found:
            return response
        if response.status_code >= 400:
            raise RegistryConnectionError(
                message=f"{method} {path} rejected with HTTP {response.status_code}",
                data={"url": url, "status_code": response.status_code, "body": response.text},
            )
        return response


class ConsulWatch(Watch):
    """Blocking-query watch driven by an asyncio task."""

    def __init__(self, client: ConsulRegistryClient, method: WatchMethod, options: dict[str, Any], *, wait: float) -> None:
        super().__init__(method, options)
        self._client = client
        self._wait = wait
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        if self._active:
            return
        self._active = True
        self._task = asyncio.create_task(self._loop(), name=f"consul-watch-{self.method}")

    async def end(self) -> None:
        self._active = False
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        if task is not asyncio.current_task():
            await asyncio.gather(task, return_exceptions=True)

    async def _loop(self) -> None:
        index: int | None = None
        while self._active:
            try:
                data, new_index = await self._client.blocking_read(self.method, self.options, index, self._wait)
            except WatchError as exc:
                await self._emit_error(exc)
                return
            except Exception as exc:
                await self._emit_error(WatchError(message=f"Watch on {self.method} failed: {exc}", data=self.options, cause=exc))
                return
            if new_index == index:
                continue
            if index is not None and new_index < index:
                # index went backwards, start over from 0
                logger.debug("Index of %s went back from %d to %d, resetting", self.method, index, new_index)
                index = 0
                continue
            index = new_index
            await self._emit_change(data)
