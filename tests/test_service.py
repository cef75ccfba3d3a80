from __future__ import annotations

import logging

import pytest
from starlette.routing import Router
from starlette.testclient import TestClient

from kronos_consul import ConsulService
from kronos_consul.config import ConsulConfig, RegistrationConfig
from kronos_consul.discover.registry import InMemoryRegistryClient
from kronos_consul.exceptions import EmptyResultError, RegistryConnectionError

LISTENER = "http://10.0.0.5:4712"


class Healthy:
    def probe(self) -> bool:
        return True


def _config(**registration) -> ConsulConfig:
    registration.setdefault("instance_id", "node1")
    registration.setdefault("update_delay_ms", 10)
    return ConsulConfig(registration=RegistrationConfig(**registration))


@pytest.fixture()
def router() -> Router:
    return Router()


@pytest.fixture()
def service(registry_client, steps, router, recording_sleep) -> ConsulService:
    return ConsulService(
        _config(),
        registry_client,
        steps,
        health=Healthy(),
        listener_url=LISTENER,
        router=router,
        sleep=recording_sleep,
    )


def test_service_definition_points_check_at_listener(service) -> None:
    definition = service.service_definition()

    assert definition.name == "kronos"
    assert definition.instance_id == "node1"
    assert (definition.address, definition.port) == ("10.0.0.5", 4712)
    assert definition.tags == {"step:a", "step:b"}
    assert definition.check.id == definition.check.http == f"{LISTENER}/check"
    assert (definition.check.interval, definition.check.timeout) == ("10s", "5s")


@pytest.mark.asyncio
async def test_start_registers_and_wires_tracker_and_health_route(service, registry_client, steps, router, caplog) -> None:
    caplog.set_level(logging.INFO)

    await service.start()

    assert [reg.instance_id for reg in registry_client.register_calls] == ["node1"]
    assert service.tag_tracker.attached
    assert len(steps.listeners) == 1
    assert [route.path for route in router.routes] == ["/check"]
    assert "Consul raft leader is 127.0.0.1:8300" in caplog.text

    response = TestClient(router).get("/check")
    assert (response.status_code, response.text) == (200, "OK")

    [node] = await service.kronos_nodes()
    assert node.service_id == "node1"


@pytest.mark.asyncio
async def test_topology_change_reregisters_with_new_tags(service, registry_client, steps) -> None:
    await service.start()

    steps.register_step("c")
    await service.registration.wait_for_updates()

    assert registry_client.deregister_calls == ["node1"]
    assert registry_client.register_calls[-1].tags == {"step:a", "step:b", "step:c"}


@pytest.mark.asyncio
async def test_stop_deregisters_and_detaches(service, registry_client, steps) -> None:
    await service.start()

    await service.stop()

    assert registry_client.deregister_calls == ["node1"]
    assert steps.listeners == []
    assert not service.registration.registered


@pytest.mark.asyncio
async def test_failed_start_wires_nothing(service, registry_client, steps, router) -> None:
    registry_client.fail_next(5)

    with pytest.raises(RegistryConnectionError):
        await service.start()

    assert registry_client.register_calls == []
    assert steps.listeners == []
    assert router.routes == []
    await service.stop()
    assert registry_client.deregister_calls == []


@pytest.mark.asyncio
async def test_service_urls_follow_the_directory(service) -> None:
    await service.register_service_url("svc", "http://10.0.0.5:4712/svc")

    urls = service.service_urls("svc")
    assert [await urls.next() for _ in range(2)] == ["http://10.0.0.5:4712/svc"] * 2

    await service.unregister_service_url("svc")
    with pytest.raises(EmptyResultError):
        await service.service_urls("svc").next()


@pytest.mark.asyncio
async def test_create_builds_an_owned_client(steps) -> None:
    async with ConsulService.create(
        _config(),
        steps,
        registry_type="in-memory",
        listener_url=LISTENER,
    ) as service:
        assert isinstance(service.client, InMemoryRegistryClient)
        assert service.registration.registered

    assert not service.registration.registered
