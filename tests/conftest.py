from __future__ import annotations

from collections.abc import Callable, Iterable

import pytest

from kronos_consul.discover.entities import CheckDefinition, ServiceRegistration
from kronos_consul.discover.registry.in_memory import InMemoryRegistryClient


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Force anyio-based tests to only run on asyncio backend."""

    for item in items:
        marker = item.get_closest_marker("anyio")
        if marker is not None:
            marker.kwargs["backend"] = "asyncio"


class FakeSteps:
    """Stand-in for the owning process's step registry."""

    def __init__(self, names: Iterable[str] = ()) -> None:
        self._names = list(names)
        self._listeners: list[Callable[..., None]] = []

    @property
    def listeners(self) -> list[Callable[..., None]]:
        return list(self._listeners)

    def step_names(self) -> list[str]:
        return list(self._names)

    def add_listener(self, listener: Callable[..., None]) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[..., None]) -> None:
        self._listeners.remove(listener)

    def register_step(self, name: str) -> None:
        self._names.append(name)
        for listener in list(self._listeners):
            listener(name)


class RecordingSleep:
    """Awaitable sleep that records the requested delays and returns at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture()
def registry_client() -> InMemoryRegistryClient:
    return InMemoryRegistryClient()


@pytest.fixture()
def steps() -> FakeSteps:
    return FakeSteps(["a", "b"])


@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def definition() -> ServiceRegistration:
    return ServiceRegistration(
        name="kronos",
        instance_id="node1",
        address="10.0.0.5",
        port=4712,
        tags={"step:a", "step:b"},
        check=CheckDefinition(id="http://10.0.0.5:4712/check", http="http://10.0.0.5:4712/check"),
    )
