from __future__ import annotations

import asyncio

import pytest

from kronos_consul.discover.registration import RegistrationClient
from kronos_consul.discover.registry.in_memory import InMemoryRegistryClient
from kronos_consul.exceptions import InvalidRegistrationError, RegistryConnectionError
from kronos_consul.resilience.retry_policy import RetryPolicy


def _registration(client, definition, sleep) -> RegistrationClient:
    return RegistrationClient(client, definition, retry_policy=RetryPolicy(max_attempts=5), sleep=sleep)


@pytest.mark.asyncio
async def test_start_registers_definition(registry_client, definition, recording_sleep) -> None:
    registration = _registration(registry_client, definition, recording_sleep)

    await registration.start()

    assert registration.registered
    assert registry_client.services["node1"].tags == {"step:a", "step:b"}
    assert registration.attempts == 1


@pytest.mark.asyncio
async def test_start_succeeds_on_third_attempt(registry_client, definition, recording_sleep) -> None:
    registry_client.fail_next(2)
    registration = _registration(registry_client, definition, recording_sleep)

    await registration.start()

    assert registration.attempts == 3
    assert len(registry_client.register_calls) == 1
    assert len(recording_sleep.delays) == 2


@pytest.mark.asyncio
async def test_start_fails_after_exhausting_attempts(registry_client, definition, recording_sleep) -> None:
    registry_client.fail_next(100)
    registration = _registration(registry_client, definition, recording_sleep)
    wired: list[bool] = []
    registration.on_registered(lambda: wired.append(True))

    with pytest.raises(RegistryConnectionError) as exc_info:
        await registration.start()

    assert exc_info.value.data["attempts"] == 5
    assert isinstance(exc_info.value.__cause__, RegistryConnectionError)
    assert not registration.registered
    assert wired == []


@pytest.mark.asyncio
async def test_invalid_definition_is_not_retried(registry_client, definition, recording_sleep) -> None:
    registration = _registration(registry_client, definition.model_copy(update={"port": 0}), recording_sleep)

    with pytest.raises(InvalidRegistrationError):
        await registration.start()
    assert registry_client.register_calls == []


@pytest.mark.asyncio
async def test_start_stop_start_leaves_single_registration(registry_client, definition, recording_sleep) -> None:
    registration = _registration(registry_client, definition, recording_sleep)

    await registration.start()
    await registration.stop()
    await registration.start()

    assert list(registry_client.services) == ["node1"]
    assert registry_client.deregister_calls == ["node1"]


@pytest.mark.asyncio
async def test_stop_without_registration_is_noop(registry_client, definition, recording_sleep) -> None:
    registration = _registration(registry_client, definition, recording_sleep)

    await registration.stop()

    assert registry_client.deregister_calls == []


@pytest.mark.asyncio
async def test_on_registered_fires_once(registry_client, definition, recording_sleep) -> None:
    registration = _registration(registry_client, definition, recording_sleep)
    calls: list[str] = []

    async def wire() -> None:
        calls.append("wired")

    registration.on_registered(wire)
    await registration.start()
    await registration.stop()
    await registration.start()

    assert calls == ["wired"]


@pytest.mark.asyncio
async def test_immediate_update_returns_completion(registry_client, definition, recording_sleep) -> None:
    registration = _registration(registry_client, definition, recording_sleep)
    await registration.start()

    task = registration.update(0)
    assert task is not None
    await task

    assert registry_client.deregister_calls == ["node1"]
    assert len(registry_client.register_calls) == 2


@pytest.mark.asyncio
async def test_burst_of_updates_reregisters_once_with_latest_state(registry_client, definition, recording_sleep) -> None:
    current = {"definition": definition}
    registration = _registration(registry_client, lambda: current["definition"], recording_sleep)
    await registration.start()

    for name in ("c", "d", "e"):
        tags = current["definition"].tags | {f"step:{name}"}
        current["definition"] = current["definition"].model_copy(update={"tags": tags})
        assert registration.update(50) is None
        await asyncio.sleep(0.01)

    await registration.wait_for_updates()

    assert len(registry_client.register_calls) == 2
    assert registry_client.register_calls[-1].tags == {"step:a", "step:b", "step:c", "step:d", "step:e"}
    assert registry_client.deregister_calls == ["node1"]


@pytest.mark.asyncio
async def test_stop_cancels_pending_update(registry_client, definition, recording_sleep) -> None:
    registration = _registration(registry_client, definition, recording_sleep)
    await registration.start()

    registration.update(10_000)
    assert registration.update_pending
    await registration.stop()

    assert not registration.update_pending
    assert len(registry_client.register_calls) == 1
    assert registry_client.deregister_calls == ["node1"]


@pytest.mark.asyncio
async def test_failed_debounced_update_is_logged(registry_client, definition, recording_sleep, caplog) -> None:
    registration = _registration(registry_client, definition, recording_sleep)
    await registration.start()

    registry_client.fail_next(1)
    registration.update(1)
    with caplog.at_level("ERROR"):
        await registration.wait_for_updates()

    assert "Debounced action reregister failed" in caplog.text


class GatedRegistry(InMemoryRegistryClient):
    """Holds the first deregister until the gate opens."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()
        self._held = False

    async def deregister(self, service_id: str) -> None:
        if not self._held:
            self._held = True
            self.entered.set()
            await self.gate.wait()
        await super().deregister(service_id)


@pytest.mark.asyncio
@pytest.mark.parametrize("delay_ms", [1, 0])
async def test_stop_waits_for_running_update(definition, recording_sleep, delay_ms) -> None:
    registry = GatedRegistry()
    registration = _registration(registry, definition, recording_sleep)
    await registration.start()

    registration.update(delay_ms)
    await asyncio.wait_for(registry.entered.wait(), timeout=1)
    stopping = asyncio.create_task(registration.stop())
    await asyncio.sleep(0.01)
    assert not stopping.done()

    registry.gate.set()
    await asyncio.wait_for(stopping, timeout=1)

    assert registry.services == {}
    assert not registration.registered
    assert registry.deregister_calls == ["node1", "node1"]
