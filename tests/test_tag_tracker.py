from __future__ import annotations

import pytest

from kronos_consul.discover.registration import RegistrationClient
from kronos_consul.discover.tag_tracker import StepSource, TagTracker


def _tracked(registry_client, definition, steps, recording_sleep, delay_ms: int = 20):
    holder: dict[str, TagTracker] = {}

    def current():
        return definition.model_copy(update={"tags": holder["tracker"].tags})

    registration = RegistrationClient(registry_client, current, sleep=recording_sleep)
    holder["tracker"] = TagTracker(registration, steps, delay_ms=delay_ms)
    return registration, holder["tracker"]


def test_fake_steps_satisfy_protocol(steps) -> None:
    assert isinstance(steps, StepSource)


def test_tags_are_prefixed_step_names(registry_client, definition, steps, recording_sleep) -> None:
    _, tracker = _tracked(registry_client, definition, steps, recording_sleep)

    assert tracker.tags == {"step:a", "step:b"}


@pytest.mark.asyncio
async def test_topology_change_reregisters_after_debounce(registry_client, definition, steps, recording_sleep) -> None:
    registration, tracker = _tracked(registry_client, definition, steps, recording_sleep)
    await registration.start()
    tracker.attach()

    steps.register_step("c")
    assert registration.update_pending
    await registration.wait_for_updates()

    assert len(registry_client.register_calls) == 2
    assert registry_client.services["node1"].tags == {"step:a", "step:b", "step:c"}


@pytest.mark.asyncio
async def test_startup_burst_is_coalesced(registry_client, definition, steps, recording_sleep) -> None:
    registration, tracker = _tracked(registry_client, definition, steps, recording_sleep, delay_ms=50)
    await registration.start()
    tracker.attach()

    for index in range(20):
        steps.register_step(f"s{index}")
    await registration.wait_for_updates()

    assert len(registry_client.register_calls) == 2
    assert len(registry_client.services["node1"].tags) == 22


@pytest.mark.asyncio
async def test_detach_stops_tracking(registry_client, definition, steps, recording_sleep) -> None:
    registration, tracker = _tracked(registry_client, definition, steps, recording_sleep)
    tracker.attach()
    tracker.attach()
    assert len(steps.listeners) == 1

    tracker.detach()
    steps.register_step("c")

    assert steps.listeners == []
    assert not registration.update_pending
    assert "step:c" not in tracker.tags
