from __future__ import annotations

import pytest

from kronos_consul.client.service_resolver import RoundRobinURLs, ServiceURLDirectory, URLResolver
from kronos_consul.exceptions import EmptyResultError, InvalidRegistrationError, RegistryConnectionError


async def _publish(client, service: str, urls: dict[str, str]) -> None:
    for instance_id, url in urls.items():
        await client.kv_set(f"services/{service}/{instance_id}/url", url)


async def _take(sequence: RoundRobinURLs, count: int) -> list[str]:
    return [await sequence.next() for _ in range(count)]


@pytest.mark.asyncio
async def test_round_robin_cycles_through_snapshot(registry_client) -> None:
    await _publish(registry_client, "svc", {"1": "A", "2": "B", "3": "C"})

    urls = URLResolver(registry_client).resolve("svc")

    assert await _take(urls, 7) == ["A", "B", "C", "A", "B", "C", "A"]
    assert urls.urls == ("A", "B", "C")


@pytest.mark.asyncio
async def test_empty_service_fails_first_element_then_ends(registry_client) -> None:
    urls = URLResolver(registry_client).resolve("svc")

    with pytest.raises(EmptyResultError) as exc_info:
        await urls.next()
    assert exc_info.value.data == {"service": "svc"}
    assert urls.exhausted

    with pytest.raises(StopAsyncIteration):
        await urls.next()
    assert [url async for url in urls] == []


@pytest.mark.asyncio
async def test_snapshot_is_never_refreshed(registry_client) -> None:
    await _publish(registry_client, "svc", {"1": "A", "2": "B"})
    resolver = URLResolver(registry_client)
    urls = resolver.resolve("svc")
    assert await urls.next() == "A"

    await _publish(registry_client, "svc", {"3": "C"})

    assert await _take(urls, 4) == ["B", "A", "B", "A"]
    assert await _take(resolver.resolve("svc"), 3) == ["A", "B", "C"]


@pytest.mark.asyncio
async def test_each_resolve_has_its_own_cursor(registry_client) -> None:
    await _publish(registry_client, "svc", {"1": "A", "2": "B"})
    resolver = URLResolver(registry_client)
    first, second = resolver.resolve("svc"), resolver.resolve("svc")

    assert await _take(first, 3) == ["A", "B", "A"]
    assert await _take(second, 1) == ["A"]


@pytest.mark.asyncio
async def test_sibling_services_are_not_mixed_in(registry_client) -> None:
    await _publish(registry_client, "svc", {"1": "A"})
    await _publish(registry_client, "svc2", {"1": "Z"})

    assert await _take(URLResolver(registry_client).resolve("svc"), 2) == ["A", "A"]


@pytest.mark.asyncio
async def test_fetch_failure_propagates_and_ends_sequence(registry_client) -> None:
    registry_client.fail_next(1)
    urls = URLResolver(registry_client).resolve("svc")

    with pytest.raises(RegistryConnectionError):
        await urls.next()
    with pytest.raises(StopAsyncIteration):
        await urls.next()


@pytest.mark.asyncio
async def test_directory_registers_and_unregisters_instance_urls(registry_client) -> None:
    directory = ServiceURLDirectory(registry_client, "node1")
    await _publish(registry_client, "svc", {"node2": "http://other:80/api"})

    await directory.register_url("svc", "http://node1:4712/api")
    entries = await registry_client.kv_get("services/svc/node1/url")
    assert [entry.text for entry in entries] == ["http://node1:4712/api"]

    await directory.unregister("svc")
    remaining = await registry_client.kv_get("services/svc/", recurse=True)
    assert [entry.key for entry in remaining] == ["services/svc/node2/url"]


@pytest.mark.asyncio
async def test_directory_rejects_malformed_urls(registry_client) -> None:
    with pytest.raises(InvalidRegistrationError):
        await ServiceURLDirectory(registry_client, "node1").register_url("svc", "not a url")


@pytest.mark.asyncio
async def test_binary_values_are_skipped(registry_client, caplog) -> None:
    await registry_client.kv_set("services/svc/n1/url", "http://a")
    await registry_client.kv_set("services/svc/n2/blob", b"\xff\xfe")

    urls = URLResolver(registry_client).resolve("svc")

    assert await _take(urls, 2) == ["http://a", "http://a"]
    assert "Skipping services/svc/n2/blob" in caplog.text
