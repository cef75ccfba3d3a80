import logging
from collections.abc import Awaitable, Callable
from urllib.parse import urlsplit

from kronos_consul.discover.registry.registry_client import RegistryClient
from kronos_consul.exceptions import EmptyResultError, InvalidRegistrationError
from kronos_consul.utils.constant import SERVICES_KV_PREFIX

logger = logging.getLogger(__name__)

UrlFetcher = Callable[[], Awaitable[list[str]]]


def service_key(name: str, instance_id: str | None = None, *, prefix: str = SERVICES_KV_PREFIX) -> str:
    """KV path of a service, or of one instance of it."""
    if instance_id is None:
        return f"{prefix}/{name}/"
    return f"{prefix}/{name}/{instance_id}"


class RoundRobinURLs:
    """Endless round robin over the URLs of one service.

    The URL set is read once, on the first next(), and never refreshed: URLs
    registered afterwards are only seen by a new instance. An empty set makes
    the first next() raise EmptyResultError and ends the sequence.

    Consumption is one element at a time; await each next() before asking for
    the following one.
    """

    def __init__(self, name: str, fetch: UrlFetcher) -> None:
        self.name = name
        self._fetch = fetch
        self._urls: tuple[str, ...] | None = None
        self._cursor = 0
        self._exhausted = False
        self._fetching = False

    @property
    def urls(self) -> tuple[str, ...] | None:
        return self._urls

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def __aiter__(self) -> "RoundRobinURLs":
        return self

    async def __anext__(self) -> str:
        return await self.next()

    async def next(self) -> str:
        """Return the next URL.

        Raises:
            EmptyResultError: First call only, when the service has no URLs.
            StopAsyncIteration: The sequence has ended.
        """
        if self._exhausted:
            raise StopAsyncIteration
        if self._urls is None:
            return await self._first()
        self._cursor = (self._cursor + 1) % len(self._urls)
        return self._urls[self._cursor]

    async def _first(self) -> str:
        if self._fetching:
            raise RuntimeError(f"URLs of {self.name} are already being fetched")
        self._fetching = True
        try:
            urls = tuple(await self._fetch())
        except Exception:
            self._exhausted = True
            raise
        finally:
            self._fetching = False
        if not urls:
            self._exhausted = True
            raise EmptyResultError(message=f"No URLs registered for service {self.name}", data={"service": self.name})
        self._urls = urls
        self._cursor = 0
        return urls[0]


class URLResolver:
    """Resolves service names to round robin URL sequences read from the KV store."""

    def __init__(self, client: RegistryClient, *, prefix: str = SERVICES_KV_PREFIX) -> None:
        self._client = client
        self._prefix = prefix

    def resolve(self, name: str) -> RoundRobinURLs:
        """A new, independent sequence with its own read and cursor."""
        return RoundRobinURLs(name, lambda: self._fetch_urls(name))

    async def _fetch_urls(self, name: str) -> list[str]:
        entries = await self._client.kv_get(service_key(name, prefix=self._prefix), recurse=True)
        urls: list[str] = []
        for entry in entries:
            try:
                url = entry.text
            except UnicodeDecodeError:
                logger.warning("Skipping %s, value is not UTF-8 text", entry.key, extra={"service": name})
                continue
            if url:
                urls.append(url)
        logger.debug("Resolved %d URLs for %s", len(urls), name)
        return urls


class ServiceURLDirectory:
    """Publishes the URLs this instance offers for named services."""

    def __init__(self, client: RegistryClient, instance_id: str, *, prefix: str = SERVICES_KV_PREFIX) -> None:
        self._client = client
        self._instance_id = instance_id
        self._prefix = prefix

    async def register_url(self, name: str, url: str) -> None:
        parts = urlsplit(url)
        if not parts.scheme or not parts.hostname:
            raise InvalidRegistrationError(message=f"Invalid service URL: {url}", data={"service": name, "url": url})
        logger.info("registerService %s at %s", name, url, extra={"service": name, "url": url})
        await self._client.kv_set(f"{service_key(name, self._instance_id, prefix=self._prefix)}/url", url)

    async def unregister(self, name: str) -> None:
        logger.info("unregisterService %s", name, extra={"service": name})
        await self._client.kv_delete(service_key(name, self._instance_id, prefix=self._prefix), recurse=True)
