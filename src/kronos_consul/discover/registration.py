"""Registration lifecycle of this process in the service catalog.

Typical usage:
    registration = RegistrationClient(client, lambda: current_definition())
    registration.on_registered(wire_topology_listener)
    await registration.start()      # retries, raises RegistryConnectionError when exhausted
    registration.update(5000)       # debounced deregister + register
    await registration.stop()

Shutdown does not interrupt a start() that is still retrying: stop() only
deregisters what has been registered so far.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

from kronos_consul.discover.entities import ServiceRegistration
from kronos_consul.discover.registry.registry_client import RegistryClient
from kronos_consul.exceptions import InvalidRegistrationError, RegistryConnectionError
from kronos_consul.resilience.debounce import Debouncer
from kronos_consul.resilience.retry_policy import RetryExecutor, RetryPolicy, RetryPredicate, SleepFunc
from kronos_consul.utils.time_utils import ms_to_seconds

logger = logging.getLogger(__name__)

DefinitionProvider = Callable[[], ServiceRegistration]
RegisteredCallback = Callable[[], Awaitable[None] | None]


class RegistrationClient:
    """Owns register-with-retry, debounced re-registration and deregistration.

    Args:
        client: Registry the definition is registered with.
        definition: The registration, or a callable returning the current one.
            A callable is evaluated on every (re-)registration so tag changes
            are picked up.
        retry_policy: Policy for start(). Defaults to five attempts.
        should_retry: Optional per-error retry decision for start().
        sleep: Awaitable sleep used between start() attempts.
    """

    def __init__(
        self,
        client: RegistryClient,
        definition: ServiceRegistration | DefinitionProvider | None = None,
        *,
        retry_policy: RetryPolicy | None = None,
        should_retry: RetryPredicate | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._client = client
        self._provider: DefinitionProvider | None = None
        if definition is not None:
            self._set_definition(definition)
        self._executor = RetryExecutor(retry_policy or RetryPolicy(), should_retry=should_retry, sleep=sleep)
        self._debouncer = Debouncer(name="reregister")
        self._registered_id: str | None = None
        self._callbacks: list[RegisteredCallback] = []
        self._callbacks_fired = False
        self._immediate: set[asyncio.Future[None]] = set()

    @property
    def definition(self) -> ServiceRegistration:
        if self._provider is None:
            raise InvalidRegistrationError(message="No service definition configured")
        return self._provider()

    @property
    def registered(self) -> bool:
        return self._registered_id is not None

    @property
    def update_pending(self) -> bool:
        return self._debouncer.pending

    @property
    def attempts(self) -> int:
        """Number of tries the last start() made."""
        return self._executor.attempts

    def on_registered(self, callback: RegisteredCallback) -> None:
        """Run ``callback`` once, after the first successful registration."""
        self._callbacks.append(callback)

    async def start(self, definition: ServiceRegistration | DefinitionProvider | None = None) -> None:
        """Register, retrying per the policy.

        Raises:
            InvalidRegistrationError: The definition cannot be registered at all.
            RegistryConnectionError: Every attempt failed.
        """
        if definition is not None:
            self._set_definition(definition)
        current = self.definition
        _validate(current)
        logger.info(
            "Registering %s as %s",
            current.name,
            current.instance_id,
            extra={"instance_id": current.instance_id, "tags": sorted(current.tags)},
        )
        try:
            await self._executor.execute(self._register, operation="register")
        except InvalidRegistrationError:
            raise
        except Exception as exc:
            attempts = self._executor.attempts
            logger.error(
                "Registration of %s failed after %d attempts: %s",
                current.instance_id,
                attempts,
                exc,
                extra={"instance_id": current.instance_id, "attempts": attempts},
            )
            raise RegistryConnectionError(
                message=f"Registration of {current.instance_id} failed after {attempts} attempts",
                data={"instance_id": current.instance_id, "attempts": attempts},
                cause=exc,
            ) from exc

        if not self._callbacks_fired:
            self._callbacks_fired = True
            for callback in self._callbacks:
                result = callback()
                if inspect.isawaitable(result):
                    await result

    async def stop(self) -> None:
        """Cancel any pending update and deregister; a no-op when not registered.

        An update already running is awaited first, so it cannot register the
        instance again after the deregistration.
        """
        if self._debouncer.cancel():
            logger.debug("Cancelled pending re-registration")
        await self.wait_for_updates()
        instance_id = self._registered_id
        if instance_id is None:
            logger.debug("Not registered, nothing to deregister")
            return
        await self._client.deregister(instance_id)
        self._registered_id = None
        logger.info("Deregistered %s", instance_id, extra={"instance_id": instance_id})

    def update(self, delay_ms: int = 0) -> asyncio.Task[None] | None:
        """Re-register with the current definition.

        With ``delay_ms == 0`` the deregister/register pair starts right away and
        the returned task completes with it. Otherwise the update is debounced:
        any pending one is dropped, nothing is returned, and only the last call
        of a burst reaches the registry.
        """
        self._debouncer.cancel()
        if delay_ms > 0:
            self._debouncer.schedule(ms_to_seconds(delay_ms), self._reregister)
            return None
        future = asyncio.ensure_future(self._reregister())
        self._immediate.add(future)
        future.add_done_callback(self._immediate.discard)
        return future

    async def wait_for_updates(self) -> None:
        """Wait until scheduled, running and immediate updates are done."""
        await self._debouncer.drain()
        while self._immediate:
            await asyncio.gather(*list(self._immediate), return_exceptions=True)

    async def _register(self) -> None:
        current = self.definition
        await self._client.register(current)
        self._registered_id = current.instance_id

    async def _reregister(self) -> None:
        current = self.definition
        await self._client.deregister(current.instance_id)
        await self._client.register(current)
        self._registered_id = current.instance_id
        logger.info(
            "Re-registered %s",
            current.instance_id,
            extra={"instance_id": current.instance_id, "tags": sorted(current.tags)},
        )

    def _set_definition(self, definition: ServiceRegistration | DefinitionProvider) -> None:
        if isinstance(definition, ServiceRegistration):
            self._provider = lambda: definition
        else:
            self._provider = definition


def _validate(registration: ServiceRegistration) -> None:
    if not registration.name:
        raise InvalidRegistrationError(message="Service name must not be empty")
    if not registration.instance_id:
        raise InvalidRegistrationError(message="Instance id must not be empty")
    if not (0 < registration.port <= 65535):
        raise InvalidRegistrationError(message=f"Invalid port: {registration.port}", data={"port": registration.port})
