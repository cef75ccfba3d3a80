from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Protocol, runtime_checkable

from kronos_consul.discover.registration import RegistrationClient
from kronos_consul.utils.constant import DEFAULT_TAG_PREFIX, DEFAULT_UPDATE_DELAY_MS

logger = logging.getLogger(__name__)

TopologyListener = Callable[..., None]


@runtime_checkable
class StepSource(Protocol):
    """The owning process's registry of steps and workers."""

    def step_names(self) -> Iterable[str]:
        """Names of the currently known steps."""

    def add_listener(self, listener: TopologyListener) -> None:
        """Subscribe to topology changes."""

    def remove_listener(self, listener: TopologyListener) -> None:
        """Unsubscribe from topology changes."""


class TagTracker:
    """Keeps the advertised tags in line with the owning process's steps.

    Every topology change recomputes the tags and asks for a debounced
    re-registration, so a burst of steps registering at startup results in a
    single catalog update.
    """

    def __init__(
        self,
        registration: RegistrationClient,
        source: StepSource,
        *,
        prefix: str = DEFAULT_TAG_PREFIX,
        delay_ms: int = DEFAULT_UPDATE_DELAY_MS,
    ) -> None:
        self._registration = registration
        self._source = source
        self._prefix = prefix
        self._delay_ms = delay_ms
        self._tags: set[str] = set()
        self._attached = False
        self.refresh()

    @property
    def tags(self) -> set[str]:
        return set(self._tags)

    @property
    def attached(self) -> bool:
        return self._attached

    def compute_tags(self) -> set[str]:
        return {f"{self._prefix}{name}" for name in self._source.step_names()}

    def refresh(self) -> set[str]:
        self._tags = self.compute_tags()
        return self.tags

    def attach(self) -> None:
        if self._attached:
            return
        self._source.add_listener(self.on_topology_changed)
        self._attached = True
        logger.debug("Tracking topology changes")

    def detach(self) -> None:
        if not self._attached:
            return
        self._source.remove_listener(self.on_topology_changed)
        self._attached = False

    def on_topology_changed(self, *_: object) -> None:
        tags = self.refresh()
        logger.debug("Topology changed, tags now %s", sorted(tags))
        self._registration.update(self._delay_ms)
