import inspect
import logging
from typing import Any

from kronos_consul.discover.registry.registry_client import RegistryClient

logger = logging.getLogger(__name__)


def registry(name: str):
    """Decorator to register a registry client implementation."""

    def decorator(cls: Any):
        if name:
            RegistryClientFactory.register_client(name, cls)
            logger.debug(f"registered registry client: {name}")
        else:
            logger.warning("No registry name specified. Skipping registration.")
        return cls

    return decorator


class RegistryClientFactory:
    """Factory class for creating RegistryClient instances.

    Every call builds a new client; the caller owns it and injects it where it
    is needed.
    """

    client_classes: dict[str, Any] = {}

    @classmethod
    def create(cls, registry_type: str, *args, **kwargs) -> RegistryClient:
        """Creates a RegistryClient of the given type.

        Args:
            registry_type: The type/name of the registry client to create.
        Returns:
            A new RegistryClient instance.
        """
        client_class = cls.client_classes.get(registry_type)
        if not client_class:
            raise ValueError(f"Registry client '{registry_type}' not found.")

        sig = inspect.signature(client_class.__init__)
        valid_kwargs = {k: v for k, v in kwargs.items() if k in sig.parameters}
        return client_class(*args, **valid_kwargs)

    @classmethod
    def register_client(cls, name: str, client_class) -> None:
        """Registers a RegistryClient class with the factory."""
        cls.client_classes[name] = client_class

    @classmethod
    def list_clients(cls) -> list[str]:
        """Lists the names of all known registry client types."""
        return sorted(cls.client_classes)
