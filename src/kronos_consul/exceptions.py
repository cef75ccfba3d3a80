from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class RegistryException(Exception):
    """Base class for registry exceptions with a canonical error shape."""

    code: int
    message: str
    data: Any | None = None
    cause: Exception | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", (self.message,))
        if self.cause is not None:
            object.__setattr__(self, "__cause__", self.cause)
            object.__setattr__(self, "__suppress_context__", True)

    def to_error_dict(self) -> dict[str, Any]:
        """Return a dict suitable for structured log records."""
        return {"code": self.code, "message": self.message, "data": self.data}


@dataclass(frozen=True)
class InvalidRegistrationError(RegistryException):
    """Raised when a service registration definition is incomplete."""

    code: int = 2003
    message: str = "Invalid registration"


@dataclass(frozen=True)
class EmptyResultError(RegistryException):
    """Raised when a service URL lookup finds no entries."""

    code: int = 4002
    message: str = "No entries found"


@dataclass(frozen=True)
class RegistryDependencyError(RegistryException):
    """Raised when the registry fails in an unexpected way."""

    code: int = 6000
    message: str = "Registry error"


@dataclass(frozen=True)
class RegistryConnectionError(RegistryDependencyError):
    """Raised when the registry is unreachable or rejects a call."""

    code: int = 6002
    message: str = "Registry unavailable"


@dataclass(frozen=True)
class WatchError(RegistryDependencyError):
    """Raised by an active watch subscription."""

    code: int = 6010
    message: str = "Watch failed"
