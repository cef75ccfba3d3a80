from __future__ import annotations

import base64
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from kronos_consul.discover.health.health_status import HealthStatus


class CheckDefinition(BaseModel):
    """HTTP check Consul runs against the registered instance."""
    model_config = ConfigDict(frozen=True)

    id: str
    http: str
    interval: str = "10s"
    timeout: str = "5s"

    def to_consul(self) -> dict[str, Any]:
        return {
            "CheckID": self.id,
            "Name": self.id,
            "HTTP": self.http,
            "Interval": self.interval,
            "Timeout": self.timeout,
        }


class ServiceRegistration(BaseModel):
    """Represents this process's entry in the service catalog."""
    name: str
    instance_id: str
    address: str
    port: int
    tags: set[str] = Field(default_factory=set)
    check: CheckDefinition | None = None

    def to_consul(self) -> dict[str, Any]:
        """Builds the agent service registration payload."""
        payload: dict[str, Any] = {
            "Name": self.name,
            "ID": self.instance_id,
            "Address": self.address,
            "Port": self.port,
            "Tags": sorted(self.tags),
        }
        if self.check is not None:
            payload["Check"] = self.check.to_consul()
        return payload


class KVEntry(BaseModel):
    """A single key/value pair read from the registry."""
    key: str
    value: bytes | None = None
    modify_index: int = 0

    @property
    def text(self) -> str | None:
        """The value as UTF-8 text; raises UnicodeDecodeError for binary values."""
        return self.decode()

    def decode(self, errors: str = "strict") -> str | None:
        if self.value is None:
            return None
        return self.value.decode("utf-8", errors=errors)

    @classmethod
    def from_consul(cls, item: dict[str, Any]) -> KVEntry:
        raw = item.get("Value")
        return cls(
            key=item["Key"],
            value=base64.b64decode(raw) if raw is not None else None,
            modify_index=int(item.get("ModifyIndex", 0)),
        )


class CatalogNode(BaseModel):
    """A catalog entry for one instance of a service."""
    node: str
    address: str
    service_id: str
    service_name: str
    service_address: str | None = None
    service_port: int | None = None
    service_tags: list[str] = Field(default_factory=list)

    @classmethod
    def from_consul(cls, item: dict[str, Any]) -> CatalogNode:
        return cls(
            node=item.get("Node", ""),
            address=item.get("Address", ""),
            service_id=item.get("ServiceID", ""),
            service_name=item.get("ServiceName", ""),
            service_address=item.get("ServiceAddress") or None,
            service_port=item.get("ServicePort"),
            service_tags=list(item.get("ServiceTags") or []),
        )


class HealthCheck(BaseModel):
    """State of one health check as reported by the registry."""
    node: str
    check_id: str
    name: str = ""
    status: str
    service_id: str = ""
    service_name: str = ""
    output: str = ""

    @property
    def health_status(self) -> HealthStatus:
        return HealthStatus.to_health_status(self.status)

    @classmethod
    def from_consul(cls, item: dict[str, Any]) -> HealthCheck:
        return cls(
            node=item.get("Node", ""),
            check_id=item.get("CheckID", ""),
            name=item.get("Name", ""),
            status=item.get("Status", ""),
            service_id=item.get("ServiceID", ""),
            service_name=item.get("ServiceName", ""),
            output=item.get("Output", ""),
        )
