from .service_registration import (
    CatalogNode,
    CheckDefinition,
    HealthCheck,
    KVEntry,
    ServiceRegistration,
)

__all__ = [
    "CatalogNode",
    "CheckDefinition",
    "HealthCheck",
    "KVEntry",
    "ServiceRegistration",
]
