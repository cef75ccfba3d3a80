from enum import StrEnum

DEFAULT_SERVICE_NAME = "kronos"
DEFAULT_SERVICE_PORT = 4712
DEFAULT_CHECK_PATH = "/check"
DEFAULT_CONSUL_HOST = "localhost"
DEFAULT_CONSUL_PORT = 8500
DEFAULT_TAG_PREFIX = "step:"
DEFAULT_UPDATE_DELAY_MS = 5000
SERVICES_KV_PREFIX = "services"
CONSUL_TOKEN_HEADER = "X-Consul-Token"
CONSUL_INDEX_HEADER = "X-Consul-Index"


class WatchMethod(StrEnum):
    """Registry reads that can be watched with blocking queries."""
    KV_GET = "kv.get"
    HEALTH_CHECKS = "health.checks"
    CATALOG_NODES = "catalog.nodes"


class CheckState(StrEnum):
    """Consul health check states"""
    PASSING = "passing"
    WARNING = "warning"
    CRITICAL = "critical"
    MAINTENANCE = "maintenance"
