from .service_resolver import RoundRobinURLs, ServiceURLDirectory, URLResolver, service_key

__all__ = [
    "RoundRobinURLs",
    "ServiceURLDirectory",
    "URLResolver",
    "service_key",
]
