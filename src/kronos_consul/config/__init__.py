"""Configuration helpers."""

from .loader import ConfigError, load_config, load_default_config
from .models import ConsulConfig, RegistrationConfig

__all__ = [
    "ConfigError",
    "ConsulConfig",
    "RegistrationConfig",
    "load_config",
    "load_default_config",
]
