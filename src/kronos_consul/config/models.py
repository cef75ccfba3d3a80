from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar, cast

from kronos_consul.resilience.retry_policy import RetryPolicy, RetryStrategy
from kronos_consul.utils.constant import (
    DEFAULT_CHECK_PATH,
    DEFAULT_CONSUL_HOST,
    DEFAULT_CONSUL_PORT,
    DEFAULT_SERVICE_NAME,
    DEFAULT_TAG_PREFIX,
    DEFAULT_UPDATE_DELAY_MS,
)

T = TypeVar("T")


def _ensure_mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise TypeError(f"{field_name} must be a mapping")
    return cast(Mapping[str, Any], value)


def _coerce_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    raise TypeError(f"{field_name} must be a bool")


def _coerce_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise TypeError(f"{field_name} must be an int")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        return int(value.strip())
    raise TypeError(f"{field_name} must be an int")


def _coerce_float(value: Any, field_name: str) -> float:
    if isinstance(value, bool):
        raise TypeError(f"{field_name} must be a float")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return float(value.strip())
    raise TypeError(f"{field_name} must be a float")


def _coerce_duration(value: Any, field_name: str) -> float:
    """Durations are seconds; strings may carry an ``s`` or ``ms`` suffix."""
    if isinstance(value, str):
        text = value.strip().lower()
        if text.endswith("ms"):
            return _coerce_float(text[:-2], field_name) / 1000.0
        if text.endswith("s"):
            return _coerce_float(text[:-1], field_name)
    return _coerce_float(value, field_name)


def _coerce_str(value: Any, field_name: str) -> str:
    if isinstance(value, str):
        return value
    return str(value)


def _coerce_enum(value: Any, enum_cls: type[T], field_name: str) -> T:
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        normalized = value.strip()
        try:
            return enum_cls(normalized)  # type: ignore[call-arg]
        except ValueError:
            upper = normalized.upper()
            for member in enum_cls:  # type: ignore[attr-defined]
                if getattr(member, "name", "").upper() == upper:
                    return member
    raise ValueError(f"{field_name} must be a valid {enum_cls.__name__}")


def _build_retry_policy(value: Any, field_name: str, *, start_timeout: float) -> RetryPolicy:
    # bounds follow the start timeout unless given explicitly
    defaults: dict[str, Any] = {
        "min_timeout_ms": int(start_timeout * 100),
        "max_timeout_ms": int(start_timeout * 1000),
    }
    if value is None:
        return RetryPolicy(**defaults)
    if isinstance(value, RetryPolicy):
        return value
    data = _ensure_mapping(value, field_name)
    payload = dict(defaults)
    int_fields = ("max_attempts", "min_timeout_ms", "max_timeout_ms", "throttle_ms")
    for name in int_fields:
        if name in data:
            payload[name] = _coerce_int(data[name], f"{field_name}.{name}")
    for name in ("backoff_multiplier", "jitter"):
        if name in data:
            payload[name] = _coerce_float(data[name], f"{field_name}.{name}")
    if "strategy" in data:
        payload["strategy"] = _coerce_enum(data["strategy"], RetryStrategy, f"{field_name}.strategy")
    if data.get("retryable_codes") is not None:
        payload["retryable_codes"] = {
            _coerce_int(code, f"{field_name}.retryable_codes") for code in data["retryable_codes"]
        }
    return RetryPolicy(**payload)


@dataclass
class RegistrationConfig:
    """How this process is advertised in the catalog.

    Attributes:
        service_name: Catalog name of the service.
        instance_id: Stable id of this registration, generated when empty.
        check_path: Path of the health route on the listener.
        check_interval: Seconds between Consul's checks.
        check_timeout: Seconds Consul waits for the check to answer.
        update_delay_ms: Debounce applied to topology driven re-registration.
        tag_prefix: Prefix put in front of every step name tag.
        start_timeout: Seconds used to derive the default retry bounds.
        retry: Retry policy for the initial registration.
    """

    service_name: str = DEFAULT_SERVICE_NAME
    instance_id: str | None = None
    check_path: str = DEFAULT_CHECK_PATH
    check_interval: float = 10.0
    check_timeout: float = 5.0
    update_delay_ms: int = DEFAULT_UPDATE_DELAY_MS
    tag_prefix: str = DEFAULT_TAG_PREFIX
    start_timeout: float = 10.0
    retry: RetryPolicy | None = None

    def __post_init__(self) -> None:
        if self.retry is None:
            self.retry = _build_retry_policy(None, "registration.retry", start_timeout=self.start_timeout)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "RegistrationConfig":
        if data is None:
            return cls()
        if isinstance(data, cls):
            return data
        payload = _ensure_mapping(data, "registration")
        kwargs: dict[str, Any] = {}
        for name in ("service_name", "check_path", "tag_prefix"):
            if name in payload:
                kwargs[name] = _coerce_str(payload[name], f"registration.{name}")
        if payload.get("instance_id") is not None:
            kwargs["instance_id"] = _coerce_str(payload["instance_id"], "registration.instance_id")
        for name in ("check_interval", "check_timeout", "start_timeout"):
            if name in payload:
                kwargs[name] = _coerce_duration(payload[name], f"registration.{name}")
        if "update_delay_ms" in payload:
            kwargs["update_delay_ms"] = _coerce_int(payload["update_delay_ms"], "registration.update_delay_ms")
        kwargs["retry"] = _build_retry_policy(
            payload.get("retry"),
            "registration.retry",
            start_timeout=kwargs.get("start_timeout", cls.start_timeout),
        )
        return cls(**kwargs)


@dataclass(frozen=True)
class ConsulConfig:
    """Connection settings for the registry agent.

    Frozen: the registry connection built from it must not change once in use.

    Attributes:
        host: Agent host name.
        port: Agent HTTP port.
        secure: Use https when talking to the agent.
        ca: Path to a CA bundle used to verify the agent certificate.
        token: ACL token sent with every request.
        timeout: Request timeout in seconds.
        watch_wait: Seconds a blocking query may wait for a change.
        registration: How this process is advertised.
    """

    host: str = DEFAULT_CONSUL_HOST
    port: int = DEFAULT_CONSUL_PORT
    secure: bool = False
    ca: str | None = None
    token: str | None = field(default=None, repr=False)
    timeout: float = 10.0
    watch_wait: float = 300.0
    registration: RegistrationConfig = field(default_factory=RegistrationConfig)

    @property
    def base_url(self) -> str:
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.host}:{self.port}"

    @property
    def verify(self) -> bool | str:
        """Value for the TLS ``verify`` option of the HTTP client."""
        if self.ca:
            return str(Path(self.ca).expanduser())
        return True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "ConsulConfig":
        if data is None:
            return cls()
        payload = _ensure_mapping(data, "consul")
        kwargs: dict[str, Any] = {}
        if "host" in payload:
            kwargs["host"] = _coerce_str(payload["host"], "host")
        if "port" in payload:
            kwargs["port"] = _coerce_int(payload["port"], "port")
        if "secure" in payload:
            kwargs["secure"] = _coerce_bool(payload["secure"], "secure")
        if payload.get("ca") is not None:
            kwargs["ca"] = _coerce_str(payload["ca"], "ca")
        if payload.get("token") is not None:
            kwargs["token"] = _coerce_str(payload["token"], "token")
        for name in ("timeout", "watch_wait"):
            if name in payload:
                kwargs[name] = _coerce_duration(payload[name], name)
        if "registration" in payload:
            kwargs["registration"] = RegistrationConfig.from_dict(payload["registration"])
        config = cls(**kwargs)
        config.validate()
        return config

    def validate(self) -> None:
        if not self.host:
            raise ValueError("host must not be empty")
        if not (1 <= self.port <= 65535):
            raise ValueError(f"port out of range: {self.port}")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.registration.check_timeout > self.registration.check_interval:
            raise ValueError("registration.check_timeout must not exceed registration.check_interval")
