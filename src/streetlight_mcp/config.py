"""Engine configuration.

Values are resolved in order: dataclass defaults, then an optional YAML
file, then ``STREETLIGHT_*`` environment variables.

Example ``streetlight.yaml``::

    broker_host: mqtt.example.net
    broker_port: 1883
    namespace: /a13jYFS3MfN
    fault_alert_delay_s: 2.0
    store: sqlite
    db_path: data/streetlight.sqlite
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

ENV_PREFIX = "STREETLIGHT_"


class ConfigError(RuntimeError):
    """Raised when configuration loading fails."""


@dataclass
class EngineConfig:
    """Runtime settings for the transport, engine and store."""

    # Broker
    broker_host: str = "localhost"
    broker_port: int = 1883
    username: str = ""
    password: str = ""
    keepalive_s: int = 60
    client_id_prefix: str = "streetlight"
    reconnect_min_delay_s: int = 1
    reconnect_max_delay_s: int = 120
    qos: int = 2

    # Topics
    namespace: str = "/a13jYFS3MfN"
    telemetry_topic: str = "device_report"
    leakage_control_prefix: str = "cloud"

    # Engine behaviour
    fault_alert_delay_s: float = 2.0
    verify_inbound_checksum: bool = False

    # Threshold defaults used when the store has no value yet
    default_current_limit: float = 0.0
    default_voltage_limit: float = 0.0
    default_resistance_limit: float = 60.0

    # Store
    store: str = "sqlite"  # sqlite, or memory for dry runs
    db_path: str = "streetlight.sqlite"

    log_level: str = "INFO"

    def validate(self) -> None:
        if self.qos not in (0, 1, 2):
            raise ConfigError(f"qos must be 0, 1 or 2, got {self.qos}")
        if self.fault_alert_delay_s < 0:
            raise ConfigError("fault_alert_delay_s cannot be negative")
        if self.store not in ("memory", "sqlite"):
            raise ConfigError(f"Unknown store backend: {self.store}")
        if not self.namespace or self.namespace.endswith("/"):
            raise ConfigError(f"Invalid namespace: {self.namespace!r}")


def _coerce(name: str, target: type, value: Any) -> Any:
    try:
        if target is bool and isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return target(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {name}: {value!r}") from e


_SCALAR_TYPES = {"str": str, "int": int, "float": float, "bool": bool}


def _field_types(config_cls: type = EngineConfig) -> dict[str, type]:
    """Map each config field to the scalar type its values are coerced to.

    Raises:
        ConfigError: If a field is annotated with anything but str, int,
            float or bool.
    """
    result = {}
    for f in fields(config_cls):
        name = f.type if isinstance(f.type, str) else getattr(f.type, "__name__", "")
        target = _SCALAR_TYPES.get(name)
        if target is None:
            raise ConfigError(f"Unsupported type {f.type!r} for config field {f.name}")
        result[f.name] = target
    return result


def load_config(path: str | Path | None = None) -> EngineConfig:
    """Load configuration from an optional YAML file and the environment.

    Raises:
        ConfigError: If the file is missing or unreadable, or a value has
            the wrong type.
    """
    field_types = _field_types()
    values: dict[str, Any] = {}

    if path is not None:
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config path does not exist: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Error parsing {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        for key, value in data.items():
            if key not in field_types:
                raise ConfigError(f"Unknown config key: {key}")
            values[key] = _coerce(key, field_types[key], value)

    for name, target in field_types.items():
        env_value = os.environ.get(ENV_PREFIX + name.upper())
        if env_value is not None:
            values[name] = _coerce(name, target, env_value)

    config = EngineConfig(**values)
    config.validate()
    return config
