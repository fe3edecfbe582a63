from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass


class ConfigError(RuntimeError):
    """Raised when the process configuration is invalid."""


@dataclass(frozen=True)
class ConfiguratorSettings:
    """Immutable process configuration loaded at startup.

    Attributes:
        osm_namespace:  Namespace the mesh control plane is installed in.
        config_map_name: Name of the mesh ConfigMap inside ``osm_namespace``.
        payload_key:    ConfigMap data key to decode; ``None`` requires the
                        ConfigMap to carry exactly one data entry.
    """

    osm_namespace: str = "osm-system"
    config_map_name: str = "osm-config"
    payload_key: str | None = None
    announcement_buffer_size: int = 128
    watch_timeout_seconds: int = 30
    resync_seconds: int = 300
    health_port: int = 8080
    log_level: str = "INFO"


def env_int(
    values: Mapping[str, str],
    name: str,
    default: int,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    raw = values.get(name)
    if raw is None:
        value = default
    else:
        try:
            value = int(raw)
        except ValueError as exc:
            raise ConfigError(f"{name} must be an integer") from exc

    if minimum is not None and value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got: {value}")
    if maximum is not None and value > maximum:
        raise ConfigError(f"{name} must be <= {maximum}, got: {value}")
    return value


def _non_empty(values: Mapping[str, str], name: str, default: str) -> str:
    value = values.get(name, default).strip()
    if not value:
        raise ConfigError(f"{name} must be a non-empty string")
    return value


def load_settings(env: Mapping[str, str] | None = None) -> ConfiguratorSettings:
    """Load settings from the environment.

    Environment variables (with defaults):
        ``OSM_NAMESPACE``            — watched namespace (``osm-system``).
        ``OSM_CONFIG_MAP_NAME``      — watched ConfigMap (``osm-config``).
        ``CONFIG_PAYLOAD_KEY``       — data key to decode (unset).
        ``ANNOUNCEMENT_BUFFER_SIZE`` — relay capacity (``128``).
        ``WATCH_TIMEOUT_SECONDS``    — server-side watch timeout (``30``).
        ``RESYNC_SECONDS``           — handler replay period, ``0`` disables (``300``).
        ``HEALTH_PORT``              — health server port (``8080``).
        ``LOG_LEVEL``                — root log level (``INFO``).
    """
    values = env if env is not None else os.environ

    payload_key = (values.get("CONFIG_PAYLOAD_KEY") or "").strip() or None

    return ConfiguratorSettings(
        osm_namespace=_non_empty(values, "OSM_NAMESPACE", "osm-system"),
        config_map_name=_non_empty(values, "OSM_CONFIG_MAP_NAME", "osm-config"),
        payload_key=payload_key,
        announcement_buffer_size=env_int(values, "ANNOUNCEMENT_BUFFER_SIZE", 128, minimum=1),
        watch_timeout_seconds=env_int(
            values, "WATCH_TIMEOUT_SECONDS", 30, minimum=1, maximum=3600
        ),
        resync_seconds=env_int(values, "RESYNC_SECONDS", 300, minimum=0),
        health_port=env_int(values, "HEALTH_PORT", 8080, minimum=1, maximum=65535),
        log_level=values.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )
