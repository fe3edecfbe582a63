from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import yaml


class MeshConfigDecodeError(ValueError):
    """Raised when a ConfigMap payload cannot be decoded into :class:`MeshConfig`."""


@dataclass(frozen=True)
class MeshConfig:
    """Decoded contents of the ``osm-config`` ConfigMap payload.

    Attributes:
        config_version: Optional version of the applied config, for debugging only.
        permissive_traffic_policy_mode: When True, SMI policies are ignored and
            existing services may talk to each other uninterrupted. Useful in
            brownfield clusters while observing existing traffic patterns.
    """

    config_version: int = 0
    permissive_traffic_policy_mode: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "config_version": self.config_version,
            "permissive_traffic_policy_mode": self.permissive_traffic_policy_mode,
        }


def decode_mesh_config(payload: str) -> MeshConfig:
    """Parse YAML *payload* into a :class:`MeshConfig`.

    Unknown keys are ignored and explicit nulls fall back to defaults. An
    empty document decodes to the default record.
    """
    try:
        document = yaml.safe_load(payload)
    except yaml.YAMLError as exc:
        raise MeshConfigDecodeError(f"payload is not valid YAML: {exc}") from exc

    if document is None:
        return MeshConfig()
    if not isinstance(document, dict):
        raise MeshConfigDecodeError(
            f"payload must be a YAML mapping, got {type(document).__name__}"
        )

    config_version = document.get("config_version")
    if config_version is None:
        config_version = 0
    elif isinstance(config_version, bool) or not isinstance(config_version, int):
        raise MeshConfigDecodeError(
            f"config_version must be an integer, got: {config_version!r}"
        )

    permissive = document.get("permissive_traffic_policy_mode")
    if permissive is None:
        permissive = False
    elif not isinstance(permissive, bool):
        raise MeshConfigDecodeError(
            f"permissive_traffic_policy_mode must be a boolean, got: {permissive!r}"
        )

    return MeshConfig(config_version=config_version, permissive_traffic_policy_mode=permissive)


def encode_mesh_config(config: MeshConfig) -> str:
    return yaml.safe_dump(config.to_dict(), sort_keys=False)
