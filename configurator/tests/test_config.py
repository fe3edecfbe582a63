from __future__ import annotations

import pytest

from configurator.src.config import ConfigError, ConfiguratorSettings, env_int, load_settings


def test_defaults() -> None:
    assert load_settings({}) == ConfiguratorSettings()
    settings = load_settings({})
    assert settings.osm_namespace == "osm-system"
    assert settings.config_map_name == "osm-config"
    assert settings.payload_key is None


def test_overrides() -> None:
    settings = load_settings(
        {
            "OSM_NAMESPACE": "mesh",
            "OSM_CONFIG_MAP_NAME": "mesh-config",
            "CONFIG_PAYLOAD_KEY": " osm-config.yaml ",
            "ANNOUNCEMENT_BUFFER_SIZE": "4",
            "WATCH_TIMEOUT_SECONDS": "60",
            "RESYNC_SECONDS": "0",
            "HEALTH_PORT": "9090",
            "LOG_LEVEL": "debug",
        }
    )

    assert settings == ConfiguratorSettings(
        osm_namespace="mesh",
        config_map_name="mesh-config",
        payload_key="osm-config.yaml",
        announcement_buffer_size=4,
        watch_timeout_seconds=60,
        resync_seconds=0,
        health_port=9090,
        log_level="DEBUG",
    )


def test_blank_payload_key_means_unset() -> None:
    assert load_settings({"CONFIG_PAYLOAD_KEY": "   "}).payload_key is None


@pytest.mark.parametrize("name", ["OSM_NAMESPACE", "OSM_CONFIG_MAP_NAME"])
def test_empty_names_are_rejected(name: str) -> None:
    with pytest.raises(ConfigError, match=name):
        load_settings({name: "  "})


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("ANNOUNCEMENT_BUFFER_SIZE", "0"),
        ("ANNOUNCEMENT_BUFFER_SIZE", "lots"),
        ("WATCH_TIMEOUT_SECONDS", "0"),
        ("WATCH_TIMEOUT_SECONDS", "7200"),
        ("RESYNC_SECONDS", "-1"),
        ("HEALTH_PORT", "70000"),
    ],
)
def test_invalid_integers_are_rejected(name: str, value: str) -> None:
    with pytest.raises(ConfigError, match=name):
        load_settings({name: value})


def test_env_int_bounds() -> None:
    assert env_int({}, "X", 5, minimum=1) == 5
    assert env_int({"X": "10"}, "X", 5, maximum=10) == 10
    with pytest.raises(ConfigError, match="X must be >= 1, got: 0"):
        env_int({"X": "0"}, "X", 5, minimum=1)
