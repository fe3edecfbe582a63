from __future__ import annotations

import logging

import pytest
from kubernetes.client import V1ConfigMap, V1ObjectMeta
from prometheus_client import REGISTRY

from configurator.src.announcements import (
    Announcement,
    AnnouncementKind,
    AnnouncementRelay,
    get_kubernetes_event_handlers,
)
from configurator.src.filters import make_namespace_filter


def make_config_map(name: str, namespace: str) -> V1ConfigMap:
    return V1ConfigMap(metadata=V1ObjectMeta(name=name, namespace=namespace))


def _sample(name: str) -> float:
    return REGISTRY.get_sample_value(name) or 0.0


def _handlers(relay: AnnouncementRelay):
    return get_kubernetes_event_handlers(
        "ConfigMap", "OSMConfigMap", relay, make_namespace_filter("osm-system")
    )


def test_relay_rejects_non_positive_size() -> None:
    with pytest.raises(ValueError):
        AnnouncementRelay(maxsize=0)


def test_relay_preserves_publish_order() -> None:
    relay = AnnouncementRelay(maxsize=8)
    objs = [make_config_map(f"cm-{i}", "osm-system") for i in range(5)]
    for obj in objs:
        assert relay.publish(Announcement(kind=AnnouncementKind.UPDATED, obj=obj))

    assert [a.obj for a in relay.drain()] == objs
    assert relay.get_nowait() is None


def test_relay_drops_newest_when_full(caplog: pytest.LogCaptureFixture) -> None:
    relay = AnnouncementRelay(maxsize=2)
    first = Announcement(kind=AnnouncementKind.ADDED, obj="first")
    second = Announcement(kind=AnnouncementKind.UPDATED, obj="second")
    third = Announcement(kind=AnnouncementKind.DELETED, obj="third")
    dropped_before = _sample("configurator_announcements_dropped_total")

    with caplog.at_level(logging.WARNING):
        assert relay.publish(first) is True
        assert relay.publish(second) is True
        assert relay.publish(third) is False

    assert relay.drain() == [first, second]
    assert _sample("configurator_announcements_dropped_total") == dropped_before + 1
    assert "dropping deleted announcement" in caplog.text


def test_relay_get_times_out_when_empty() -> None:
    relay = AnnouncementRelay(maxsize=1)
    assert relay.get(timeout=0.01) is None
    assert relay.qsize() == 0


def test_handlers_skip_other_namespaces() -> None:
    relay = AnnouncementRelay(maxsize=8)
    handlers = _handlers(relay)
    other = make_config_map("osm-config", "default")

    handlers.on_add(other)
    handlers.on_update(other, other)
    handlers.on_delete(other)

    assert relay.qsize() == 0


def test_handlers_relay_watched_namespace_in_order() -> None:
    relay = AnnouncementRelay(maxsize=8)
    handlers = _handlers(relay)
    old = make_config_map("osm-config", "osm-system")
    new = make_config_map("osm-config", "osm-system")

    handlers.on_add(old)
    handlers.on_update(old, new)
    handlers.on_delete(new)

    announcements = relay.drain()
    assert [a.kind for a in announcements] == [
        AnnouncementKind.ADDED,
        AnnouncementKind.UPDATED,
        AnnouncementKind.DELETED,
    ]
    assert announcements[1].obj is new
    assert all(a.provider == "OSMConfigMap" for a in announcements)


def test_update_is_filtered_on_new_object() -> None:
    relay = AnnouncementRelay(maxsize=8)
    handlers = _handlers(relay)

    handlers.on_update(
        make_config_map("osm-config", "osm-system"),
        make_config_map("osm-config", "default"),
    )

    assert relay.qsize() == 0


def test_full_relay_never_blocks_handlers() -> None:
    relay = AnnouncementRelay(maxsize=1)
    handlers = _handlers(relay)

    for _ in range(10):
        handlers.on_add(make_config_map("osm-config", "osm-system"))

    assert relay.qsize() == 1


def test_handlers_log_through_injected_logger(caplog: pytest.LogCaptureFixture) -> None:
    relay = AnnouncementRelay(maxsize=8)
    handlers = get_kubernetes_event_handlers(
        "ConfigMap",
        "OSMConfigMap",
        relay,
        make_namespace_filter("osm-system"),
        logger=logging.getLogger("mesh.diagnostics"),
    )

    with caplog.at_level(logging.DEBUG, logger="mesh.diagnostics"):
        handlers.on_add(make_config_map("osm-config", "osm-system"))

    assert [r.name for r in caplog.records] == ["mesh.diagnostics"]
    assert "[OSMConfigMap] ConfigMap added event" in caplog.text
