from __future__ import annotations

from types import SimpleNamespace

import pytest
from kubernetes.client import V1ConfigMap, V1ObjectMeta

from configurator.src.filters import (
    HasNamespace,
    HasObjectMeta,
    make_namespace_filter,
    namespace_of,
)


def test_kubernetes_objects_have_namespace_capability() -> None:
    cm = V1ConfigMap(metadata=V1ObjectMeta(name="osm-config", namespace="osm-system"))
    assert isinstance(cm, HasObjectMeta)
    assert isinstance(cm.metadata, HasNamespace)
    assert namespace_of(cm) == "osm-system"


def test_objects_with_namespace_accessor_are_filtered_directly() -> None:
    class MeshResource:
        @property
        def namespace(self) -> str:
            return "osm-system"

    resource = MeshResource()

    assert isinstance(resource, HasNamespace)
    assert make_namespace_filter("osm-system")(resource)
    assert not make_namespace_filter("default")(resource)


def test_filter_matches_only_watched_namespace() -> None:
    should_observe = make_namespace_filter("osm-system")

    assert should_observe(
        V1ConfigMap(metadata=V1ObjectMeta(name="osm-config", namespace="osm-system"))
    )
    assert not should_observe(
        V1ConfigMap(metadata=V1ObjectMeta(name="osm-config", namespace="default"))
    )


@pytest.mark.parametrize(
    "obj",
    [
        object(),
        None,
        "osm-system",
        SimpleNamespace(metadata=None),
        SimpleNamespace(metadata=SimpleNamespace()),
        SimpleNamespace(metadata=SimpleNamespace(namespace=None)),
        SimpleNamespace(metadata=SimpleNamespace(namespace=42)),
        V1ConfigMap(metadata=None),
    ],
)
def test_filter_rejects_objects_without_namespace(obj: object) -> None:
    should_observe = make_namespace_filter("osm-system")

    assert should_observe(obj) is False
    assert namespace_of(obj) is None
