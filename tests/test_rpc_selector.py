from urllib.parse import urlsplit

import pytest

from stark.filters import filter_version
from stark.memory import MemoryRegistry
from stark.registry import Node, Service
from stark.rest_selector import NoneAvailableError, SelectorNotFoundError
from stark.rpc_selector import RegistryRpcSelector, StaticRpcSelector


def _test_data():
    return {
        "foo": [
            Service(
                name="foo",
                version="1.0.0",
                nodes=[
                    Node(id="foo-1.0.0-123", address="localhost:9999"),
                    Node(id="foo-1.0.0-321", address="localhost:9999"),
                ],
            ),
            Service(
                name="foo",
                version="1.0.1",
                nodes=[Node(id="foo-1.0.1-321", address="localhost:6666")],
            ),
            Service(
                name="foo",
                version="1.0.3",
                nodes=[Node(id="foo-1.0.3-345", address="localhost:8888")],
            ),
        ]
    }


@pytest.fixture
def registry():
    reg = MemoryRegistry(services=_test_data())
    yield reg
    reg.close()


def test_registry_selector(registry):
    selector = RegistryRpcSelector(registry)
    try:
        services = selector.get_service("foo")
        assert len(services) == 3
        for s in services:
            assert s.name == "foo"
            assert s.version in ["1.0.3", "1.0.0", "1.0.1"]
    finally:
        selector.close()


def test_registry_selector_filter(registry):
    version = "1.0.0"
    selector = RegistryRpcSelector(registry, filters=[filter_version(version)])
    try:
        services = selector.get_service("foo")
        assert len(services) == 1
        assert services[0].name == "foo"
        assert services[0].version == version
    finally:
        selector.close()


def test_registry_selector_unknown_service(registry):
    selector = RegistryRpcSelector(registry)
    try:
        with pytest.raises(SelectorNotFoundError):
            selector.get_service("missing")
    finally:
        selector.close()


def test_registry_selector_filter_leaves_nothing(registry):
    selector = RegistryRpcSelector(registry, filters=[filter_version("9.9.9")])
    try:
        with pytest.raises(NoneAvailableError):
            selector.get_service("foo")
    finally:
        selector.close()


def test_registry_selector_address_scheme(registry):
    selector = RegistryRpcSelector(registry)
    try:
        address = selector.address("test")
        assert address == "stark-registry:///test"
        assert urlsplit(address).scheme == "stark-registry"
        assert urlsplit(address).path == "/test"
    finally:
        selector.close()


def test_registry_selector_watch_sees_registration(registry):
    selector = RegistryRpcSelector(registry, balancer="round_robin")
    try:
        assert selector.balancer == "round_robin"
        watcher = selector.watch("bar")
        service = Service(name="bar", version="1", nodes=[Node(id="bar-1", address="h:1")])
        registry.register(service)
        result = watcher.next()
        assert result.service.name == "bar"
        assert result.action == "update"
        watcher.stop()
    finally:
        selector.close()


def test_registry_selector_str(registry):
    selector = RegistryRpcSelector(registry)
    try:
        assert str(selector) == "registry"
    finally:
        selector.close()


def test_static_selector_returns_services():
    services = _test_data()["foo"]
    selector = StaticRpcSelector(services)
    assert [s.version for s in selector.get_service("foo")] == ["1.0.0", "1.0.1", "1.0.3"]
    assert selector.watch("foo") is None
    assert str(selector) == "static"


def test_static_selector_filters():
    selector = StaticRpcSelector(_test_data()["foo"], filters=[filter_version("1.0.1")])
    services = selector.get_service("foo")
    assert len(services) == 1
    assert services[0].version == "1.0.1"


def test_static_selector_empty_raises():
    with pytest.raises(NoneAvailableError):
        StaticRpcSelector([]).get_service("foo")


def test_static_selector_address():
    selector = StaticRpcSelector([])
    address = selector.address("test")
    assert address == "stark-static:///test"
    assert urlsplit(address).scheme == "stark-static"