import pytest

from stark.filters import filter_endpoint, filter_label, filter_version
from stark.registry import Endpoint, Node, Service


@pytest.mark.parametrize(
    "services, endpoint, count",
    [
        (
            [
                Service(name="test", version="1.0.0", endpoints=[Endpoint(name="Foo.Bar")]),
                Service(name="test", version="1.1.0", endpoints=[Endpoint(name="Baz.Bar")]),
            ],
            "Foo.Bar",
            1,
        ),
        (
            [
                Service(name="test", version="1.0.0", endpoints=[Endpoint(name="Foo.Bar")]),
                Service(name="test", version="1.1.0", endpoints=[Endpoint(name="Foo.Bar")]),
            ],
            "Bar.Baz",
            0,
        ),
    ],
)
def test_filter_endpoint(services, endpoint, count):
    result = filter_endpoint(endpoint)(services)
    assert len(result) == count
    for service in result:
        assert any(ep.name == endpoint for ep in service.endpoints)


@pytest.mark.parametrize(
    "services, label, count",
    [
        (
            [
                Service(
                    name="test",
                    version="1.0.0",
                    nodes=[Node(id="test-1", address="localhost", metadata={"foo": "bar"})],
                ),
                Service(
                    name="test",
                    version="1.1.0",
                    nodes=[Node(id="test-2", address="localhost", metadata={"foo": "baz"})],
                ),
            ],
            ("foo", "bar"),
            1,
        ),
        (
            [
                Service(name="test", version="1.0.0", nodes=[Node(id="test-1", address="localhost")]),
                Service(name="test", version="1.1.0", nodes=[Node(id="test-2", address="localhost")]),
            ],
            ("foo", "bar"),
            0,
        ),
    ],
)
def test_filter_label(services, label, count):
    key, value = label
    result = filter_label(key, value)(services)
    assert len(result) == count
    for service in result:
        assert service.nodes
        for node in service.nodes:
            assert node.metadata[key] == value


def test_filter_label_does_not_mutate_input():
    original = Service(
        name="test",
        version="1.0.0",
        nodes=[
            Node(id="a", metadata={"foo": "bar"}),
            Node(id="b", metadata={"foo": "baz"}),
        ],
    )
    result = filter_label("foo", "bar")([original])
    assert [n.id for n in result[0].nodes] == ["a"]
    assert [n.id for n in original.nodes] == ["a", "b"]


@pytest.mark.parametrize(
    "version, count",
    [("1.0.0", 1), ("2.0.0", 0)],
)
def test_filter_version(version, count):
    services = [Service(name="test", version="1.0.0"), Service(name="test", version="1.1.0")]
    result = filter_version(version)(services)
    assert len(result) == count
    assert all(s.version == version for s in result)