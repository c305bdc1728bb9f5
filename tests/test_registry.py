import json

import pytest

from stark.registry import (
    Endpoint,
    EventType,
    NoNodeError,
    Node,
    NotFoundError,
    Registry,
    RegistryError,
    Result,
    Service,
    Value,
    Watcher,
    WatcherStoppedError,
)


def _sample_service():
    return Service(
        name="test",
        version="1.0.0",
        endpoints=[
            Endpoint(
                name="Foo.Bar",
                request=Value(name="request", type="request", values=[Value(name="inner", type="int")]),
                response=Value(name="response", type="response"),
                metadata={"foo1": "bar1"},
            )
        ],
        nodes=[Node(id="test-1", address="localhost:9999", metadata={"foo": "bar"})],
    )


def test_service_round_trip():
    service = _sample_service()
    assert Service.from_dict(service.to_dict()) == service


def test_service_round_trip_through_json():
    service = _sample_service()
    text = json.dumps(service.to_dict())
    assert Service.from_dict(json.loads(text)) == service


def test_service_dict_keys_follow_wire_names():
    data = _sample_service().to_dict()
    assert set(data) == {"name", "version", "endpoints", "nodes"}
    assert set(data["nodes"][0]) == {"id", "address", "metadata"}
    assert set(data["endpoints"][0]) == {"name", "request", "response", "metadata"}


def test_from_dict_accepts_nulls():
    service = Service.from_dict({"name": "x", "version": "1", "endpoints": None, "nodes": None})
    assert service.endpoints == []
    assert service.nodes == []
    node = Node.from_dict({"id": "n", "address": "a", "metadata": None})
    assert node.metadata == {}
    endpoint = Endpoint.from_dict({"name": "e", "request": None, "response": None})
    assert endpoint.request is None
    assert endpoint.response is None


@pytest.mark.parametrize(
    "member, text",
    [("CREATE", "create"), ("DELETE", "delete"), ("UPDATE", "update")],
)
def test_event_type_strings(member, text):
    event_type = EventType[member]
    assert EventType.__str__(event_type) == text
    assert str(event_type) == text


def test_error_messages_and_hierarchy():
    assert str(NotFoundError()) == "service not found"
    assert str(WatcherStoppedError()) == "watcher stopped"
    assert str(NoNodeError()) == "require at least one node"
    for cls in (NotFoundError, WatcherStoppedError, NoNodeError):
        assert issubclass(cls, RegistryError)


def test_registry_is_abstract():
    with pytest.raises(TypeError):
        Registry()


class _ListWatcher(Watcher):
    def __init__(self, results):
        self._results = list(results)
        self.stopped = False

    def next(self):
        if self.stopped or not self._results:
            raise WatcherStoppedError()
        return self._results.pop(0)

    def stop(self):
        self.stopped = True


def test_watcher_iteration_ends_when_stopped():
    results = [Result(action="create", service=Service(name="a")), Result(action="delete")]
    watcher = _ListWatcher(results)
    assert list(watcher) == results


def test_watcher_next_after_stop_raises():
    watcher = _ListWatcher([Result(action="create")])
    watcher.stop()
    with pytest.raises(WatcherStoppedError):
        watcher.next()