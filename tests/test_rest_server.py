import http.client
import threading
import time

import pytest

from stark.memory import MemoryRegistry
from stark.registry import NotFoundError, Options, Registry
from stark.rest_server import RestServer, ServerOptions


def _app(environ, start_response):
    start_response("200 OK", [("Content-Type", "text/plain")])
    return [b"ok"]


class _RecordingRegistry(Registry):
    def __init__(self, fail=False):
        self.fail = fail
        self.registered = []
        self.deregistered = []

    def options(self):
        return Options()

    def register(self, service, ttl=0.0):
        if self.fail:
            raise RuntimeError("register failed")
        self.registered.append((service.name, ttl))

    def deregister(self, service):
        self.deregistered.append(service.name)

    def get_service(self, name):
        raise NotFoundError()

    def list_services(self):
        return []

    def watch(self, service=""):
        raise RuntimeError("watch unsupported")

    def __str__(self):
        return "recording"


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def _registered(registry, name):
    try:
        return bool(registry.get_service(name))
    except NotFoundError:
        return False


def test_default_options():
    opts = ServerOptions()
    assert opts.name == "stark.http.server"
    assert opts.address == ":0"
    assert opts.register_ttl == 60.0
    assert opts.register_interval == 30.0


def test_service_built_from_options():
    opts = ServerOptions(name="web", version="v1", id="web-1", metadata={"zone": "a"})
    server = RestServer(_RecordingRegistry(), _app, opts)
    assert server.service.name == "web"
    assert server.service.version == "v1"
    assert server.service.nodes[0].id == "web-1"
    assert server.service.nodes[0].metadata == {"zone": "a"}
    assert str(server) == "http"


def test_start_serves_registers_and_deregisters():
    with MemoryRegistry() as registry:
        opts = ServerOptions(name="web", address="127.0.0.1:0", register_interval=0)
        server = RestServer(registry, _app, opts)
        thread = threading.Thread(target=server.start, daemon=True)
        thread.start()
        try:
            assert _wait_for(lambda: _registered(registry, "web"))
            services = registry.get_service("web")
            assert services[0].nodes[0].address == server.options.address
            host, port = server.options.address.rsplit(":", 1)
            assert host == "127.0.0.1"
            assert int(port) > 0

            conn = http.client.HTTPConnection(host, int(port), timeout=5)
            conn.request("GET", "/")
            response = conn.getresponse()
            assert response.status == 200
            assert response.read() == b"ok"
            conn.close()
        finally:
            server.stop()
            thread.join(5)
        assert not thread.is_alive()
        with pytest.raises(NotFoundError):
            registry.get_service("web")


def test_stop_before_start_skips_serving():
    registry = _RecordingRegistry()
    server = RestServer(registry, _app, ServerOptions(address="127.0.0.1:0"))
    server.stop()
    server.stop()
    server.start()
    assert registry.registered == []
    assert registry.deregistered == []


def test_register_failure_is_raised():
    registry = _RecordingRegistry(fail=True)
    server = RestServer(registry, _app, ServerOptions(address="127.0.0.1:0"))
    with pytest.raises(RuntimeError):
        server.start()
    assert registry.deregistered == []


def test_periodic_reregistration():
    registry = _RecordingRegistry()
    opts = ServerOptions(
        name="web", address="127.0.0.1:0", register_ttl=7.0, register_interval=0.02
    )
    server = RestServer(registry, _app, opts)
    thread = threading.Thread(target=server.start, daemon=True)
    thread.start()
    try:
        assert _wait_for(lambda: len(registry.registered) >= 3)
        assert all(entry == ("web", 7.0) for entry in registry.registered)
    finally:
        server.stop()
        thread.join(5)
    assert registry.deregistered == ["web"]


def test_options_are_copied():
    opts = ServerOptions(address="127.0.0.1:0", metadata={"k": "v"})
    server = RestServer(_RecordingRegistry(), _app, opts)
    server.options.metadata["k"] = "changed"
    assert opts.metadata == {"k": "v"}