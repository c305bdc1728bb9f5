"""An HTTP server for a WSGI application that registers itself with a registry."""

from __future__ import annotations

import dataclasses
import logging
import signal
import socket
import ssl
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from socketserver import ThreadingMixIn
from typing import Any
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from stark.registry import Node, Registry, Service
from stark.util import host_port

log = logging.getLogger(__name__)

DEFAULT_NAME = "stark.http.server"
DEFAULT_VERSION = time.strftime("%Y.%m.%d.%H.%M")
DEFAULT_ID = str(uuid.uuid4())
DEFAULT_ADDRESS = ":0"
DEFAULT_REGISTER_INTERVAL = 30.0
DEFAULT_REGISTER_TTL = 60.0


@dataclass
class ServerOptions:
    """Server settings; durations are in seconds."""

    name: str = DEFAULT_NAME
    version: str = DEFAULT_VERSION
    id: str = DEFAULT_ID
    metadata: dict[str, str] = field(default_factory=dict)
    address: str = DEFAULT_ADDRESS
    cert_file: str = ""
    key_file: str = ""
    register_ttl: float = DEFAULT_REGISTER_TTL
    register_interval: float = DEFAULT_REGISTER_INTERVAL


class _Server(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _Server6(_Server):
    address_family = socket.AF_INET6


class _Handler(WSGIRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:
        log.debug("%s - %s", self.address_string(), format % args)


def _split_address(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address {address!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, int(port) if port else 0


class RestServer:
    """Serves a WSGI app and keeps it registered while it runs."""

    def __init__(
        self,
        registry: Registry,
        app: Callable[..., Any],
        options: ServerOptions | None = None,
    ) -> None:
        opts = options or ServerOptions()
        self.options = dataclasses.replace(opts, metadata=dict(opts.metadata))
        self.registry = registry
        self.app = app
        self.service = Service(
            name=self.options.name,
            version=self.options.version,
            nodes=[
                Node(
                    id=self.options.id,
                    address=self.options.address,
                    metadata=self.options.metadata,
                )
            ],
        )
        self._lock = threading.Lock()
        self._exit = threading.Event()
        self._server: _Server | None = None

    def start(self) -> None:
        """Bind, register and serve until stopped; deregister on the way out."""
        host, port = _split_address(self.options.address)
        server_class = _Server6 if ":" in host else _Server
        server = make_server(host, port, self.app, server_class=server_class, handler_class=_Handler)
        if self.options.cert_file and self.options.key_file:
            context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
            context.load_cert_chain(self.options.cert_file, self.options.key_file)
            server.socket = context.wrap_socket(server.socket, server_side=True)

        with self._lock:
            if self._exit.is_set():
                server.server_close()
                return
            self._server = server

        bound = host_port(*server.server_address[:2])
        self.options.address = bound
        self.service.nodes[0].address = bound

        try:
            self._register()
        except Exception:
            with self._lock:
                self._server = None
            server.server_close()
            raise

        restore = self._install_signal_handlers()
        log.info("Http server listen on %s", bound)
        try:
            server.serve_forever()
        finally:
            restore()
            self._exit.set()
            server.server_close()
            try:
                self._deregister()
            except Exception as err:
                log.error("deregister error %s", err)

    def stop(self) -> None:
        """Stop serving; safe to call more than once."""
        with self._lock:
            if self._exit.is_set():
                return
            self._exit.set()
            server = self._server
        if server is not None:
            server.shutdown()

    def __str__(self) -> str:
        return "http"

    def _register(self) -> None:
        self.registry.register(self.service, self.options.register_ttl)
        log.info("Registry [%s] register node: %s", self.registry, self.service.nodes[0].id)
        if self.options.register_interval <= 0:
            return
        threading.Thread(target=self._keep_registered, daemon=True).start()

    def _keep_registered(self) -> None:
        while not self._exit.wait(self.options.register_interval):
            try:
                self.registry.register(self.service, self.options.register_ttl)
            except Exception as err:
                log.error("Server register error: %s", err)

    def _deregister(self) -> None:
        log.info("Registry [%s] deregister node: %s", self.registry, self.service.nodes[0].id)
        self.registry.deregister(self.service)

    def _stop_logged(self) -> None:
        try:
            self.stop()
        except Exception as err:
            log.error("Server stop error: %s", err)

    def _install_signal_handlers(self) -> Callable[[], None]:
        if threading.current_thread() is not threading.main_thread():
            return lambda: None

        def handle(signum: int, frame: object) -> None:
            log.info("Received signal %s", signal.Signals(signum).name)
            threading.Thread(target=self._stop_logged, daemon=True).start()

        previous = {sig: signal.signal(sig, handle) for sig in (signal.SIGTERM, signal.SIGINT)}

        def restore() -> None:
            for sig, handler in previous.items():
                signal.signal(sig, handler if handler is not None else signal.SIG_DFL)

        return restore