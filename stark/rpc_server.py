"""A gRPC server that registers itself with a registry while it runs."""

from __future__ import annotations

import logging
import signal
import threading
import time
import uuid
from collections.abc import Callable
from concurrent import futures
from dataclasses import dataclass, field
from typing import Any

import grpc

from stark.extractor import extract_endpoints
from stark.registry import Endpoint, Node, Registry, Service

log = logging.getLogger(__name__)

DEFAULT_ADDRESS = ":0"
DEFAULT_NAME = "stark.rpc.server"
DEFAULT_VERSION = time.strftime("%Y.%m.%d.%H.%M")
DEFAULT_ID = str(uuid.uuid4())
DEFAULT_REGISTER_INTERVAL = 30.0
DEFAULT_REGISTER_TTL = 60.0
DEFAULT_STOP_GRACE = 30.0
DEFAULT_MAX_WORKERS = 10

# An interceptor function receives the request (or request iterator), the
# servicer context, the full method name and the next handler to call.
InterceptorFunc = Callable[[Any, grpc.ServicerContext, str, Callable[..., Any]], Any]

_FACTORIES = {
    (False, False): (grpc.unary_unary_rpc_method_handler, "unary_unary"),
    (False, True): (grpc.unary_stream_rpc_method_handler, "unary_stream"),
    (True, False): (grpc.stream_unary_rpc_method_handler, "stream_unary"),
    (True, True): (grpc.stream_stream_rpc_method_handler, "stream_stream"),
}


def _chain(
    functions: tuple[InterceptorFunc, ...], method: str, behavior: Callable[..., Any]
) -> Callable[..., Any]:
    call = behavior
    for fn in reversed(functions):

        def wrapped(request: Any, context: grpc.ServicerContext, fn=fn, inner=call) -> Any:
            return fn(request, context, method, inner)

        call = wrapped
    return call


class _ChainInterceptor(grpc.ServerInterceptor):
    """Runs interceptor functions, first outermost, around unary or streaming calls."""

    def __init__(self, functions: tuple[InterceptorFunc, ...], streaming: bool) -> None:
        self.functions = functions
        self.streaming = streaming

    def intercept_service(
        self,
        continuation: Callable[[grpc.HandlerCallDetails], grpc.RpcMethodHandler | None],
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler | None:
        handler = continuation(handler_call_details)
        if handler is None:
            return None
        kind = (bool(handler.request_streaming), bool(handler.response_streaming))
        if (kind != (False, False)) != self.streaming:
            return handler
        factory, attribute = _FACTORIES[kind]
        behavior = getattr(handler, attribute)
        return factory(
            _chain(self.functions, handler_call_details.method, behavior),
            request_deserializer=handler.request_deserializer,
            response_serializer=handler.response_serializer,
        )


@dataclass
class RpcServerOptions:
    """Server settings; durations are in seconds."""

    metadata: dict[str, str] = field(default_factory=dict)
    name: str = DEFAULT_NAME
    address: str = DEFAULT_ADDRESS
    id: str = DEFAULT_ID
    version: str = DEFAULT_VERSION
    register_ttl: float = DEFAULT_REGISTER_TTL
    register_interval: float = DEFAULT_REGISTER_INTERVAL
    stop_grace: float = DEFAULT_STOP_GRACE
    max_workers: int = DEFAULT_MAX_WORKERS
    interceptors: list[grpc.ServerInterceptor] = field(default_factory=list)

    def add_unary_interceptors(self, *args: InterceptorFunc) -> None:
        """Chain interceptor functions around unary calls, first outermost."""
        self.interceptors.append(_ChainInterceptor(tuple(args), streaming=False))

    def add_stream_interceptors(self, *args: InterceptorFunc) -> None:
        """Chain interceptor functions around streaming calls, first outermost."""
        self.interceptors.append(_ChainInterceptor(tuple(args), streaming=True))


def _split_address(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address {address!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, int(port) if port else 0


def _join(host: str, port: int) -> str:
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"


class RpcServer:
    """Serves gRPC services and keeps them registered while it runs."""

    def __init__(self, registry: Registry, options: RpcServerOptions | None = None) -> None:
        self.options = options or RpcServerOptions()
        self.registry = registry
        self.grpc_server = grpc.server(
            futures.ThreadPoolExecutor(max_workers=self.options.max_workers),
            interceptors=list(self.options.interceptors),
        )
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

    def register_endpoints(self, *args: object) -> None:
        """Describe the handlers' public methods as the service's endpoints."""
        endpoints: list[Endpoint] = []
        for handler in args:
            endpoints.extend(extract_endpoints(handler))
        self.service.endpoints = endpoints

    def start(self) -> None:
        """Bind, register and serve until stopped; deregister on the way out."""
        host, port = _split_address(self.options.address)
        host = host or "::"
        with self._lock:
            if self._exit.is_set():
                return
            try:
                bound_port = self.grpc_server.add_insecure_port(_join(host, port))
            except RuntimeError as err:
                raise OSError(f"cannot listen on {self.options.address}: {err}") from err
            if bound_port == 0:
                raise OSError(f"cannot listen on {self.options.address}")

        bound = _join(host, bound_port)
        self.options.address = bound
        self.service.nodes[0].address = bound

        self._register()

        restore = self._install_signal_handlers()
        log.info("RPC server listen on %s", bound)
        try:
            with self._lock:
                if self._exit.is_set():
                    return
                self.grpc_server.start()
            self.grpc_server.wait_for_termination()
        finally:
            restore()
            self._exit.set()
            try:
                self._deregister()
            except Exception as err:
                log.error("deregister error %s", err)

    def stop(self) -> None:
        """Stop serving, letting running calls finish; safe to call more than once."""
        with self._lock:
            if self._exit.is_set():
                return
            self._exit.set()
        self.grpc_server.stop(self.options.stop_grace)

    def __str__(self) -> str:
        return "grpc"

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