"""An in-memory service registry with TTL pruning and watchers."""

from __future__ import annotations

import dataclasses
import logging
import queue
import threading
import time
import uuid
from dataclasses import dataclass, field

from stark.registry import (
    Endpoint,
    Node,
    NotFoundError,
    Options,
    Registry,
    Result,
    Service,
    Value,
    Watcher,
    WatcherStoppedError,
)

log = logging.getLogger(__name__)

DEFAULT_PRUNE_INTERVAL = 1.0

_STOP = object()


@dataclass
class _NodeEntry:
    node: Node
    ttl: float
    last_seen: float


@dataclass
class _Record:
    name: str
    version: str
    nodes: dict[str, _NodeEntry] = field(default_factory=dict)
    endpoints: list[Endpoint] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)


def _service_to_record(service: Service, ttl: float) -> _Record:
    now = time.monotonic()
    return _Record(
        name=service.name,
        version=service.version,
        nodes={n.id: _NodeEntry(node=n, ttl=ttl, last_seen=now) for n in service.nodes},
        endpoints=list(service.endpoints),
    )


def _copy_value(value: Value | None) -> Value:
    return dataclasses.replace(value) if value is not None else Value()


def _record_to_service(record: _Record) -> Service:
    endpoints = [
        Endpoint(
            name=e.name,
            request=_copy_value(e.request),
            response=_copy_value(e.response),
            metadata=dict(e.metadata or {}),
        )
        for e in record.endpoints
    ]
    nodes = [
        Node(id=entry.node.id, address=entry.node.address, metadata=dict(entry.node.metadata or {}))
        for entry in record.nodes.values()
    ]
    return Service(name=record.name, version=record.version, endpoints=endpoints, nodes=nodes)


class MemoryWatcher(Watcher):
    """Receives registry results, optionally limited to one service name."""

    def __init__(self, service: str = "") -> None:
        self.id = str(uuid.uuid4())
        self.service = service
        self._results: queue.Queue[object] = queue.Queue()
        self._stopped = threading.Event()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def _deliver(self, result: Result) -> None:
        if not self._stopped.is_set():
            self._results.put(result)

    def next(self) -> Result:
        while True:
            if self._stopped.is_set():
                raise WatcherStoppedError()
            item = self._results.get()
            if item is _STOP:
                raise WatcherStoppedError()
            assert isinstance(item, Result)
            if self.service and (item.service is None or item.service.name != self.service):
                continue
            return item

    def stop(self) -> None:
        if self._stopped.is_set():
            return
        self._stopped.set()
        self._results.put(_STOP)


class MemoryRegistry(Registry):
    """Keeps services in memory; nodes registered with a TTL expire when not refreshed."""

    def __init__(
        self,
        services: dict[str, list[Service]] | None = None,
        prune_interval: float = DEFAULT_PRUNE_INTERVAL,
    ) -> None:
        self._options = Options()
        self._lock = threading.RLock()
        self._records: dict[str, dict[str, _Record]] = {}
        self._watchers: dict[str, MemoryWatcher] = {}
        for name, versions in (services or {}).items():
            self._records.setdefault(name, {})
            for s in versions:
                self._records.setdefault(s.name, {})[s.version] = _service_to_record(s, 0.0)

        self._prune_interval = prune_interval
        self._closed = threading.Event()
        self._pruner = threading.Thread(target=self._prune_loop, daemon=True)
        self._pruner.start()

    def __enter__(self) -> MemoryRegistry:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def options(self) -> Options:
        return self._options

    def register(self, service: Service, ttl: float = 0.0) -> None:
        with self._lock:
            versions = self._records.setdefault(service.name, {})
            record = versions.get(service.version)
            if record is None:
                versions[service.version] = _service_to_record(service, ttl)
                log.debug(
                    "Registry added new service: %s, version: %s", service.name, service.version
                )
                self._send(Result(action="update", service=service))
                return

            now = time.monotonic()
            added = False
            for n in service.nodes:
                if n.id not in record.nodes:
                    added = True
                    record.nodes[n.id] = _NodeEntry(
                        node=Node(id=n.id, address=n.address, metadata=dict(n.metadata or {})),
                        ttl=ttl,
                        last_seen=now,
                    )
            if added:
                log.debug(
                    "Registry added new node to service: %s, version: %s",
                    service.name,
                    service.version,
                )
                self._send(Result(action="update", service=service))
                return

            for n in service.nodes:
                entry = record.nodes[n.id]
                entry.ttl = ttl
                entry.last_seen = now
            log.debug(
                "Updated registration for service: %s, version: %s", service.name, service.version
            )

    def deregister(self, service: Service) -> None:
        with self._lock:
            versions = self._records.get(service.name)
            if versions is None:
                return
            record = versions.get(service.version)
            if record is not None:
                for n in service.nodes:
                    if record.nodes.pop(n.id, None) is not None:
                        log.debug(
                            "Registry removed node from service: %s, version: %s",
                            service.name,
                            service.version,
                        )
                if not record.nodes:
                    del versions[service.version]
                    log.debug(
                        "Registry removed service: %s, version: %s", service.name, service.version
                    )
            if not versions:
                del self._records[service.name]
                log.debug("Registry removed service: %s", service.name)
            self._send(Result(action="delete", service=service))

    def get_service(self, name: str) -> list[Service]:
        with self._lock:
            versions = self._records.get(name)
            if versions is None:
                raise NotFoundError()
            return [_record_to_service(r) for r in versions.values()]

    def list_services(self) -> list[Service]:
        with self._lock:
            return [
                _record_to_service(r)
                for versions in self._records.values()
                for r in versions.values()
            ]

    def watch(self, service: str = "") -> MemoryWatcher:
        watcher = MemoryWatcher(service)
        with self._lock:
            self._watchers[watcher.id] = watcher
        return watcher

    def close(self) -> None:
        """Stop pruning expired nodes."""
        self._closed.set()

    def __str__(self) -> str:
        return "memory"

    def _send(self, result: Result) -> None:
        with self._lock:
            for wid, watcher in list(self._watchers.items()):
                if watcher.stopped:
                    del self._watchers[wid]
                else:
                    watcher._deliver(result)

    def _prune(self) -> None:
        now = time.monotonic()
        with self._lock:
            for name, versions in self._records.items():
                for record in versions.values():
                    for nid, entry in list(record.nodes.items()):
                        if entry.ttl != 0 and now - entry.last_seen > entry.ttl:
                            log.debug(
                                "Registry TTL expired for node %s of service %s", nid, name
                            )
                            del record.nodes[nid]

    def _prune_loop(self) -> None:
        while not self._closed.wait(self._prune_interval):
            self._prune()