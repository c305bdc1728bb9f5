"""A registry wrapper that caches lookups and keeps them fresh with a watcher."""

from __future__ import annotations

import logging
import random
import threading
import time

from stark.registry import (
    NotFoundError,
    Options,
    Registry,
    Result,
    Service,
    Watcher,
)
from stark.util import copy_services

log = logging.getLogger(__name__)

DEFAULT_TTL = 60.0


def backoff(attempts: int) -> float:
    """Return the delay in seconds before retry number ``attempts``."""
    if attempts == 0:
        return 0.0
    return 10**attempts / 1000.0


class Cache(Registry):
    """Caches service lookups of another registry for ``ttl`` seconds.

    Looked-up services are watched so that the cache follows changes; while
    the underlying registry fails, stale entries are served instead.
    """

    def __init__(self, registry: Registry, ttl: float = DEFAULT_TTL) -> None:
        self._registry = registry
        self.ttl = ttl
        self._lock = threading.RLock()
        self._cache: dict[str, list[Service]] = {}
        self._expiry: dict[str, float] = {}
        self._watched: set[str] = set()
        self._exit = threading.Event()
        self._running = False
        self._status: Exception | None = None
        self._watcher: Watcher | None = None

    # -- Registry interface -------------------------------------------------

    def options(self) -> Options:
        return self._registry.options()

    def register(self, service: Service, ttl: float = 0.0) -> None:
        self._registry.register(service, ttl)

    def deregister(self, service: Service) -> None:
        self._registry.deregister(service)

    def get_service(self, name: str) -> list[Service]:
        """Return the named service's versions, from the cache when fresh."""
        services = self._get(name)
        if not services:
            raise NotFoundError()
        return services

    def list_services(self) -> list[Service]:
        return self._registry.list_services()

    def watch(self, service: str = "") -> Watcher:
        return self._registry.watch(service)

    def stop(self) -> None:
        """Stop the background watcher; safe to call more than once."""
        with self._lock:
            if self._exit.is_set():
                return
            self._exit.set()
            watcher = self._watcher
        if watcher is not None:
            watcher.stop()

    def __str__(self) -> str:
        return "cache"

    # -- internals ----------------------------------------------------------

    @staticmethod
    def _is_valid(services: list[Service], expiry: float | None) -> bool:
        return bool(services) and expiry is not None and time.monotonic() <= expiry

    def _set(self, name: str, services: list[Service]) -> None:
        self._cache[name] = services
        self._expiry[name] = time.monotonic() + self.ttl

    def _del(self, name: str) -> None:
        # keep the cache while the registry is failing
        if self._status is not None:
            return
        self._cache.pop(name, None)
        self._expiry.pop(name, None)

    def _get(self, name: str) -> list[Service]:
        with self._lock:
            cached = copy_services(self._cache.get(name, []))
            if self._is_valid(cached, self._expiry.get(name)):
                return cached
            if name not in self._watched:
                self._watched.add(name)
                if not self._running and not self._exit.is_set():
                    self._running = True
                    threading.Thread(target=self._run, daemon=True).start()

        try:
            services = self._registry.get_service(name)
        except Exception as err:
            if cached:
                with self._lock:
                    self._status = err
                return cached
            raise

        with self._lock:
            self._status = None
            self._set(name, copy_services(services))
        return services

    def _retry(self, err: Exception, attempts: int) -> int:
        delay = backoff(attempts)
        with self._lock:
            self._status = err
        if attempts > 3:
            log.info("rcache: %s backing off %ss", err, delay)
            attempts = 0
        self._exit.wait(delay)
        return attempts + 1

    def _run(self) -> None:
        watch_attempts = 0
        next_attempts = 0
        try:
            while not self._exit.is_set():
                # jitter before starting
                if self._exit.wait(random.randrange(100) / 1000.0):
                    return
                try:
                    watcher = self._registry.watch()
                except Exception as err:
                    if self._exit.is_set():
                        return
                    watch_attempts = self._retry(err, watch_attempts)
                    continue
                watch_attempts = 0

                try:
                    self._watch(watcher)
                except Exception as err:
                    if self._exit.is_set():
                        return
                    next_attempts = self._retry(err, next_attempts)
                    continue
                next_attempts = 0
        finally:
            with self._lock:
                self._watched.clear()
                self._running = False

    def _watch(self, watcher: Watcher) -> None:
        with self._lock:
            if self._exit.is_set():
                watcher.stop()
                return
            self._watcher = watcher
        try:
            while True:
                result = watcher.next()
                with self._lock:
                    self._status = None
                self._update(result)
        finally:
            with self._lock:
                self._watcher = None
            watcher.stop()

    def _update(self, result: Result | None) -> None:
        if result is None or result.service is None:
            return
        incoming = result.service
        name = incoming.name

        with self._lock:
            if name not in self._watched:
                return
            services = self._cache.get(name)
            if services is None:
                # nothing is cached unless there was a lookup first
                return

            if not incoming.nodes:
                if result.action == "delete":
                    self._del(name)
                return

            index = None
            for i, candidate in enumerate(services):
                if candidate.version == incoming.version:
                    index = i

            if result.action in ("create", "update"):
                if index is None:
                    self._set(name, services + [incoming])
                    return
                known = {node.id for node in incoming.nodes}
                for node in services[index].nodes:
                    if node.id not in known:
                        incoming.nodes.append(node)
                        known.add(node.id)
                services[index] = incoming
                self._set(name, services)
            elif result.action == "delete":
                if index is None:
                    return
                current = services[index]
                dead = {node.id for node in incoming.nodes}
                nodes = [node for node in current.nodes if node.id not in dead]
                if nodes:
                    current.nodes = nodes
                    self._set(current.name, services)
                    return
                if len(services) == 1:
                    self._del(current.name)
                    return
                self._set(
                    current.name,
                    [s for s in services if s.version != current.version],
                )