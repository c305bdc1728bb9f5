"""Node selection for HTTP clients: strategies and selectors."""

from __future__ import annotations

import itertools
import logging
import random
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable

from stark.cache import Cache
from stark.filters import Filter
from stark.registry import Node, NotFoundError, Registry, Service

log = logging.getLogger(__name__)

Strategy = Callable[[list[Service]], Node]


class SelectorError(Exception):
    """Base class for selector errors."""


class SelectorNotFoundError(SelectorError):
    """Raised when the requested service is unknown."""

    def __init__(self, message: str = "not found") -> None:
        super().__init__(message)


class NoneAvailableError(SelectorError):
    """Raised when no node is left to choose from."""

    def __init__(self, message: str = "none available") -> None:
        super().__init__(message)


def _all_nodes(services: list[Service]) -> list[Node]:
    nodes = [node for service in services for node in service.nodes]
    if not nodes:
        raise NoneAvailableError()
    return nodes


def random_strategy() -> Strategy:
    """Pick a node uniformly at random."""

    def pick(services: list[Service]) -> Node:
        return random.choice(_all_nodes(services))

    return pick


def round_robin() -> Strategy:
    """Pick nodes in turn, starting with the first."""
    counter = itertools.count()
    lock = threading.Lock()

    def pick(services: list[Service]) -> Node:
        nodes = _all_nodes(services)
        with lock:
            i = next(counter)
        return nodes[i % len(nodes)]

    return pick


class Selector(ABC):
    """Chooses a node of a service for the next request."""

    @abstractmethod
    def next(self, service: str) -> Node:
        """Return the node to use for the named service."""

    @abstractmethod
    def close(self) -> None:
        """Release the selector's resources."""


class StaticSelector(Selector):
    """Selects among a fixed list of services; filters apply once, up front."""

    def __init__(
        self,
        services: list[Service],
        strategy: Strategy | None = None,
        filters: Iterable[Filter] = (),
    ) -> None:
        self.strategy = strategy or round_robin()
        self.filters = list(filters)
        for apply in self.filters:
            services = apply(services)
        self.services = services

    def next(self, service: str) -> Node:
        if not self.services:
            raise NoneAvailableError()
        return self.strategy(self.services)

    def close(self) -> None:
        pass

    def __str__(self) -> str:
        return "static"


class RegistrySelector(Selector):
    """Selects nodes from a registry through a cache."""

    def __init__(
        self,
        registry: Registry,
        strategy: Strategy | None = None,
        filters: Iterable[Filter] = (),
        ttl: float | None = None,
    ) -> None:
        self.strategy = strategy or round_robin()
        self.filters = list(filters)
        self._cache = Cache(registry) if ttl is None else Cache(registry, ttl)

    def next(self, service: str) -> Node:
        try:
            services = self._cache.get_service(service)
        except NotFoundError as err:
            raise SelectorNotFoundError() from err

        for s in services:
            for node in s.nodes:
                log.debug("registry selector candidate %s", node.address)

        for apply in self.filters:
            services = apply(services)
        if not services:
            raise NoneAvailableError()
        return self.strategy(services)

    def close(self) -> None:
        self._cache.stop()

    def __str__(self) -> str:
        return "registry"