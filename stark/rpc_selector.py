"""Service selection for gRPC clients: registry-backed and static selectors."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable

from stark.cache import Cache
from stark.filters import Filter
from stark.registry import NotFoundError, Registry, Service, Watcher
from stark.rest_selector import NoneAvailableError, SelectorNotFoundError

REGISTRY_SCHEME = "stark-registry"
STATIC_SCHEME = "stark-static"


class RpcSelector(ABC):
    """Resolves a service name to the services a gRPC channel may use."""

    balancer: str
    filters: list[Filter]

    @abstractmethod
    def get_service(self, service: str) -> list[Service]:
        """Return the usable versions of the named service."""

    @abstractmethod
    def watch(self, service: str) -> Watcher | None:
        """Return a watcher for changes, or None when nothing can change."""

    @abstractmethod
    def address(self, service: str) -> str:
        """Return the dial target for the named service."""

    @abstractmethod
    def close(self) -> None:
        """Release the selector's resources."""


class RegistryRpcSelector(RpcSelector):
    """Looks services up in a registry through a cache."""

    def __init__(
        self,
        registry: Registry,
        balancer: str = "",
        filters: Iterable[Filter] = (),
        ttl: float | None = None,
    ) -> None:
        self.balancer = balancer
        self.filters = list(filters)
        self._cache = Cache(registry) if ttl is None else Cache(registry, ttl)

    def get_service(self, service: str) -> list[Service]:
        try:
            services = self._cache.get_service(service)
        except NotFoundError as err:
            raise SelectorNotFoundError() from err

        for apply in self.filters:
            services = apply(services)
        if not services:
            raise NoneAvailableError()
        return services

    def watch(self, service: str) -> Watcher:
        return self._cache.watch(service)

    def address(self, service: str) -> str:
        return f"{REGISTRY_SCHEME}:///{service}"

    def close(self) -> None:
        """Stop the cache's watcher."""
        self._cache.stop()

    def __str__(self) -> str:
        return "registry"


class StaticRpcSelector(RpcSelector):
    """Serves a fixed list of services; filters narrow it on every lookup."""

    def __init__(
        self,
        services: list[Service],
        balancer: str = "",
        filters: Iterable[Filter] = (),
    ) -> None:
        self.balancer = balancer
        self.filters = list(filters)
        self.services = list(services)

    def get_service(self, service: str) -> list[Service]:
        for apply in self.filters:
            self.services = apply(self.services)
        if not self.services:
            raise NoneAvailableError()
        return list(self.services)

    def watch(self, service: str) -> None:
        return None

    def address(self, service: str) -> str:
        return f"{STATIC_SCHEME}:///{service}"

    def close(self) -> None:
        pass

    def __str__(self) -> str:
        return "static"