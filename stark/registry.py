"""Service discovery model: services, nodes, endpoints, watchers and the registry interface."""

from __future__ import annotations

import ssl
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class RegistryError(Exception):
    """Base class for registry errors."""


class NotFoundError(RegistryError):
    """Raised when a service is not known to the registry."""

    def __init__(self, message: str = "service not found") -> None:
        super().__init__(message)


class WatcherStoppedError(RegistryError):
    """Raised by a watcher that has been stopped."""

    def __init__(self, message: str = "watcher stopped") -> None:
        super().__init__(message)


class NoNodeError(RegistryError):
    """Raised when a service carries no nodes."""

    def __init__(self, message: str = "require at least one node") -> None:
        super().__init__(message)


@dataclass
class Value:
    """A typed value in an endpoint's request or response."""

    name: str = ""
    type: str = ""
    values: list[Value] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "values": [v.to_dict() for v in self.values],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Value:
        return cls(
            name=data.get("name") or "",
            type=data.get("type") or "",
            values=[cls.from_dict(v) for v in data.get("values") or [] if v is not None],
        )


@dataclass
class Endpoint:
    """A callable endpoint exposed by a service."""

    name: str = ""
    request: Value | None = None
    response: Value | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "request": self.request.to_dict() if self.request is not None else None,
            "response": self.response.to_dict() if self.response is not None else None,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Endpoint:
        request = data.get("request")
        response = data.get("response")
        return cls(
            name=data.get("name") or "",
            request=Value.from_dict(request) if request is not None else None,
            response=Value.from_dict(response) if response is not None else None,
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class Node:
    """One running instance of a service."""

    id: str = ""
    address: str = ""
    metadata: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "address": self.address, "metadata": dict(self.metadata)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Node:
        return cls(
            id=data.get("id") or "",
            address=data.get("address") or "",
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class Service:
    """A named, versioned service with its endpoints and nodes."""

    name: str = ""
    version: str = ""
    endpoints: list[Endpoint] = field(default_factory=list)
    nodes: list[Node] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "endpoints": [e.to_dict() for e in self.endpoints],
            "nodes": [n.to_dict() for n in self.nodes],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Service:
        return cls(
            name=data.get("name") or "",
            version=data.get("version") or "",
            endpoints=[Endpoint.from_dict(e) for e in data.get("endpoints") or [] if e is not None],
            nodes=[Node.from_dict(n) for n in data.get("nodes") or [] if n is not None],
        )


class EventType(Enum):
    """Kind of registry event."""

    CREATE = 0
    DELETE = 1
    UPDATE = 2

    def __str__(self) -> str:
        return self.name.lower()


@dataclass
class Result:
    """An update returned by a watcher; action is create, update or delete."""

    action: str = ""
    service: Service | None = None


@dataclass
class Event:
    """A registry event."""

    id: str = ""
    type: EventType = EventType.CREATE
    timestamp: datetime = field(default_factory=datetime.now)
    service: Service | None = None


@dataclass
class Options:
    """Registry configuration; durations are in seconds."""

    addrs: list[str] = field(default_factory=list)
    timeout: float = 0.0
    secure: bool = False
    tls_config: ssl.SSLContext | None = None
    extras: dict[str, Any] = field(default_factory=dict)


@dataclass
class RegisterOptions:
    """Options for a single registration; ttl is in seconds."""

    ttl: float = 0.0
    domain: str = ""
    extras: dict[str, Any] = field(default_factory=dict)


@dataclass
class WatchOptions:
    """Options for a watch; an empty service watches all services."""

    service: str = ""
    extras: dict[str, Any] = field(default_factory=dict)


class Watcher(ABC):
    """Yields updates about services within a registry."""

    @abstractmethod
    def next(self) -> Result:
        """Block until the next result; raise WatcherStoppedError once stopped."""

    @abstractmethod
    def stop(self) -> None:
        """Stop the watcher."""

    def __iter__(self) -> Iterator[Result]:
        while True:
            try:
                yield self.next()
            except WatcherStoppedError:
                return


class Registry(ABC):
    """Interface for service discovery backends."""

    @abstractmethod
    def options(self) -> Options:
        """Return the registry options."""

    @abstractmethod
    def register(self, service: Service, ttl: float = 0.0) -> None:
        """Register a service, optionally with a TTL in seconds."""

    @abstractmethod
    def deregister(self, service: Service) -> None:
        """Remove a service's nodes from the registry."""

    @abstractmethod
    def get_service(self, name: str) -> list[Service]:
        """Return every version of the named service."""

    @abstractmethod
    def list_services(self) -> list[Service]:
        """Return all known services."""

    @abstractmethod
    def watch(self, service: str = "") -> Watcher:
        """Return a watcher for one service, or for all when service is empty."""

    @abstractmethod
    def __str__(self) -> str:
        """Return the registry's name."""