"""An HTTP client that picks a service node per request through a selector."""

from __future__ import annotations

import threading
from typing import Any
from urllib.parse import urlsplit

import requests

from stark.rest_selector import Selector

DEFAULT_TIMEOUT = 2.0


class _HostSession(requests.Session):
    """A session bound to one host: relative URLs join its base URL."""

    def __init__(self, base_url: str, timeout: float) -> None:
        super().__init__()
        self.base_url = base_url
        self.timeout = timeout

    def _join(self, url: str) -> str:
        if urlsplit(url).scheme:
            return url
        if not url:
            return self.base_url
        return self.base_url.rstrip("/") + "/" + url.lstrip("/")

    def request(self, method: str, url: str, *args: Any, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        return super().request(method, self._join(url), *args, **kwargs)


class RestClient:
    """Sends HTTP requests to nodes of a named service."""

    def __init__(
        self,
        name: str,
        selector: Selector,
        timeout: float = DEFAULT_TIMEOUT,
        scheme: str = "http",
    ) -> None:
        self.name = name
        self.selector = selector
        self.timeout = timeout
        self.scheme = scheme
        self._lock = threading.Lock()
        self._sessions: dict[str, _HostSession] = {}

    def request(self) -> _HostSession:
        """Select a node and return a session whose relative URLs go to it."""
        node = self.selector.next(self.name)
        with self._lock:
            session = self._sessions.get(node.address)
            if session is None:
                session = _HostSession(f"{self.scheme}://{node.address}", self.timeout)
                self._sessions[node.address] = session
        return session

    def close(self) -> None:
        """Close every session opened so far."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.close()

    def __enter__(self) -> RestClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()