"""Filters that narrow a list of services during node selection."""

from __future__ import annotations

import dataclasses
from collections.abc import Callable

from stark.registry import Service

Filter = Callable[[list[Service]], list[Service]]


def filter_endpoint(name: str) -> Filter:
    """Keep only services that expose an endpoint with the given name."""

    def apply(services: list[Service]) -> list[Service]:
        return [s for s in services if any(ep.name == name for ep in s.endpoints)]

    return apply


def filter_label(key: str, value: str) -> Filter:
    """Keep only nodes whose metadata maps key to value; drop services left without nodes."""

    def apply(services: list[Service]) -> list[Service]:
        result = []
        for service in services:
            nodes = [
                node
                for node in service.nodes
                if node.metadata and node.metadata.get(key, "") == value
            ]
            if nodes:
                result.append(dataclasses.replace(service, nodes=nodes))
        return result

    return apply


def filter_version(version: str) -> Filter:
    """Keep only services with the given version."""

    def apply(services: list[Service]) -> list[Service]:
        return [s for s in services if s.version == version]

    return apply