"""Helpers for addresses and for copying, merging and removing services."""

from __future__ import annotations

import dataclasses
import ipaddress

from stark.registry import Node, Service


def _is_ip(text: str) -> bool:
    try:
        ipaddress.ip_address(text)
    except ValueError:
        return False
    return True


def host_port(addr: str, port: int | str) -> str:
    """Join a host and port into a dialable address.

    IPv6 hosts are bracketed. A blank or zero port leaves a non-IP host as is.
    """
    host = f"[{addr}]" if ":" in addr else addr
    if isinstance(port, str) and port == "":
        return host
    if isinstance(port, int) and port == 0 and not _is_ip(host):
        return host
    return f"{host}:{port}"


def add_nodes(old: list[Node], new: list[Node]) -> list[Node]:
    """Return copies of the new nodes followed by copies of old nodes not among them."""
    nodes = [dataclasses.replace(n) for n in new]
    seen = {n.id for n in nodes}
    for o in old:
        if o.id not in seen:
            nodes.append(dataclasses.replace(o))
            seen.add(o.id)
    return nodes


def del_nodes(old: list[Node], delete: list[Node]) -> list[Node]:
    """Return the old nodes whose ids are not among the deleted ones."""
    removed = {n.id for n in delete}
    return [o for o in old if o.id not in removed]


def copy_service(service: Service) -> Service:
    """Copy a service together with its node and endpoint records."""
    return dataclasses.replace(
        service,
        nodes=[dataclasses.replace(n) for n in service.nodes],
        endpoints=[dataclasses.replace(e) for e in service.endpoints],
    )


def copy_services(services: list[Service]) -> list[Service]:
    """Copy every service in the list."""
    return [copy_service(s) for s in services]


def merge(olist: list[Service], nlist: list[Service]) -> list[Service]:
    """Merge two lists of services into a new list."""
    merged: list[Service] = []
    for n in nlist:
        seen = False
        for o in olist:
            if o.version == n.version:
                merged.append(dataclasses.replace(o, nodes=add_nodes(o.nodes, n.nodes)))
                seen = True
                break
            merged.append(dataclasses.replace(o))
        if not seen:
            merged.extend(copy_services([n]))
    return merged


def remove(old: list[Service], delete: list[Service]) -> list[Service]:
    """Remove the deleted services' nodes from old; drop services left without nodes."""
    services: list[Service] = []
    for o in old:
        srv = dataclasses.replace(o)
        removed = False
        for s in delete:
            if srv.version == s.version:
                srv.nodes = del_nodes(srv.nodes, s.nodes)
                if not srv.nodes:
                    removed = True
        if not removed:
            services.append(srv)
    return services