"""Encoding of versions and endpoints into service tags."""

from __future__ import annotations

import binascii
import json
import zlib

from stark.registry import Endpoint


def encode(data: bytes) -> str:
    """Compress bytes with zlib and return them hex encoded."""
    return zlib.compress(data).hex()


def decode(text: str) -> bytes | None:
    """Reverse encode; return None when the text is not valid."""
    try:
        return zlib.decompress(bytes.fromhex(text))
    except (ValueError, binascii.Error, zlib.error):
        return None


def encode_endpoints(endpoints: list[Endpoint]) -> list[str]:
    """Encode each endpoint as an ``e-`` tag."""
    return [
        "e-" + encode(json.dumps(e.to_dict(), separators=(",", ":")).encode())
        for e in endpoints
    ]


def decode_endpoints(tags: list[str]) -> list[Endpoint]:
    """Decode endpoint tags, keeping only the first tag format met."""
    endpoints: list[Endpoint] = []
    version: str | None = None

    for tag in tags:
        if not tag or tag[0] != "e":
            continue
        marker = tag[1:2]
        if version is not None and marker != version:
            continue

        buf: bytes | None = None
        if marker == "=":
            buf = tag[2:].encode()
        elif marker == "-":
            buf = decode(tag[2:])

        if buf is not None:
            try:
                data = json.loads(buf)
            except ValueError:
                data = None
            if isinstance(data, dict):
                endpoints.append(Endpoint.from_dict(data))

        version = marker
    return endpoints


def encode_version(version: str) -> list[str]:
    """Encode a version as a ``v=`` tag."""
    return [f"v={version}"]


def decode_version(tags: list[str]) -> str | None:
    """Return the version from the first ``v=`` tag, or None when there is none."""
    for tag in tags:
        if len(tag) < 2 or tag[0] != "v":
            continue
        if tag[1] == "=":
            return tag[2:]
    return None