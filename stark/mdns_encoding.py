"""Encoding of service details into multicast DNS TXT records."""

from __future__ import annotations

import binascii
import json
import zlib
from dataclasses import dataclass, field
from typing import Any

from stark.registry import Endpoint

TXT_LIMIT = 255


@dataclass
class MdnsTxt:
    """Service details carried in a TXT record."""

    service: str = ""
    version: str = ""
    endpoints: list[Endpoint] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)

    def _to_dict(self) -> dict[str, Any]:
        return {
            "Service": self.service,
            "Version": self.version,
            "Endpoints": [e.to_dict() for e in self.endpoints],
            "Metadata": dict(self.metadata),
        }

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> MdnsTxt:
        return cls(
            service=data.get("Service") or "",
            version=data.get("Version") or "",
            endpoints=[
                Endpoint.from_dict(e) for e in data.get("Endpoints") or [] if e is not None
            ],
            metadata=dict(data.get("Metadata") or {}),
        )


def encode(txt: MdnsTxt) -> list[str]:
    """Encode as zlib-compressed hex, split into parts of at most 255 characters."""
    raw = json.dumps(txt._to_dict(), separators=(",", ":")).encode()
    encoded = zlib.compress(raw).hex()
    return [encoded[i : i + TXT_LIMIT] for i in range(0, len(encoded), TXT_LIMIT)] or [""]


def decode(record: list[str]) -> MdnsTxt:
    """Join and decode TXT parts; raise ValueError when they are not valid."""
    encoded = "".join(record)
    try:
        data = json.loads(zlib.decompress(bytes.fromhex(encoded)))
    except (ValueError, binascii.Error, zlib.error) as err:
        raise ValueError(f"invalid mdns txt record: {err}") from err
    if not isinstance(data, dict):
        raise ValueError("invalid mdns txt record: not an object")
    return MdnsTxt._from_dict(data)