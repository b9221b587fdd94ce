from __future__ import annotations
import ipaddress
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Set


UNKNOWN = "Unknown"


def normalize_address(address: str) -> str:
    """
    Canonical text of an IP address.

    IPv6 is compressed and lowercased, IPv4 mapped IPv6 becomes plain IPv4.
    Anything that does not parse as an IP, such as a domain name, is kept as given.
    """
    text = str(address).strip()
    try:
        ip = ipaddress.ip_address(text)
    except ValueError:
        return text

    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return str(ip.ipv4_mapped)
    return str(ip)


def endpoint_key(address: str, port: int) -> str:
    """
    Identity key for an endpoint. Plain string concatenation of address and port.
    """
    return f"{address}:{port}"


@dataclass
class DeviceRecord:
    """
    Aggregated activity of one remote endpoint.

    Fields:
      address, port
        Endpoint that connected to one of the listeners.

      country, city
        Reserved for enrichment. Nothing in core writes them.

      first_seen
        Set once when the record is created.

      last_seen
        Updated on every connection event.

      total_uplink, total_downlink
        Cumulative bytes, only ever grow.

      connection_count
        One per connection event.

      protocols, tags
        Distinct protocol labels and listener tags seen for this endpoint.
    """

    address: str
    port: int
    first_seen: datetime
    last_seen: datetime
    country: str = UNKNOWN
    city: str = UNKNOWN
    total_uplink: int = 0
    total_downlink: int = 0
    connection_count: int = 0
    protocols: Set[str] = field(default_factory=set)
    tags: Set[str] = field(default_factory=set)

    def key(self) -> str:
        return endpoint_key(self.address, self.port)

    def copy(self) -> "DeviceRecord":
        """
        Value copy, safe to read after the registry lock is released.
        """
        return DeviceRecord(
            address=self.address,
            port=self.port,
            first_seen=self.first_seen,
            last_seen=self.last_seen,
            country=self.country,
            city=self.city,
            total_uplink=self.total_uplink,
            total_downlink=self.total_downlink,
            connection_count=self.connection_count,
            protocols=set(self.protocols),
            tags=set(self.tags),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "port": self.port,
            "country": self.country,
            "city": self.city,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "total_uplink": self.total_uplink,
            "total_downlink": self.total_downlink,
            "connection_count": self.connection_count,
            "protocols": sorted(self.protocols),
            "tags": sorted(self.tags),
        }
