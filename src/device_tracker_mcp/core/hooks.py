from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

from .config import TrackerConfig
from .router import TrackerRouter


@dataclass
class Destination:
    address: str
    port: int
    network: str = "tcp"


Source = Union[Destination, Tuple[Any, ...], str]


def destination_from_addr(addr: Source, network: str = "tcp") -> Destination:
    """
    Normalize whatever the host has at hand into a Destination.

    Accepts:
      Destination
      socket peer name, ("203.0.113.5", 51000) or the 4-tuple IPv6 form
      "203.0.113.5:51000" or "[2001:db8::1]:51000"
    """
    if isinstance(addr, Destination):
        return addr

    if isinstance(addr, tuple):
        if len(addr) < 2:
            raise ValueError(f"peer name needs host and port: {addr!r}")
        return Destination(address=str(addr[0]), port=int(addr[1]), network=network)

    text = str(addr).strip()
    host, sep, port = text.rpartition(":")
    if not sep or not host:
        raise ValueError(f"address needs a port: {addr!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return Destination(address=host, port=int(port), network=network)


class IntegrationHooks:
    """
    Glue between host listeners and the TrackerRouter.

    Listeners call one hook per accepted connection and per traffic update.
    The switches of the TrackerConfig registered for the event's tag are
    applied here, so a disabled kind of event never reaches a registry.
    config is the fallback for tags registered without one.
    """

    def __init__(self, router: Optional[TrackerRouter], config: Optional[TrackerConfig] = None):
        self.router = router
        self.config = config or TrackerConfig()

    def settings(self, tag: str) -> TrackerConfig:
        if self.router is None:
            return self.config
        return self.router.config(tag) or self.config

    def on_tcp_connection(self, source: Source, tag: str) -> bool:
        if self.router is None or not self.settings(tag).tracks_connection("TCP"):
            return False
        dest = destination_from_addr(source, network="tcp")
        return self.router.dispatch_connection(dest.address, dest.port, "TCP", tag)

    def on_udp_connection(self, source: Source, tag: str) -> bool:
        if self.router is None or not self.settings(tag).tracks_connection("UDP"):
            return False
        dest = destination_from_addr(source, network="udp")
        return self.router.dispatch_connection(dest.address, dest.port, "UDP", tag)

    def on_traffic_update(self, source: Source, tag: str, uplink: int, downlink: int) -> bool:
        if self.router is None or not self.settings(tag).tracks_traffic():
            return False
        dest = destination_from_addr(source)
        return self.router.dispatch_traffic(dest.address, dest.port, uplink, downlink, tag)
