from __future__ import annotations
import enum
import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional

from .tracker import DeviceTracker

if TYPE_CHECKING:
    from .config import TrackerConfig

logger = logging.getLogger(__name__)


class EventKind(str, enum.Enum):
    CONNECTION = "connection"
    TRAFFIC = "traffic"


@dataclass
class TrackerEvent:
    """
    Activity reported by a listener.

    protocol is used by connection events, uplink and downlink by traffic events.
    """

    kind: EventKind
    address: str
    port: int
    tag: str
    protocol: str = ""
    uplink: int = 0
    downlink: int = 0


class TrackerRouter:
    """
    Maps listener tags to DeviceTracker instances.

    Important:
      Events for a tag nobody registered are dropped without error.
      That is the normal case when only some listeners have tracking on.

      The router is an ordinary object. Whoever wires the host creates one
      and hands it to every event producer.
    """

    def __init__(self):
        self._trackers: Dict[str, DeviceTracker] = {}
        self._configs: Dict[str, "TrackerConfig"] = {}
        self._lock = threading.Lock()

    def register(self, tag: str, tracker: DeviceTracker, config: Optional["TrackerConfig"] = None) -> None:
        """
        Bind tag to tracker. A later registration for the same tag wins,
        including its config. config carries the per tag tracking switches
        read by the event producers.
        """
        with self._lock:
            self._trackers[tag] = tracker
            if config is None:
                self._configs.pop(tag, None)
            else:
                self._configs[tag] = config

    def get(self, tag: str) -> Optional[DeviceTracker]:
        with self._lock:
            return self._trackers.get(tag)

    def config(self, tag: str) -> Optional["TrackerConfig"]:
        with self._lock:
            return self._configs.get(tag)

    def tags(self) -> List[str]:
        with self._lock:
            return sorted(self._trackers.keys())

    def trackers(self) -> List[DeviceTracker]:
        """
        Distinct registered trackers. Several tags may share one.
        """
        with self._lock:
            unique: Dict[int, DeviceTracker] = {}
            for tracker in self._trackers.values():
                unique.setdefault(id(tracker), tracker)
            return list(unique.values())

    def dispatch(self, event: TrackerEvent) -> bool:
        """
        Forward event to the tracker bound to its tag.

        Returns True when a tracker received it.
        """
        tracker = self.get(event.tag)
        if tracker is None:
            logger.debug("no tracker for tag %r, dropping %s event", event.tag, event.kind.value)
            return False

        if event.kind is EventKind.CONNECTION:
            tracker.record_connection(event.address, event.port, event.protocol, event.tag)
        else:
            tracker.record_traffic(event.address, event.port, event.uplink, event.downlink)
        return True

    def dispatch_connection(self, address: str, port: int, protocol: str, tag: str) -> bool:
        return self.dispatch(
            TrackerEvent(kind=EventKind.CONNECTION, address=address, port=port, tag=tag, protocol=protocol)
        )

    def dispatch_traffic(self, address: str, port: int, uplink: int, downlink: int, tag: str) -> bool:
        return self.dispatch(
            TrackerEvent(
                kind=EventKind.TRAFFIC, address=address, port=port, tag=tag, uplink=uplink, downlink=downlink
            )
        )

    def close_all(self) -> Dict[str, Exception]:
        """
        Close every tracker, continuing past failures.

        Returns the failures keyed by tag. A tracker shared by several tags
        is closed once and reported under the first of them.
        """
        with self._lock:
            bindings = sorted(self._trackers.items())

        failures: Dict[str, Exception] = {}
        closed = set()

        for tag, tracker in bindings:
            if id(tracker) in closed:
                continue
            closed.add(id(tracker))
            try:
                tracker.close()
            except Exception as e:
                logger.warning("failed to close device tracker for tag %r: %s", tag, e)
                failures[tag] = e

        return failures

    async def start_all(self) -> None:
        for tracker in self.trackers():
            await tracker.start()

    async def stop_all(self) -> None:
        for tracker in self.trackers():
            await tracker.stop()
