from __future__ import annotations
import logging
import threading
from collections import OrderedDict
from datetime import datetime
from typing import Callable, Dict, Optional

from .models import DeviceRecord, endpoint_key, normalize_address
from .retention import RetentionPolicy

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class DeviceRegistry:
    """
    Thread safe in memory map of endpoint key to DeviceRecord.

    Locking:
      A single lock per registry guards the map and every record in it.
      Each mutation takes it exclusively, reads take it only long enough
      to copy. Callers never get a live record back, so nothing outside
      this class can race with the counters.

    Keys:
      Addresses are normalized first, so "2001:DB8::1" and
      "::ffff:203.0.113.5" land on the same records as "2001:db8::1"
      and "203.0.113.5".

    Growth:
      Records are created on the first connection event and kept for the
      life of the registry unless a RetentionPolicy is supplied. The map
      is kept in last seen order for the policy.
    """

    def __init__(self, clock: Optional[Clock] = None, retention: Optional[RetentionPolicy] = None):
        self._clock: Clock = clock or datetime.now
        self._retention = retention
        self._devices: "OrderedDict[str, DeviceRecord]" = OrderedDict()
        self._lock = threading.Lock()

    def record_connection(self, address: str, port: int, protocol: str, tag: str = "") -> None:
        """
        Count one connection from address:port. Creates the record on first sight.
        """
        address = normalize_address(address)
        key = endpoint_key(address, port)
        now = self._clock()

        with self._lock:
            device = self._devices.get(key)
            if device is None:
                device = DeviceRecord(address=address, port=int(port), first_seen=now, last_seen=now)
                self._devices[key] = device
                self._apply_retention()
            else:
                self._devices.move_to_end(key)

            device.last_seen = now
            device.connection_count += 1
            device.protocols.add(str(protocol))
            if tag:
                device.tags.add(str(tag))

    def record_traffic(self, address: str, port: int, uplink: int, downlink: int) -> None:
        """
        Add byte deltas to a known endpoint.

        Traffic for an endpoint that never connected is dropped.
        """
        key = endpoint_key(normalize_address(address), port)

        with self._lock:
            device = self._devices.get(key)
            if device is None:
                return
            device.total_uplink += int(uplink)
            device.total_downlink += int(downlink)

    def lookup(self, address: str, port: int) -> Optional[DeviceRecord]:
        key = endpoint_key(normalize_address(address), port)
        with self._lock:
            device = self._devices.get(key)
            return device.copy() if device is not None else None

    def snapshot(self) -> Dict[str, DeviceRecord]:
        """
        Point in time copy of every record.
        """
        with self._lock:
            return {key: device.copy() for key, device in self._devices.items()}

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)

    def _apply_retention(self) -> None:
        # Caller holds self._lock.
        if self._retention is None:
            return
        for key in self._retention.select_evictions(self._devices):
            if self._devices.pop(key, None) is not None:
                logger.debug("evicted device %s", key)
