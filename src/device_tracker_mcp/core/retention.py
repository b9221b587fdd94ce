from __future__ import annotations
from itertools import islice
from typing import List, MutableMapping, Protocol

from .models import DeviceRecord


class RetentionPolicy(Protocol):
    """
    Decides which records a registry drops when a new endpoint shows up.

    records is the live map, ordered from least to most recently seen.
    It is passed while the registry lock is held, so implementations must
    be fast and must not keep references around.
    """

    def select_evictions(self, records: MutableMapping[str, DeviceRecord]) -> List[str]:
        ...


class LeastRecentlySeen:
    """
    Bounds the registry to max_devices records.

    Example:
      max_devices=1000 and a 1001st endpoint connects.
      The endpoint seen least recently is evicted.

    Relies on the registry ordering, so the cost is the number of
    evicted records, not the size of the map.
    """

    def __init__(self, max_devices: int):
        if max_devices <= 0:
            raise ValueError("max_devices must be positive")
        self.max_devices = int(max_devices)

    def select_evictions(self, records: MutableMapping[str, DeviceRecord]) -> List[str]:
        excess = len(records) - self.max_devices
        if excess <= 0:
            return []
        return list(islice(iter(records), excess))
