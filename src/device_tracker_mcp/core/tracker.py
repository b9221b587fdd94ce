from __future__ import annotations
import asyncio
import enum
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .errors import FlushError, TargetCreationError, TrackerError
from .models import DeviceRecord
from .registry import Clock, DeviceRegistry
from .report import format_header, format_rows, target_name
from .retention import RetentionPolicy

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR = "./device_logs"
DEFAULT_SAVE_INTERVAL = 300


class TrackerState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    CLOSED = "closed"


class DeviceTracker:
    """
    DeviceRegistry plus monthly text reports on disk.

    Main concepts:
      target
        The report file of the current calendar month, devices_YYYY-MM.txt
        inside output_dir. Opened with a header, then only appended to.

      flush
        Appends one row per tracked device with its current totals.
        A device seen across N flushes has N rows, the file is a log of
        snapshots rather than a table.

      tick
        One timer iteration: switch target if the month changed, then flush.
        Failures are logged and retried on the next tick.

    Locks:
      The registry has its own lock. Target state has a second lock here.
      flush holds the target lock and takes the registry lock only while
      copying the snapshot, file I/O happens after it is released.
    """

    def __init__(
        self,
        output_dir: Union[str, Path] = "",
        save_interval: float = DEFAULT_SAVE_INTERVAL,
        clock: Optional[Clock] = None,
        retention: Optional[RetentionPolicy] = None,
    ):
        self._clock: Clock = clock or datetime.now
        self.registry = DeviceRegistry(clock=self._clock, retention=retention)
        self.output_dir = Path(output_dir or DEFAULT_OUTPUT_DIR)
        self.save_interval = float(save_interval or DEFAULT_SAVE_INTERVAL)

        self._target_lock = threading.Lock()
        self._current: Optional[Path] = None
        self._state = TrackerState.UNINITIALIZED

        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self._running = False

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TargetCreationError(f"failed to create output directory {self.output_dir}: {e}") from e

        self.select_target(self._clock())
        self._state = TrackerState.ACTIVE

    @property
    def state(self) -> TrackerState:
        return self._state

    @property
    def current_target(self) -> Optional[Path]:
        with self._target_lock:
            return self._current

    # Registry surface used by hosts and the router.

    def record_connection(self, address: str, port: int, protocol: str, tag: str = "") -> None:
        self.registry.record_connection(address, port, protocol, tag)

    def record_traffic(self, address: str, port: int, uplink: int, downlink: int) -> None:
        self.registry.record_traffic(address, port, uplink, downlink)

    def lookup(self, address: str, port: int) -> Optional[DeviceRecord]:
        return self.registry.lookup(address, port)

    def snapshot(self) -> Dict[str, DeviceRecord]:
        return self.registry.snapshot()

    # Persistence.

    def select_target(self, now: datetime) -> bool:
        """
        Make the report file for now's month current.

        Returns False when it already is. Otherwise the previous target
        gets a closing flush, the new file gets a header and becomes current.
        Raises TargetCreationError and keeps the previous target if the new
        file cannot be written. A closed tracker never opens a target again.
        """
        path = self.output_dir / target_name(now)

        with self._target_lock:
            if self._state is TrackerState.CLOSED or self._current == path:
                return False

            previous = self._current
            if previous is not None:
                try:
                    self._append_snapshot(previous)
                except FlushError as e:
                    logger.warning("closing flush of %s failed: %s", previous, e)

            try:
                with open(path, "a", encoding="utf-8") as fh:
                    fh.write(format_header(now))
            except OSError as e:
                raise TargetCreationError(f"failed to create monthly file {path}: {e}") from e

            self._current = path

        if previous is not None:
            logger.info("rotated device report %s -> %s", previous.name, path.name)
        return True

    def flush(self) -> int:
        """
        Append the current totals of every device to the current target.

        Returns the number of rows written.
        """
        with self._target_lock:
            if self._state is TrackerState.CLOSED or self._current is None:
                return 0
            return self._append_snapshot(self._current)

    def _append_snapshot(self, path: Path) -> int:
        # Caller holds self._target_lock.
        devices = self.registry.snapshot()
        try:
            with open(path, "a", encoding="utf-8") as fh:
                fh.write(format_rows(devices.values()))
        except OSError as e:
            raise FlushError(f"failed to write to {path}: {e}") from e
        return len(devices)

    def tick(self, now: Optional[datetime] = None) -> None:
        """
        One timer iteration. Never raises for rotation or flush failures.
        """
        if self._state is TrackerState.CLOSED:
            return

        now = now or self._clock()
        try:
            self.select_target(now)
        except TrackerError as e:
            logger.warning("failed to initialize new monthly file: %s", e)

        try:
            self.flush()
        except TrackerError as e:
            logger.warning("failed to save device data: %s", e)

    def close(self) -> None:
        """
        Final flush and release of the target. Safe to call twice.

        Does not stop the background task, await stop() first.
        """
        with self._target_lock:
            if self._state is TrackerState.CLOSED:
                return
            path, self._current = self._current, None
            self._state = TrackerState.CLOSED
            if path is not None:
                self._append_snapshot(path)

    # Background task.

    async def start(self, stop_event: Optional[asyncio.Event] = None) -> str:
        if self._running:
            return "already running"
        if self._state is TrackerState.CLOSED:
            return "closed"

        # An external event belongs to the owner and is never reset here.
        self._stop = stop_event if stop_event is not None else asyncio.Event()
        self._task = asyncio.create_task(self._run())
        self._running = True
        return f"saving every {self.save_interval:g}s to {self.output_dir}"

    async def stop(self) -> str:
        if not self._running:
            return "not running"

        self._stop.set()
        if self._task:
            await self._task
        self._task = None
        self._running = False
        return "stopped"

    async def _run(self) -> None:
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.save_interval)
            except asyncio.TimeoutError:
                try:
                    await asyncio.to_thread(self.tick)
                except Exception:
                    logger.exception("device tracker tick failed")

    def status(self) -> Dict[str, Any]:
        current = self.current_target
        return {
            "state": self._state.value,
            "running": self._running,
            "output_dir": str(self.output_dir),
            "current_target": current.name if current else None,
            "save_interval": self.save_interval,
            "devices": len(self.registry),
        }
