from datetime import datetime, timedelta
from pathlib import Path
from typing import List

import pytest

from device_tracker_mcp.core.router import TrackerRouter
from device_tracker_mcp.core.tracker import DeviceTracker


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 31, 23, 58, 0))

@pytest.fixture
def out_dir(tmp_path):
    return tmp_path / "device_logs"

@pytest.fixture
def tracker(out_dir, clock):
    return DeviceTracker(output_dir=out_dir, clock=clock)

@pytest.fixture
def router(tracker):
    r = TrackerRouter()
    r.register("in1", tracker)
    return r

@pytest.fixture
def read_rows():
    def read(path: Path) -> List[List[str]]:
        """Data rows of a report, split on whitespace. Header lines never start with a digit."""
        lines = path.read_text(encoding="utf-8").splitlines()
        return [line.split() for line in lines if line and line[0].isdigit()]
    return read
