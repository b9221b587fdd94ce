import logging

import pytest

from device_tracker_mcp.core.errors import FlushError, TargetCreationError
from device_tracker_mcp.core.tracker import DeviceTracker, TrackerState


def test_construction_creates_first_target(tracker, out_dir):
    jan = out_dir / "devices_2026-01.txt"

    assert tracker.state is TrackerState.ACTIVE
    assert tracker.current_target == jan
    assert jan.read_text(encoding="utf-8").startswith("Device Tracker - 2026-01\nGenerated: 2026-01-31 23:58:00\n")


def test_empty_output_dir_uses_default(tmp_path, monkeypatch, clock):
    monkeypatch.chdir(tmp_path)
    t = DeviceTracker(output_dir="", clock=clock)

    assert (tmp_path / "device_logs" / "devices_2026-01.txt").exists()
    assert t.save_interval == 300


def test_unwritable_output_dir_is_fatal(tmp_path, clock):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    with pytest.raises(TargetCreationError):
        DeviceTracker(output_dir=blocker / "logs", clock=clock)


def test_flush_appends_snapshot_each_time(tracker, out_dir, read_rows):
    tracker.record_connection("10.0.0.1", 1111, "TCP", "in1")
    assert tracker.flush() == 1

    tracker.record_connection("10.0.0.1", 1111, "TCP", "in1")
    tracker.flush()

    rows = read_rows(out_dir / "devices_2026-01.txt")
    assert [r[10] for r in rows] == ["1", "2"]


def test_month_rollover_rotates_target(tracker, clock, out_dir, read_rows):
    tracker.record_connection("198.51.100.7", 40000, "TCP", "in1")
    clock.advance(minutes=5)

    tracker.tick()

    jan = out_dir / "devices_2026-01.txt"
    feb = out_dir / "devices_2026-02.txt"
    assert tracker.current_target == feb

    jan_rows = read_rows(jan)
    assert len(jan_rows) == 1
    assert jan_rows[0][0] == "198.51.100.7"

    assert feb.read_text(encoding="utf-8").startswith("Device Tracker - 2026-02\n")
    feb_rows = read_rows(feb)
    assert len(feb_rows) == 1
    assert feb_rows[0][10] == "1"


def test_tick_in_same_month_only_flushes(tracker, clock, out_dir, read_rows):
    tracker.record_connection("10.0.0.1", 1111, "TCP")
    clock.advance(seconds=1)  # still Jan 31
    tracker.tick()

    assert tracker.current_target == out_dir / "devices_2026-01.txt"
    assert len(read_rows(out_dir / "devices_2026-01.txt")) == 1
    assert not (out_dir / "devices_2026-02.txt").exists()


def test_rotation_failure_keeps_previous_target(tracker, clock, out_dir, read_rows, caplog):
    tracker.record_connection("10.0.0.1", 1111, "TCP")
    feb = out_dir / "devices_2026-02.txt"
    feb.mkdir()
    clock.advance(minutes=5)

    with caplog.at_level(logging.WARNING):
        tracker.tick()

    jan = out_dir / "devices_2026-01.txt"
    assert tracker.current_target == jan
    assert "failed to initialize new monthly file" in caplog.text
    # closing flush before the failed switch plus the regular flush
    assert len(read_rows(jan)) == 2

    feb.rmdir()
    tracker.tick()
    assert tracker.current_target == feb
    assert len(read_rows(feb)) == 1


def test_flush_failure_is_logged_by_tick(tracker, out_dir, caplog):
    tracker.record_connection("10.0.0.1", 1111, "TCP")
    jan = out_dir / "devices_2026-01.txt"
    jan.unlink()
    jan.mkdir()

    with pytest.raises(FlushError):
        tracker.flush()

    with caplog.at_level(logging.WARNING):
        tracker.tick()
    assert "failed to save device data" in caplog.text
    assert tracker.lookup("10.0.0.1", 1111).connection_count == 1


def test_restart_in_same_month_keeps_earlier_rows(out_dir, clock, read_rows):
    first = DeviceTracker(output_dir=out_dir, clock=clock)
    first.record_connection("10.0.0.1", 1111, "TCP")
    first.close()

    DeviceTracker(output_dir=out_dir, clock=clock).close()

    text = (out_dir / "devices_2026-01.txt").read_text(encoding="utf-8")
    assert text.count("Device Tracker - 2026-01") == 2
    assert len(read_rows(out_dir / "devices_2026-01.txt")) == 1


def test_close_flushes_once_and_is_idempotent(tracker, out_dir, read_rows):
    tracker.record_connection("10.0.0.1", 1111, "TCP")

    tracker.close()
    tracker.close()
    tracker.tick()

    assert tracker.state is TrackerState.CLOSED
    assert tracker.current_target is None
    assert len(read_rows(out_dir / "devices_2026-01.txt")) == 1


def test_status_reports_target_and_devices(tracker):
    tracker.record_connection("10.0.0.1", 1111, "TCP")
    status = tracker.status()

    assert status["state"] == "active"
    assert status["running"] is False
    assert status["current_target"] == "devices_2026-01.txt"
    assert status["devices"] == 1


def test_closed_tracker_never_reopens_a_target(tracker, clock, out_dir):
    tracker.record_connection("10.0.0.1", 1111, "TCP")
    tracker.close()
    clock.advance(days=31)

    assert tracker.select_target(clock()) is False
    assert tracker.flush() == 0
    assert tracker.current_target is None
    assert tracker.state is TrackerState.CLOSED
    assert not (out_dir / "devices_2026-03.txt").exists()
