import pytest

from device_tracker_mcp.core.config import TrackerConfig
from device_tracker_mcp.core.server import DeviceTrackerMCPServer
from device_tracker_mcp.core.tracker import TrackerState


def test_record_and_read_tools(router):
    server = DeviceTrackerMCPServer(router)

    assert server.record_connection("in1", "10.0.0.1", 1111, "UDP") is True
    assert server.record_traffic("in1", "10.0.0.1", 1111, uplink=1024, downlink=2048) is True
    assert server.record_connection("unknown", "10.0.0.1", 1111) is False

    info = server.device_info("in1", "10.0.0.1", 1111)
    assert info["connection_count"] == 1
    assert info["protocols"] == ["UDP"]
    assert info["tags"] == ["in1"]
    assert info["total_downlink"] == 2048

    assert server.device_info("in1", "10.0.0.2", 1) is None
    assert [d["address"] for d in server.list_devices("in1")] == ["10.0.0.1"]
    assert server.tracker_status("in1")["devices"] == 1


def test_unknown_tag_read_raises(router):
    server = DeviceTrackerMCPServer(router)
    with pytest.raises(KeyError):
        server.list_devices("missing")


def test_flush_reports(router, out_dir, read_rows):
    server = DeviceTrackerMCPServer(router)
    server.record_connection("in1", "10.0.0.1", 1111)

    out = server.flush_reports()

    assert out == {"written": {"in1": 1}, "errors": {}}
    assert len(read_rows(out_dir / "devices_2026-01.txt")) == 1


@pytest.mark.asyncio
async def test_lifespan_starts_and_closes_trackers(router, tracker, out_dir, read_rows):
    server = DeviceTrackerMCPServer(router)
    tracker.record_connection("10.0.0.1", 1111, "TCP", "in1")

    async with server._lifespan(server.mcp):
        assert tracker.status()["running"] is True

    assert tracker.state is TrackerState.CLOSED
    assert len(read_rows(out_dir / "devices_2026-01.txt")) == 1


def test_record_tools_follow_tag_switches(router, tracker):
    router.register("in1", tracker, config=TrackerConfig(enable_tcp_tracking=False, enable_traffic_tracking=False))
    server = DeviceTrackerMCPServer(router)

    assert server.record_connection("in1", "10.0.0.1", 1111, "TCP") is False
    assert server.record_connection("in1", "10.0.0.1", 1111, "UDP") is True
    assert server.record_traffic("in1", "10.0.0.1", 1111, uplink=5) is False

    info = server.device_info("in1", "10.0.0.1", 1111)
    assert info["protocols"] == ["UDP"]
    assert info["total_uplink"] == 0
