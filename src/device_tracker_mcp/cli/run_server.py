from __future__ import annotations
import logging
import os
import sys

from device_tracker_mcp.core.config import build_router, load_router_config
from device_tracker_mcp.core.server import DeviceTrackerMCPServer


def main() -> None:
    """
    Load trackers from DEVICE_TRACKERS env var, one per listener tag.

    Example:
      export DEVICE_TRACKERS='{
        "socks-in": {"output_dir": "./device_logs/socks", "save_interval": 300},
        "vmess-in": {"output_dir": "./device_logs/vmess", "enable_udp_tracking": false}
      }'
      python -m device_tracker_mcp.cli.run_server
    """
    # stdout carries the MCP stdio transport, logs go to stderr.
    logging.basicConfig(
        stream=sys.stderr,
        level=os.environ.get("DEVICE_TRACKER_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    configs = load_router_config(os.environ.get("DEVICE_TRACKERS", "{}"))
    router = build_router(configs)

    server = DeviceTrackerMCPServer(router=router)
    server.run()


if __name__ == "__main__":
    main()
