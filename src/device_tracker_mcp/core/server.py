from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from .hooks import IntegrationHooks
from .router import TrackerRouter
from .tracker import DeviceTracker

logger = logging.getLogger(__name__)


class DeviceTrackerMCPServer:
    """
    MCP server over a TrackerRouter.

    Responsibilities:
      Start the save timer of every tracker when the server starts
      Stop the timers and close every tracker on shutdown
      Expose recording and read tools per listener tag
    """

    def __init__(self, router: TrackerRouter):
        self.router = router
        self.hooks = IntegrationHooks(router)
        self.mcp = FastMCP("device_tracker_mcp", lifespan=self._lifespan)
        self._register_tools()

    @asynccontextmanager
    async def _lifespan(self, _server: FastMCP) -> AsyncIterator[None]:
        await self.router.start_all()
        logger.info("device tracker started for tags %s", ", ".join(self.router.tags()) or "<none>")
        try:
            yield
        finally:
            await self.router.stop_all()
            failures = self.router.close_all()
            if failures:
                logger.warning("%d tracker(s) failed to close: %s", len(failures), ", ".join(failures))

    def _tracker(self, tag: str) -> DeviceTracker:
        tracker = self.router.get(tag)
        if tracker is None:
            raise KeyError(f"no tracker registered for tag {tag}")
        return tracker

    def record_connection(self, tag: str, address: str, port: int, protocol: str = "TCP") -> bool:
        if not self.hooks.settings(tag).tracks_connection(protocol):
            return False
        return self.router.dispatch_connection(address, int(port), protocol, tag)

    def record_traffic(self, tag: str, address: str, port: int, uplink: int = 0, downlink: int = 0) -> bool:
        if not self.hooks.settings(tag).tracks_traffic():
            return False
        return self.router.dispatch_traffic(address, int(port), int(uplink), int(downlink), tag)

    def device_info(self, tag: str, address: str, port: int) -> Optional[Dict[str, Any]]:
        device = self._tracker(tag).lookup(address, int(port))
        return device.to_dict() if device is not None else None

    def list_devices(self, tag: str) -> List[Dict[str, Any]]:
        devices = self._tracker(tag).snapshot()
        return [devices[key].to_dict() for key in sorted(devices)]

    def tracker_status(self, tag: str) -> Dict[str, Any]:
        return {"tag": tag, **self._tracker(tag).status()}

    def flush_reports(self) -> Dict[str, Any]:
        """
        Flush every tracker now. Returns rows written per tag and errors per tag.
        """
        written: Dict[str, int] = {}
        errors: Dict[str, str] = {}
        seen = set()

        for tag in self.router.tags():
            tracker = self.router.get(tag)
            if tracker is None or id(tracker) in seen:
                continue
            seen.add(id(tracker))
            try:
                written[tag] = tracker.flush()
            except Exception as e:
                logger.warning("manual flush for tag %r failed: %s", tag, e)
                errors[tag] = str(e)

        return {"written": written, "errors": errors}

    def _register_tools(self) -> None:
        @self.mcp.tool()
        def list_tags() -> List[str]:
            return self.router.tags()

        @self.mcp.tool()
        def record_connection(tag: str, address: str, port: int, protocol: str = "TCP") -> bool:
            return self.record_connection(tag, address, port, protocol)

        @self.mcp.tool()
        def record_traffic(tag: str, address: str, port: int, uplink: int = 0, downlink: int = 0) -> bool:
            return self.record_traffic(tag, address, port, uplink, downlink)

        @self.mcp.tool()
        def device_info(tag: str, address: str, port: int) -> Optional[Dict[str, Any]]:
            return self.device_info(tag, address, port)

        @self.mcp.tool()
        def list_devices(tag: str) -> List[Dict[str, Any]]:
            return self.list_devices(tag)

        @self.mcp.tool()
        def tracker_status(tag: str) -> Dict[str, Any]:
            return self.tracker_status(tag)

        @self.mcp.tool()
        def flush_reports() -> Dict[str, Any]:
            return self.flush_reports()

    def run(self) -> None:
        self.mcp.run()
