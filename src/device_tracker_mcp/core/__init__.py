"""
Registry, persistence and routing for device tracking.

Keep host specific connection and session handling out of this package,
hooks.py is the only boundary it needs.
"""

from .models import DeviceRecord
from .registry import DeviceRegistry
from .tracker import DeviceTracker, TrackerState
from .router import EventKind, TrackerEvent, TrackerRouter
from .config import TrackerConfig, build_router, build_tracker
from .hooks import Destination, IntegrationHooks
from .errors import ConfigError, FlushError, TargetCreationError, TrackerError
from .server import DeviceTrackerMCPServer

__all__ = [
    "DeviceRecord",
    "DeviceRegistry",
    "DeviceTracker",
    "TrackerState",
    "EventKind",
    "TrackerEvent",
    "TrackerRouter",
    "TrackerConfig",
    "build_router",
    "build_tracker",
    "Destination",
    "IntegrationHooks",
    "ConfigError",
    "FlushError",
    "TargetCreationError",
    "TrackerError",
    "DeviceTrackerMCPServer",
]
