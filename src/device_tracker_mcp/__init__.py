"""
device_tracker_mcp

Per endpoint activity tracking for proxy listeners, saved to monthly text reports.

Core ideas
1. Listeners report connections and traffic through IntegrationHooks
2. TrackerRouter sends each event to the tracker registered for its tag
3. DeviceTracker keeps the registry and appends snapshots to devices_YYYY-MM.txt
"""

__all__ = ["core", "cli"]
