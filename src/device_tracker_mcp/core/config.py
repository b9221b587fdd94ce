from __future__ import annotations
import json
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional

from .errors import ConfigError
from .registry import Clock
from .retention import LeastRecentlySeen
from .router import TrackerRouter
from .tracker import DEFAULT_OUTPUT_DIR, DEFAULT_SAVE_INTERVAL, DeviceTracker


@dataclass
class TrackerConfig:
    """
    Settings for one tracker instance.

    output_dir
      Where monthly reports go. Empty means ./device_logs

    save_interval
      Seconds between timer ticks. 0 means the 300 second default.

    enable_tcp_tracking, enable_udp_tracking, enable_traffic_tracking
      Read by IntegrationHooks. The registry itself ignores them.

    max_devices
      Retention bound, least recently seen endpoints are evicted past it.
      0 keeps every endpoint for the life of the process.
    """

    output_dir: str = DEFAULT_OUTPUT_DIR
    save_interval: int = DEFAULT_SAVE_INTERVAL
    enable_tcp_tracking: bool = True
    enable_udp_tracking: bool = True
    enable_traffic_tracking: bool = True
    max_devices: int = 0

    def tracks_connection(self, protocol: str) -> bool:
        """
        TCP and UDP follow their switches, other protocol labels are always tracked.
        """
        label = str(protocol).upper()
        if label == "TCP":
            return self.enable_tcp_tracking
        if label == "UDP":
            return self.enable_udp_tracking
        return True

    def tracks_traffic(self) -> bool:
        return self.enable_traffic_tracking

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "TrackerConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ConfigError(f"unknown tracker config keys: {', '.join(unknown)}")

        try:
            cfg = cls(
                output_dir=str(raw.get("output_dir") or DEFAULT_OUTPUT_DIR),
                save_interval=int(raw.get("save_interval") or DEFAULT_SAVE_INTERVAL),
                enable_tcp_tracking=bool(raw.get("enable_tcp_tracking", True)),
                enable_udp_tracking=bool(raw.get("enable_udp_tracking", True)),
                enable_traffic_tracking=bool(raw.get("enable_traffic_tracking", True)),
                max_devices=int(raw.get("max_devices") or 0),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid tracker config: {e}") from e

        if cfg.save_interval < 0 or cfg.max_devices < 0:
            raise ConfigError("save_interval and max_devices must not be negative")
        return cfg


def build_tracker(config: TrackerConfig, clock: Optional[Clock] = None) -> DeviceTracker:
    """
    Create a tracker from config. Raises TargetCreationError if the
    output directory or the first monthly file cannot be created.
    """
    retention = LeastRecentlySeen(config.max_devices) if config.max_devices else None
    return DeviceTracker(
        output_dir=config.output_dir,
        save_interval=config.save_interval,
        clock=clock,
        retention=retention,
    )


def load_router_config(raw: str) -> Dict[str, TrackerConfig]:
    """
    Parse a JSON object of listener tag to tracker settings.

    Example:
      {"socks-in": {"output_dir": "/var/log/devices/socks"},
       "vmess-in": {"output_dir": "/var/log/devices/vmess", "enable_udp_tracking": false}}
    """
    try:
        obj = json.loads(raw or "{}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"tracker config is not valid JSON: {e}") from e

    if not isinstance(obj, dict):
        raise ConfigError("tracker config must be a JSON object of tag to settings")

    configs: Dict[str, TrackerConfig] = {}
    for tag, settings in obj.items():
        if not isinstance(settings, dict):
            raise ConfigError(f"settings for tag {tag!r} must be an object")
        configs[str(tag)] = TrackerConfig.from_dict(settings)
    return configs


def build_router(configs: Mapping[str, TrackerConfig], clock: Optional[Clock] = None) -> TrackerRouter:
    router = TrackerRouter()
    for tag, cfg in configs.items():
        router.register(tag, build_tracker(cfg, clock=clock), config=cfg)
    return router
