from __future__ import annotations
from datetime import datetime
from typing import Iterable

from .models import DeviceRecord

# Traffic columns are labelled MB but are binary mebibytes.
MIB = 1024 * 1024

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
MONTH_FORMAT = "%Y-%m"

COLUMNS = (
    ("IP Address", 15),
    ("Port", 8),
    ("Country", 12),
    ("City", 15),
    ("First Seen", 20),
    ("Last Seen", 20),
    ("Uplink (MB)", 12),
    ("Downlink (MB)", 12),
    ("Connections", 8),
    ("Protocols", 10),
    ("Tags", 15),
)

SEPARATOR = "-" * 160


def month_label(now: datetime) -> str:
    return now.strftime(MONTH_FORMAT)


def target_name(now: datetime) -> str:
    """
    File name of the monthly report, for example devices_2026-10.txt
    """
    return f"devices_{month_label(now)}.txt"


def format_header(now: datetime) -> str:
    """
    Title block written once when a monthly report is opened.
    """
    row = " ".join(f"{title:<{width}}" for title, width in COLUMNS)
    return (
        f"Device Tracker - {month_label(now)}\n"
        f"Generated: {now.strftime(TIMESTAMP_FORMAT)}\n"
        "\n"
        f"{row}\n"
        f"{SEPARATOR}\n"
    )


def format_row(device: DeviceRecord) -> str:
    uplink_mb = device.total_uplink / MIB
    downlink_mb = device.total_downlink / MIB

    return (
        f"{device.address:<15} "
        f"{device.port:<8d} "
        f"{device.country:<12} "
        f"{device.city:<15} "
        f"{device.first_seen.strftime(TIMESTAMP_FORMAT):<20} "
        f"{device.last_seen.strftime(TIMESTAMP_FORMAT):<20} "
        f"{uplink_mb:<12.2f} "
        f"{downlink_mb:<12.2f} "
        f"{device.connection_count:<8d} "
        f"{','.join(sorted(device.protocols)):<10} "
        f"{','.join(sorted(device.tags)):<15}\n"
    )


def format_rows(devices: Iterable[DeviceRecord]) -> str:
    return "".join(format_row(d) for d in devices)
