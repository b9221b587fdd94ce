from __future__ import annotations


class TrackerError(Exception):
    """
    Base class for device tracker failures.
    """


class TargetCreationError(TrackerError):
    """
    Output directory or monthly report file could not be created.

    Fatal while a tracker is being constructed, logged and retried on the
    next tick once the tracker is running.
    """


class FlushError(TrackerError):
    """
    Appending a snapshot to the current report file failed.
    """


class ConfigError(TrackerError, ValueError):
    """
    Tracker configuration could not be parsed.
    """
