"""High-level API facades."""

from .log_api import LogAPI, sort_records
from .time_window import parse_window_seconds

__all__ = [
    "LogAPI",
    "parse_window_seconds",
    "sort_records",
]
