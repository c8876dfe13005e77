"""Monitoring module for the hot folder."""

from .watcher import (
    HotFolderWatcher,
    HotFolderEventHandler,
    DebounceTracker,
    FileSettlingChecker,
)
from .scanner import HotFolderScanner, ScanResult

__all__ = [
    "HotFolderWatcher",
    "HotFolderEventHandler",
    "DebounceTracker",
    "FileSettlingChecker",
    "HotFolderScanner",
    "ScanResult",
]
