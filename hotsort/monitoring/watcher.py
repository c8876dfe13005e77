"""
Hot Folder Watcher
==================

Stages files as they land in the hot folder. Bursts of events for one file
are debounced, and a file is only staged once its size and modification
time stop changing and it can be opened for reading.
"""

import os
import threading
import time
from pathlib import Path
from typing import Dict, Optional, Set, Tuple
from fnmatch import fnmatch

from watchdog.observers import Observer
from watchdog.events import (
    FileSystemEventHandler,
    DirCreatedEvent,
    DirModifiedEvent,
    DirMovedEvent,
)

from hotsort.config.settings import WatcherConfig
from hotsort.intake.pipeline import IntakePipeline
from hotsort.utils.exceptions import ConfigurationError
from hotsort.utils.logging_config import get_logger

logger = get_logger(__name__)


class DebounceTracker:
    """Drops repeat events for a path inside a time window."""

    PRUNE_AT = 512

    def __init__(self, debounce_seconds: float = 1.0):
        self.debounce_seconds = debounce_seconds
        self._last_seen: Dict[str, float] = {}
        self._lock = threading.Lock()

    def should_process(self, file_path: str) -> bool:
        """Record an event; False if the path fired within the window."""
        key = os.path.normcase(file_path)
        now = time.monotonic()
        with self._lock:
            if len(self._last_seen) >= self.PRUNE_AT:
                self._last_seen = {
                    path: seen for path, seen in self._last_seen.items()
                    if now - seen < self.debounce_seconds
                }
            last = self._last_seen.get(key)
            if last is not None and now - last < self.debounce_seconds:
                return False
            self._last_seen[key] = now
            return True

    def clear(self, file_path: str) -> None:
        with self._lock:
            self._last_seen.pop(os.path.normcase(file_path), None)


class FileSettlingChecker:
    """Waits for a dropped file to be completely written.

    Args:
        interval: Seconds between checks.
        stable_reads: Consecutive unchanged readings required.
    """

    def __init__(self, interval: float = 0.5, stable_reads: int = 2):
        self.interval = interval
        self.stable_reads = stable_reads

    @staticmethod
    def _signature(file_path: Path) -> Tuple[int, int]:
        stat = file_path.stat()
        return stat.st_size, stat.st_mtime_ns

    @staticmethod
    def _can_open(file_path: Path) -> bool:
        try:
            with open(file_path, "rb") as f:
                f.read(1)
            return True
        except OSError:
            return False

    def wait_for_file(self, file_path: Path, timeout: float = 30.0) -> bool:
        """Block until the file settles.

        Returns:
            True once settled, False if it vanished or the timeout passed.
        """
        deadline = time.monotonic() + timeout
        previous = None
        stable = 0

        while True:
            try:
                current = self._signature(file_path)
            except OSError:
                return False

            stable = stable + 1 if current == previous else 0
            previous = current
            if stable >= self.stable_reads and self._can_open(file_path):
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(self.interval)


class HotFolderEventHandler(FileSystemEventHandler):
    """Filters hot folder events and stages settled files.

    Each accepted file settles on its own daemon thread so a slow writer
    never blocks the observer.
    """

    def __init__(
        self,
        pipeline: IntakePipeline,
        config: WatcherConfig,
        settling_checker: Optional[FileSettlingChecker] = None,
    ):
        super().__init__()
        self.pipeline = pipeline
        self.config = config
        self.debouncer = DebounceTracker(config.debounce_seconds)
        self.settling_checker = settling_checker or FileSettlingChecker(config.settle_interval)
        self._settling: Set[str] = set()
        self._lock = threading.Lock()

    def should_ignore(self, file_path: str) -> bool:
        """Hidden files and ``ignore_patterns`` matches are never staged."""
        name = Path(file_path).name
        if name.startswith("."):
            return True
        return any(fnmatch(name, pattern) for pattern in self.config.ignore_patterns)

    def handle_file(self, file_path: str) -> None:
        """Start settling a file unless it is filtered, debounced or already settling."""
        if Path(file_path).is_dir() or self.should_ignore(file_path):
            return
        if not self.debouncer.should_process(file_path):
            logger.debug(f"Debounced event for {file_path}")
            return

        key = os.path.normcase(file_path)
        with self._lock:
            if key in self._settling:
                return
            self._settling.add(key)

        threading.Thread(
            target=self._settle_and_stage, args=(file_path,), daemon=True,
            name=f"settle-{Path(file_path).name}",
        ).start()

    def _settle_and_stage(self, file_path: str) -> None:
        try:
            settled = self.settling_checker.wait_for_file(
                Path(file_path), timeout=self.config.settle_timeout
            )
            if not settled:
                logger.warning(f"{file_path} did not settle, leaving it for the next scan")
                self.debouncer.clear(file_path)
            elif self.pipeline.stage_only(file_path):
                logger.info(f"Staged from hot folder: {file_path}", extra={"file_path": file_path})
        except Exception as e:
            logger.error(f"Failed to stage {file_path}: {e}", extra={"file_path": file_path})
        finally:
            with self._lock:
                self._settling.discard(os.path.normcase(file_path))

    def on_created(self, event) -> None:
        if not isinstance(event, DirCreatedEvent):
            self.handle_file(event.src_path)

    def on_modified(self, event) -> None:
        if not isinstance(event, DirModifiedEvent):
            self.handle_file(event.src_path)

    def on_moved(self, event) -> None:
        # Browsers download to a temp name, then rename into place
        if not isinstance(event, DirMovedEvent):
            self.handle_file(event.dest_path)


class HotFolderWatcher:
    """Runs a watchdog observer on the configured hot folder."""

    def __init__(self, hot_folder: Path, config: WatcherConfig, pipeline: IntakePipeline):
        """Initialize the watcher.

        Args:
            hot_folder: Directory to watch.
            config: Watcher configuration.
            pipeline: Intake pipeline that stages files.
        """
        self.hot_folder = Path(hot_folder).expanduser()
        self.config = config
        self.observer = Observer()
        self.handler = HotFolderEventHandler(pipeline, config)
        self._running = False

    @property
    def is_running(self) -> bool:
        """Check if the watcher is running."""
        return self._running and self.observer.is_alive()

    def start(self) -> None:
        """Start watching the hot folder.

        Raises:
            ConfigurationError: If the hot folder does not exist.
        """
        if not self.hot_folder.is_dir():
            raise ConfigurationError(
                f"Hot folder does not exist: {self.hot_folder}", config_key="import.hot_folder"
            )

        self.observer.schedule(self.handler, str(self.hot_folder), recursive=self.config.recursive)
        self.observer.start()
        self._running = True
        logger.info(f"Watching hot folder: {self.hot_folder}")

    def stop(self) -> None:
        """Stop the watcher."""
        if self._running:
            self._running = False
            self.observer.stop()
            self.observer.join(timeout=5.0)
            logger.info("Hot folder watcher stopped")
