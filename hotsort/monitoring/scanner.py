"""
Hot Folder Scanner
==================

One-shot reconciliation of the hot folder with the item store:
new files are staged, and rows for files that vanished from the hot
folder are dropped unless the item was already settled.
"""

import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Iterator, List

from hotsort.intake.pipeline import IntakePipeline
from hotsort.storage.models import ItemStatus, normalize_path
from hotsort.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class ScanResult:
    """Outcome of one scan.

    Attributes:
        seen: Files found on disk.
        staged: New files staged.
        removed: Rows deleted because their file vanished.
    """
    seen: int = 0
    staged: int = 0
    removed: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.staged or self.removed)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


class HotFolderScanner:
    """Scans a hot folder and reconciles it with the store."""

    def __init__(self, hot_folder: Path, pipeline: IntakePipeline, recursive: bool = True):
        """Initialize the scanner.

        Args:
            hot_folder: Directory to scan.
            pipeline: Intake pipeline (and through it, the store).
            recursive: Whether to descend into subdirectories.
        """
        self.hot_folder = Path(normalize_path(hot_folder)) if hot_folder else None
        self.pipeline = pipeline
        self.recursive = recursive

    def iter_files(self) -> Iterator[str]:
        """Yield normalized paths of the files currently in the hot folder."""
        if self.recursive:
            for dirpath, _dirnames, filenames in os.walk(self.hot_folder):
                for name in filenames:
                    yield os.path.join(dirpath, name)
        else:
            for entry in os.scandir(self.hot_folder):
                if entry.is_file():
                    yield entry.path

    def _is_under_hot_folder(self, path: str) -> bool:
        root = os.path.normcase(str(self.hot_folder))
        candidate = os.path.normcase(path)
        return candidate == root or candidate.startswith(root.rstrip(os.sep) + os.sep)

    def scan(self) -> ScanResult:
        """Stage new files and drop rows for unsettled files that are gone.

        Returns:
            ScanResult with counts.
        """
        result = ScanResult()
        if self.hot_folder is None or not self.hot_folder.is_dir():
            logger.warning(f"Hot folder not available: {self.hot_folder}")
            return result

        store = self.pipeline.store
        on_disk: List[str] = list(self.iter_files())
        result.seen = len(on_disk)

        known = {os.path.normcase(item.path) for item in store.try_get_by_paths(on_disk)}
        for path in on_disk:
            if os.path.normcase(path) in known:
                continue
            try:
                if self.pipeline.stage_only(path):
                    result.staged += 1
            except OSError as e:
                logger.warning(f"Could not stage {path}: {e}")

        disk_set = {os.path.normcase(path) for path in on_disk}
        vanished = [
            item.id
            for item in store.query_all()
            if item.path
            and item.status not in ItemStatus.SETTLED
            and self._is_under_hot_folder(item.path)
            and os.path.normcase(item.path) not in disk_set
            and not os.path.exists(item.path)
        ]
        if vanished:
            result.removed = store.delete_by_ids(vanished)

        if result.changed:
            logger.info(
                f"Scanned {self.hot_folder}: {result.staged} staged, {result.removed} removed"
            )
        return result
