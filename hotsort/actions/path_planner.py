"""
Path Planner
============

Turns configuration and item metadata into a destination path:
``root / [segments...] / filename``.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from hotsort.actions.conflict_resolver import ConflictDecision, ConflictResolver
from hotsort.config.settings import Config, ConflictPolicy
from hotsort.storage.models import Item
from hotsort.utils.exceptions import ErrorCode, PlanningError
from hotsort.utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_FOLDER_ORDER = ("year", "quarter", "month", "week", "project", "category")

_INVALID_SEGMENT_CHARS = re.compile(r'[\\/:*?"<>|]')


def sanitize_segment(segment: Optional[str]) -> str:
    """Make a folder name safe on every platform.

    Reserved characters become ``_``, trailing dots and spaces are
    dropped, and an empty result becomes ``_``.
    """
    cleaned = _INVALID_SEGMENT_CHARS.sub("_", segment or "").rstrip(". ")
    return cleaned or "_"


def resolve_folder_order(folder_order: Optional[List[str]]) -> List[str]:
    """Keep known segment names in declared order, then append the missing ones."""
    order: List[str] = []
    for name in folder_order or []:
        key = str(name).strip().lower()
        if key in DEFAULT_FOLDER_ORDER and key not in order:
            order.append(key)
    order.extend(name for name in DEFAULT_FOLDER_ORDER if name not in order)
    return order


@dataclass
class PlannedPath:
    """A planned destination.

    Attributes:
        folder: Directory the file goes into.
        full_path: Folder joined with the filename.
    """
    folder: Path
    full_path: Path


class PathPlanner:
    """Plans destination paths from routing configuration."""

    def __init__(self, config: Config):
        """Initialize the planner.

        Args:
            config: Application configuration (read only).
        """
        self.config = config
        self.resolver = ConflictResolver(config.import_.overwrite_policy)

    def resolve_category(self, extension: Optional[str]) -> str:
        """Map an extension to its extension group, or ``Others``."""
        return self.config.import_.ext_group_map.get_group(extension)

    def root_directory(self) -> Path:
        """Return the target root, creating it when missing.

        Raises:
            PlanningError: If no root directory is configured.
        """
        root = self.config.organization.root_directory
        if root is None or str(root).strip() == "":
            raise PlanningError(
                "No root directory configured",
                error_code=ErrorCode.NO_ROOT_DIRECTORY,
            )

        root = Path(str(root).strip()).expanduser()
        if not root.is_absolute():
            root = Path.cwd() / root
        root.mkdir(parents=True, exist_ok=True)
        return root

    def plan(self, item: Item, locked_project: Optional[str] = None) -> PlannedPath:
        """Plan the destination of one item.

        Args:
            item: Item to place.
            locked_project: Project forced onto the item. The path starts
                at the project segment and drops the segments before it.

        Returns:
            PlannedPath with folder and full path.

        Raises:
            PlanningError: If there is no root or no filename.
        """
        filename = Path(item.filename or item.path or "").name
        if not filename:
            raise PlanningError("Item has no filename", file_path=item.path)

        root = self.root_directory()
        when = self._item_datetime(item)
        locked = (locked_project or "").strip()

        folder = root
        for name in self._segment_names(bool(locked)):
            value = self._segment_value(name, item, when, locked)
            folder = folder / sanitize_segment(value)

        return PlannedPath(folder=folder, full_path=folder / filename)

    def preview(self, item: Item, locked_project: Optional[str] = None) -> str:
        """Planned full path as a string, or "" when planning fails."""
        try:
            return str(self.plan(item, locked_project).full_path)
        except (PlanningError, OSError) as e:
            logger.debug(f"No preview for {item.filename or item.path}: {e}")
            return ""

    def resolve_conflict(
        self, path: Union[str, Path], policy: Optional[ConflictPolicy] = None
    ) -> ConflictDecision:
        """Resolve a collision at ``path`` with the configured or given policy."""
        return self.resolver.resolve(path, policy)

    def default_project(self, item: Item) -> str:
        """``{yyyy}{MM}`` of the item's creation time."""
        return self._item_datetime(item).strftime("%Y%m")

    def _segment_names(self, project_locked: bool) -> List[str]:
        routing = self.config.routing
        enabled = {
            "year": routing.use_year,
            "quarter": routing.use_quarter,
            "month": routing.use_month,
            "week": routing.use_week,
            "project": routing.use_project or project_locked,
            "category": routing.use_category,
        }
        order = resolve_folder_order(routing.folder_order)
        if project_locked:
            declared = [str(name).strip().lower() for name in routing.folder_order or []]
            if declared and "project" not in declared:
                return ["project"]
            # Segments declared before the project anchor are dropped
            order = order[order.index("project"):]
        return [name for name in order if enabled[name]]

    def _segment_value(self, name: str, item: Item, when: datetime, locked: str) -> str:
        if name == "year":
            return when.strftime("%Y")
        if name == "quarter":
            return f"Q{(when.month - 1) // 3 + 1}"
        if name == "month":
            return when.strftime("%m")
        if name == "week":
            return f"W{when.isocalendar()[1]:02d}"
        if name == "project":
            return locked or (item.project or "").strip() or when.strftime("%Y%m")
        return (item.category or "").strip() or self.resolve_category(item.ext)

    @staticmethod
    def _item_datetime(item: Item) -> datetime:
        if item.created_ts and item.created_ts > 0:
            return datetime.fromtimestamp(item.created_ts, tz=timezone.utc)
        return datetime.now(timezone.utc)
