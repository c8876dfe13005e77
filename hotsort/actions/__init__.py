"""Actions module for planning and placing files."""

from .conflict_resolver import ConflictDecision, ConflictResolver, resolve_conflict
from .file_operations import FileTransfer
from .path_planner import PathPlanner, PlannedPath, sanitize_segment

__all__ = [
    "ConflictDecision",
    "ConflictResolver",
    "resolve_conflict",
    "FileTransfer",
    "PathPlanner",
    "PlannedPath",
    "sanitize_segment",
]
