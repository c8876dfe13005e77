"""
Conflict Resolver
=================

Decides what happens when a planned destination already exists.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from hotsort.config.settings import ConflictPolicy
from hotsort.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class ConflictDecision:
    """Outcome of conflict resolution.

    Attributes:
        action: 'proceed', 'overwrite' or 'skip'.
        path: Final destination, None when skipping.
    """
    action: str
    path: Optional[Path]

    @property
    def is_skip(self) -> bool:
        return self.action == "skip"

    @property
    def is_overwrite(self) -> bool:
        return self.action == "overwrite"


def unique_name(path: Path) -> Path:
    """Return the first free ``name (n).ext`` next to ``path``.

    Args:
        path: Occupied destination path.

    Returns:
        Available path with a counter suffix.
    """
    stem = path.stem
    suffix = path.suffix
    parent = path.parent

    counter = 1
    while True:
        candidate = parent / f"{stem} ({counter}){suffix}"
        if not candidate.exists():
            return candidate
        counter += 1


class ConflictResolver:
    """Resolves destination collisions with a configured policy."""

    def __init__(self, policy: ConflictPolicy = ConflictPolicy.RENAME):
        """Initialize conflict resolver.

        Args:
            policy: Default conflict policy.
        """
        self.policy = policy

    def resolve(
        self, dest_path: Union[str, Path], policy: Optional[ConflictPolicy] = None
    ) -> ConflictDecision:
        """Resolve a possible collision at ``dest_path``.

        Args:
            dest_path: Planned destination.
            policy: Override default policy.

        Returns:
            ConflictDecision. A free destination always proceeds unchanged.
        """
        dest_path = Path(dest_path)
        policy = policy or self.policy

        if not dest_path.exists():
            return ConflictDecision("proceed", dest_path)

        if policy == ConflictPolicy.SKIP:
            logger.info(f"Skipping (exists): {dest_path}")
            return ConflictDecision("skip", None)

        if policy == ConflictPolicy.REPLACE:
            logger.info(f"Overwriting: {dest_path}")
            return ConflictDecision("overwrite", dest_path)

        new_path = unique_name(dest_path)
        logger.debug(f"Renaming on conflict: {dest_path.name} -> {new_path.name}")
        return ConflictDecision("proceed", new_path)


def resolve_conflict(
    dest_path: Union[str, Path], policy: ConflictPolicy = ConflictPolicy.RENAME
) -> ConflictDecision:
    """Resolve a collision with a one-off policy."""
    return ConflictResolver(policy).resolve(dest_path)
