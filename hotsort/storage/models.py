"""
Item Model
==========

The unit of work tracked by the item store, and the helpers that keep
its persisted fields normalized.
"""

import os
import re
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Iterable, List, Optional, Union


class ItemStatus:
    """Pipeline states of an item."""

    INBOX = "inbox"
    STAGING = "autosort-staging"
    AUTO_SORTED = "auto-sorted"
    COMMITTED = "committed"
    BLACKLIST = "blacklist"
    ERROR = "error"

    ALL = (INBOX, STAGING, AUTO_SORTED, COMMITTED, BLACKLIST, ERROR)

    # Rows the hot folder scanner never removes
    SETTLED = (AUTO_SORTED, COMMITTED, BLACKLIST)


_TAG_SEPARATORS = re.compile(r"[,;|]")


def normalize_tags(tags: Union[str, Iterable[str], None]) -> List[str]:
    """Split, trim and dedupe tags case-insensitively.

    Args:
        tags: Delimited string (``,`` ``;`` ``|``) or iterable of tags.

    Returns:
        Tags in first-seen order without blanks or case duplicates.
    """
    if tags is None:
        return []
    if isinstance(tags, str):
        parts = _TAG_SEPARATORS.split(tags)
    else:
        parts = []
        for tag in tags:
            parts.extend(_TAG_SEPARATORS.split(str(tag)))

    seen = set()
    result = []
    for part in parts:
        tag = part.strip()
        key = tag.casefold()
        if not tag or key in seen:
            continue
        seen.add(key)
        result.append(tag)
    return result


def join_tags(tags: Union[str, Iterable[str], None]) -> str:
    """Normalize tags and join them into the persisted form."""
    return ",".join(normalize_tags(tags))


def clamp_confidence(value: Optional[float]) -> float:
    """Clamp a confidence into [0, 1]; unusable values become 0."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if value != value:  # NaN
        return 0.0
    return min(max(value, 0.0), 1.0)


def normalize_path(path: Union[str, Path, None]) -> str:
    """Return an absolute, normalized path string ("" for blanks)."""
    if path is None or str(path).strip() == "":
        return ""
    return os.path.normpath(os.path.abspath(os.path.expanduser(str(path))))


def split_extension(filename: str) -> str:
    """Lower-cased extension of a filename, without the dot."""
    return Path(filename).suffix.lstrip(".").lower()


@dataclass
class Item:
    """A file tracked through the intake pipeline.

    Attributes:
        id: Surrogate key, assigned on first persistence.
        path: Current on-disk location.
        filename: File name including extension.
        ext: Lower-cased extension without the dot.
        project: Logical grouping label.
        category: Classifier output.
        tags: Short labels, unique ignoring case.
        confidence: Classifier confidence in [0, 1].
        status: One of the ItemStatus values.
        created_ts: Epoch seconds, set once.
        proposed_path: Planned destination preview.
    """
    path: str = ""
    id: Optional[int] = None
    filename: str = ""
    ext: str = ""
    project: str = ""
    category: str = ""
    tags: List[str] = field(default_factory=list)
    confidence: float = 0.0
    status: str = ItemStatus.INBOX
    created_ts: int = 0
    proposed_path: str = ""

    def fill_derived(self) -> None:
        """Back-fill filename and extension from the path when blank."""
        if not self.filename and self.path:
            self.filename = Path(self.path).name
        if not self.ext and self.filename:
            self.ext = split_extension(self.filename)
        self.ext = self.ext.lstrip(".").lower()

    @property
    def stem(self) -> str:
        """Filename without its extension."""
        return Path(self.filename or self.path).stem

    def has_tag(self, tag: str) -> bool:
        """Check for a tag, ignoring case."""
        key = tag.strip().casefold()
        return any(t.casefold() == key for t in self.tags)

    def add_tag(self, tag: str) -> None:
        """Add a tag unless it is already present."""
        self.tags = normalize_tags(list(self.tags) + [tag])

    def remove_tag(self, tag: str) -> None:
        """Remove a tag, ignoring case."""
        key = tag.strip().casefold()
        self.tags = [t for t in self.tags if t.casefold() != key]

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)

    def __str__(self) -> str:
        return f"{self.filename} ({self.status})"
