"""
Category Definitions
====================

Keyword tables, extension maps and extension groups used to
classify and route incoming files.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence


# Sentinel returned when no rule matches
FALLBACK_CATEGORY = "unsorted"

# Group used when an extension is missing from every extension group
DEFAULT_GROUP = "Others"

# Ordered: the first category with a matching keyword wins
KEYWORD_MAP: Dict[str, List[str]] = {
    "invoice": ["invoice", "發票", "收據", "receipt", "對帳"],
    "report": ["report", "報告", "週報", "月報", "年報"],
    "contract": ["contract", "合約", "agreement", "nda"],
    "resume": ["resume", "cv", "履歷"],
    "meeting": ["meeting", "會議", "紀錄", "minutes"],
    "spec": ["spec", "規格", "需求"],
    "design": ["design", "figma", "設計", "ui", "ux"],
    "planning": ["plan", "企劃", "規劃", "roadmap"],
    "finance": ["budget", "費用", "請款", "出納"],
    "legal": ["law", "法律", "條款", "授權"],
}

INVOICE_PATTERN = re.compile(r"(發票|invoice|receipt|收據)", re.IGNORECASE)

# Fixed extension -> category table, last resort before the fallback
EXTENSION_MAP: Dict[str, str] = {
    "pdf": "pdf",
    "doc": "word",
    "docx": "word",
    "ppt": "slides",
    "pptx": "slides",
    "xls": "excel",
    "xlsx": "excel",
    "csv": "excel",
    "png": "image",
    "jpg": "image",
    "jpeg": "image",
    "gif": "image",
    "mp3": "audio",
    "wav": "audio",
    "m4a": "audio",
    "mp4": "video",
    "mov": "video",
    "mkv": "video",
    "zip": "archive",
    "rar": "archive",
    "7z": "archive",
}

DEFAULT_EXT_GROUPS: Dict[str, List[str]] = {
    "Documents": ["pdf", "doc", "docx", "odt", "rtf", "txt", "md"],
    "Spreadsheets": ["xls", "xlsx", "ods", "csv"],
    "Presentations": ["ppt", "pptx", "odp", "key"],
    "Images": ["png", "jpg", "jpeg", "gif", "bmp", "webp", "heic", "svg", "tif", "tiff"],
    "Audio": ["mp3", "wav", "m4a", "flac", "aac", "ogg"],
    "Video": ["mp4", "mov", "mkv", "avi", "wmv", "webm"],
    "Archives": ["zip", "rar", "7z", "tar", "gz"],
    "Code": ["py", "js", "ts", "cs", "java", "c", "cpp", "h", "json", "xml", "yaml", "yml"],
}


def normalize_extension(extension: Optional[str]) -> str:
    """Return an extension lower-cased and without leading dots."""
    return (extension or "").strip().lstrip(".").lower()


@dataclass
class ExtensionGroupMap:
    """Ordered mapping of group name -> extensions.

    Lookups are case-insensitive and ignore leading dots on both sides.
    The first group listing an extension wins.
    """

    groups: Dict[str, List[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_EXT_GROUPS.items()}
    )
    default_group: str = DEFAULT_GROUP

    def __post_init__(self):
        """Normalize every extension once."""
        self.groups = {
            str(name): [normalize_extension(ext) for ext in exts if normalize_extension(ext)]
            for name, exts in self.groups.items()
        }

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Sequence[str]]]) -> "ExtensionGroupMap":
        """Build a group map, keeping the defaults for an empty mapping."""
        if not data:
            return cls()
        return cls(groups={name: list(exts or []) for name, exts in data.items()})

    def get_group(self, extension: Optional[str]) -> str:
        """Get the group name for an extension.

        Args:
            extension: Extension with or without the leading dot.

        Returns:
            Matching group name, or the default group.
        """
        ext = normalize_extension(extension)
        if not ext:
            return self.default_group
        for name, exts in self.groups.items():
            if ext in exts:
                return name
        return self.default_group

    def is_known(self, extension: Optional[str]) -> bool:
        """Check whether any group lists the extension."""
        return self.get_group(extension) != self.default_group

    def to_dict(self) -> Dict[str, List[str]]:
        """Convert to a plain dictionary."""
        return {name: list(exts) for name, exts in self.groups.items()}
