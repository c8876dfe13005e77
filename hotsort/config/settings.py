"""
Configuration Management System
===============================

Dataclass-based configuration with YAML file loading support.
Malformed values fall back to sensible defaults with a warning.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Any, Dict
import yaml
import logging

from hotsort.config.categories import ExtensionGroupMap, DEFAULT_EXT_GROUPS
from hotsort.utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class MoveMode(Enum):
    """How a committed file reaches its destination."""

    MOVE = "move"
    COPY = "copy"


class ConflictPolicy(Enum):
    """What to do when the planned destination already exists."""

    REPLACE = "replace"
    RENAME = "rename"
    SKIP = "skip"


def _parse_enum(enum_cls, value: Any, default, key: str):
    """Parse an enum value case-insensitively, falling back to a default."""
    if value is None or value == "":
        return default
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        logger.warning(f"Invalid value {value!r} for {key}, using {default.value!r}")
        return default


def _parse_float(value: Any, default: float, key: str) -> float:
    """Parse a float, falling back to a default."""
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid value {value!r} for {key}, using {default}")
        return default


def _parse_list(value: Any) -> List[str]:
    """Accept a list or a comma separated string."""
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(part).strip() for part in value if str(part).strip()]


def _optional_path(value: Any) -> Optional[Path]:
    """Expand ~ in a configured path, keeping blanks as None."""
    if value is None or str(value).strip() == "":
        return None
    return Path(str(value).strip()).expanduser()


@dataclass
class OrganizationConfig:
    """Target tree settings.

    Attributes:
        root_directory: Root of the organized tree. Relative roots are
            resolved against the working directory.
        db_path: Location of the item store database.
        project_lock: Project name forced onto every classified item.
    """
    root_directory: Optional[Path] = field(default_factory=lambda: Path.home() / "Organized")
    db_path: Path = field(default_factory=lambda: Path.home() / ".hotsort" / "items.db")
    project_lock: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrganizationConfig":
        """Create OrganizationConfig from dictionary."""
        if not data:
            return cls()

        defaults = cls()
        root = data.get("root_directory", defaults.root_directory)
        db_path = _optional_path(data.get("db_path")) or defaults.db_path
        lock = data.get("project_lock")

        return cls(
            root_directory=_optional_path(root),
            db_path=db_path,
            project_lock=str(lock).strip() if lock and str(lock).strip() else None,
        )


@dataclass
class ImportConfig:
    """Intake and transfer settings.

    Attributes:
        hot_folder: Directory watched for new files.
        move_mode: Move or copy on commit.
        overwrite_policy: Conflict policy when the destination exists.
        blacklist_exts: Extensions staged with the blacklist status.
        blacklist_folder_names: Folder names whose files are blacklisted.
        ext_group_map: Ordered group name -> extensions table.
    """
    hot_folder: Optional[Path] = None
    move_mode: MoveMode = MoveMode.MOVE
    overwrite_policy: ConflictPolicy = ConflictPolicy.RENAME
    blacklist_exts: List[str] = field(default_factory=lambda: ["tmp", "crdownload", "part"])
    blacklist_folder_names: List[str] = field(default_factory=lambda: [".git", "node_modules"])
    ext_group_map: ExtensionGroupMap = field(default_factory=ExtensionGroupMap)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImportConfig":
        """Create ImportConfig from dictionary."""
        if not data:
            return cls()

        defaults = cls()
        ext_groups = data.get("ext_group_map")
        if ext_groups is not None and not isinstance(ext_groups, dict):
            logger.warning("import.ext_group_map is not a mapping, using defaults")
            ext_groups = None

        return cls(
            hot_folder=_optional_path(data.get("hot_folder")),
            move_mode=_parse_enum(
                MoveMode, data.get("move_mode"), MoveMode.MOVE, "import.move_mode"
            ),
            overwrite_policy=_parse_enum(
                ConflictPolicy, data.get("overwrite_policy"),
                ConflictPolicy.RENAME, "import.overwrite_policy"
            ),
            blacklist_exts=(
                _parse_list(data["blacklist_exts"])
                if "blacklist_exts" in data else defaults.blacklist_exts
            ),
            blacklist_folder_names=(
                _parse_list(data["blacklist_folder_names"])
                if "blacklist_folder_names" in data else defaults.blacklist_folder_names
            ),
            ext_group_map=ExtensionGroupMap.from_mapping(ext_groups),
        )


@dataclass
class RoutingConfig:
    """Which folder segments make up a destination path, and in what order.

    Attributes:
        use_year: Include a ``yyyy`` segment.
        use_quarter: Include a ``Q1``..``Q4`` segment.
        use_month: Include an ``MM`` segment.
        use_week: Include an ISO week ``W01``..``W53`` segment.
        use_project: Include the project segment.
        use_category: Include the category segment.
        folder_order: Declared segment order.
    """
    use_year: bool = True
    use_quarter: bool = False
    use_month: bool = False
    use_week: bool = False
    use_project: bool = False
    use_category: bool = True
    folder_order: List[str] = field(default_factory=lambda: [
        "year", "quarter", "month", "week", "project", "category"
    ])

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoutingConfig":
        """Create RoutingConfig from dictionary."""
        if not data:
            return cls()
        defaults = cls()
        return cls(
            use_year=bool(data.get("use_year", defaults.use_year)),
            use_quarter=bool(data.get("use_quarter", defaults.use_quarter)),
            use_month=bool(data.get("use_month", defaults.use_month)),
            use_week=bool(data.get("use_week", defaults.use_week)),
            use_project=bool(data.get("use_project", defaults.use_project)),
            use_category=bool(data.get("use_category", defaults.use_category)),
            folder_order=(
                [s.lower() for s in _parse_list(data["folder_order"])]
                if data.get("folder_order") else defaults.folder_order
            ),
        )


@dataclass
class ClassificationConfig:
    """Classification settings.

    Attributes:
        confidence_threshold: Items below this confidence are tagged for review.
        custom_taxonomy: Preferred category labels, checked before any rule.
        ai_enabled: Whether to consult the LLM classifier.
        llm_model: Ollama model name for the LLM classifier.
    """
    confidence_threshold: float = 0.75
    custom_taxonomy: List[str] = field(default_factory=list)
    ai_enabled: bool = False
    llm_model: str = "llama3"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClassificationConfig":
        """Create ClassificationConfig from dictionary."""
        if not data:
            return cls()
        threshold = _parse_float(
            data.get("confidence_threshold"), cls.confidence_threshold,
            "classification.confidence_threshold"
        )
        return cls(
            confidence_threshold=min(max(threshold, 0.0), 1.0),
            custom_taxonomy=_parse_list(data.get("custom_taxonomy")),
            ai_enabled=bool(data.get("ai_enabled", cls.ai_enabled)),
            llm_model=data.get("llm_model", cls.llm_model),
        )


@dataclass
class WatcherConfig:
    """Hot folder watcher configuration.

    Attributes:
        ignore_patterns: Glob patterns for files to ignore.
        debounce_seconds: Wait time before processing a file event.
        recursive: Whether to watch and scan subdirectories.
        scan_interval: Seconds between full scans while watching.
        settle_timeout: Seconds to wait for a dropped file to stop changing.
        settle_interval: Seconds between settling checks.
    """
    ignore_patterns: List[str] = field(default_factory=lambda: [
        "*.tmp", "*.crdownload", "~$*", ".DS_Store", "Thumbs.db", "*.part"
    ])
    debounce_seconds: float = 1.0
    recursive: bool = True
    scan_interval: float = 0.0
    settle_timeout: float = 30.0
    settle_interval: float = 0.5

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WatcherConfig":
        """Create WatcherConfig from dictionary."""
        if not data:
            return cls()

        return cls(
            ignore_patterns=data.get("ignore_patterns", cls().ignore_patterns),
            debounce_seconds=_parse_float(
                data.get("debounce_seconds"), 1.0, "watcher.debounce_seconds"
            ),
            recursive=bool(data.get("recursive", True)),
            scan_interval=_parse_float(
                data.get("scan_interval"), 0.0, "watcher.scan_interval"
            ),
            settle_timeout=_parse_float(
                data.get("settle_timeout"), 30.0, "watcher.settle_timeout"
            ),
            settle_interval=_parse_float(
                data.get("settle_interval"), 0.5, "watcher.settle_interval"
            ),
        )


@dataclass
class Config:
    """Main configuration container.

    Aggregates all configuration sections and provides loading from YAML.
    The intake pipeline only reads it.
    """
    organization: OrganizationConfig = field(default_factory=OrganizationConfig)
    import_: ImportConfig = field(default_factory=ImportConfig)
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    classification: ClassificationConfig = field(default_factory=ClassificationConfig)
    watcher: WatcherConfig = field(default_factory=WatcherConfig)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """Load configuration from YAML file.

        Args:
            config_path: Path to the configuration file. If None, looks for
                        hotsort.yaml in the current directory.

        Returns:
            Config instance with loaded settings.

        Raises:
            ConfigurationError: If the file exists but cannot be read or parsed.
        """
        if config_path is None:
            config_path = Path("hotsort.yaml")

        if not config_path.exists():
            logger.warning(f"Config file not found at {config_path}, using defaults")
            return cls()

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse config file: {e}")
            raise ConfigurationError(
                f"Invalid YAML in {config_path}", details={"path": str(config_path)}, cause=e
            ) from e
        except OSError as e:
            logger.error(f"Failed to read config file: {e}")
            raise ConfigurationError(
                f"Cannot read {config_path}", details={"path": str(config_path)}, cause=e
            ) from e

        if not isinstance(data, dict):
            logger.warning(f"Config file {config_path} is not a mapping, using defaults")
            return cls()

        logger.info(f"Loaded configuration from {config_path}")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        return cls(
            organization=OrganizationConfig.from_dict(data.get("organization") or {}),
            import_=ImportConfig.from_dict(data.get("import") or {}),
            routing=RoutingConfig.from_dict(data.get("routing") or {}),
            classification=ClassificationConfig.from_dict(data.get("classification") or {}),
            watcher=WatcherConfig.from_dict(data.get("watcher") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the dictionary layout used in the YAML file."""
        org = self.organization
        imp = self.import_
        return {
            "organization": {
                "root_directory": str(org.root_directory) if org.root_directory else "",
                "db_path": str(org.db_path),
                "project_lock": org.project_lock or "",
            },
            "import": {
                "hot_folder": str(imp.hot_folder) if imp.hot_folder else "",
                "move_mode": imp.move_mode.value,
                "overwrite_policy": imp.overwrite_policy.value,
                "blacklist_exts": list(imp.blacklist_exts),
                "blacklist_folder_names": list(imp.blacklist_folder_names),
                "ext_group_map": imp.ext_group_map.to_dict() or dict(DEFAULT_EXT_GROUPS),
            },
            "routing": {
                "use_year": self.routing.use_year,
                "use_quarter": self.routing.use_quarter,
                "use_month": self.routing.use_month,
                "use_week": self.routing.use_week,
                "use_project": self.routing.use_project,
                "use_category": self.routing.use_category,
                "folder_order": list(self.routing.folder_order),
            },
            "classification": {
                "confidence_threshold": self.classification.confidence_threshold,
                "custom_taxonomy": list(self.classification.custom_taxonomy),
                "ai_enabled": self.classification.ai_enabled,
                "llm_model": self.classification.llm_model,
            },
            "watcher": {
                "ignore_patterns": list(self.watcher.ignore_patterns),
                "debounce_seconds": self.watcher.debounce_seconds,
                "recursive": self.watcher.recursive,
                "scan_interval": self.watcher.scan_interval,
                "settle_timeout": self.watcher.settle_timeout,
                "settle_interval": self.watcher.settle_interval,
            },
        }

    def save(self, config_path: Path) -> None:
        """Save configuration to YAML file.

        Args:
            config_path: Path where to save the configuration.
        """
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(
                self.to_dict(), f, default_flow_style=False,
                sort_keys=False, allow_unicode=True
            )

        logger.info(f"Saved configuration to {config_path}")
