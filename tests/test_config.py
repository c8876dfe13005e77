"""
Unit tests for configuration module.
"""

import pytest
from pathlib import Path
import yaml

from hotsort.config.settings import (
    Config,
    ConflictPolicy,
    ImportConfig,
    MoveMode,
    OrganizationConfig,
    RoutingConfig,
    ClassificationConfig,
    WatcherConfig,
)
from hotsort.config.categories import ExtensionGroupMap, DEFAULT_GROUP
from hotsort.utils.exceptions import ConfigurationError, ErrorCode


class TestImportConfig:
    """Tests for ImportConfig."""

    def test_default_values(self):
        """Test default intake settings."""
        config = ImportConfig()

        assert config.move_mode == MoveMode.MOVE
        assert config.overwrite_policy == ConflictPolicy.RENAME
        assert "tmp" in config.blacklist_exts
        assert config.hot_folder is None

    def test_from_dict(self):
        """Test creation from dictionary."""
        config = ImportConfig.from_dict({
            "hot_folder": "~/Inbox",
            "move_mode": "COPY",
            "overwrite_policy": "skip",
            "blacklist_exts": "log, bak",
        })

        assert config.hot_folder == Path.home() / "Inbox"
        assert config.move_mode == MoveMode.COPY
        assert config.overwrite_policy == ConflictPolicy.SKIP
        assert config.blacklist_exts == ["log", "bak"]

    def test_invalid_enum_falls_back(self):
        """Test unknown policy values fall back to defaults."""
        config = ImportConfig.from_dict({"move_mode": "teleport", "overwrite_policy": "merge"})

        assert config.move_mode == MoveMode.MOVE
        assert config.overwrite_policy == ConflictPolicy.RENAME


class TestOrganizationConfig:
    """Tests for OrganizationConfig."""

    def test_blank_root_is_none(self):
        """Test a blank root directory is kept as missing."""
        config = OrganizationConfig.from_dict({"root_directory": "  "})

        assert config.root_directory is None

    def test_project_lock(self):
        """Test the project lock is trimmed."""
        config = OrganizationConfig.from_dict({"project_lock": " Apollo "})

        assert config.project_lock == "Apollo"


class TestRoutingConfig:
    """Tests for RoutingConfig."""

    def test_default_values(self):
        """Test default routing is year then category."""
        config = RoutingConfig()

        assert config.use_year is True
        assert config.use_category is True
        assert config.use_month is False
        assert config.folder_order[0] == "year"

    def test_folder_order_from_string(self):
        """Test folder order accepts a comma separated string."""
        config = RoutingConfig.from_dict({"folder_order": "Category, Year"})

        assert config.folder_order == ["category", "year"]


class TestClassificationConfig:
    """Tests for ClassificationConfig."""

    def test_default_values(self):
        """Test default classification settings."""
        config = ClassificationConfig()

        assert config.confidence_threshold == 0.75
        assert config.ai_enabled is False
        assert config.llm_model == "llama3"

    def test_threshold_is_clamped(self):
        """Test out of range thresholds are clamped."""
        assert ClassificationConfig.from_dict({"confidence_threshold": 4}).confidence_threshold == 1.0
        assert ClassificationConfig.from_dict({"confidence_threshold": -1}).confidence_threshold == 0.0

    def test_invalid_threshold_uses_default(self):
        """Test a non-numeric threshold keeps the default."""
        config = ClassificationConfig.from_dict({"confidence_threshold": "high"})

        assert config.confidence_threshold == 0.75


class TestConfig:
    """Tests for main Config class."""

    def test_default_config(self):
        """Test default configuration."""
        config = Config()

        assert isinstance(config.import_, ImportConfig)
        assert isinstance(config.routing, RoutingConfig)
        assert isinstance(config.watcher, WatcherConfig)

    def test_load_from_file(self, tmp_path):
        """Test loading configuration from YAML file."""
        path = tmp_path / "hotsort.yaml"
        path.write_text(yaml.safe_dump({
            "import": {"move_mode": "copy"},
            "routing": {"use_month": True},
            "classification": {"custom_taxonomy": ["Apollo", "Zephyr"]},
        }), encoding="utf-8")

        config = Config.load(path)

        assert config.import_.move_mode == MoveMode.COPY
        assert config.routing.use_month is True
        assert config.classification.custom_taxonomy == ["Apollo", "Zephyr"]

    def test_load_missing_file(self):
        """Test loading from non-existent file returns defaults."""
        config = Config.load(Path("/nonexistent/hotsort.yaml"))

        assert config.watcher.debounce_seconds == 1.0

    def test_load_invalid_yaml(self, tmp_path):
        """Test unparsable YAML raises ConfigurationError."""
        path = tmp_path / "broken.yaml"
        path.write_text("import: [unclosed", encoding="utf-8")

        with pytest.raises(ConfigurationError) as exc_info:
            Config.load(path)

        assert exc_info.value.error_code == ErrorCode.CONFIGURATION_ERROR

    def test_save_and_reload(self, tmp_path):
        """Test a saved configuration loads back unchanged."""
        config = Config()
        config.import_.overwrite_policy = ConflictPolicy.SKIP
        config.organization.project_lock = "Apollo"
        path = tmp_path / "nested" / "hotsort.yaml"

        config.save(path)
        loaded = Config.load(path)

        assert loaded.import_.overwrite_policy == ConflictPolicy.SKIP
        assert loaded.organization.project_lock == "Apollo"
        assert loaded.import_.ext_group_map.to_dict() == config.import_.ext_group_map.to_dict()


class TestExtensionGroupMap:
    """Tests for ExtensionGroupMap."""

    def test_known_extensions(self):
        """Test default groups."""
        groups = ExtensionGroupMap()

        assert groups.get_group("pdf") == "Documents"
        assert groups.get_group("xlsx") == "Spreadsheets"

    def test_case_and_dot_insensitive(self):
        """Test lookups ignore case and leading dots on both sides."""
        groups = ExtensionGroupMap.from_mapping({"Docs": [".PDF"]})

        assert groups.get_group(".pdf") == "Docs"
        assert groups.get_group("PDF") == "Docs"

    def test_unknown_extension(self):
        """Test unknown extensions fall into the default group."""
        groups = ExtensionGroupMap()

        assert groups.get_group("xyz") == DEFAULT_GROUP
        assert groups.get_group("") == DEFAULT_GROUP
        assert groups.is_known("xyz") is False

    def test_first_group_wins(self):
        """Test the first group listing an extension wins."""
        groups = ExtensionGroupMap.from_mapping({"A": ["txt"], "B": ["txt"]})

        assert groups.get_group("txt") == "A"
