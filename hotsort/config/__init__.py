"""Configuration module for hotsort."""

from .settings import (
    Config,
    OrganizationConfig,
    ImportConfig,
    RoutingConfig,
    ClassificationConfig,
    WatcherConfig,
    MoveMode,
    ConflictPolicy,
)
from .categories import ExtensionGroupMap, FALLBACK_CATEGORY, DEFAULT_GROUP

__all__ = [
    "Config",
    "OrganizationConfig",
    "ImportConfig",
    "RoutingConfig",
    "ClassificationConfig",
    "WatcherConfig",
    "MoveMode",
    "ConflictPolicy",
    "ExtensionGroupMap",
    "FALLBACK_CATEGORY",
    "DEFAULT_GROUP",
]
