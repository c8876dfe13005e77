"""Utilities module for hotsort."""

from .logging_config import setup_logging, get_logger, LoggingConfig, Timer
from .exceptions import (
    ErrorCode,
    HotsortError,
    ConfigurationError,
    FileProcessingError,
    ClassificationError,
    StoreError,
    PlanningError,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "LoggingConfig",
    "Timer",
    "ErrorCode",
    "HotsortError",
    "ConfigurationError",
    "FileProcessingError",
    "ClassificationError",
    "StoreError",
    "PlanningError",
]
