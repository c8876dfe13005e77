"""
Custom Exceptions
=================

Every hotsort error carries an ErrorCode, a details dict and, when it wraps
another exception, that exception as ``cause``.
"""

from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """Error codes for programmatic error handling."""

    UNKNOWN_ERROR = 1000
    CONFIGURATION_ERROR = 1001
    FILE_NOT_FOUND = 1002

    # File transfer (11xx)
    PROCESSING_FAILED = 1100
    TRANSFER_FAILED = 1101

    # Classification (12xx)
    CLASSIFICATION_FAILED = 1200
    LLM_UNAVAILABLE = 1201

    # Item store (13xx)
    STORE_FAILED = 1300
    SCHEMA_UPGRADE_FAILED = 1301

    # Path planning (14xx)
    PLANNING_FAILED = 1400
    NO_ROOT_DIRECTORY = 1401


class HotsortError(Exception):
    """Base exception for all hotsort errors.

    Attributes:
        message: Human-readable error message.
        error_code: Programmatic error code.
        details: Additional error context.
        cause: Original exception that caused this error.
    """

    default_code = ErrorCode.UNKNOWN_ERROR
    # Name of the keyword argument folded into ``details``
    context_key: Optional[str] = None

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        details: Optional[dict] = None,
        cause: Optional[Exception] = None,
        **context
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = dict(details or {})
        self.cause = cause

        value = context.pop(self.context_key, None) if self.context_key else None
        if context:
            raise TypeError(f"Unexpected arguments for {type(self).__name__}: {sorted(context)}")
        if value:
            self.details[self.context_key] = value

    def __str__(self) -> str:
        result = f"[{self.error_code.name}] {self.message}"
        if self.details:
            result += f" | Details: {self.details}"
        if self.cause:
            result += f" | Caused by: {type(self.cause).__name__}: {self.cause}"
        return result

    def to_dict(self) -> dict:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "error_code": self.error_code.value,
            "error_name": self.error_code.name,
            "details": self.details,
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(HotsortError):
    """The configuration file cannot be read or parsed."""

    default_code = ErrorCode.CONFIGURATION_ERROR
    context_key = "config_key"


class FileProcessingError(HotsortError):
    """A file cannot be copied or moved.

    Examples:
        - Source file vanished
        - Destination is not writable
    """

    default_code = ErrorCode.PROCESSING_FAILED
    context_key = "file_path"


class ClassificationError(HotsortError):
    """An AI classifier could not produce a label."""

    default_code = ErrorCode.CLASSIFICATION_FAILED
    context_key = "filename"


class StoreError(HotsortError):
    """The item store cannot execute a query or command."""

    default_code = ErrorCode.STORE_FAILED
    context_key = "operation"


class PlanningError(HotsortError):
    """No destination can be planned for an item."""

    default_code = ErrorCode.PLANNING_FAILED
    context_key = "file_path"
