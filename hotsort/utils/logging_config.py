"""
Logging Configuration
=====================

Console and rotating JSON file logging for hotsort. Records emitted while a
stage, classify or commit batch runs are stamped with that batch's id so a
single commit can be followed through the log file.
"""

import json
import logging
import logging.handlers
import sys
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional


ROOT_LOGGER_NAME = "hotsort"
LOG_FILE_NAME = "hotsort.log"

# Record attributes copied into JSON output when present
ITEM_FIELDS = ("item_id", "file_path", "status", "operation", "duration_ms")

_batch = threading.local()


def current_batch() -> Optional[str]:
    """Id of the batch running on this thread, if any."""
    return getattr(_batch, "id", None)


@contextmanager
def batch_context(operation: str) -> Iterator[str]:
    """Tag log records on this thread with a fresh batch id.

    Nested batches reuse the outer id.

    Args:
        operation: Batch kind, e.g. ``"commit"``. Prefixes the id.

    Yields:
        The active batch id.
    """
    outer = current_batch()
    if outer is not None:
        yield outer
        return

    _batch.id = f"{operation}-{uuid.uuid4().hex[:6]}"
    try:
        yield _batch.id
    finally:
        _batch.id = None


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for the log file."""

    def format(self, record: logging.LogRecord) -> str:
        data = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        batch = current_batch()
        if batch:
            data["batch"] = batch
        for key in ITEM_FIELDS:
            if hasattr(record, key):
                data[key] = getattr(record, key)
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """Short colored lines for the terminal."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        level = f"{record.levelname:8}"
        if self.use_color:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"

        batch = current_batch()
        prefix = f"[{stamp}] {level} " + (f"({batch}) " if batch else "")
        msg = f"{prefix}{record.name}: {record.getMessage()}"
        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)
        return msg


@dataclass
class LoggingConfig:
    """Configuration for the logging system."""
    level: str = "INFO"
    log_dir: Optional[Path] = field(default_factory=lambda: Path.home() / ".hotsort" / "logs")
    console_output: bool = True
    max_file_size: int = 5 * 1024 * 1024
    backup_count: int = 3


def setup_logging(config: Optional[LoggingConfig] = None) -> logging.Logger:
    """Install handlers on the ``hotsort`` logger.

    A ``log_dir`` of None disables the file handler.

    Returns:
        The configured root hotsort logger.
    """
    config = config or LoggingConfig()

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(getattr(logging, config.level.upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    if config.console_output:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(ConsoleFormatter(use_color=sys.stdout.isatty()))
        root.addHandler(console)

    if config.log_dir is not None:
        log_dir = Path(config.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            maxBytes=config.max_file_size,
            backupCount=config.backup_count,
            encoding='utf-8',
        )
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)

    root.propagate = False
    return root


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific module.

    Args:
        name: Name of the module (typically __name__).

    Returns:
        Logger instance under the hotsort namespace.
    """
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


class Timer:
    """Times a block and logs its duration at DEBUG, or INFO when slow."""

    def __init__(self, logger: logging.Logger, operation: str, slow_ms: float = 1000.0):
        self.logger = logger
        self.operation = operation
        self.slow_ms = slow_ms
        self.start_time = 0.0
        self.duration_ms = 0.0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = round((time.perf_counter() - self.start_time) * 1000, 2)
        level = logging.INFO if self.duration_ms >= self.slow_ms else logging.DEBUG
        self.logger.log(
            level,
            f"{self.operation} took {self.duration_ms} ms",
            extra={"operation": self.operation, "duration_ms": self.duration_ms},
        )
        return False
