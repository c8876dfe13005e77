"""
File Operations
===============

Physical copy and move of a committed item to its decided destination.
"""

import os
import shutil
from pathlib import Path
from typing import Optional, Union

from hotsort.config.settings import MoveMode
from hotsort.actions.conflict_resolver import ConflictDecision
from hotsort.utils.logging_config import get_logger
from hotsort.utils.exceptions import FileProcessingError, ErrorCode

logger = get_logger(__name__)


def same_path(a: Union[str, Path], b: Union[str, Path]) -> bool:
    """Compare two paths after normalization, ignoring case where the OS does."""
    first = os.path.normcase(os.path.normpath(os.path.abspath(str(a))))
    second = os.path.normcase(os.path.normpath(os.path.abspath(str(b))))
    return first == second


class FileTransfer:
    """Copies or moves files onto a resolved destination."""

    def __init__(self, mode: MoveMode = MoveMode.MOVE):
        """Initialize file transfer.

        Args:
            mode: Default transfer mode.
        """
        self.mode = mode

    def transfer(
        self,
        source: Union[str, Path],
        decision: ConflictDecision,
        mode: Optional[MoveMode] = None,
    ) -> Path:
        """Place ``source`` at the destination chosen by ``decision``.

        Args:
            source: Current file location.
            decision: Proceed or overwrite decision with a path.
            mode: Override default mode.

        Returns:
            Final path of the file.

        Raises:
            FileProcessingError: If the source is missing or the transfer fails.
        """
        source = Path(source)
        mode = mode or self.mode

        if decision.is_skip or decision.path is None:
            raise FileProcessingError(
                "Nothing to transfer for a skip decision", file_path=str(source)
            )
        dest_path = Path(decision.path)

        if not source.exists():
            raise FileProcessingError(
                "Source file does not exist",
                file_path=str(source),
                error_code=ErrorCode.FILE_NOT_FOUND
            )

        # A file placed onto itself stays where it is
        if same_path(source, dest_path):
            logger.debug(f"Already in place: {dest_path}")
            return dest_path

        dest_path.parent.mkdir(parents=True, exist_ok=True)

        if decision.is_overwrite:
            self._safe_delete(dest_path)

        try:
            if mode == MoveMode.COPY:
                shutil.copy2(str(source), str(dest_path))
                logger.info(f"Copied: {source.name} -> {dest_path}")
            else:
                shutil.move(str(source), str(dest_path))
                logger.info(f"Moved: {source.name} -> {dest_path}")
            return dest_path

        except (OSError, shutil.Error) as e:
            raise FileProcessingError(
                f"Failed to {mode.value} file: {e}",
                file_path=str(source),
                error_code=ErrorCode.TRANSFER_FAILED,
                cause=e,
            ) from e

    @staticmethod
    def _safe_delete(path: Path) -> None:
        """Remove an existing destination; failures are logged only."""
        try:
            if path.is_file():
                path.unlink()
        except OSError as e:
            logger.warning(f"Could not remove existing destination {path}: {e}")
