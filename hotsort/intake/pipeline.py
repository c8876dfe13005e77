"""
Intake Pipeline
===============

Stage -> Classify -> Commit state machine for hot-folder items.

    inbox -> autosort-staging -> auto-sorted

Every step persists its result before returning, so an interrupted
run resumes from the last stored status.
"""

import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

from hotsort.actions.file_operations import FileTransfer, same_path
from hotsort.actions.path_planner import PathPlanner
from hotsort.classification.classifier import AIClassifier, Classifier
from hotsort.config.categories import normalize_extension
from hotsort.config.settings import Config
from hotsort.storage.item_store import ItemStore
from hotsort.storage.models import Item, ItemStatus, normalize_path, split_extension
from hotsort.utils.exceptions import FileProcessingError, PlanningError
from hotsort.utils.logging_config import Timer, batch_context, get_logger

logger = get_logger(__name__)

LOW_CONFIDENCE_TAG = "low-confidence"

# Confidence of extension-group placements
KNOWN_GROUP_CONFIDENCE = 0.8
UNKNOWN_GROUP_CONFIDENCE = 0.5

# Statuses classify_only may (re)classify
CLASSIFIABLE = (ItemStatus.INBOX, ItemStatus.STAGING, ItemStatus.ERROR)


@dataclass
class CommitReport:
    """Counts from one commit batch.

    Attributes:
        committed: Items placed in the target tree.
        skipped: Items left alone because the destination existed.
        failed: Items that hit an error (left staged, or marked error).
        resolved_missing: Items whose source vanished, marked auto-sorted.
        cancelled: Whether the batch stopped early.
    """
    committed: int = 0
    skipped: int = 0
    failed: int = 0
    resolved_missing: int = 0
    cancelled: bool = False

    @property
    def processed(self) -> int:
        return self.committed + self.skipped + self.failed + self.resolved_missing

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


def _is_cancelled(cancel: Optional[threading.Event]) -> bool:
    return cancel is not None and cancel.is_set()


class IntakePipeline:
    """Drives items from raw files to their place in the target tree.

    Collaborators are injected; any left out is built from the
    configuration.
    """

    def __init__(
        self,
        config: Config,
        store: ItemStore,
        classifier: Optional[Classifier] = None,
        planner: Optional[PathPlanner] = None,
        ai_classifier: Optional[AIClassifier] = None,
        transfer: Optional[FileTransfer] = None,
    ):
        """Initialize the pipeline.

        Args:
            config: Application configuration (read only).
            store: Item store.
            classifier: Classification chain.
            planner: Path planner.
            ai_classifier: Optional AI classifier passed to the chain.
            transfer: File transfer used on commit.
        """
        self.config = config
        self.store = store
        self.classifier = classifier or Classifier()
        self.planner = planner or PathPlanner(config)
        self.ai_classifier = ai_classifier
        self.transfer = transfer or FileTransfer(config.import_.move_mode)

    @property
    def locked_project(self) -> Optional[str]:
        lock = (self.config.organization.project_lock or "").strip()
        return lock or None

    # ------------------------------------------------------------------
    # Stage
    # ------------------------------------------------------------------

    def is_blacklisted(self, path: Union[str, Path]) -> bool:
        """Check a path against the blacklisted extensions and folder names."""
        path = Path(path)
        import_cfg = self.config.import_

        blocked_exts = {normalize_extension(ext) for ext in import_cfg.blacklist_exts}
        if split_extension(path.name) in blocked_exts - {""}:
            return True

        blocked_folders = {
            name.strip().casefold() for name in import_cfg.blacklist_folder_names if name.strip()
        }
        return any(part.casefold() in blocked_folders for part in path.parent.parts)

    def stage_only(
        self, path: Union[str, Path], cancel: Optional[threading.Event] = None
    ) -> bool:
        """Record a file in the store without touching it.

        New rows start as ``inbox`` (or ``blacklist``); an existing row for
        the same path keeps its id, creation time and pipeline status.

        Args:
            path: File to stage.
            cancel: Cooperative cancellation signal.

        Returns:
            True if the file was staged.
        """
        if _is_cancelled(cancel):
            return False

        normalized = normalize_path(path)
        if not normalized:
            return False

        source = Path(normalized)
        if source.name.startswith("."):
            return False
        if not source.is_file():
            return False

        existing = self.store.try_get_by_path(normalized)
        if existing is None:
            try:
                item = Item(created_ts=self._creation_ts(source))
            except OSError as e:
                logger.debug(f"{source.name} vanished while staging: {e}")
                return False
        else:
            item = existing
        item.path = normalized
        item.filename = source.name
        item.ext = split_extension(source.name)

        if self.is_blacklisted(source):
            item.status = ItemStatus.BLACKLIST
            item.proposed_path = ""
        else:
            if existing is None or existing.status == ItemStatus.BLACKLIST:
                item.status = ItemStatus.INBOX
            item.proposed_path = self.planner.preview(item, self.locked_project)

        self.store.upsert(item)
        logger.debug(
            f"Staged {source.name} as {item.status}",
            extra={"file_path": normalized, "status": item.status},
        )
        return True

    @staticmethod
    def _creation_ts(path: Path) -> int:
        stat = path.stat()
        return int(getattr(stat, "st_birthtime", 0) or stat.st_mtime)

    # ------------------------------------------------------------------
    # Classify
    # ------------------------------------------------------------------

    def classify_only(
        self, path: Union[str, Path], cancel: Optional[threading.Event] = None
    ) -> bool:
        """Predict category and project for one file, staging it first if needed.

        Blacklisted and already placed items are left alone.

        Args:
            path: File to classify.
            cancel: Cooperative cancellation signal.

        Returns:
            True if the item is now ``autosort-staging``.
        """
        if _is_cancelled(cancel):
            return False

        normalized = normalize_path(path)
        if not normalized:
            return False

        item = self.store.try_get_by_path(normalized)
        if item is None:
            if not self.stage_only(normalized, cancel):
                return False
            item = self.store.try_get_by_path(normalized)
            if item is None:
                return False

        if item.status not in CLASSIFIABLE:
            logger.debug(f"Not classifying {item.filename}: status {item.status}")
            return False

        self._classify_item(item)
        return True

    def _classify_item(self, item: Item) -> None:
        classification = self.config.classification
        locked = self.locked_project

        result = self.classifier.resolve(
            item.filename,
            item.ext,
            taxonomy=classification.custom_taxonomy,
            ai_classifier=self.ai_classifier,
        )
        if result.is_semantic:
            item.category = result.category
            confidence = result.confidence
        else:
            item.category = self.planner.resolve_category(item.ext)
            if self.config.import_.ext_group_map.is_known(item.ext):
                confidence = KNOWN_GROUP_CONFIDENCE
            else:
                confidence = UNKNOWN_GROUP_CONFIDENCE

        item.project = locked or (item.project or "").strip() or self.planner.default_project(item)
        item.confidence = confidence

        if confidence < classification.confidence_threshold:
            item.add_tag(LOW_CONFIDENCE_TAG)
        else:
            item.remove_tag(LOW_CONFIDENCE_TAG)

        item.proposed_path = self.planner.preview(item, locked)
        item.status = ItemStatus.STAGING
        self.store.upsert(item)

        logger.info(
            f"Classified {item.filename} -> {item.category} "
            f"({result.source}, {confidence:.2f})",
            extra={"file_path": item.path, "status": item.status},
        )

    def classify_inbox(self, cancel: Optional[threading.Event] = None) -> int:
        """Classify every ``inbox`` item.

        Returns:
            Number of items classified.
        """
        classified = 0
        with batch_context("classify"):
            for item in self.store.query_by_status(ItemStatus.INBOX):
                if _is_cancelled(cancel):
                    break
                try:
                    if self.classify_only(item.path, cancel):
                        classified += 1
                except Exception as e:
                    logger.error(
                        f"Failed to classify {item.path}: {e}",
                        extra={"item_id": item.id, "file_path": item.path},
                    )
        return classified

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def commit_pending(self, cancel: Optional[threading.Event] = None) -> int:
        """Commit every staged item.

        Returns:
            Number of items placed in the target tree.
        """
        return self.commit_pending_report(cancel).committed

    def commit_pending_report(self, cancel: Optional[threading.Event] = None) -> CommitReport:
        """Move or copy every ``autosort-staging`` item to its planned place.

        One item failing never stops the batch. Cancellation is checked
        between items.

        Args:
            cancel: Cooperative cancellation signal.

        Returns:
            CommitReport with per-outcome counts.
        """
        report = CommitReport()
        if _is_cancelled(cancel):
            report.cancelled = True
            return report

        with batch_context("commit"), Timer(logger, "commit_pending"):
            for item in self.store.query_by_status(ItemStatus.STAGING):
                if _is_cancelled(cancel):
                    report.cancelled = True
                    break
                try:
                    self._commit_item(item, report)
                except Exception as e:
                    logger.error(
                        f"Failed to commit {item.filename}: {e}",
                        extra={"item_id": item.id, "file_path": item.path},
                    )
                    report.failed += 1

            logger.info(
                f"Commit finished: {report.committed} committed, {report.skipped} skipped, "
                f"{report.failed} failed, {report.resolved_missing} missing"
            )
        return report

    def _commit_item(self, item: Item, report: CommitReport) -> None:
        import_cfg = self.config.import_
        source = Path(item.path) if item.path else None

        if source is None or not source.is_file():
            logger.warning(f"Source gone, marking as sorted: {item.path}")
            item.status = ItemStatus.AUTO_SORTED
            self.store.upsert(item)
            report.resolved_missing += 1
            return

        try:
            planned = self.planner.plan(item, self.locked_project)
        except PlanningError as e:
            logger.error(f"Cannot plan {item.filename}: {e}", extra={"file_path": item.path})
            item.status = ItemStatus.ERROR
            self.store.upsert(item)
            report.failed += 1
            return

        try:
            if same_path(source, planned.full_path):
                final_path = planned.full_path
            else:
                decision = self.planner.resolve_conflict(
                    planned.full_path, import_cfg.overwrite_policy
                )
                if decision.is_skip:
                    report.skipped += 1
                    return
                final_path = self.transfer.transfer(source, decision, import_cfg.move_mode)
        except (FileProcessingError, OSError) as e:
            logger.error(
                f"Failed to commit {item.filename}: {e}",
                extra={"file_path": item.path, "status": item.status},
            )
            report.failed += 1
            return

        item.path = str(final_path)
        item.proposed_path = str(final_path)
        item.filename = Path(final_path).name
        item.status = ItemStatus.AUTO_SORTED
        self.store.upsert(item)
        report.committed += 1

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def reset_to_inbox(self, item_ids: Iterable[int]) -> int:
        """Send items back to ``inbox``.

        Returns:
            Number of items reset.
        """
        return self.store.reset_status(item_ids, ItemStatus.INBOX)
