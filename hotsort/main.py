"""
hotsort - Main Application
==========================

Command line entry point. Wires configuration, the item store, the
intake pipeline and the hot folder monitors together.
"""

import json
import signal
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional

from hotsort.config import Config
from hotsort.classification import Classifier, OllamaClassifier
from hotsort.actions import PathPlanner, FileTransfer
from hotsort.intake import IntakePipeline, CommitReport
from hotsort.monitoring import HotFolderWatcher, HotFolderScanner, ScanResult
from hotsort.storage import ItemStore, ItemStatus
from hotsort.utils import HotsortError, setup_logging, get_logger, LoggingConfig

logger = get_logger(__name__)


class HotSort:
    """Main orchestrator.

    Owns the store and the pipeline built from one configuration.
    """

    def __init__(self, config: Config):
        """Initialize hotsort.

        Args:
            config: Loaded configuration.
        """
        self.config = config
        self.store = ItemStore(config.organization.db_path)
        self.cancel_event = threading.Event()
        self._init_components()

    def _init_components(self) -> None:
        """Build the pipeline collaborators."""
        classification = self.config.classification

        ai_classifier = None
        if classification.ai_enabled:
            ai_classifier = OllamaClassifier(model=classification.llm_model)
            if not ai_classifier.is_available():
                logger.warning(f"LLM model '{classification.llm_model}' not available, using rules only")
                ai_classifier = None

        self.pipeline = IntakePipeline(
            self.config,
            self.store,
            classifier=Classifier(),
            planner=PathPlanner(self.config),
            ai_classifier=ai_classifier,
            transfer=FileTransfer(self.config.import_.move_mode),
        )

        hot_folder = self.config.import_.hot_folder
        self.scanner = (
            HotFolderScanner(hot_folder, self.pipeline, recursive=self.config.watcher.recursive)
            if hot_folder else None
        )
        self.watcher = (
            HotFolderWatcher(hot_folder, self.config.watcher, self.pipeline)
            if hot_folder else None
        )

    def stage(self, paths: List[str]) -> int:
        """Stage files; returns how many were staged."""
        return sum(1 for path in paths if self.pipeline.stage_only(path, self.cancel_event))

    def classify(self) -> int:
        return self.pipeline.classify_inbox(self.cancel_event)

    def commit(self) -> CommitReport:
        return self.pipeline.commit_pending_report(self.cancel_event)

    def scan(self) -> ScanResult:
        if self.scanner is None:
            raise HotsortError("No hot folder configured (import.hot_folder)")
        return self.scanner.scan()

    def watch(self) -> None:
        """Watch the hot folder until stopped.

        Raises:
            HotsortError: If no hot folder is configured.
        """
        if self.watcher is None:
            raise HotsortError("No hot folder configured (import.hot_folder)")

        self.scan()
        self.watcher.start()
        interval = self.config.watcher.scan_interval
        logger.info("hotsort is watching. Press Ctrl+C to stop.")

        last_scan = time.monotonic()
        while not self.cancel_event.is_set():
            self.cancel_event.wait(1.0)
            if interval > 0 and time.monotonic() - last_scan >= interval:
                self.scan()
                last_scan = time.monotonic()

    def stop(self) -> None:
        """Signal running batches to stop and release resources."""
        self.cancel_event.set()
        if self.watcher is not None:
            self.watcher.stop()

    def close(self) -> None:
        self.store.close()


def _print_items(store: ItemStore, status: str) -> None:
    count = 0
    for item in store.query_by_status(status):
        tags = f"  [{', '.join(item.tags)}]" if item.tags else ""
        print(f"  #{item.id} {item.filename}  {item.category or '-'}  {item.confidence:.2f}{tags}")
        print(f"      {item.path}")
        if item.proposed_path and item.proposed_path != item.path:
            print(f"      -> {item.proposed_path}")
        count += 1
    if not count:
        print(f"No items with status '{status}'.")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point with CLI support."""
    import argparse

    parser = argparse.ArgumentParser(
        description="hotsort - hot folder intake and filing"
    )
    parser.add_argument(
        '--config', '-c',
        type=Path,
        default=None,
        help='Configuration file (default: ./hotsort.yaml)'
    )
    parser.add_argument(
        '--stage',
        nargs='+',
        metavar='FILE',
        help='Stage files into the inbox'
    )
    parser.add_argument(
        '--classify',
        action='store_true',
        help='Classify every inbox item'
    )
    parser.add_argument(
        '--commit',
        action='store_true',
        help='Move or copy every staged item to its planned place'
    )
    parser.add_argument(
        '--purge',
        action='store_true',
        help='Remove items whose files no longer exist'
    )
    parser.add_argument(
        '--list', '-l',
        metavar='STATUS',
        choices=ItemStatus.ALL,
        help='List items with a status'
    )
    parser.add_argument(
        '--projects',
        nargs='?',
        const='',
        metavar='FILTER',
        help='List known projects, optionally filtered'
    )
    parser.add_argument(
        '--scan',
        action='store_true',
        help='Scan the hot folder once'
    )
    parser.add_argument(
        '--watch', '-w',
        action='store_true',
        help='Watch the hot folder until interrupted'
    )
    parser.add_argument(
        '--init-config',
        type=Path,
        metavar='PATH',
        help='Write a default configuration file and exit'
    )
    parser.add_argument(
        '--json',
        action='store_true',
        help='Print scan, commit and list results as JSON'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Debug logging'
    )

    args = parser.parse_args(argv)

    if args.init_config:
        Config().save(args.init_config)
        print(f"✓ Wrote default configuration to {args.init_config}")
        return 0

    setup_logging(LoggingConfig(level="DEBUG" if args.verbose else "INFO"))

    try:
        config = Config.load(args.config)
        app = HotSort(config)
    except HotsortError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1

    try:
        if args.stage:
            print(f"✓ Staged {app.stage(args.stage)} of {len(args.stage)} files")

        if args.scan:
            result = app.scan()
            if args.json:
                print(json.dumps({"scan": result.to_dict()}))
            else:
                print(f"✓ Scan: {result.seen} seen, {result.staged} staged, {result.removed} removed")

        if args.classify:
            print(f"✓ Classified {app.classify()} items")

        if args.commit:
            report = app.commit()
            if args.json:
                print(json.dumps({"commit": report.to_dict()}))
            else:
                print(
                    f"✓ Committed {report.committed} of {report.processed} "
                    f"(skipped {report.skipped}, failed {report.failed}, "
                    f"missing {report.resolved_missing})"
                )

        if args.purge:
            print(f"✓ Purged {app.store.purge_missing()} missing items")

        if args.list:
            if args.json:
                items = [item.to_dict() for item in app.store.query_by_status(args.list)]
                print(json.dumps({"items": items}, ensure_ascii=False))
            else:
                print(f"\n📋 Items ({args.list}):\n")
                _print_items(app.store, args.list)

        if args.projects is not None:
            projects = list(app.store.query_distinct_projects(args.projects))
            if projects:
                print(f"\n📁 Projects ({len(projects)}):\n")
                for name in projects:
                    print(f"  {name}")
            else:
                print("No projects yet.")

        if args.watch:
            if app.watcher is None:
                raise HotsortError("No hot folder configured (import.hot_folder)")

            def signal_handler(sig, frame):
                app.stop()

            previous = {
                sig: signal.signal(sig, signal_handler)
                for sig in (signal.SIGINT, signal.SIGTERM)
            }
            try:
                app.watch()
            finally:
                for sig, handler in previous.items():
                    signal.signal(sig, handler)

    except HotsortError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1
    finally:
        app.stop()
        app.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
