"""
Unit tests for the intake pipeline.
"""

import os
import threading
from datetime import datetime, timezone

import pytest

from hotsort.config.settings import Config, ConflictPolicy, MoveMode
from hotsort.intake.pipeline import IntakePipeline, LOW_CONFIDENCE_TAG
from hotsort.storage.item_store import ItemStore
from hotsort.storage.models import ItemStatus

# 2023-04-15 12:00:00 UTC
APRIL_15 = int(datetime(2023, 4, 15, 12, 0, tzinfo=timezone.utc).timestamp())


@pytest.fixture
def config(tmp_path):
    """Create a config with a temporary root and hot folder."""
    cfg = Config()
    cfg.organization.root_directory = tmp_path / "Organized"
    cfg.organization.db_path = tmp_path / "items.db"
    cfg.import_.hot_folder = tmp_path / "inbox"
    cfg.import_.hot_folder.mkdir()
    return cfg


@pytest.fixture
def store(config):
    """Create the item store."""
    item_store = ItemStore(config.organization.db_path)
    yield item_store
    item_store.close()


@pytest.fixture
def pipeline(config, store):
    """Create the pipeline with default collaborators."""
    return IntakePipeline(config, store)


def drop(config, name, content="data", mtime=APRIL_15):
    """Create a file in the hot folder."""
    path = config.import_.hot_folder / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    os.utime(path, (mtime, mtime))
    return path


class TestStage:
    """Tests for stage_only."""

    def test_stage_new_file(self, pipeline, store, config):
        """Test a new file lands in the inbox with a preview."""
        path = drop(config, "invoice_202304.pdf")

        assert pipeline.stage_only(path) is True

        item = store.try_get_by_path(path)
        assert item.status == ItemStatus.INBOX
        assert item.filename == "invoice_202304.pdf"
        assert item.ext == "pdf"
        assert item.created_ts == APRIL_15
        assert item.proposed_path.endswith(os.path.join("2023", "Documents", "invoice_202304.pdf"))

    def test_stage_is_idempotent(self, pipeline, store, config):
        """Test staging twice keeps one row and its id."""
        path = drop(config, "a.txt")
        pipeline.stage_only(path)
        first = store.try_get_by_path(path)

        pipeline.stage_only(path)

        assert store.count() == 1
        assert store.try_get_by_path(path).id == first.id

    def test_restage_keeps_status(self, pipeline, store, config):
        """Test re-staging never moves an item backwards."""
        path = drop(config, "report.docx")
        pipeline.classify_only(path)

        pipeline.stage_only(path)

        assert store.try_get_by_path(path).status == ItemStatus.STAGING

    @pytest.mark.parametrize("name", [".hidden.pdf", "folder"])
    def test_skips_hidden_and_directories(self, pipeline, store, config, name):
        """Test hidden files and directories are not staged."""
        target = config.import_.hot_folder / name
        if name == "folder":
            target.mkdir()
        else:
            target.write_text("x")

        assert pipeline.stage_only(target) is False
        assert store.count() == 0

    def test_skips_missing_and_blank(self, pipeline, config):
        """Test missing and blank paths are no-ops."""
        assert pipeline.stage_only(config.import_.hot_folder / "nope.pdf") is False
        assert pipeline.stage_only("  ") is False
        assert pipeline.stage_only(None) is False

    def test_file_vanishing_during_stat(self, pipeline, store, config, monkeypatch):
        """Test a file removed before its metadata is read is not staged."""
        path = drop(config, "race.pdf")

        def vanished(source):
            raise FileNotFoundError(str(source))

        monkeypatch.setattr(IntakePipeline, "_creation_ts", staticmethod(vanished))

        assert pipeline.stage_only(path) is False
        assert store.count() == 0

    def test_cancelled(self, pipeline, store, config):
        """Test a set cancellation signal stops staging."""
        cancel = threading.Event()
        cancel.set()

        assert pipeline.stage_only(drop(config, "a.txt"), cancel) is False
        assert store.count() == 0

    def test_blacklisted_extension(self, pipeline, store, config):
        """Test blacklisted extensions are recorded as blacklist."""
        path = drop(config, "movie.crdownload")

        assert pipeline.stage_only(path) is True
        assert store.try_get_by_path(path).status == ItemStatus.BLACKLIST

    def test_blacklisted_folder(self, pipeline, store, config):
        """Test files under blacklisted folders are recorded as blacklist."""
        path = drop(config, os.path.join("node_modules", "pkg", "index.js"))

        pipeline.stage_only(path)

        assert store.try_get_by_path(path).status == ItemStatus.BLACKLIST


class TestClassify:
    """Tests for classify_only."""

    def test_keyword_category(self, pipeline, store, config):
        """Test a keyword hit sets the category."""
        path = drop(config, "invoice_202304.pdf")
        pipeline.stage_only(path)

        assert pipeline.classify_only(path) is True

        item = store.try_get_by_path(path)
        assert item.status == ItemStatus.STAGING
        assert item.category == "invoice"
        assert item.confidence == 0.8
        assert item.project == "202304"
        assert not item.has_tag(LOW_CONFIDENCE_TAG)

    def test_stages_when_absent(self, pipeline, store, config):
        """Test classifying an unknown file stages it first."""
        path = drop(config, "contract.docx")

        assert pipeline.classify_only(path) is True
        assert store.try_get_by_path(path).category == "contract"

    def test_extension_group_category(self, pipeline, store, config):
        """Test without a name match the extension group decides."""
        path = drop(config, "holiday.png")

        pipeline.classify_only(path)

        item = store.try_get_by_path(path)
        assert item.category == "Images"
        assert item.confidence == 0.8

    def test_unknown_extension_is_low_confidence(self, pipeline, store, config):
        """Test an unknown extension gets Others and the review tag."""
        path = drop(config, "blob.xyz")

        pipeline.classify_only(path)

        item = store.try_get_by_path(path)
        assert item.category == "Others"
        assert item.confidence == 0.5
        assert item.has_tag(LOW_CONFIDENCE_TAG)

    def test_taxonomy_and_project_lock(self, pipeline, store, config):
        """Test taxonomy labels and the project lock are applied."""
        config.classification.custom_taxonomy = ["Apollo"]
        config.organization.project_lock = "Mission"
        path = drop(config, "apollo_invoice.pdf")

        pipeline.classify_only(path)

        item = store.try_get_by_path(path)
        assert item.category == "Apollo"
        assert item.project == "Mission"
        assert item.confidence == 0.95

    def test_ai_classifier_injected(self, config, store):
        """Test an injected AI classifier is consulted."""

        class TravelAI:
            def classify(self, text):
                return "travel"

        pipeline = IntakePipeline(config, store, ai_classifier=TravelAI())
        path = drop(config, "boarding_pass.pdf")

        pipeline.classify_only(path)

        assert store.try_get_by_path(path).category == "travel"

    def test_blacklisted_left_alone(self, pipeline, store, config):
        """Test blacklisted items are not classified."""
        path = drop(config, "x.tmp")
        pipeline.stage_only(path)

        assert pipeline.classify_only(path) is False
        assert store.try_get_by_path(path).status == ItemStatus.BLACKLIST

    def test_classify_inbox(self, pipeline, store, config):
        """Test every inbox item is classified."""
        for name in ("a_report.pdf", "b.png", "c.tmp"):
            pipeline.stage_only(drop(config, name))

        assert pipeline.classify_inbox() == 2
        assert store.count(ItemStatus.STAGING) == 2
        assert store.count(ItemStatus.BLACKLIST) == 1


class TestCommit:
    """Tests for commit_pending."""

    def test_basic_scenario(self, pipeline, store, config, tmp_path):
        """Test inbox -> staging -> auto-sorted for an invoice."""
        path = drop(config, "invoice_202304.pdf", content="pdf bytes")
        pipeline.stage_only(path)
        pipeline.classify_only(path)

        assert pipeline.commit_pending() == 1

        dest = tmp_path / "Organized" / "2023" / "invoice" / "invoice_202304.pdf"
        assert dest.read_text() == "pdf bytes"
        assert not path.exists()
        item = store.try_get_by_path(dest)
        assert item.status == ItemStatus.AUTO_SORTED
        assert item.proposed_path == str(dest)
        assert store.count() == 1

    def test_missing_source(self, pipeline, store, config, tmp_path):
        """Test a vanished source is resolved without touching the filesystem."""
        path = drop(config, "invoice_1.pdf")
        pipeline.classify_only(path)
        path.unlink()

        report = pipeline.commit_pending_report()

        assert report.committed == 0
        assert report.resolved_missing == 1
        assert store.try_get_by_path(path).status == ItemStatus.AUTO_SORTED
        assert not (tmp_path / "Organized" / "2023").exists()

    def test_skip_never_overwrites(self, pipeline, store, config, tmp_path):
        """Test the skip policy leaves destination and item untouched."""
        config.import_.overwrite_policy = ConflictPolicy.SKIP
        dest = tmp_path / "Organized" / "2023" / "invoice" / "invoice_7.pdf"
        dest.parent.mkdir(parents=True)
        dest.write_text("original")
        path = drop(config, "invoice_7.pdf", content="incoming")
        pipeline.classify_only(path)

        report = pipeline.commit_pending_report()

        assert report.skipped == 1
        assert report.committed == 0
        assert dest.read_text() == "original"
        assert path.read_text() == "incoming"
        assert store.try_get_by_path(path).status == ItemStatus.STAGING

    def test_rename_on_conflict(self, pipeline, store, config, tmp_path):
        """Test the default rename policy picks a free name."""
        dest = tmp_path / "Organized" / "2023" / "invoice" / "invoice_7.pdf"
        dest.parent.mkdir(parents=True)
        dest.write_text("original")
        path = drop(config, "invoice_7.pdf", content="incoming")
        pipeline.classify_only(path)

        assert pipeline.commit_pending() == 1

        renamed = dest.parent / "invoice_7 (1).pdf"
        assert renamed.read_text() == "incoming"
        assert dest.read_text() == "original"
        assert store.try_get_by_path(renamed).filename == "invoice_7 (1).pdf"

    def test_replace_on_conflict(self, pipeline, config, tmp_path):
        """Test the replace policy overwrites the destination."""
        config.import_.overwrite_policy = ConflictPolicy.REPLACE
        dest = tmp_path / "Organized" / "2023" / "invoice" / "invoice_7.pdf"
        dest.parent.mkdir(parents=True)
        dest.write_text("original")
        path = drop(config, "invoice_7.pdf", content="incoming")
        pipeline.classify_only(path)

        assert pipeline.commit_pending() == 1
        assert dest.read_text() == "incoming"

    def test_copy_mode(self, pipeline, store, config, tmp_path):
        """Test copy mode keeps the source."""
        config.import_.move_mode = MoveMode.COPY
        path = drop(config, "invoice_8.pdf")
        pipeline.classify_only(path)

        assert pipeline.commit_pending() == 1

        assert path.exists()
        assert (tmp_path / "Organized" / "2023" / "invoice" / "invoice_8.pdf").exists()

    def test_already_in_place(self, pipeline, store, config, tmp_path):
        """Test committing an item that already sits at its planned path."""
        config.import_.hot_folder = tmp_path / "Organized" / "2023" / "invoice"
        path = drop(config, "invoice_9.pdf", content="here")
        pipeline.classify_only(path)

        assert pipeline.commit_pending() == 1
        assert path.read_text() == "here"
        assert not (path.parent / "invoice_9 (1).pdf").exists()
        assert store.try_get_by_path(path).status == ItemStatus.AUTO_SORTED

    def test_planning_error_marks_error(self, pipeline, store, config):
        """Test an impossible plan marks the item as error and continues."""
        path = drop(config, "invoice_3.pdf")
        pipeline.classify_only(path)
        config.organization.root_directory = None

        report = pipeline.commit_pending_report()

        assert report.failed == 1
        assert store.try_get_by_path(path).status == ItemStatus.ERROR
        assert path.exists()

    def test_transfer_failure_leaves_item_staged(self, config, store):
        """Test an I/O failure is counted and the item stays staged."""
        from hotsort.actions.file_operations import FileTransfer
        from hotsort.utils.exceptions import FileProcessingError

        class BrokenTransfer(FileTransfer):
            def transfer(self, source, decision, mode=None):
                raise FileProcessingError("disk full", file_path=str(source))

        pipeline = IntakePipeline(config, store, transfer=BrokenTransfer())
        ok = drop(config, "invoice_a.pdf")
        pipeline.classify_only(ok)

        report = pipeline.commit_pending_report()

        assert report.failed == 1
        assert store.try_get_by_path(ok).status == ItemStatus.STAGING

    def test_unwritable_root_fails_each_item(self, pipeline, store, config, tmp_path):
        """Test a root that cannot be created fails items without aborting the batch."""
        for name in ("invoice_a.pdf", "invoice_b.pdf"):
            pipeline.classify_only(drop(config, name))
        blocker = tmp_path / "rootfile"
        blocker.write_text("not a directory")
        config.organization.root_directory = blocker / "sub"

        report = pipeline.commit_pending_report()

        assert report.failed == 2
        assert report.committed == 0
        assert store.count(ItemStatus.STAGING) == 2

    def test_store_failure_continues_batch(self, pipeline, store, config, monkeypatch):
        """Test a store write error on one item still commits the next."""
        from hotsort.utils.exceptions import StoreError

        first = drop(config, "invoice_1.pdf")
        second = drop(config, "invoice_2.pdf")
        pipeline.classify_only(first)
        pipeline.classify_only(second)
        first_id = store.try_get_by_path(first).id
        original_upsert = store.upsert

        def flaky_upsert(item):
            if item.id == first_id:
                raise StoreError("database is locked", operation="upsert")
            return original_upsert(item)

        monkeypatch.setattr(store, "upsert", flaky_upsert)
        report = pipeline.commit_pending_report()

        assert report.failed == 1
        assert report.committed == 1
        assert report.processed == 2

    def test_cancellation_between_items(self, pipeline, store, config):
        """Test a cancellation signal stops the batch with a partial report."""
        for i in range(3):
            pipeline.classify_only(drop(config, f"invoice_{i}.pdf"))
        cancel = threading.Event()

        original = pipeline._commit_item

        def commit_then_cancel(item, report):
            original(item, report)
            cancel.set()

        pipeline._commit_item = commit_then_cancel
        report = pipeline.commit_pending_report(cancel)

        assert report.committed == 1
        assert report.cancelled is True
        assert store.count(ItemStatus.STAGING) == 2

    def test_reset_to_inbox(self, pipeline, store, config):
        """Test administrative reset after commit."""
        path = drop(config, "invoice_4.pdf")
        pipeline.classify_only(path)
        pipeline.commit_pending()
        item_id = store.query_by_status(ItemStatus.AUTO_SORTED).first().id

        assert pipeline.reset_to_inbox([item_id]) == 1
        assert store.get(item_id).status == ItemStatus.INBOX
