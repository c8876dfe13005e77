"""
End-to-end tests for the command line.
"""

import json
import logging

import pytest
import yaml

from hotsort.main import main
from hotsort.storage.item_store import ItemStore
from hotsort.storage.models import ItemStatus
from hotsort.utils.exceptions import HotsortError, StoreError, ErrorCode
from hotsort.utils.logging_config import (
    LoggingConfig,
    Timer,
    batch_context,
    current_batch,
    get_logger,
    setup_logging,
)


@pytest.fixture(autouse=True)
def reset_logging():
    """Detach handlers installed by the command line."""
    yield
    root = logging.getLogger("hotsort")
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)
    root.propagate = True


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Write a config pointing every location into tmp_path."""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    hot = tmp_path / "inbox"
    hot.mkdir()
    path = tmp_path / "hotsort.yaml"
    path.write_text(yaml.safe_dump({
        "organization": {
            "root_directory": str(tmp_path / "Organized"),
            "db_path": str(tmp_path / "items.db"),
        },
        "import": {"hot_folder": str(hot)},
    }), encoding="utf-8")
    return path


class TestCommandLine:
    """Tests for hotsort.main.main."""

    def test_init_config(self, tmp_path, capsys):
        """Test a default configuration file is written."""
        target = tmp_path / "cfg" / "hotsort.yaml"

        assert main(["--init-config", str(target)]) == 0

        data = yaml.safe_load(target.read_text(encoding="utf-8"))
        assert data["import"]["overwrite_policy"] == "rename"
        assert "Wrote default configuration" in capsys.readouterr().out

    def test_scan_classify_commit(self, config_file, tmp_path, capsys):
        """Test the full flow through the command line."""
        (tmp_path / "inbox" / "contract_acme.docx").write_text("terms")

        assert main(["--config", str(config_file), "--scan", "--classify", "--commit"]) == 0

        out = capsys.readouterr().out
        assert "Committed 1" in out
        with ItemStore(tmp_path / "items.db") as store:
            item = store.query_by_status(ItemStatus.AUTO_SORTED).first()
            assert item.category == "contract"
            assert item.path.endswith("contract_acme.docx")

    def test_json_output(self, config_file, tmp_path, capsys):
        """Test --json prints scan, commit and list results as JSON objects."""
        (tmp_path / "inbox" / "invoice_9.pdf").write_text("x")

        args = ["--config", str(config_file), "--scan", "--classify", "--commit",
                "--list", "auto-sorted", "--json"]
        assert main(args) == 0

        out = capsys.readouterr().out
        results = {}
        for line in out.splitlines():
            if line.startswith("{"):
                results.update(json.loads(line))
        assert results["scan"]["staged"] == 1
        assert results["commit"]["committed"] == 1
        assert results["commit"]["cancelled"] is False
        assert results["items"][0]["filename"] == "invoice_9.pdf"
        assert results["items"][0]["status"] == "auto-sorted"

    def test_list_and_projects(self, config_file, tmp_path, capsys):
        """Test listing items and projects."""
        staged = tmp_path / "inbox" / "budget.xlsx"
        staged.write_text("1,2")
        main(["--config", str(config_file), "--stage", str(staged), "--classify"])
        capsys.readouterr()

        main(["--config", str(config_file), "--list", "autosort-staging", "--projects"])

        out = capsys.readouterr().out
        assert "budget.xlsx" in out
        assert "Projects (1)" in out

    def test_watch_without_hot_folder(self, tmp_path, monkeypatch, capsys):
        """Test watching without a hot folder reports an error."""
        monkeypatch.setenv("HOME", str(tmp_path / "home"))
        path = tmp_path / "hotsort.yaml"
        path.write_text(yaml.safe_dump({
            "organization": {"db_path": str(tmp_path / "items.db")},
        }), encoding="utf-8")

        assert main(["--config", str(path), "--watch"]) == 1
        assert "No hot folder configured" in capsys.readouterr().err

    def test_watch_missing_hot_folder(self, config_file, tmp_path, capsys):
        """Test watching a configured folder that does not exist reports an error."""
        (tmp_path / "inbox").rmdir()

        assert main(["--config", str(config_file), "--watch"]) == 1
        err = capsys.readouterr().err
        assert "✗" in err
        assert "Hot folder does not exist" in err


class TestErrors:
    """Tests for the exception hierarchy."""

    def test_str_and_dict(self):
        """Test formatting carries code, details and cause."""
        cause = OSError("disk")
        error = StoreError("upsert failed", operation="upsert", cause=cause)

        assert str(error).startswith("[STORE_FAILED] upsert failed")
        assert "operation" in str(error)
        data = error.to_dict()
        assert data["error_code"] == ErrorCode.STORE_FAILED.value
        assert data["details"] == {"operation": "upsert"}
        assert data["cause"] == "disk"
        assert isinstance(error, HotsortError)


class TestLogging:
    """Tests for logging helpers."""

    def test_logger_namespace(self):
        """Test loggers live under the hotsort namespace."""
        assert get_logger("hotsort.intake").name == "hotsort.intake"
        assert get_logger("plugins").name == "hotsort.plugins"

    def test_timer_records_duration(self):
        """Test Timer measures elapsed time."""
        with Timer(get_logger("tests"), "noop") as timer:
            pass

        assert timer.duration_ms >= 0

    def test_batch_context_nests(self):
        """Test nested batches share the outer id and clear on exit."""
        with batch_context("commit") as outer:
            assert outer.startswith("commit-")
            with batch_context("classify") as inner:
                assert inner == outer
            assert current_batch() == outer
        assert current_batch() is None

    def test_file_log_is_json_with_batch(self, tmp_path):
        """Test the file handler writes one JSON object per record."""
        setup_logging(LoggingConfig(log_dir=tmp_path / "logs", console_output=False))
        log = get_logger("tests")

        with batch_context("stage") as batch:
            log.warning("staged", extra={"item_id": 7})
        for handler in logging.getLogger("hotsort").handlers:
            handler.flush()

        line = (tmp_path / "logs" / "hotsort.log").read_text(encoding="utf-8").splitlines()[-1]
        record = json.loads(line)
        assert record["message"] == "staged"
        assert record["batch"] == batch
        assert record["item_id"] == 7
