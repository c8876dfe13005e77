"""
Item Store
==========

Durable SQLite table of items keyed by id and by normalized path.

Every mutation runs in one transaction. Queries return restartable,
lazily paged iterables ordered newest-first, so callers may keep writing
to the store while they iterate.
"""

import os
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Union

from hotsort.storage.models import (
    Item,
    ItemStatus,
    clamp_confidence,
    join_tags,
    normalize_path,
    normalize_tags,
)
from hotsort.utils.exceptions import ErrorCode, StoreError
from hotsort.utils.logging_config import get_logger

logger = get_logger(__name__)

# Maximum bound parameters per batched statement
BATCH_SIZE = 500

# Rows fetched per page by lazy queries
PAGE_SIZE = 500

# Column name -> definition; missing columns are added on open
REQUIRED_COLUMNS: Dict[str, str] = {
    "path": "TEXT NOT NULL DEFAULT ''",
    "filename": "TEXT NOT NULL DEFAULT ''",
    "ext": "TEXT NOT NULL DEFAULT ''",
    "project": "TEXT NOT NULL DEFAULT ''",
    "category": "TEXT NOT NULL DEFAULT ''",
    "tags": "TEXT NOT NULL DEFAULT ''",
    "confidence": "REAL NOT NULL DEFAULT 0",
    "status": "TEXT NOT NULL DEFAULT 'inbox'",
    "created_ts": "INTEGER NOT NULL DEFAULT 0",
    "proposed_path": "TEXT NOT NULL DEFAULT ''",
}

CREATE_TABLE_SQL = "CREATE TABLE IF NOT EXISTS items (\n    id INTEGER PRIMARY KEY AUTOINCREMENT,\n" + ",\n".join(
    f"    {name} {definition}" for name, definition in REQUIRED_COLUMNS.items()
) + "\n)"

CREATE_INDEXES_SQL = (
    "CREATE INDEX IF NOT EXISTS idx_items_path ON items(path COLLATE NOCASE)",
    "CREATE INDEX IF NOT EXISTS idx_items_status ON items(status)",
    "CREATE INDEX IF NOT EXISTS idx_items_created ON items(created_ts)",
    "CREATE INDEX IF NOT EXISTS idx_items_project ON items(project)",
)

_ITEM_FIELDS = (
    "path", "filename", "ext", "project", "category", "tags",
    "confidence", "status", "created_ts", "proposed_path",
)


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so a value matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _chunks(values: Sequence, size: int = BATCH_SIZE) -> Iterator[Sequence]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


def _row_to_item(row: sqlite3.Row) -> Item:
    """Convert a database row to an Item."""
    return Item(
        id=row["id"],
        path=row["path"] or "",
        filename=row["filename"] or "",
        ext=row["ext"] or "",
        project=row["project"] or "",
        category=row["category"] or "",
        tags=normalize_tags(row["tags"]),
        confidence=clamp_confidence(row["confidence"]),
        status=row["status"] or ItemStatus.INBOX,
        created_ts=int(row["created_ts"] or 0),
        proposed_path=row["proposed_path"] or "",
    )


class ItemQuery:
    """Lazy, restartable sequence of items, newest first.

    Each iteration re-runs the query page by page using keyset
    pagination on (created_ts, id). No lock or cursor is held
    between pages.
    """

    def __init__(
        self,
        store: "ItemStore",
        where: str = "",
        params: Sequence = (),
        operation: str = "query",
        page_size: int = PAGE_SIZE,
    ):
        self._store = store
        self._where = where
        self._params = tuple(params)
        self._operation = operation
        self._page_size = page_size

    def __iter__(self) -> Iterator[Item]:
        last: Optional[sqlite3.Row] = None
        while True:
            clauses = [f"({self._where})"] if self._where else []
            params = list(self._params)
            if last is not None:
                clauses.append("(created_ts < ? OR (created_ts = ? AND id < ?))")
                params.extend([last["created_ts"], last["created_ts"], last["id"]])

            sql = "SELECT * FROM items"
            if clauses:
                sql += " WHERE " + " AND ".join(clauses)
            sql += " ORDER BY created_ts DESC, id DESC LIMIT ?"
            params.append(self._page_size)

            rows = self._store._fetchall(sql, params, self._operation)
            for row in rows:
                yield _row_to_item(row)

            if len(rows) < self._page_size:
                return
            last = rows[-1]

    def first(self) -> Optional[Item]:
        """Return the newest matching item, if any."""
        return next(iter(self), None)

    def to_list(self) -> List[Item]:
        """Materialize the query."""
        return list(self)


class ProjectQuery:
    """Restartable sequence of distinct project names, newest first."""

    def __init__(self, store: "ItemStore", name_filter: Optional[str] = None):
        self._store = store
        self._filter = (name_filter or "").strip()

    def __iter__(self) -> Iterator[str]:
        sql = "SELECT project, MAX(created_ts) AS newest FROM items WHERE project != ''"
        params: List = []
        if self._filter:
            sql += " AND project LIKE ? ESCAPE '\\'"
            params.append(f"%{_escape_like(self._filter)}%")
        sql += " GROUP BY project ORDER BY newest DESC, project"
        for row in self._store._fetchall(sql, params, "query_distinct_projects"):
            yield row["project"]


class ItemStore:
    """SQLite-backed store of pipeline items.

    A single long-lived connection is shared between threads and
    serialized by a re-entrant lock.
    """

    def __init__(self, db_path: Union[str, Path]):
        """Open (and create or upgrade) the store.

        Args:
            db_path: Database file, or ":memory:".

        Raises:
            StoreError: If the database cannot be opened or upgraded.
        """
        self.db_path = str(db_path)
        self._lock = threading.RLock()

        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                isolation_level=None,  # explicit transactions only
            )
            self._conn.row_factory = sqlite3.Row
            if self.db_path != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
        except (sqlite3.Error, OSError) as e:
            raise StoreError(
                f"Cannot open item store at {self.db_path}", operation="open", cause=e
            ) from e

        self._ensure_schema()
        logger.debug(f"Item store ready: {self.db_path}")

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self, operation: str):
        """Run a block inside one IMMEDIATE transaction."""
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
                try:
                    yield self._conn
                except BaseException:
                    self._conn.execute("ROLLBACK")
                    raise
                self._conn.execute("COMMIT")
            except sqlite3.Error as e:
                raise StoreError(
                    f"{operation} failed: {e}", operation=operation, cause=e
                ) from e

    def _fetchall(self, sql: str, params: Sequence, operation: str) -> List[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(sql, tuple(params)).fetchall()
            except sqlite3.Error as e:
                raise StoreError(
                    f"{operation} failed: {e}", operation=operation, cause=e
                ) from e

    def _ensure_schema(self) -> None:
        """Create the table, then add any column an older store lacks."""
        try:
            with self._transaction("schema"):
                self._conn.execute(CREATE_TABLE_SQL)
                existing = {
                    row["name"] for row in self._conn.execute("PRAGMA table_info(items)")
                }
                for name, definition in REQUIRED_COLUMNS.items():
                    if name not in existing:
                        logger.info(f"Upgrading item store: adding column {name}")
                        self._conn.execute(f"ALTER TABLE items ADD COLUMN {name} {definition}")
                # Older stores allowed NULLs where ordering needs numbers
                self._conn.execute("UPDATE items SET created_ts = 0 WHERE created_ts IS NULL")
                self._conn.execute("UPDATE items SET confidence = 0 WHERE confidence IS NULL")
                for statement in CREATE_INDEXES_SQL:
                    self._conn.execute(statement)
        except StoreError as e:
            e.error_code = ErrorCode.SCHEMA_UPGRADE_FAILED
            raise

    def close(self) -> None:
        """Close the underlying connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "ItemStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def upsert(self, item: Item) -> int:
        """Insert an item, or update the row with its id or path.

        The stored ``created_ts`` is kept when already non-zero. Tags,
        filename, extension and confidence are normalized on the item
        before writing.

        Args:
            item: Item to persist. Its ``id`` is set on return.

        Returns:
            The row id.
        """
        item.path = normalize_path(item.path)
        item.fill_derived()
        item.tags = normalize_tags(item.tags)
        item.confidence = clamp_confidence(item.confidence)
        now = int(time.time())

        with self._transaction("upsert") as conn:
            existing = None
            if item.id is not None:
                existing = conn.execute(
                    "SELECT id, created_ts FROM items WHERE id = ?", (item.id,)
                ).fetchone()
            if existing is None and item.path:
                existing = conn.execute(
                    "SELECT id, created_ts FROM items WHERE path = ? COLLATE NOCASE "
                    "ORDER BY id LIMIT 1",
                    (item.path,),
                ).fetchone()

            if existing is None:
                if not item.created_ts:
                    item.created_ts = now
                cursor = conn.execute(
                    f"INSERT INTO items ({', '.join(_ITEM_FIELDS)}) "
                    f"VALUES ({', '.join('?' for _ in _ITEM_FIELDS)})",
                    self._values(item),
                )
                item.id = cursor.lastrowid
            else:
                item.id = existing["id"]
                if existing["created_ts"]:
                    item.created_ts = int(existing["created_ts"])
                elif not item.created_ts:
                    item.created_ts = now
                if item.path:
                    # The row takes over this path; drop any other row holding it
                    conn.execute(
                        "DELETE FROM items WHERE path = ? COLLATE NOCASE AND id != ?",
                        (item.path, item.id),
                    )
                conn.execute(
                    f"UPDATE items SET {', '.join(f'{name} = ?' for name in _ITEM_FIELDS)} "
                    "WHERE id = ?",
                    self._values(item) + (item.id,),
                )

        return item.id

    @staticmethod
    def _values(item: Item) -> tuple:
        return (
            item.path,
            item.filename,
            item.ext,
            item.project or "",
            item.category or "",
            join_tags(item.tags),
            item.confidence,
            item.status or ItemStatus.INBOX,
            int(item.created_ts or 0),
            item.proposed_path or "",
        )

    def update_tags(self, item_id: int, tags: Union[str, Iterable[str]]) -> str:
        """Replace the tags of one item.

        Returns:
            The normalized, persisted tag string.
        """
        joined = join_tags(tags)
        with self._transaction("update_tags") as conn:
            conn.execute("UPDATE items SET tags = ? WHERE id = ?", (joined, item_id))
        return joined

    def update_project(self, item_id: int, project: str) -> None:
        """Assign a project to one item."""
        with self._transaction("update_project") as conn:
            conn.execute(
                "UPDATE items SET project = ? WHERE id = ?", ((project or "").strip(), item_id)
            )

    def reset_status(self, item_ids: Iterable[int], status: str) -> int:
        """Administratively set the status of items, in any direction.

        Returns:
            Number of rows changed.
        """
        if status not in ItemStatus.ALL:
            raise ValueError(f"Unknown item status: {status!r}")
        ids = list(item_ids)
        changed = 0
        with self._transaction("reset_status") as conn:
            for chunk in _chunks(ids):
                cursor = conn.execute(
                    f"UPDATE items SET status = ? WHERE id IN ({', '.join('?' for _ in chunk)})",
                    (status, *chunk),
                )
                changed += cursor.rowcount
        return changed

    def delete_by_ids(self, item_ids: Iterable[int]) -> int:
        """Delete items by id.

        Returns:
            Number of rows removed.
        """
        ids = list(item_ids)
        if not ids:
            return 0
        removed = 0
        with self._transaction("delete_by_ids") as conn:
            for chunk in _chunks(ids):
                cursor = conn.execute(
                    f"DELETE FROM items WHERE id IN ({', '.join('?' for _ in chunk)})",
                    tuple(chunk),
                )
                removed += cursor.rowcount
        return removed

    def purge_missing(self) -> int:
        """Delete every row whose file no longer exists.

        This is the only deletion the store initiates itself, and it only
        runs when called.

        Returns:
            Number of rows removed.
        """
        rows = self._fetchall(
            "SELECT id, path FROM items WHERE path != ''", (), "purge_missing"
        )
        missing = [row["id"] for row in rows if not os.path.exists(row["path"])]
        if not missing:
            return 0

        with self._transaction("purge_missing") as conn:
            for chunk in _chunks(missing):
                conn.execute(
                    f"DELETE FROM items WHERE id IN ({', '.join('?' for _ in chunk)})",
                    tuple(chunk),
                )
        logger.info(f"Purged {len(missing)} items whose files are gone")
        return len(missing)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, item_id: int) -> Optional[Item]:
        """Fetch one item by id."""
        rows = self._fetchall("SELECT * FROM items WHERE id = ?", (item_id,), "get")
        return _row_to_item(rows[0]) if rows else None

    def try_get_by_path(self, path: Union[str, Path]) -> Optional[Item]:
        """Exact, case-insensitive lookup of a normalized path."""
        normalized = normalize_path(path)
        if not normalized:
            return None
        rows = self._fetchall(
            "SELECT * FROM items WHERE path = ? COLLATE NOCASE ORDER BY id LIMIT 1",
            (normalized,),
            "try_get_by_path",
        )
        return _row_to_item(rows[0]) if rows else None

    def try_get_by_paths(self, paths: Iterable[Union[str, Path]]) -> List[Item]:
        """Batched lookup of many paths, chunked to the parameter limit."""
        normalized = list(dict.fromkeys(p for p in (normalize_path(x) for x in paths) if p))
        items: List[Item] = []
        for chunk in _chunks(normalized):
            rows = self._fetchall(
                f"SELECT * FROM items WHERE path COLLATE NOCASE IN "
                f"({', '.join('?' for _ in chunk)}) ORDER BY created_ts DESC, id DESC",
                chunk,
                "try_get_by_paths",
            )
            items.extend(_row_to_item(row) for row in rows)
        return items

    def query_all(self) -> ItemQuery:
        """Every item."""
        return ItemQuery(self, operation="query_all")

    def query_by_status(self, status: str) -> ItemQuery:
        """Items with one status."""
        return ItemQuery(self, "status = ?", (status,), "query_by_status")

    def query_by_statuses(self, statuses: Iterable[str]) -> ItemQuery:
        """Items with any of the given statuses."""
        values = list(dict.fromkeys(statuses))
        if not values:
            return ItemQuery(self, "0", (), "query_by_statuses")
        return ItemQuery(
            self,
            f"status IN ({', '.join('?' for _ in values)})",
            values,
            "query_by_statuses",
        )

    def query_by_tag(self, tag: str) -> ItemQuery:
        """Items carrying a tag, matched on comma boundaries."""
        tag = (tag or "").strip()
        if not tag:
            return ItemQuery(self, "0", (), "query_by_tag")
        escaped = _escape_like(tag)
        return ItemQuery(
            self,
            "tags = ? COLLATE NOCASE"
            " OR tags LIKE ? ESCAPE '\\'"
            " OR tags LIKE ? ESCAPE '\\'"
            " OR tags LIKE ? ESCAPE '\\'",
            (tag, f"{escaped},%", f"%,{escaped}", f"%,{escaped},%"),
            "query_by_tag",
        )

    def query_distinct_projects(self, name_filter: Optional[str] = None) -> ProjectQuery:
        """Distinct non-empty project names, optionally filtered by substring."""
        return ProjectQuery(self, name_filter)

    def query_since(self, timestamp: int) -> ItemQuery:
        """Items created at or after an epoch timestamp."""
        return ItemQuery(self, "created_ts >= ?", (int(timestamp),), "query_since")

    def query_low_confidence(self, threshold: float) -> ItemQuery:
        """Items whose confidence is below a threshold."""
        return ItemQuery(self, "confidence < ?", (float(threshold),), "query_low_confidence")

    def search(self, keyword: str) -> ItemQuery:
        """Items whose filename, category, project or tags contain a keyword."""
        pattern = f"%{_escape_like((keyword or '').strip())}%"
        return ItemQuery(
            self,
            " OR ".join(
                f"{column} LIKE ? ESCAPE '\\'"
                for column in ("filename", "category", "project", "tags")
            ),
            (pattern,) * 4,
            "search",
        )

    def count(self, status: Optional[str] = None) -> int:
        """Number of rows, optionally for one status."""
        if status is None:
            rows = self._fetchall("SELECT COUNT(*) AS n FROM items", (), "count")
        else:
            rows = self._fetchall(
                "SELECT COUNT(*) AS n FROM items WHERE status = ?", (status,), "count"
            )
        return int(rows[0]["n"])
