import sqlite3
import logging
from dataclasses import replace
from datetime import datetime, date, UTC
from pathlib import Path
from typing import Dict, List, Optional

from ..exceptions import DatabaseError, DuplicateEntryError
from ..models import CatalogEntry

ENTRY_COLUMNS = (
    "original_path, stored_path, thumbnail_path, capture_date, datetime_indexed, "
    "date_source, file_kind, camera_make, camera_model, orientation, width, height, created_at"
)


class CatalogStore:
    """
    Reads and writes catalog rows. Transactions are explicit: callers open one
    with begin() (or transaction()) and end it with commit()/rollback().
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # --- Transactions ---

    @property
    def in_transaction(self) -> bool:
        return self.conn.in_transaction

    def begin(self):
        # IMMEDIATE takes the write lock up front so COMMIT cannot hit SQLITE_BUSY
        self._execute("BEGIN IMMEDIATE")

    def commit(self):
        self._execute("COMMIT")

    def rollback(self):
        if self.conn.in_transaction:
            self._execute("ROLLBACK")

    def transaction(self):
        return _Transaction(self)

    # --- Writes ---

    def insert_entry(self, entry: CatalogEntry) -> CatalogEntry:
        """
        Inserts one row inside a savepoint, so a rejected row never disturbs
        the rest of an open batch.

        Raises DuplicateEntryError if original_path is already cataloged.
        """
        created_at = entry.created_at or datetime.now(UTC)
        params = (
            str(entry.original_path),
            str(entry.stored_path),
            str(entry.thumbnail_path),
            entry.capture_date.isoformat(),
            entry.datetime_indexed,
            entry.date_source,
            entry.file_kind,
            entry.camera_make,
            entry.camera_model,
            entry.orientation,
            entry.width,
            entry.height,
            created_at.isoformat(),
        )

        self._execute("SAVEPOINT insert_entry")
        try:
            self.conn.execute(f"INSERT INTO media_items ({ENTRY_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)", params)
        except sqlite3.IntegrityError as e:
            self._undo_savepoint()
            if "UNIQUE" in str(e) and "original_path" in str(e):
                raise DuplicateEntryError(entry.original_path) from e
            raise DatabaseError(f"Rejected catalog row for {entry.original_path}: {e}") from e
        except sqlite3.Error as e:
            self._undo_savepoint()
            raise DatabaseError(f"Failed to insert {entry.original_path}: {e}") from e
        self._execute("RELEASE insert_entry")

        return replace(entry, created_at=created_at)

    # --- Reads ---

    def contains(self, original_path: Path) -> bool:
        cur = self.conn.execute("SELECT 1 FROM media_items WHERE original_path = ?", (str(original_path),))
        return cur.fetchone() is not None

    def get_entry(self, original_path: Path) -> Optional[CatalogEntry]:
        cur = self.conn.execute(f"SELECT {ENTRY_COLUMNS} FROM media_items WHERE original_path = ?", (str(original_path),))
        row = cur.fetchone()
        return self._row_to_entry(row) if row else None

    def fetch_entries(self, kind: Optional[str] = None, day: Optional[date] = None) -> List[CatalogEntry]:
        clauses = []
        params: list = []
        if kind:
            clauses.append("file_kind = ?")
            params.append(kind)
        if day:
            clauses.append("datetime_indexed LIKE ?")
            params.append(day.strftime("%Y%m%d") + "%")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        cur = self.conn.execute(
            f"SELECT {ENTRY_COLUMNS} FROM media_items {where} ORDER BY capture_date, original_path",
            params,
        )
        return [self._row_to_entry(r) for r in cur.fetchall()]

    def count_entries(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM media_items").fetchone()[0]

    def count_by_kind(self) -> Dict[str, int]:
        cur = self.conn.execute("SELECT file_kind, COUNT(*) FROM media_items GROUP BY file_kind ORDER BY file_kind")
        return {kind: n for kind, n in cur.fetchall()}

    def fetch_claimed_paths(self) -> List[str]:
        """Every archive and thumbnail path referenced by the catalog."""
        cur = self.conn.execute("SELECT stored_path, thumbnail_path FROM media_items")
        paths = []
        for stored, thumb in cur.fetchall():
            paths.append(stored)
            paths.append(thumb)
        return paths

    # --- Internals ---

    def _execute(self, sql: str):
        try:
            self.conn.execute(sql)
        except sqlite3.Error as e:
            raise DatabaseError(f"Catalog database error during '{sql}': {e}") from e

    def _undo_savepoint(self):
        self._execute("ROLLBACK TO insert_entry")
        self._execute("RELEASE insert_entry")

    @staticmethod
    def _row_to_entry(row) -> CatalogEntry:
        (original, stored, thumb, capture, _indexed, source, kind,
         make, model, orientation, width, height, created) = row
        return CatalogEntry(
            original_path=Path(original),
            stored_path=Path(stored),
            thumbnail_path=Path(thumb),
            capture_date=datetime.fromisoformat(capture),
            file_kind=kind,
            date_source=source,
            camera_make=make,
            camera_model=model,
            orientation=orientation,
            width=width,
            height=height,
            created_at=datetime.fromisoformat(created),
        )


class _Transaction:
    def __init__(self, store: CatalogStore):
        self.store = store

    def __enter__(self):
        self.store.begin()
        return self.store

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.store.commit()
        else:
            self.store.rollback()
        return False


class CatalogWriter:
    """
    The single writer lane. Only the thread that owns the store calls this;
    workers hand it finished entries.

    Rows are committed in batches of batch_size (1 = every file is its own
    transaction). Until commit, an entry is not in the catalog.
    """

    def __init__(self, store: CatalogStore, batch_size: int = 1):
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        self.store = store
        self.batch_size = batch_size
        self.pending: List[CatalogEntry] = []
        self.committed = 0

    def write(self, entry: CatalogEntry) -> CatalogEntry:
        """
        Queues one row in the open batch. Raises DuplicateEntryError when the
        path is already cataloged; the batch stays usable.
        """
        if not self.store.in_transaction:
            self.store.begin()
        saved = self.store.insert_entry(entry)
        self.pending.append(saved)
        if len(self.pending) >= self.batch_size:
            self.flush()
        return saved

    def flush(self) -> List[CatalogEntry]:
        """Commits the open batch and returns the rows it made durable."""
        flushed = self.pending
        if self.store.in_transaction:
            self.store.commit()
        self.pending = []
        self.committed += len(flushed)
        if flushed:
            logging.debug(f"Committed {len(flushed)} catalog row(s)")
        return flushed

    def abort(self) -> List[CatalogEntry]:
        """Rolls back the open batch and returns the rows that were dropped."""
        dropped = self.pending
        self.store.rollback()
        self.pending = []
        return dropped
