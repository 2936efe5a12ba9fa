"""
Durable table of imported books, keyed by content checksum.

Every call opens its own sqlite3 connection, so the store can be used from
worker threads (the web layer dispatches calls through a threadpool).
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Union

from epub_reader.core.errors import LibraryStorageError
from epub_reader.core.models import LibraryEntry
from epub_reader.utils.paths import ensure_dir_exists

logger = logging.getLogger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS books (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        author TEXT NOT NULL,
        checksum INTEGER NOT NULL UNIQUE,
        current_page INTEGER DEFAULT 0,
        total_pages INTEGER DEFAULT 0,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        book_path TEXT NOT NULL,
        cover_path TEXT
    )
"""

ENTRY_COLUMNS = "title, author, checksum, current_page, total_pages, book_path, cover_path, created_at"


class LibraryStore:

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = str(db_path)
        ensure_dir_exists(Path(db_path).parent)
        with self._connect() as conn:
            conn.execute(SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise LibraryStorageError(f"Cannot open library database {self.db_path}: {e}") from e
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            raise LibraryStorageError(f"Library database error: {e}") from e
        finally:
            conn.close()

    def find_by_checksum(self, checksum: int) -> Optional[LibraryEntry]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {ENTRY_COLUMNS} FROM books WHERE checksum = ? LIMIT 1", (checksum,)
            ).fetchone()
        return _row_to_entry(row) if row else None

    def insert(self, entry: LibraryEntry) -> LibraryEntry:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO books (title, author, checksum, current_page, total_pages, book_path, cover_path)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (entry.title, entry.author, entry.checksum, entry.current_page,
                 entry.total_pages, entry.book_path, entry.cover_path),
            )
        logger.info("Added %s (checksum %s) to the library", entry.title, entry.checksum)
        stored = self.find_by_checksum(entry.checksum)
        return stored if stored is not None else entry

    def list_entries(self) -> List[LibraryEntry]:
        with self._connect() as conn:
            rows = conn.execute(f"SELECT {ENTRY_COLUMNS} FROM books ORDER BY id").fetchall()
        return [_row_to_entry(row) for row in rows]

    def get_current_page(self, checksum: int) -> int:
        """Last page read for `checksum`; 1 when the book is not in the library."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT current_page FROM books WHERE checksum = ? LIMIT 1", (checksum,)
            ).fetchone()
        if row is None:
            return 1
        return row[0]

    def set_current_page(self, checksum: int, page: int) -> None:
        # Unknown checksums are a silent no-op, like any UPDATE that matches nothing
        with self._connect() as conn:
            conn.execute("UPDATE books SET current_page = ? WHERE checksum = ?", (page, checksum))


def _row_to_entry(row) -> LibraryEntry:
    title, author, checksum, current_page, total_pages, book_path, cover_path, created_at = row
    return LibraryEntry(
        title=title,
        author=author,
        checksum=checksum,
        current_page=current_page,
        total_pages=total_pages,
        book_path=book_path,
        cover_path=cover_path or None,
        created_at=created_at,
    )
