import logging
import shutil
from pathlib import Path
from typing import Optional, Union

from fastapi.concurrency import run_in_threadpool

from epub_reader.core.cache import ActiveBookCache
from epub_reader.core.errors import BookImportError, LibraryStorageError
from epub_reader.core.library import LibraryStore
from epub_reader.core.models import BookSummary, LibraryEntry, NormalizedBook
from epub_reader.core.parser import check_extension, parse_epub
from epub_reader.utils.checksum import file_checksum
from epub_reader.utils.paths import CHECKSUM_FILENAME, COVER_FILENAME, ensure_dir_exists, get_book_dir

logger = logging.getLogger(__name__)


class BookImporter:
    """
    Turns a source file into the active book.

    A checksum already in the library is a re-open: the managed copy is
    parsed again and the stored progress is returned untouched. Anything else
    is a fresh import into `library_dir/<stem>/`.
    """

    def __init__(self, cache: ActiveBookCache, store: LibraryStore, library_dir: Union[str, Path]):
        self.cache = cache
        self.store = store
        self.library_dir = Path(library_dir)

    async def import_book(self, source_path: Union[str, Path]) -> BookSummary:
        source = Path(source_path)
        try:
            checksum = file_checksum(source)
        except OSError as e:
            raise BookImportError(f"cannot access: {source}") from e

        entry = await run_in_threadpool(self.store.find_by_checksum, checksum)
        if entry is not None:
            return self._reopen(entry, source)
        return await self._import_new(source, checksum)

    async def open_book(self, checksum: int) -> BookSummary:
        """Re-open a library book from its managed copy alone."""
        entry = await run_in_threadpool(self.store.find_by_checksum, checksum)
        if entry is None:
            raise BookImportError(f"No book with checksum {checksum} in the library")
        return self._reopen(entry, None)

    def _reopen(self, entry: LibraryEntry, source: Optional[Path]) -> BookSummary:
        doc = Path(entry.book_path)
        if not doc.exists():
            if source is None:
                raise BookImportError(f"Managed copy is missing: {doc}")
            # Same checksum, so the source bytes are the managed copy
            logger.warning("Managed copy %s is missing, restoring it from %s", doc, source)
            try:
                ensure_dir_exists(doc.parent)
                shutil.copyfile(source, doc)
            except OSError as e:
                raise BookImportError(f"Could not restore {doc}: {e}") from e

        logger.info("Re-opening %s (checksum %s)", entry.title, entry.checksum)
        book = parse_epub(str(doc), checksum=entry.checksum)
        self.cache.replace(book)

        summary = BookSummary.from_entry(entry)
        if entry.cover_path and not Path(entry.cover_path).exists():
            summary.cover_url = ""
        return summary

    async def _import_new(self, source: Path, checksum: int) -> BookSummary:
        check_extension(str(source))

        book_dir = get_book_dir(self.library_dir, source)
        created_dir = not book_dir.exists()
        if not created_dir:
            _check_folder_owner(book_dir, checksum)

        existing: Optional[LibraryEntry] = None
        try:
            ensure_dir_exists(book_dir)
            doc = book_dir / source.name
            shutil.copyfile(source, doc)
            (book_dir / CHECKSUM_FILENAME).write_text(str(checksum), encoding='utf-8')

            book = parse_epub(str(doc), checksum=checksum)
            cover_path = _write_cover(book, book_dir)

            entry = LibraryEntry(
                title=book.title,
                author=book.author,
                checksum=checksum,
                current_page=1,
                total_pages=book.total_pages,
                book_path=str(doc),
                cover_path=cover_path,
            )
            try:
                entry = await run_in_threadpool(self.store.insert, entry)
            except LibraryStorageError:
                existing = await run_in_threadpool(self.store.find_by_checksum, checksum)
                if existing is None:
                    raise
        except (BookImportError, LibraryStorageError, OSError):
            if created_dir:
                shutil.rmtree(book_dir, ignore_errors=True)
            raise

        if existing is not None:
            # An overlapping import of the same bytes inserted the row first
            logger.info("%s was imported concurrently, re-opening it", source.name)
            return self._reopen(existing, source)

        self.cache.replace(book)
        return BookSummary.from_entry(entry)


def _check_folder_owner(book_dir: Path, checksum: int) -> None:
    """Refuse to import over a folder that already belongs to a different book."""
    marker = book_dir / CHECKSUM_FILENAME
    if not marker.exists():
        return
    recorded = marker.read_text(encoding='utf-8').strip()
    if recorded != str(checksum):
        raise BookImportError(
            f"Library folder {book_dir.name} already holds a different book (checksum {recorded})"
        )


def _write_cover(book: NormalizedBook, book_dir: Path) -> Optional[str]:
    if book.cover is None:
        return None
    cover_path = book_dir / COVER_FILENAME
    try:
        cover_path.write_bytes(book.cover)
    except OSError as e:
        logger.warning("Could not write cover for %s: %s", book.title, e)
        return None
    return str(cover_path)
