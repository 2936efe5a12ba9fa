import threading
from typing import Callable, Optional, TypeVar

from epub_reader.core.errors import NoBookLoadedError
from epub_reader.core.models import NormalizedBook

R = TypeVar("R")


class ActiveBookCache:
    """
    Holds the currently open book, if any.

    Opening a book replaces the previous one wholesale. The lock is held only
    for the duration of a single callback, so callers must not await inside
    `fn`; copy out what they need and do I/O after the call returns.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._book: Optional[NormalizedBook] = None

    def replace(self, book: NormalizedBook) -> None:
        with self._lock:
            self._book = book

    def clear(self) -> None:
        with self._lock:
            self._book = None

    @property
    def is_loaded(self) -> bool:
        with self._lock:
            return self._book is not None

    def with_book(self, fn: Callable[[NormalizedBook], R]) -> R:
        with self._lock:
            if self._book is None:
                raise NoBookLoadedError()
            return fn(self._book)

    def with_book_mut(self, fn: Callable[[NormalizedBook], Optional[NormalizedBook]]) -> None:
        """Run `fn` on the book; if it returns a book, that becomes the active one."""
        with self._lock:
            if self._book is None:
                raise NoBookLoadedError()
            result = fn(self._book)
            if result is not None:
                self._book = result

    @property
    def checksum(self) -> int:
        return self.with_book(lambda book: book.checksum)
