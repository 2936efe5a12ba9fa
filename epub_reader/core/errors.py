"""Exceptions raised by the ingestion and lookup layers."""


class ReaderError(Exception):
    """Base class for every error surfaced to callers of epub_reader."""


class BookImportError(ReaderError):
    """The import was aborted: bad extension, unreadable or corrupt container."""


class NoBookLoadedError(ReaderError):
    """A query needed the active book but none has been opened yet."""

    def __init__(self, message: str = "No book is currently loaded"):
        super().__init__(message)


class PageOutOfBoundsError(ReaderError):
    def __init__(self, page: int, total_pages: int):
        super().__init__(f"Page {page} out of bounds (book has {total_pages} pages)")
        self.page = page
        self.total_pages = total_pages


class UnknownPathError(ReaderError):
    def __init__(self, path: str):
        super().__init__(f"Unknown internal path: {path}")
        self.path = path


class UnknownIdentifierError(ReaderError):
    def __init__(self, identifier: str):
        super().__init__(f"Unknown idref: {identifier}")
        self.identifier = identifier


class LibraryStorageError(ReaderError):
    """Wraps a failure of the library database."""
