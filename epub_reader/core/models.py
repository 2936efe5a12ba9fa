from dataclasses import dataclass, field, asdict
from typing import List, Dict, Optional, Tuple

PLACEHOLDER_AUTHOR = "<unknown>"


@dataclass
class PageResource:
    """
    One spine page as served to the front end.
    Content is the raw markup extracted from the container (not rewritten).
    """
    display_title: str   # TOC label, or the idref when the TOC does not mention it
    media_type: str      # e.g. 'application/xhtml+xml'
    content: str         # empty for pages whose extraction failed

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass
class LinkTarget:
    """Where an internal link inside a page leads."""
    href: str
    identifier: str
    page: int
    fragment: str = ""   # anchor inside the target page, empty if none


@dataclass
class NormalizedBook:
    """
    The in-memory "active book": every identifier space of the container
    folded into three indices during one normalization pass.
    Rebuilt wholesale on every open, never patched in place.
    """
    checksum: int
    pages: List[str]                          # page number - 1 -> idref (spine order)
    resources: Dict[str, PageResource]        # idref -> page record, one per page
    path_index: Dict[str, str]                # internal path -> idref (pages only)
    page_paths: Dict[str, str] = field(default_factory=dict)  # idref -> internal path
    title: str = ""
    author: str = PLACEHOLDER_AUTHOR
    cover: Optional[bytes] = None
    source_path: str = ""

    @property
    def total_pages(self) -> int:
        return len(self.pages)

    def table_of_contents(self) -> List[Tuple[str, str]]:
        return [(self.resources[idref].display_title, idref) for idref in self.pages]


@dataclass
class LibraryEntry:
    """One row of the library table. Joined to NormalizedBook by checksum only."""
    title: str
    author: str
    checksum: int
    current_page: int
    total_pages: int
    book_path: str
    cover_path: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class BookSummary:
    """What import and the library listing hand back to the front end."""
    title: str
    author: str
    checksum: int
    current_page: int
    total_pages: int
    cover_url: str
    book_url: str

    @classmethod
    def from_entry(cls, entry: LibraryEntry) -> "BookSummary":
        return cls(
            title=entry.title,
            author=entry.author,
            checksum=entry.checksum,
            current_page=entry.current_page,
            total_pages=entry.total_pages,
            cover_url=entry.cover_path or "",
            book_url=entry.book_path,
        )

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)
