from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
from ebooklib import epub

from epub_reader.core.cache import ActiveBookCache
from epub_reader.core.container import Container, ExtractionError
from epub_reader.core.importer import BookImporter
from epub_reader.core.library import LibraryStore
from epub_reader.core.resolver import QueryResolver

COVER_BYTES = b"\xff\xd8\xff\xe0fake-jpeg-cover"


def write_sample_epub(
    path: Path,
    *,
    title: Optional[str] = "Sample Book",
    author: Optional[str] = "Jane Doe",
    with_cover: bool = True,
) -> Path:
    """Three chapters under text/, a TOC that labels the first two, and a cover."""
    book = epub.EpubBook()
    book.set_identifier("sample-book-0001")
    if title:
        book.set_title(title)
    book.set_language("en")
    if author:
        book.add_author(author)

    bodies = {
        1: '<h1>Opening</h1><p>First page.</p><p><a href="chap_02.xhtml#sec">next</a></p>',
        2: '<h1>Middle</h1><p id="sec">Second page.</p><p><a href="#sec">here</a> '
           '<a href="https://example.org/">web</a></p>',
        3: '<h1>End</h1><p>Third page.</p><p><a href="../text/chap_01.xhtml">back to start</a></p>',
    }
    chapters = []
    for number, body in bodies.items():
        chapter = epub.EpubHtml(
            uid=f"chap{number}",
            title=f"Chapter {number}",
            file_name=f"text/chap_{number:02d}.xhtml",
            lang="en",
        )
        chapter.content = f"<html><head><title>Chapter {number}</title></head><body>{body}</body></html>"
        book.add_item(chapter)
        chapters.append(chapter)

    if with_cover:
        book.set_cover("images/cover.jpg", COVER_BYTES, create_page=False)

    book.toc = (
        epub.Link("text/chap_01.xhtml", "Opening", "toc-1"),
        epub.Link("text/chap_02.xhtml", "The Middle", "toc-2"),
        epub.Link("text/chap_02.xhtml#sec", "Middle Section", "toc-2b"),
    )
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())
    book.spine = chapters

    path.parent.mkdir(parents=True, exist_ok=True)
    epub.write_epub(str(path), book, {})
    return path


class FakeContainer(Container):
    """In-memory container; ids listed in `broken` fail extraction."""

    def __init__(
        self,
        spine: List[str],
        manifest: List[Tuple[str, str, str]],
        toc: Optional[List[Tuple[str, str]]] = None,
        contents: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, str]] = None,
        cover: Optional[bytes] = None,
        broken: Tuple[str, ...] = (),
    ):
        self._spine = spine
        self._manifest = manifest
        self._toc = toc or []
        self._contents = contents or {}
        self._metadata = metadata or {}
        self._cover = cover
        self._broken = broken

    def spine(self):
        return list(self._spine)

    def manifest(self):
        return list(self._manifest)

    def toc(self):
        return list(self._toc)

    def resource_text(self, idref):
        if idref in self._broken or idref not in self._contents:
            raise ExtractionError(f"cannot extract {idref}")
        return self._contents[idref]

    def metadata(self, key):
        return self._metadata.get(key)

    def cover(self):
        return self._cover


@pytest.fixture
def sample_epub(tmp_path: Path) -> Path:
    return write_sample_epub(tmp_path / "incoming" / "Sample Book.epub")


@pytest.fixture
def store(tmp_path: Path) -> LibraryStore:
    return LibraryStore(tmp_path / "data" / "epub-reader.db")


@pytest.fixture
def cache() -> ActiveBookCache:
    return ActiveBookCache()


@pytest.fixture
def library_dir(tmp_path: Path) -> Path:
    path = tmp_path / "data" / "library"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def importer(cache: ActiveBookCache, store: LibraryStore, library_dir: Path) -> BookImporter:
    return BookImporter(cache, store, library_dir)


@pytest.fixture
def resolver(cache: ActiveBookCache, store: LibraryStore) -> QueryResolver:
    return QueryResolver(cache, store)
