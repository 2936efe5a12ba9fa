"""
Answers page / TOC / idref / path lookups against the active book and keeps
reading progress in the library store in sync.

Cache reads are synchronous and short; storage calls are dispatched to a
worker thread so the event loop is never blocked on sqlite. The cache lock is
always released before awaiting.
"""

import logging
import posixpath
from typing import List, Optional, Tuple
from urllib.parse import urlsplit

from bs4 import BeautifulSoup
from fastapi.concurrency import run_in_threadpool

from epub_reader.core.cache import ActiveBookCache
from epub_reader.core.container import split_href
from epub_reader.core.errors import (
    LibraryStorageError,
    PageOutOfBoundsError,
    UnknownIdentifierError,
    UnknownPathError,
)
from epub_reader.core.library import LibraryStore
from epub_reader.core.models import LibraryEntry, LinkTarget, NormalizedBook, PageResource

logger = logging.getLogger(__name__)


class QueryResolver:

    def __init__(self, cache: ActiveBookCache, store: LibraryStore):
        self.cache = cache
        self.store = store

    # --- Active book lookups ---

    async def page(self, page: int) -> PageResource:
        """
        Content of 1-based `page` of the active book. Also records `page` as
        the current page of that book; a failed write is logged, not raised.
        """
        resource, checksum = self.cache.with_book(lambda book: (_page_resource(book, page), book.checksum))

        try:
            await run_in_threadpool(self.store.set_current_page, checksum, page)
        except LibraryStorageError:
            logger.error("Could not persist page %s for book %s", page, checksum, exc_info=True)

        return resource

    def table_of_contents(self) -> List[Tuple[str, str]]:
        """(display title, idref) for every page, in spine order."""
        return self.cache.with_book(lambda book: book.table_of_contents())

    def page_for_identifier(self, identifier: str, strict: bool = False) -> int:
        """
        1-based page number of `identifier`. Unknown identifiers fall back to
        page 1 unless `strict` is set, in which case they raise.
        """
        def lookup(book: NormalizedBook) -> Optional[int]:
            try:
                return book.pages.index(identifier) + 1
            except ValueError:
                return None

        page = self.cache.with_book(lookup)
        if page is None:
            if strict:
                raise UnknownIdentifierError(identifier)
            logger.debug("Unknown idref %s, falling back to page 1", identifier)
            return 1
        return page

    def identifier_for_path(self, path: str) -> str:
        identifier = self.cache.with_book(lambda book: book.path_index.get(path))
        if identifier is None:
            raise UnknownPathError(path)
        return identifier

    def resolve_link(self, page: int, href: str) -> LinkTarget:
        """Resolve an href found inside `page` (relative to that page's path)."""
        return self.cache.with_book(lambda book: _resolve_link(book, page, href))

    def page_links(self, page: int) -> List[LinkTarget]:
        """Internal links of `page` that lead to a page of this book."""
        def collect(book: NormalizedBook) -> List[LinkTarget]:
            resource = _page_resource(book, page)
            soup = BeautifulSoup(resource.content, 'html.parser')
            targets = []
            for anchor in soup.find_all('a', href=True):
                try:
                    targets.append(_resolve_link(book, page, anchor['href']))
                except UnknownPathError:
                    continue
            return targets

        return self.cache.with_book(collect)

    # --- Library store ---

    async def last_read_page(self, checksum: int) -> int:
        return await run_in_threadpool(self.store.get_current_page, checksum)

    async def set_last_read_page(self, checksum: int, page: int) -> None:
        await run_in_threadpool(self.store.set_current_page, checksum, page)

    async def library(self) -> List[LibraryEntry]:
        try:
            return await run_in_threadpool(self.store.list_entries)
        except LibraryStorageError:
            logger.error("Could not list the library", exc_info=True)
            return []


def _page_resource(book: NormalizedBook, page: int) -> PageResource:
    if page < 1 or page > book.total_pages:
        raise PageOutOfBoundsError(page, book.total_pages)
    idref = book.pages[page - 1]
    return book.resources[idref]


def _resolve_link(book: NormalizedBook, page: int, href: str) -> LinkTarget:
    if page < 1 or page > book.total_pages:
        raise PageOutOfBoundsError(page, book.total_pages)
    parts = urlsplit(href)
    if parts.scheme or parts.netloc:
        raise UnknownPathError(href)

    file_href, fragment = split_href(href)
    current_idref = book.pages[page - 1]
    if not file_href:
        # '#note3' stays on the current page
        return LinkTarget(href=href, identifier=current_idref, page=page, fragment=fragment)

    base_dir = posixpath.dirname(book.page_paths.get(current_idref, ""))
    target_path = posixpath.normpath(posixpath.join(base_dir, file_href)).lstrip("/")
    identifier = book.path_index.get(target_path)
    if identifier is None:
        raise UnknownPathError(target_path)
    return LinkTarget(
        href=href,
        identifier=identifier,
        page=book.pages.index(identifier) + 1,
        fragment=fragment,
    )
