"""
Read-side view of an EPUB container.

The normalizer only needs the handful of capabilities declared on
`Container`; `EbookLibContainer` provides them on top of ebooklib.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple
from urllib.parse import unquote

import ebooklib
from ebooklib import epub

from epub_reader.core.errors import BookImportError

logger = logging.getLogger(__name__)


class ExtractionError(Exception):
    """A single resource could not be read out of the container."""


class Container(ABC):
    """What the normalizer needs from a parsed EPUB."""

    @abstractmethod
    def spine(self) -> List[str]:
        """Idrefs in linear reading order."""

    @abstractmethod
    def manifest(self) -> List[Tuple[str, str, str]]:
        """(idref, internal path, media type) in manifest order."""

    @abstractmethod
    def toc(self) -> List[Tuple[str, str]]:
        """Flattened (label, href) pairs, depth first. Hrefs may carry a #fragment."""

    @abstractmethod
    def resource_text(self, idref: str) -> str:
        """Content of one resource as text; raises ExtractionError."""

    @abstractmethod
    def metadata(self, key: str) -> Optional[str]:
        """First Dublin Core value for `key`, or None."""

    @abstractmethod
    def cover(self) -> Optional[bytes]:
        """Cover image bytes if the container declares one."""


def split_href(href: str) -> Tuple[str, str]:
    """'text/ch01.xhtml#sec2' -> ('text/ch01.xhtml', 'sec2'), percent-decoded."""
    file_href, _, anchor = href.partition('#')
    return unquote(file_href), anchor


class EbookLibContainer(Container):

    def __init__(self, book: epub.EpubBook):
        self._book = book

    @classmethod
    def open(cls, epub_path: str) -> "EbookLibContainer":
        try:
            book = epub.read_epub(epub_path)
        except Exception as e:
            raise BookImportError(f"Failed to read EPUB file {epub_path}: {e}") from e
        return cls(book)

    def spine(self) -> List[str]:
        result = []
        for spine_item in self._book.spine:
            # ebooklib yields (idref, linear) pairs for books it read from disk
            idref = spine_item[0] if isinstance(spine_item, tuple) else spine_item
            result.append(idref)
        return result

    def manifest(self) -> List[Tuple[str, str, str]]:
        return [
            (item.get_id(), item.get_name(), item.media_type or "")
            for item in self._book.get_items()
        ]

    def toc(self) -> List[Tuple[str, str]]:
        return _flatten_toc(self._book.toc)

    def resource_text(self, idref: str) -> str:
        item = self._book.get_item_with_id(idref)
        if item is None:
            raise ExtractionError(f"No manifest item for idref {idref}")
        try:
            raw_content = item.get_content()
        except Exception as e:
            raise ExtractionError(f"Could not read {idref}: {e}") from e
        if isinstance(raw_content, str):
            return raw_content
        try:
            return raw_content.decode('utf-8')
        except UnicodeDecodeError as e:
            logger.warning("%s is not valid UTF-8, dropping bad bytes: %s", idref, e)
            return raw_content.decode('utf-8', errors='ignore')

    def metadata(self, key: str) -> Optional[str]:
        data = self._get_metadata('DC', key)
        if not data:
            return None
        value = data[0][0]
        return value.strip() if value and value.strip() else None

    def _get_metadata(self, namespace: str, key: str) -> list:
        # ebooklib raises KeyError when the namespace never appeared in the OPF
        try:
            return self._book.get_metadata(namespace, key) or []
        except KeyError:
            return []

    def cover(self) -> Optional[bytes]:
        for item in self._book.get_items_of_type(ebooklib.ITEM_COVER):
            return item.get_content()

        # EPUB2 style: <meta name="cover" content="cover-image-id"/>
        for _value, attrs in self._get_metadata('OPF', 'cover'):
            cover_id = (attrs or {}).get('content')
            item = self._book.get_item_with_id(cover_id) if cover_id else None
            if item is not None and item.get_type() in (ebooklib.ITEM_IMAGE, ebooklib.ITEM_COVER):
                return item.get_content()

        for item in self._book.get_items_of_type(ebooklib.ITEM_IMAGE):
            if 'cover' in item.get_name().lower():
                return item.get_content()
        return None


def _flatten_toc(toc_list) -> List[Tuple[str, str]]:
    # ebooklib TOC items are either Link objects or (Section, [children]) tuples
    result = []
    for item in toc_list:
        if isinstance(item, tuple):
            section, children = item
            if getattr(section, 'href', None):
                result.append((section.title, section.href))
            result.extend(_flatten_toc(children))
        elif isinstance(item, (epub.Link, epub.Section)):
            if getattr(item, 'href', None):
                result.append((item.title, item.href))
        else:
            logger.debug("Skipping unexpected TOC node %r", item)
    return result
