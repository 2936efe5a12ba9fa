import logging
from pathlib import Path
from typing import Dict, Optional

from epub_reader.core.container import Container, EbookLibContainer, ExtractionError, split_href
from epub_reader.core.errors import BookImportError
from epub_reader.core.models import NormalizedBook, PageResource, PLACEHOLDER_AUTHOR
from epub_reader.utils.checksum import file_checksum

logger = logging.getLogger(__name__)

EPUB_EXTENSION = ".epub"


def check_extension(epub_path: str) -> None:
    """Reject anything that is not named like an EPUB archive."""
    if Path(epub_path).suffix.lower() != EPUB_EXTENSION:
        raise BookImportError(f"Book extension does not contain epub: {epub_path}")


def parse_epub(epub_path: str, checksum: Optional[int] = None) -> NormalizedBook:
    """
    Main logic: Open container -> Normalize -> Return NormalizedBook.
    The checksum is computed from the file unless the caller already has it.
    """
    check_extension(epub_path)

    # 1. Load Container
    logger.info("Loading %s...", epub_path)
    container = EbookLibContainer.open(epub_path)

    # 2. Fingerprint
    if checksum is None:
        try:
            checksum = file_checksum(epub_path)
        except OSError as e:
            raise BookImportError(f"cannot access: {epub_path}") from e

    # 3. Normalize
    return normalize_container(container, checksum, epub_path)


def normalize_container(container: Container, checksum: int, source_path: str) -> NormalizedBook:
    """
    Fold the container's identifier spaces (spine order, manifest id,
    internal path, TOC label) into the three indices of NormalizedBook.
    """
    stem = Path(source_path).stem

    # 1. Pages come from the spine, never from the TOC
    pages = container.spine()
    page_set = set(pages)

    # 2. Invert the manifest over pages only. Duplicate paths: last page in manifest order wins.
    path_index: Dict[str, str] = {}
    page_paths: Dict[str, str] = {}
    media_types: Dict[str, str] = {}
    for idref, internal_path, media_type in container.manifest():
        if idref not in page_set:
            continue
        path_index[internal_path] = idref
        page_paths[idref] = internal_path
        media_types[idref] = media_type

    # 3. TOC labels, keyed by idref
    labels = _resolve_toc_labels(container, path_index)

    # 4. Materialize every page eagerly
    resources: Dict[str, PageResource] = {}
    for idref in pages:
        if idref in resources:
            continue
        display_title = labels.get(idref, idref)
        media_type = media_types.get(idref, "")
        try:
            content = container.resource_text(idref)
        except ExtractionError as e:
            logger.warning("Could not get resource data for idref %s: %s", idref, e)
            content = ""
        resources[idref] = PageResource(display_title=display_title, media_type=media_type, content=content)

    # 5. Metadata, with the filename stem standing in for a missing title
    title = container.metadata('title') or stem
    author = container.metadata('creator') or PLACEHOLDER_AUTHOR

    # 6. Cover is optional
    cover = None
    try:
        cover = container.cover()
    except Exception as e:
        logger.warning("Cover extraction failed for %s: %s", source_path, e)
    if not cover:
        cover = None
        logger.info("Book does not have a cover: %s", source_path)

    return NormalizedBook(
        checksum=checksum,
        pages=pages,
        resources=resources,
        path_index=path_index,
        page_paths=page_paths,
        title=title,
        author=author,
        cover=cover,
        source_path=str(source_path),
    )


def _resolve_toc_labels(container: Container, path_index: Dict[str, str]) -> Dict[str, str]:
    labels: Dict[str, str] = {}
    for label, href in container.toc():
        file_href, _anchor = split_href(href)
        idref = path_index.get(file_href)
        if idref is None:
            logger.debug("TOC entry %r points at unknown path %s, dropped", label, href)
            continue
        # A document split into several TOC entries is labelled by its first one
        if idref not in labels and label:
            labels[idref] = label
    return labels
