import argparse
import asyncio
import logging
import os
import sys

from epub_reader.core.cache import ActiveBookCache
from epub_reader.core.errors import ReaderError
from epub_reader.core.importer import BookImporter
from epub_reader.core.library import LibraryStore
from epub_reader.core.resolver import QueryResolver
from epub_reader.utils.paths import get_data_dir, get_db_path, get_library_dir

logger = logging.getLogger(__name__)


def build_services(data_dir=None):
    root = get_data_dir(data_dir)
    store = LibraryStore(get_db_path(root))
    cache = ActiveBookCache()
    return BookImporter(cache, store, get_library_dir(root)), QueryResolver(cache, store)


async def run_command(args) -> int:
    importer, resolver = build_services(args.data_dir)

    if args.command == "import":
        summary = await importer.import_book(args.file)
        print(f"Added: {summary.title} by {summary.author}")
        print(f"Checksum: {summary.checksum}")
        print(f"Page {summary.current_page} / {summary.total_pages}")

    elif args.command == "library":
        for entry in await resolver.library():
            print(f"{entry.checksum}\t{entry.current_page}/{entry.total_pages}\t{entry.title} - {entry.author}")

    elif args.command == "toc":
        await importer.import_book(args.file)
        for number, (title, idref) in enumerate(resolver.table_of_contents(), start=1):
            print(f"{number:>4}  {title}  [{idref}]")

    elif args.command == "page":
        await importer.import_book(args.file)
        resource = await resolver.page(args.number)
        print(f"# {resource.display_title} ({resource.media_type})")
        print(resource.content)

    elif args.command == "progress":
        if args.page is not None:
            await resolver.set_last_read_page(args.checksum, args.page)
        print(await resolver.last_read_page(args.checksum))

    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="EPUB reader library")
    parser.add_argument("--data-dir", default=None, help="Managed storage (default: $EPUB_READER_DATA_DIR or ./data)")
    subparsers = parser.add_subparsers(dest="command")

    import_parser = subparsers.add_parser("import", help="Import or re-open an EPUB")
    import_parser.add_argument("file")

    subparsers.add_parser("library", help="List imported books")

    toc_parser = subparsers.add_parser(
        "toc", help="Print the table of contents of an EPUB (imports it into the library first)")
    toc_parser.add_argument("file")

    page_parser = subparsers.add_parser(
        "page", help="Print one page of an EPUB (imports it into the library and records the page as read)")
    page_parser.add_argument("file")
    page_parser.add_argument("number", type=int)

    progress_parser = subparsers.add_parser("progress", help="Show or set the last page read")
    progress_parser.add_argument("checksum", type=int)
    progress_parser.add_argument("page", type=int, nargs="?")

    serve_parser = subparsers.add_parser("serve", help="Start Server")
    serve_parser.add_argument("--host", default=os.getenv("EPUB_READER_HOST", "127.0.0.1"))
    serve_parser.add_argument("--port", type=int, default=int(os.getenv("EPUB_READER_PORT", "8123")))

    args = parser.parse_args(argv)
    logging.basicConfig(level=os.getenv("EPUB_READER_LOG_LEVEL", "INFO").upper())

    if args.command == "serve":
        from epub_reader.web.app import start_server
        start_server(args.host, args.port, args.data_dir)
        return 0
    if args.command is None:
        parser.print_help()
        return 1

    try:
        return asyncio.run(run_command(args))
    except ReaderError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
