#!/usr/bin/env python3
"""Book Scanner CLI - scan, look up and catalog books."""
import argparse
import asyncio
import queue
import sys
import json
from tabulate import tabulate
from bookscan.client import OpenLibraryClient
from bookscan.async_client import AsyncOpenLibraryClient
from bookscan.config import Config
from bookscan.errors import BookServiceError, StoreError
from bookscan.export import export_text
from bookscan.library import (
    SORT_KEYS,
    collection_stats,
    edit_entry,
    filter_favorites,
    search_entries,
    sort_entries,
    toggle_favorite,
)
from bookscan.parse import deduplicate_records
from bookscan.pipeline import IngestionPipeline
from bookscan.store import CatalogStore, InMemoryCatalogStore
import logging

logger = logging.getLogger(__name__)


def setup_store(config: Config) -> CatalogStore:
    """Open the configured catalog store."""
    if config.STORE_BACKEND == "memory":
        return InMemoryCatalogStore()

    from bookscan.database import Database

    db = Database(config.DATABASE_URL)
    db.init_schema()
    return db


def make_client(config: Config) -> OpenLibraryClient:
    return OpenLibraryClient(
        host=config.OPENLIBRARY_HOST,
        user_agent=config.USER_AGENT,
        timeout=config.DEFAULT_TIMEOUT
    )


def truncate(text, width: int) -> str:
    text = text or ""
    return text[:width] + "..." if len(text) > width else text


def display_records(records, format_type: str):
    """Display resolved records or saved entries."""
    if format_type == "table":
        headers = ["Title", "Authors", "ISBN", "Published", "Subjects"]
        rows = [
            [
                truncate(record.title, 50),
                truncate(record.authors, 30),
                record.isbn or "",
                record.published_date or "Unknown",
                truncate(", ".join(record.subjects[:3]), 30)
            ]
            for record in records
        ]
        print("\n" + tabulate(rows, headers=headers, tablefmt="grid"))

    elif format_type == "json":
        data = [
            {
                "title": record.title,
                "authors": record.authors,
                "isbn": record.isbn,
                "thumbnail_url": record.thumbnail_url,
                "publisher": record.publisher,
                "published_date": record.published_date,
                "description": record.description,
                "subjects": list(record.subjects),
            }
            for record in records
        ]
        print(json.dumps(data, indent=2))

    elif format_type == "compact":
        for i, record in enumerate(records, 1):
            print(f"{i}. {record.title} - {record.authors}")


def display_entries(entries, format_type: str):
    if format_type == "table":
        headers = ["ID", "Title", "Authors", "ISBN", "Fav", "Added"]
        rows = [
            [
                entry.id[:8],
                truncate(entry.title, 40),
                truncate(entry.authors, 30),
                entry.isbn or "",
                "*" if entry.is_favorite else "",
                entry.added_at.strftime("%Y-%m-%d")
            ]
            for entry in entries
        ]
        print("\n" + tabulate(rows, headers=headers, tablefmt="grid"))
    else:
        display_records([entry.to_record() for entry in entries], format_type)


def resolve_entry_id(store: CatalogStore, prefix: str) -> str:
    """Accept a full id or the short prefix shown by ``list``."""
    matches = [entry.id for entry in store.list_entries() if entry.id.startswith(prefix)]
    if len(matches) != 1:
        raise SystemExit(f"No single entry matches id '{prefix}'")
    return matches[0]


def lookup_book(args, config: Config):
    """Look up one ISBN and optionally save it."""
    with make_client(config) as client:
        record = client.resolve_by_code(args.isbn)
        display_records([record], args.format)

        if args.save:
            with setup_store(config) as store:
                outcome = IngestionPipeline(store).add_from_lookup(record)
                print(outcome.message)


def search_books(args, config: Config):
    """Search by ISBN, author or title."""
    query = f"{args.by}:{args.query}" if args.by else args.query

    with make_client(config) as client:
        records = deduplicate_records(client.search(query, limit=args.limit))

    if not records:
        print(f'No books found for {args.by or "query"} "{args.query}"')
        return

    display_records(records, args.format)

    if args.save:
        with setup_store(config) as store:
            outcome = IngestionPipeline(store).add_from_lookup(records[0])
            print(outcome.message)


def browse_subject(args, config: Config):
    """List works for a subject."""
    with make_client(config) as client:
        records = client.browse_by_subject(args.subject, published_in=args.published_in)

    if not records:
        print(f'No books found for subject "{args.subject.strip().lower()}"')
        return
    display_records(records, args.format)


def scan_books(args, config: Config):
    """Scan barcodes from a camera and add each book."""
    from bookscan.barcode import camera_detector

    events = queue.Queue()

    # Listener calls arrive from the capture thread; run them here instead
    detector = camera_detector(
        index=args.camera,
        cooldown=config.SCAN_COOLDOWN,
        dispatch=lambda callback, *cb_args: events.put((callback, cb_args))
    )

    denied = []
    codes = []
    detector.on_code_detected = codes.append
    detector.on_permission_denied = lambda: denied.append(True)

    if not detector.configure():
        while not events.empty():
            callback, cb_args = events.get()
            callback(*cb_args)
        if denied:
            print("Camera access needed. Enable camera permissions to scan barcodes and QR codes.")
        else:
            print("Could not open the camera.")
        return

    with setup_store(config) as store, make_client(config) as client:
        pipeline = IngestionPipeline(store, resolver=client)
        detector.start()
        print("Align the code in front of the camera. Ctrl+C to stop.")

        try:
            while True:
                callback, cb_args = events.get()
                callback(*cb_args)
                while codes:
                    code = codes.pop(0)
                    print(f"Scanned: {code}")
                    try:
                        print(pipeline.ingest_code(code).message)
                    except BookServiceError as e:
                        print(e.message)
        finally:
            detector.close()


async def resolve_codes(codes, config: Config):
    async with AsyncOpenLibraryClient(
        host=config.OPENLIBRARY_HOST,
        user_agent=config.USER_AGENT,
        timeout=config.DEFAULT_TIMEOUT,
        max_concurrent=config.MAX_CONCURRENT
    ) as client:
        return await client.resolve_many(codes)


def import_books(args, config: Config):
    """Resolve a file of ISBNs in parallel and add them."""
    with open(args.file, encoding="utf-8") as f:
        codes = [line.strip() for line in f if line.strip()]

    logger.info(f"Resolving {len(codes)} codes")
    results = asyncio.run(resolve_codes(codes, config))

    with setup_store(config) as store:
        pipeline = IngestionPipeline(store)
        for code, result in zip(codes, results):
            if isinstance(result, BookServiceError):
                print(f"{code}: {result.message}")
            else:
                print(f"{code}: {pipeline.add_from_lookup(result).message}")


def list_books(args, config: Config):
    with setup_store(config) as store:
        entries = search_entries(store.list_entries(), args.query)
        if args.favorites:
            entries = filter_favorites(entries)
        display_entries(sort_entries(entries, args.sort), args.format)


def favorite_book(args, config: Config):
    with setup_store(config) as store:
        entry = toggle_favorite(store, resolve_entry_id(store, args.id))
        state = "added to" if entry.is_favorite else "removed from"
        print(f'"{entry.title}" {state} favorites')


def edit_book(args, config: Config):
    with setup_store(config) as store:
        entry = edit_entry(
            store,
            resolve_entry_id(store, args.id),
            title=args.title,
            authors=args.authors,
            notes=args.notes
        )
        print(f'Updated "{entry.title}"')


def delete_book(args, config: Config):
    with setup_store(config) as store:
        entry_id = resolve_entry_id(store, args.id)
        if store.delete(entry_id):
            store.save()
            print(f"Deleted {entry_id}")


def show_stats(args, config: Config):
    """Show collection statistics."""
    with setup_store(config) as store:
        stats = collection_stats(store.list_entries())

    print("\n" + "=" * 50)
    print("YOUR COLLECTION")
    print("=" * 50)
    print(f"Total books: {stats.total}")
    if stats.top_subject:
        subject, count = stats.top_subject
        print(f"Top subject: {subject} ({count})")
    if stats.subject_counts:
        print("\n" + tabulate(stats.subject_counts, headers=["Subject", "Books"]))
    if stats.recently_added:
        print("\nRecently added:")
        for entry in stats.recently_added:
            print(f"  {entry.title} - {entry.added_at:%Y-%m-%d}")
    print("=" * 50 + "\n")


def export_books(args, config: Config):
    """Export saved books as plain text."""
    with setup_store(config) as store:
        entries = sort_entries(store.list_entries(), "title")

    text = export_text(entries)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(text + "\n")
        logger.info(f"Exported {len(entries)} books to {args.output}")
    else:
        print(text)


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Book Scanner - scan, look up and catalog books",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Look up and save a book
  %(prog)s lookup 9780132350884 --save

  # Search by author
  %(prog)s search "Robert C. Martin" --by author

  # Browse a subject
  %(prog)s subject science --published-in 1900-2000

  # Scan with the default camera
  %(prog)s scan
        """
    )
    parser.add_argument("--format", choices=["table", "json", "compact"], default="table", help="Output format")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    lookup_parser = subparsers.add_parser("lookup", help="Look up a book by ISBN")
    lookup_parser.add_argument("isbn", help="ISBN or scanned code")
    lookup_parser.add_argument("--save", action="store_true", help="Add the book to the library")

    search_parser = subparsers.add_parser("search", help="Search for books")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("--by", choices=["isbn", "author", "title"], help="Field to search")
    search_parser.add_argument("--limit", type=int, default=10, help="Max results (default: 10)")
    search_parser.add_argument("--save", action="store_true", help="Add the first result to the library")

    subject_parser = subparsers.add_parser("subject", help="Browse books by subject")
    subject_parser.add_argument("subject", help="Subject, e.g. love, science, fiction")
    subject_parser.add_argument("--published-in", help="Year range, e.g. 1500-1600")

    scan_parser = subparsers.add_parser("scan", help="Scan barcodes with a camera")
    scan_parser.add_argument("--camera", type=int, default=Config.CAMERA_INDEX, help="Camera index")

    import_parser = subparsers.add_parser("import", help="Add books from a file of ISBNs")
    import_parser.add_argument("file", help="Text file, one ISBN per line")

    list_parser = subparsers.add_parser("list", help="List saved books")
    list_parser.add_argument("--query", default="", help="Filter by title, author or ISBN")
    list_parser.add_argument("--favorites", action="store_true", help="Only favorites")
    list_parser.add_argument("--sort", choices=SORT_KEYS, default="title", help="Sort order")

    favorite_parser = subparsers.add_parser("favorite", help="Toggle favorite")
    favorite_parser.add_argument("id", help="Entry id (or prefix)")

    edit_parser = subparsers.add_parser("edit", help="Edit a saved book")
    edit_parser.add_argument("id", help="Entry id (or prefix)")
    edit_parser.add_argument("--title")
    edit_parser.add_argument("--authors")
    edit_parser.add_argument("--notes", help="Notes (empty string clears them)")

    delete_parser = subparsers.add_parser("delete", help="Delete a saved book")
    delete_parser.add_argument("id", help="Entry id (or prefix)")

    subparsers.add_parser("stats", help="Show collection statistics")

    export_parser = subparsers.add_parser("export", help="Export saved books as text")
    export_parser.add_argument("--output", help="Output file (default: stdout)")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = Config()

    # Configure logging
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    commands = {
        "lookup": lookup_book,
        "search": search_books,
        "subject": browse_subject,
        "scan": scan_books,
        "import": import_books,
        "list": list_books,
        "favorite": favorite_book,
        "edit": edit_book,
        "delete": delete_book,
        "stats": show_stats,
        "export": export_books,
    }

    try:
        commands[args.command](args, config)

    except BookServiceError as e:
        print(e.message)
        sys.exit(1)
    except StoreError as e:
        logger.error(f"Storage error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
