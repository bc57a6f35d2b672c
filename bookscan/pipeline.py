"""
Scan-to-catalog ingestion.

The pipeline is the only component that both calls the resolver and writes
to the catalog store, so it owns the "one entry per ISBN" rule:

1. If the record has an ISBN, look for an entry with the same ISBN.
   A failed lookup is logged and treated as "not found".
2. Build a new entry (fresh id, added now, not a favorite, no notes).
3. Insert it.

Steps 1-3 run under a per-ISBN lock, and a uniqueness rejection from the
store is reported the same way as a hit in step 1.
"""
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple
import logging

from bookscan.errors import DuplicateEntryError, StoreError
from bookscan.models import CatalogEntry, NormalizedBookRecord, Outcome, utc_now
from bookscan.store import CatalogStore

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """Resolves scanned codes and adds them to a catalog store without duplicating ISBNs."""

    def __init__(
        self,
        store: CatalogStore,
        resolver=None,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Args:
            store: Catalog store to write to
            resolver: Object with ``resolve_by_code`` and ``resolve_by_query``
                (an ``OpenLibraryClient``); only needed by ``ingest_*``
            clock: Source of the added timestamp
        """
        self.store = store
        self.resolver = resolver
        self.clock = clock
        # ISBN -> (lock, number of adds holding or waiting on it)
        self._locks: Dict[str, Tuple[threading.Lock, int]] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _isbn_lock(self, isbn: Optional[str]):
        if isbn is None:
            yield
            return
        with self._locks_guard:
            lock, holders = self._locks.get(isbn, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[isbn] = (lock, holders + 1)
        try:
            with lock:
                yield
        finally:
            with self._locks_guard:
                lock, holders = self._locks[isbn]
                if holders == 1:
                    del self._locks[isbn]
                else:
                    self._locks[isbn] = (lock, holders - 1)

    def add_from_lookup(self, record: NormalizedBookRecord) -> Outcome:
        """
        Add a resolved record to the store unless its ISBN is already there.

        Args:
            record: Record produced by the resolver

        Returns:
            Outcome: added, already_exists or save_failed. Store errors are
            reported through the outcome, never raised.
        """
        with self._isbn_lock(record.isbn):
            if record.isbn is not None:
                try:
                    existing = self.store.find_by_isbn(record.isbn)
                except StoreError as e:
                    logger.warning(f"Duplicate check failed for ISBN {record.isbn}: {e}")
                    existing = None

                if existing is not None:
                    logger.info(f"ISBN {record.isbn} already in catalog as {existing.id}")
                    return Outcome.already_exists(existing)

            entry = CatalogEntry.from_record(record, added_at=self.clock())
            try:
                self.store.insert(entry)
                self.store.save()
            except DuplicateEntryError:
                logger.info(f"ISBN {record.isbn} inserted concurrently elsewhere")
                return Outcome.already_exists()
            except StoreError as e:
                logger.error(f"Could not save '{record.title}': {e}")
                return Outcome.save_failed(str(e))

        logger.info(f"Added '{entry.title}' ({entry.id})")
        return Outcome.added(entry)

    def add_many(self, records: Iterable[NormalizedBookRecord]) -> List[Outcome]:
        """Add records one after another."""
        return [self.add_from_lookup(record) for record in records]

    def ingest_code(self, code: str) -> Outcome:
        """
        Resolve a scanned code and add the result.

        Raises:
            BookServiceError: If the lookup fails; nothing is written
        """
        record = self._require_resolver().resolve_by_code(code)
        return self.add_from_lookup(record)

    def ingest_query(self, query: str) -> Outcome:
        """Resolve a query such as ``title:{name}`` and add the first match."""
        record = self._require_resolver().resolve_by_query(query)
        return self.add_from_lookup(record)

    def _require_resolver(self):
        if self.resolver is None:
            raise RuntimeError("IngestionPipeline was created without a resolver")
        return self.resolver
