"""Catalog store interface and an in-memory implementation."""
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Callable, Dict, List, Optional
import logging

from bookscan.errors import DuplicateEntryError
from bookscan.models import CatalogEntry

logger = logging.getLogger(__name__)

# Fields a user may change after an entry is created
EDITABLE_FIELDS = frozenset({"title", "authors", "notes", "is_favorite"})


def check_changes(changes: Dict[str, object]) -> None:
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")


class CatalogStore(ABC):
    """Repository of saved books, keyed by generated id and queryable by ISBN."""

    @abstractmethod
    def get(self, entry_id: str) -> Optional[CatalogEntry]:
        """Get an entry by id."""

    @abstractmethod
    def find_by_isbn(self, isbn: str) -> Optional[CatalogEntry]:
        """Exact, case-sensitive ISBN match; at most one result."""

    @abstractmethod
    def list_entries(self) -> List[CatalogEntry]:
        """All entries, oldest first."""

    @abstractmethod
    def insert(self, entry: CatalogEntry) -> CatalogEntry:
        """
        Persist a new entry.

        Raises:
            DuplicateEntryError: If another entry holds the same ISBN
            StoreError: If the write fails
        """

    @abstractmethod
    def update(self, entry_id: str, **changes) -> Optional[CatalogEntry]:
        """Apply user edits. Returns None if the entry does not exist."""

    @abstractmethod
    def delete(self, entry_id: str) -> bool:
        """Remove an entry. Returns False if it was not there."""

    def find(self, predicate: Callable[[CatalogEntry], bool]) -> List[CatalogEntry]:
        return [entry for entry in self.list_entries() if predicate(entry)]

    def count(self) -> int:
        return len(self.list_entries())

    def save(self) -> None:
        """Flush pending changes. Stores that write through need not override."""

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class InMemoryCatalogStore(CatalogStore):
    """Process-local store. Entries are copied in and out so callers never share state with it."""

    def __init__(self):
        self._entries: Dict[str, CatalogEntry] = {}
        self._lock = threading.Lock()

    def get(self, entry_id: str) -> Optional[CatalogEntry]:
        with self._lock:
            entry = self._entries.get(entry_id)
            return replace(entry) if entry else None

    def find_by_isbn(self, isbn: str) -> Optional[CatalogEntry]:
        with self._lock:
            for entry in self._entries.values():
                if entry.isbn == isbn:
                    return replace(entry)
        return None

    def list_entries(self) -> List[CatalogEntry]:
        with self._lock:
            return [replace(entry) for entry in self._entries.values()]

    def insert(self, entry: CatalogEntry) -> CatalogEntry:
        with self._lock:
            if entry.isbn is not None and any(e.isbn == entry.isbn for e in self._entries.values()):
                raise DuplicateEntryError(entry.isbn)
            if entry.id in self._entries:
                raise ValueError(f"Entry {entry.id} already stored")
            self._entries[entry.id] = replace(entry)
        logger.debug(f"Stored entry {entry.id}")
        return entry

    def update(self, entry_id: str, **changes) -> Optional[CatalogEntry]:
        check_changes(changes)
        with self._lock:
            entry = self._entries.get(entry_id)
            if entry is None:
                return None
            updated = replace(entry, **changes)
            self._entries[entry_id] = updated
            return replace(updated)

    def delete(self, entry_id: str) -> bool:
        with self._lock:
            return self._entries.pop(entry_id, None) is not None
