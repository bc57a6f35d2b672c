"""Browsing and editing the saved library."""
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from bookscan.models import CatalogEntry
from bookscan.store import CatalogStore

SORT_KEYS = ("title", "added", "authors")


@dataclass
class CollectionStats:
    """Summary of the saved collection."""
    total: int
    subject_counts: List[Tuple[str, int]] = field(default_factory=list)
    recently_added: List[CatalogEntry] = field(default_factory=list)

    @property
    def top_subject(self) -> Optional[Tuple[str, int]]:
        return self.subject_counts[0] if self.subject_counts else None


def search_entries(entries: List[CatalogEntry], text: str) -> List[CatalogEntry]:
    """
    Case-insensitive match on title, authors or ISBN.

    Args:
        entries: Entries to filter
        text: Search text; blank returns everything

    Returns:
        Matching entries in their original order
    """
    needle = (text or "").strip().lower()
    if not needle:
        return list(entries)

    return [
        entry for entry in entries
        if needle in entry.title.lower()
        or needle in entry.authors.lower()
        or (entry.isbn and needle in entry.isbn.lower())
    ]


def filter_favorites(entries: List[CatalogEntry]) -> List[CatalogEntry]:
    return [entry for entry in entries if entry.is_favorite]


def sort_entries(entries: List[CatalogEntry], key: str = "title") -> List[CatalogEntry]:
    """Sort by title (A-Z), authors (A-Z) or added date (newest first)."""
    if key == "title":
        return sorted(entries, key=lambda e: e.title.lower())
    if key == "authors":
        return sorted(entries, key=lambda e: e.authors.lower())
    if key == "added":
        return sorted(entries, key=lambda e: e.added_at, reverse=True)
    raise ValueError(f"Unknown sort key: {key}")


def toggle_favorite(store: CatalogStore, entry_id: str) -> Optional[CatalogEntry]:
    entry = store.get(entry_id)
    if entry is None:
        return None
    updated = store.update(entry_id, is_favorite=not entry.is_favorite)
    store.save()
    return updated


def edit_entry(
    store: CatalogStore,
    entry_id: str,
    title: Optional[str] = None,
    authors: Optional[str] = None,
    notes: Optional[str] = None
) -> Optional[CatalogEntry]:
    """
    Apply user edits; arguments left as None are not changed.

    An empty notes string clears the notes.
    """
    changes = {}
    if title is not None:
        changes["title"] = title
    if authors is not None:
        changes["authors"] = authors
    if notes is not None:
        changes["notes"] = notes or None

    updated = store.update(entry_id, **changes)
    store.save()
    return updated


def collection_stats(entries: List[CatalogEntry], recent: int = 5) -> CollectionStats:
    """
    Count books and subjects.

    Subjects are ordered by count (highest first), then name.
    """
    counts = Counter()
    for entry in entries:
        for subject in entry.subjects:
            subject = subject.strip()
            if subject:
                counts[subject] += 1

    subject_counts = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    recently_added = sorted(entries, key=lambda e: e.added_at, reverse=True)[:recent]

    return CollectionStats(
        total=len(entries),
        subject_counts=subject_counts,
        recently_added=recently_added
    )
