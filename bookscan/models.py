"""Data models for books."""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple

UNTITLED = "Untitled"
UNKNOWN_AUTHOR = "Unknown author"


@dataclass(frozen=True)
class NormalizedBookRecord:
    """Book metadata as resolved from the catalog API.

    Placeholder defaults are applied once, by the mapping in ``parse``;
    nothing downstream re-applies them.
    """
    title: str = UNTITLED
    authors: str = UNKNOWN_AUTHOR
    isbn: Optional[str] = None
    thumbnail_url: Optional[str] = None
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    description: Optional[str] = None
    subjects: Tuple[str, ...] = ()

    @property
    def subjects_text(self) -> Optional[str]:
        """Format subjects as comma-separated string."""
        return ", ".join(self.subjects) if self.subjects else None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CatalogEntry:
    """A saved book owned by the catalog store."""
    id: str
    title: str
    authors: str
    isbn: Optional[str] = None
    thumbnail_url: Optional[str] = None
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    description: Optional[str] = None
    subjects: Tuple[str, ...] = ()
    notes: Optional[str] = None
    is_favorite: bool = False
    added_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_record(
        cls,
        record: NormalizedBookRecord,
        entry_id: Optional[str] = None,
        added_at: Optional[datetime] = None
    ) -> "CatalogEntry":
        """Create a new, not yet persisted entry from a resolved record."""
        return cls(
            id=entry_id or str(uuid.uuid4()),
            title=record.title,
            authors=record.authors,
            isbn=record.isbn,
            thumbnail_url=record.thumbnail_url,
            publisher=record.publisher,
            published_date=record.published_date,
            description=record.description,
            subjects=tuple(record.subjects),
            added_at=added_at or utc_now(),
        )

    def to_record(self) -> NormalizedBookRecord:
        return NormalizedBookRecord(
            title=self.title,
            authors=self.authors,
            isbn=self.isbn,
            thumbnail_url=self.thumbnail_url,
            publisher=self.publisher,
            published_date=self.published_date,
            description=self.description,
            subjects=tuple(self.subjects),
        )

    @property
    def subjects_text(self) -> Optional[str]:
        return ", ".join(self.subjects) if self.subjects else None


class OutcomeKind(str, Enum):
    ADDED = "added"
    ALREADY_EXISTS = "already_exists"
    SAVE_FAILED = "save_failed"


@dataclass(frozen=True)
class Outcome:
    """Result of one attempt to add a book to the catalog."""
    kind: OutcomeKind
    entry: Optional[CatalogEntry] = None
    reason: Optional[str] = None

    @classmethod
    def added(cls, entry: CatalogEntry) -> "Outcome":
        return cls(OutcomeKind.ADDED, entry=entry)

    @classmethod
    def already_exists(cls, entry: Optional[CatalogEntry] = None) -> "Outcome":
        return cls(OutcomeKind.ALREADY_EXISTS, entry=entry)

    @classmethod
    def save_failed(cls, reason: str) -> "Outcome":
        return cls(OutcomeKind.SAVE_FAILED, reason=reason)

    @property
    def message(self) -> str:
        """User-facing text for this outcome."""
        if self.kind is OutcomeKind.ADDED:
            return f'"{self.entry.title}" added to your list.'
        if self.kind is OutcomeKind.ALREADY_EXISTS:
            return "This book is already in your list."
        return f"Could not save book: {self.reason}"
