"""Tests for the ingestion pipeline."""
import threading
import time
from dataclasses import replace
from datetime import datetime, timezone
from unittest.mock import MagicMock

import psycopg2
import pytest

from bookscan.database import Database
from bookscan.errors import NotFoundError, StoreError
from bookscan.models import CatalogEntry, NormalizedBookRecord, OutcomeKind
from bookscan.pipeline import IngestionPipeline
from bookscan.store import InMemoryCatalogStore

ADDED_AT = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FailingLookupStore(InMemoryCatalogStore):
    def find_by_isbn(self, isbn):
        raise StoreError("index unavailable")


class FailingWriteStore(InMemoryCatalogStore):
    def insert(self, entry):
        raise StoreError("disk full")


class BlindStore(InMemoryCatalogStore):
    """Never sees existing entries, so only the insert constraint can catch duplicates."""

    def find_by_isbn(self, isbn):
        return None


class UnconstrainedStore(InMemoryCatalogStore):
    """Slow ISBN lookup and no uniqueness check on insert."""

    def find_by_isbn(self, isbn):
        time.sleep(0.01)
        return super().find_by_isbn(isbn)

    def insert(self, entry):
        with self._lock:
            self._entries[entry.id] = replace(entry)
        return entry


class FakeResolver:
    def __init__(self, records):
        self.records = records

    def resolve_by_code(self, code):
        if code not in self.records:
            raise NotFoundError(code)
        return self.records[code]

    def resolve_by_query(self, query):
        return self.records[query]


def test_same_isbn_added_once(store, clean_code):
    """Test Added then AlreadyExists for the same ISBN."""
    pipeline = IngestionPipeline(store)

    first = pipeline.add_from_lookup(clean_code)
    second = pipeline.add_from_lookup(replace(clean_code, title="Clean Code (2nd printing)"))

    assert first.kind is OutcomeKind.ADDED
    assert second.kind is OutcomeKind.ALREADY_EXISTS
    assert second.entry.id == first.entry.id
    assert len(store.find(lambda e: e.isbn == clean_code.isbn)) == 1


def test_records_without_isbn_never_deduplicated(store):
    """Test that null ISBNs always produce new entries."""
    pipeline = IngestionPipeline(store)
    record = NormalizedBookRecord(title="Pamphlet")

    first = pipeline.add_from_lookup(record)
    second = pipeline.add_from_lookup(record)

    assert first.kind is OutcomeKind.ADDED
    assert second.kind is OutcomeKind.ADDED
    assert first.entry.id != second.entry.id
    assert store.count() == 2


def test_new_entry_fields(store, clean_code):
    """Test the app-local fields of a freshly added entry."""
    outcome = IngestionPipeline(store, clock=lambda: ADDED_AT).add_from_lookup(clean_code)
    entry = store.get(outcome.entry.id)

    assert entry.is_favorite is False
    assert entry.notes is None
    assert entry.added_at == ADDED_AT
    assert entry.to_record() == clean_code


def test_entry_record_round_trip(clean_code):
    """Test that converting to an entry and back keeps every field."""
    record = replace(clean_code, description="A handbook", subjects=("Fiction, general", "Code"))

    assert CatalogEntry.from_record(record).to_record() == record


def test_lookup_failure_does_not_block_add(clean_code):
    """Test that a failed duplicate check still saves the book."""
    store = FailingLookupStore()

    outcome = IngestionPipeline(store).add_from_lookup(clean_code)

    assert outcome.kind is OutcomeKind.ADDED
    assert store.count() == 1


def test_write_failure(clean_code):
    """Test that a failed write is reported, not raised."""
    outcome = IngestionPipeline(FailingWriteStore()).add_from_lookup(clean_code)

    assert outcome.kind is OutcomeKind.SAVE_FAILED
    assert outcome.reason == "disk full"
    assert outcome.message == "Could not save book: disk full"


def test_store_constraint_reported_as_already_exists(clean_code):
    """Test that an insert-time duplicate is AlreadyExists."""
    store = BlindStore()
    pipeline = IngestionPipeline(store)

    assert pipeline.add_from_lookup(clean_code).kind is OutcomeKind.ADDED
    assert pipeline.add_from_lookup(clean_code).kind is OutcomeKind.ALREADY_EXISTS
    assert store.count() == 1


def test_concurrent_adds_for_same_isbn(clean_code):
    """Test that simultaneous adds of one ISBN produce a single entry."""
    store = UnconstrainedStore()
    pipeline = IngestionPipeline(store)
    barrier = threading.Barrier(6)
    outcomes = []

    def add():
        barrier.wait()
        outcomes.append(pipeline.add_from_lookup(clean_code))

    threads = [threading.Thread(target=add) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    kinds = [o.kind for o in outcomes]
    assert kinds.count(OutcomeKind.ADDED) == 1
    assert kinds.count(OutcomeKind.ALREADY_EXISTS) == 5
    assert store.count() == 1


def test_outcome_messages(store, clean_code):
    """Test the user-facing outcome texts."""
    pipeline = IngestionPipeline(store)

    assert pipeline.add_from_lookup(clean_code).message == '"Clean Code" added to your list.'
    assert pipeline.add_from_lookup(clean_code).message == "This book is already in your list."


def test_ingest_code(store, clean_code):
    """Test resolve-then-add for a scanned code."""
    pipeline = IngestionPipeline(store, resolver=FakeResolver({"978-0132350884": clean_code}))

    assert pipeline.ingest_code("978-0132350884").kind is OutcomeKind.ADDED
    assert pipeline.ingest_code("978-0132350884").kind is OutcomeKind.ALREADY_EXISTS


def test_ingest_code_lookup_error_propagates(store):
    """Test that resolver failures reach the caller and nothing is written."""
    pipeline = IngestionPipeline(store, resolver=FakeResolver({}))

    with pytest.raises(NotFoundError) as excinfo:
        pipeline.ingest_code("000")

    assert excinfo.value.message == "No books found for ISBN 000"
    assert store.count() == 0


def test_ingest_query(store):
    """Test resolve-then-add for a free-text query."""
    record = NormalizedBookRecord(title="Dune", authors="Frank Herbert")
    pipeline = IngestionPipeline(store, resolver=FakeResolver({"title:dune": record}))

    outcome = pipeline.ingest_query("title:dune")

    assert outcome.entry.title == "Dune"


def test_ingest_without_resolver(store):
    """Test that ingest needs a resolver."""
    with pytest.raises(RuntimeError):
        IngestionPipeline(store).ingest_code("1")


def test_add_many(store, clean_code):
    """Test sequential adds."""
    outcomes = IngestionPipeline(store).add_many([clean_code, clean_code, NormalizedBookRecord()])

    assert [o.kind for o in outcomes] == [
        OutcomeKind.ADDED, OutcomeKind.ALREADY_EXISTS, OutcomeKind.ADDED
    ]


def test_unreachable_database_reports_save_failed(clean_code):
    """Test that a database that cannot be reached yields a save failure."""
    connection_pool = MagicMock()
    connection_pool.getconn.side_effect = psycopg2.OperationalError("could not connect to server")
    db = Database("postgresql://unused", connection_pool=connection_pool)

    outcome = IngestionPipeline(db).add_from_lookup(clean_code)

    assert outcome.kind is OutcomeKind.SAVE_FAILED
    assert "could not connect to server" in outcome.reason


def test_isbn_locks_released(store, clean_code):
    """Test that per-ISBN locks do not outlive their adds."""
    pipeline = IngestionPipeline(store)

    pipeline.add_many([clean_code, clean_code, replace(clean_code, isbn="978-1")])

    assert pipeline._locks == {}
