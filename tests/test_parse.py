"""Tests for parsing functions."""
import pytest

from bookscan.errors import DecodingError
from bookscan.models import NormalizedBookRecord
from bookscan.parse import (
    cover_url,
    deduplicate_records,
    normalize_thumbnail,
    parse_search_doc,
    parse_search_response,
    parse_subject_response,
    small_cover_url,
    upgrade_to_https,
)


def test_parse_search_doc_complete():
    """Test parsing a document with all fields present."""
    doc = {
        "title": "Clean Code",
        "author_name": ["Robert C. Martin", "Dean Wampler"],
        "first_publish_year": 2008,
        "cover_i": 8065615,
        "isbn": ["9780132350884", "0132350882"],
        "publisher": ["Prentice Hall", "Pearson"],
        "publish_date": ["August 2008"],
        "subject": ["Software engineering", "Agile software development"],
    }

    record = parse_search_doc(doc)

    assert record.title == "Clean Code"
    assert record.authors == "Robert C. Martin, Dean Wampler"
    assert record.isbn == "9780132350884"
    assert record.thumbnail_url == "https://covers.openlibrary.org/b/id/8065615-M.jpg"
    assert record.publisher == "Prentice Hall, Pearson"
    assert record.published_date == "2008"
    assert record.description is None
    assert record.subjects == ("Software engineering", "Agile software development")
    assert record.subjects_text == "Software engineering, Agile software development"


def test_parse_search_doc_missing_fields():
    """Test that an empty document gets the placeholder defaults."""
    record = parse_search_doc({})

    assert record.title == "Untitled"
    assert record.authors == "Unknown author"
    assert record.isbn is None
    assert record.thumbnail_url is None
    assert record.publisher is None
    assert record.published_date is None
    assert record.subjects == ()


def test_parse_search_doc_isbn_fallback():
    """Test that the scanned code is used when the document lists no ISBN."""
    record = parse_search_doc({"title": "Clean Code"}, fallback_isbn="978-0132350884")
    assert record.isbn == "978-0132350884"

    record = parse_search_doc({"isbn": ["111"]}, fallback_isbn="222")
    assert record.isbn == "111"


def test_published_date_falls_back_to_publish_date():
    """Test that the edition date is used without a first-publish year."""
    record = parse_search_doc({"publish_date": ["March 1999", "2001"]})
    assert record.published_date == "March 1999"


def test_parse_search_doc_wrong_types():
    """Test that mistyped fields are decoding errors."""
    with pytest.raises(DecodingError):
        parse_search_doc({"title": 42})

    with pytest.raises(DecodingError):
        parse_search_doc({"author_name": "Robert C. Martin"})

    with pytest.raises(DecodingError) as excinfo:
        parse_search_doc({"cover_i": "123"})
    assert str(excinfo.value) == "Error decoding book data"


def test_cover_urls():
    """Test cover URL construction and the small variant."""
    assert cover_url(42) == "https://covers.openlibrary.org/b/id/42-M.jpg"
    assert cover_url(42, "covers.example.org", "L") == "https://covers.example.org/b/id/42-L.jpg"

    assert small_cover_url("https://covers.openlibrary.org/b/id/42-M.jpg") == \
        "https://covers.openlibrary.org/b/id/42-S.jpg"
    assert small_cover_url("https://covers.openlibrary.org/b/id/42-L.jpg") == \
        "https://covers.openlibrary.org/b/id/42-S.jpg"
    assert small_cover_url("https://example.com/cover-M.jpg") == "https://example.com/cover-M.jpg"


def test_thumbnail_upgraded_to_https():
    """Test that only the leading scheme is rewritten."""
    assert upgrade_to_https("http://books.example.com/t.jpg?src=http://x") == \
        "https://books.example.com/t.jpg?src=http://x"
    assert upgrade_to_https("https://already.example.com/a") == "https://already.example.com/a"
    assert normalize_thumbnail("http://example.com/thumb.jpg") == "https://example.com/thumb.jpg"


def test_unparseable_thumbnail_is_dropped():
    """Test that a URL which does not parse becomes None instead of an error."""
    assert normalize_thumbnail("http://exa mple.com/a.jpg") is None
    assert normalize_thumbnail("not a url") is None
    assert normalize_thumbnail("") is None
    assert normalize_thumbnail(None) is None


def test_parse_search_response():
    """Test validation of the search body."""
    docs = parse_search_response({"numFound": 1, "docs": [{"title": "A"}]})
    assert docs == [{"title": "A"}]

    assert parse_search_response({"numFound": 0, "docs": []}) == []

    with pytest.raises(DecodingError):
        parse_search_response({"docs": []})

    with pytest.raises(DecodingError):
        parse_search_response({"numFound": 1, "docs": {}})

    with pytest.raises(DecodingError):
        parse_search_response(["not", "an", "object"])


def test_parse_subject_response():
    """Test mapping of subject works."""
    response = {
        "name": "science",
        "work_count": 2,
        "works": [
            {
                "key": "/works/OL1W",
                "title": "On the Origin of Species",
                "cover_id": 999,
                "subject": ["Evolution", "Natural selection"],
                "authors": [{"name": "Charles Darwin"}],
                "first_publish_year": 1859,
            },
            {"key": "/works/OL2W", "authors": []},
        ],
    }

    records = parse_subject_response(response)

    assert len(records) == 2
    assert records[0].title == "On the Origin of Species"
    assert records[0].authors == "Charles Darwin"
    assert records[0].isbn is None
    assert records[0].thumbnail_url == "https://covers.openlibrary.org/b/id/999-M.jpg"
    assert records[0].published_date == "1859"
    assert records[0].subjects == ("Evolution", "Natural selection")

    assert records[1].title == "Untitled"
    assert records[1].authors == "Unknown author"
    assert records[1].isbn is None


def test_parse_subject_response_no_works():
    """Test that a subject without works is an empty list."""
    assert parse_subject_response({"name": "science", "work_count": 0, "works": []}) == []


def test_deduplicate_records():
    """Test deduplication by ISBN, keeping every record without one."""
    records = [
        NormalizedBookRecord(title="A", isbn="1"),
        NormalizedBookRecord(title="B", isbn="2"),
        NormalizedBookRecord(title="A again", isbn="1"),
        NormalizedBookRecord(title="No ISBN"),
        NormalizedBookRecord(title="No ISBN"),
    ]

    unique = deduplicate_records(records)

    assert [r.title for r in unique] == ["A", "B", "No ISBN", "No ISBN"]
