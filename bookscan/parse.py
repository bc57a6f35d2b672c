"""Parse and normalize Open Library API responses."""
import re
from typing import Dict, Any, List, Optional
from urllib.parse import urlsplit

from bookscan.errors import DecodingError
from bookscan.models import NormalizedBookRecord, UNTITLED, UNKNOWN_AUTHOR

DEFAULT_COVERS_HOST = "covers.openlibrary.org"

_COVER_SIZE_RE = re.compile(r"-[ML]\.jpg$")


def upgrade_to_https(url: str) -> str:
    """Rewrite a leading ``http://`` to ``https://``, leaving the rest intact."""
    if url.startswith("http://"):
        return "https://" + url[len("http://"):]
    return url


def normalize_thumbnail(url: Optional[str]) -> Optional[str]:
    """
    Upgrade a thumbnail URL to https and check that it parses.

    Args:
        url: Raw URL string from any source

    Returns:
        The secure URL, or None if missing or unparseable
    """
    if not url:
        return None

    url = upgrade_to_https(url)
    try:
        parts = urlsplit(url)
    except ValueError:
        return None

    if not parts.scheme or not parts.netloc or any(ch.isspace() for ch in url):
        return None
    return url


def cover_url(cover_id: int, covers_host: str = DEFAULT_COVERS_HOST, size: str = "M") -> str:
    """Cover image URL for a numeric cover id."""
    return f"https://{covers_host}/b/id/{cover_id}-{size}.jpg"


def small_cover_url(url: str) -> str:
    """Return the ``-S`` variant of a cover URL, for list rows."""
    if "covers." in url and _COVER_SIZE_RE.search(url):
        return _COVER_SIZE_RE.sub("-S.jpg", url)
    return url


def _optional(obj: Dict[str, Any], key: str, kind) -> Any:
    value = obj.get(key)
    if value is None:
        return None
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise DecodingError(TypeError(f"'{key}' has unexpected type {type(value).__name__}"))
    return value


def _string_list(obj: Dict[str, Any], key: str) -> Optional[List[str]]:
    values = _optional(obj, key, list)
    if values is None:
        return None
    if not all(isinstance(v, str) for v in values):
        raise DecodingError(TypeError(f"'{key}' must be a list of strings"))
    return values


def _join(values: Optional[List[str]]) -> Optional[str]:
    return ", ".join(values) if values else None


def _published(first_publish_year: Optional[int], publish_dates: Optional[List[str]]) -> Optional[str]:
    # First-publish year wins over the edition dates
    if first_publish_year is not None:
        return str(first_publish_year)
    if publish_dates:
        return publish_dates[0]
    return None


def parse_search_doc(
    doc: Dict[str, Any],
    fallback_isbn: Optional[str] = None,
    covers_host: str = DEFAULT_COVERS_HOST
) -> NormalizedBookRecord:
    """
    Map a single ``docs`` entry of a search response.

    Args:
        doc: One document from ``/search.json``
        fallback_isbn: ISBN to use when the document lists none
        covers_host: Host used to build the thumbnail URL

    Returns:
        NormalizedBookRecord with placeholder defaults applied

    Raises:
        DecodingError: If a field has the wrong JSON type
    """
    if not isinstance(doc, dict):
        raise DecodingError(TypeError("search doc must be an object"))

    title = _optional(doc, "title", str)
    authors = _string_list(doc, "author_name")
    isbns = _string_list(doc, "isbn")
    cover_id = _optional(doc, "cover_i", int)

    thumbnail = cover_url(cover_id, covers_host) if cover_id is not None else None

    return NormalizedBookRecord(
        title=title if title is not None else UNTITLED,
        authors=_join(authors) or UNKNOWN_AUTHOR,
        isbn=isbns[0] if isbns else fallback_isbn,
        thumbnail_url=normalize_thumbnail(thumbnail),
        publisher=_join(_string_list(doc, "publisher")),
        published_date=_published(
            _optional(doc, "first_publish_year", int),
            _string_list(doc, "publish_date")
        ),
        description=None,
        subjects=tuple(_string_list(doc, "subject") or ()),
    )


def parse_search_response(response_json: Any) -> List[Dict[str, Any]]:
    """
    Validate a ``/search.json`` body and return its documents.

    Raises:
        DecodingError: If the body does not have the search response shape
    """
    if not isinstance(response_json, dict):
        raise DecodingError(TypeError("search response must be an object"))
    if _optional(response_json, "numFound", int) is None:
        raise DecodingError(KeyError("numFound"))

    docs = _optional(response_json, "docs", list)
    if docs is None:
        raise DecodingError(KeyError("docs"))
    return docs


def parse_subject_work(work: Dict[str, Any], covers_host: str = DEFAULT_COVERS_HOST) -> NormalizedBookRecord:
    """Map one ``works`` entry of a subject listing. These never carry an ISBN."""
    if not isinstance(work, dict):
        raise DecodingError(TypeError("subject work must be an object"))

    title = _optional(work, "title", str)
    cover_id = _optional(work, "cover_id", int)

    names = []
    for author in _optional(work, "authors", list) or []:
        if not isinstance(author, dict):
            raise DecodingError(TypeError("author must be an object"))
        name = _optional(author, "name", str)
        if name:
            names.append(name)

    return NormalizedBookRecord(
        title=title if title is not None else UNTITLED,
        authors=_join(names) or UNKNOWN_AUTHOR,
        isbn=None,
        thumbnail_url=normalize_thumbnail(cover_url(cover_id, covers_host) if cover_id is not None else None),
        published_date=_published(_optional(work, "first_publish_year", int), None),
        subjects=tuple(_string_list(work, "subject") or ()),
    )


def parse_subject_response(
    response_json: Any,
    covers_host: str = DEFAULT_COVERS_HOST
) -> List[NormalizedBookRecord]:
    """
    Parse a full ``/subjects/{subject}.json`` body.

    Returns:
        List of records (empty if the subject has no works)
    """
    if not isinstance(response_json, dict):
        raise DecodingError(TypeError("subject response must be an object"))

    works = _optional(response_json, "works", list)
    if works is None:
        raise DecodingError(KeyError("works"))

    return [parse_subject_work(work, covers_host) for work in works]


def deduplicate_records(records: List[NormalizedBookRecord]) -> List[NormalizedBookRecord]:
    """
    Remove duplicate records by ISBN, keeping the first.

    Records without an ISBN are always kept.
    """
    seen_isbns = set()
    unique_records = []

    for record in records:
        if record.isbn is None:
            unique_records.append(record)
        elif record.isbn not in seen_isbns:
            seen_isbns.add(record.isbn)
            unique_records.append(record)

    return unique_records
