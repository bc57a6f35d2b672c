"""HTTP client for the Open Library search and subjects APIs."""
import re
from typing import Optional, Dict, Any, List
from urllib.parse import quote
import logging

import requests

from bookscan.errors import (
    BadStatusError,
    DecodingError,
    EmptyResponseError,
    InvalidResponseError,
    InvalidURLError,
    NetworkError,
    NotFoundError,
)
from bookscan.models import NormalizedBookRecord
from bookscan.parse import parse_search_doc, parse_search_response, parse_subject_response

logger = logging.getLogger(__name__)

DEFAULT_HOST = "openlibrary.org"
DEFAULT_USER_AGENT = "BookScanner/1.0 (Python)"


def subject_path(subject: str) -> str:
    """
    Build the URL path segment for a subject listing.

    Raises:
        InvalidURLError: If the subject is blank
    """
    slug = re.sub(r"\s+", "_", subject.strip().lower())
    if not slug:
        raise InvalidURLError()
    return quote(slug, safe="")


def subject_params(published_in: Optional[str]) -> Dict[str, str]:
    published_in = (published_in or "").strip()
    return {"published_in": published_in} if published_in else {}


def default_headers(user_agent: str) -> Dict[str, str]:
    return {"User-Agent": user_agent, "Accept": "application/json"}


class OpenLibraryClient:
    """Resolves codes and queries to book records. Every error is terminal; no retries."""

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: int = 10
    ):
        """
        Initialize Open Library client.

        Args:
            host: API host, covers are served from ``covers.{host}``
            user_agent: Descriptive client identifier sent with every request
            timeout: Request timeout in seconds
        """
        self.host = host
        self.covers_host = f"covers.{host}"
        self.timeout = timeout

        # Create session for connection pooling
        self.session = requests.Session()
        self.session.headers.update(default_headers(user_agent))

    @property
    def search_url(self) -> str:
        return f"https://{self.host}/search.json"

    def subject_url(self, subject: str) -> str:
        return f"https://{self.host}/subjects/{subject_path(subject)}.json"

    def resolve_by_code(self, code: str) -> NormalizedBookRecord:
        """
        Look up a scanned code as an ISBN.

        Args:
            code: Decoded barcode value

        Returns:
            Record for the first match; the scanned code is used as ISBN
            when the match lists none

        Raises:
            NotFoundError: If the search has no results
            BookServiceError: For transport, status or decoding failures
        """
        docs = self._search_docs(f"isbn:{code}")
        if not docs:
            raise NotFoundError(code)
        return parse_search_doc(docs[0], fallback_isbn=code, covers_host=self.covers_host)

    def resolve_by_query(self, query: str) -> NormalizedBookRecord:
        """Resolve a caller-built query such as ``author:{name}`` to its first match."""
        docs = self._search_docs(query)
        if not docs:
            raise NotFoundError(query, isbn=False)
        return parse_search_doc(docs[0], covers_host=self.covers_host)

    def search(self, query: str, limit: Optional[int] = None) -> List[NormalizedBookRecord]:
        """Map every document of a search. No results is an empty list."""
        docs = self._search_docs(query, limit)
        return [parse_search_doc(doc, covers_host=self.covers_host) for doc in docs]

    def browse_by_subject(
        self,
        subject: str,
        published_in: Optional[str] = None
    ) -> List[NormalizedBookRecord]:
        """
        List works filed under a subject.

        Args:
            subject: Subject name, e.g. "science" or "science fiction"
            published_in: Optional year range such as "1500-1600"

        Returns:
            Records without ISBNs (empty if the subject has no works)
        """
        response_json = self._get_json(self.subject_url(subject), subject_params(published_in))
        return parse_subject_response(response_json, covers_host=self.covers_host)

    def _search_docs(self, query: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"q": query}
        if limit:
            params["limit"] = limit
        return parse_search_response(self._get_json(self.search_url, params))

    def _get_json(self, url: str, params: Dict[str, Any]) -> Any:
        """
        Make one GET request and decode the JSON body.

        Raises:
            InvalidURLError, NetworkError, InvalidResponseError,
            BadStatusError, EmptyResponseError, DecodingError
        """
        logger.info(f"Request: {url} {params}")
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except (requests.exceptions.InvalidURL, requests.exceptions.MissingSchema,
                requests.exceptions.InvalidSchema) as e:
            logger.error(f"Invalid URL {url}: {e}")
            raise InvalidURLError() from e
        except requests.exceptions.RequestException as e:
            logger.warning(f"Network error for {url}: {e}")
            raise NetworkError(e) from e

        status_code = getattr(response, "status_code", None)
        if not isinstance(status_code, int):
            raise InvalidResponseError()

        if not 200 <= status_code < 300:
            logger.warning(f"Bad status {status_code}: {response.text[:500]}")
            raise BadStatusError(status_code)

        if not response.content:
            raise EmptyResponseError()

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Failed to decode response from {url}: {e}")
            raise DecodingError(e) from e

    def close(self):
        """Close the session."""
        self.session.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
