"""Async HTTP client for concurrent lookups."""
import asyncio
import httpx
from typing import List, Optional, Dict, Any, Union
import logging

from bookscan.client import DEFAULT_HOST, DEFAULT_USER_AGENT, default_headers, subject_path, subject_params
from bookscan.errors import (
    BadStatusError,
    BookServiceError,
    DecodingError,
    EmptyResponseError,
    InvalidURLError,
    NetworkError,
    NotFoundError,
)
from bookscan.models import NormalizedBookRecord
from bookscan.parse import parse_search_doc, parse_search_response, parse_subject_response

logger = logging.getLogger(__name__)


class AsyncOpenLibraryClient:
    """Async client for resolving many codes in parallel."""

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: int = 10,
        max_concurrent: int = 5,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize async client.

        Args:
            host: API host
            user_agent: Client identifier header
            timeout: Request timeout
            max_concurrent: Maximum concurrent requests
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.host = host
        self.covers_host = f"covers.{host}"
        self.timeout = timeout
        self.semaphore = asyncio.Semaphore(max_concurrent)

        # Create async HTTP client
        self.client = httpx.AsyncClient(
            timeout=timeout,
            headers=default_headers(user_agent),
            transport=transport
        )

    async def resolve_by_code(self, code: str) -> NormalizedBookRecord:
        """Look up a scanned code as an ISBN, falling back to the code itself."""
        docs = await self._search_docs(f"isbn:{code}")
        if not docs:
            raise NotFoundError(code)
        return parse_search_doc(docs[0], fallback_isbn=code, covers_host=self.covers_host)

    async def resolve_by_query(self, query: str) -> NormalizedBookRecord:
        docs = await self._search_docs(query)
        if not docs:
            raise NotFoundError(query, isbn=False)
        return parse_search_doc(docs[0], covers_host=self.covers_host)

    async def browse_by_subject(
        self,
        subject: str,
        published_in: Optional[str] = None
    ) -> List[NormalizedBookRecord]:
        url = f"https://{self.host}/subjects/{subject_path(subject)}.json"
        response_json = await self._get_json(url, subject_params(published_in))
        return parse_subject_response(response_json, covers_host=self.covers_host)

    async def resolve_many(
        self,
        codes: List[str]
    ) -> List[Union[NormalizedBookRecord, BookServiceError]]:
        """
        Resolve several codes in parallel.

        Args:
            codes: Scanned codes

        Returns:
            One item per code, in order: the record, or the error it failed with
        """
        async def resolve(code: str):
            try:
                return await self.resolve_by_code(code)
            except BookServiceError as e:
                logger.warning(f"Lookup failed for {code}: {e}")
                return e

        tasks = [resolve(code) for code in codes]
        return list(await asyncio.gather(*tasks))

    async def _search_docs(self, query: str) -> List[Dict[str, Any]]:
        response_json = await self._get_json(f"https://{self.host}/search.json", {"q": query})
        return parse_search_response(response_json)

    async def _get_json(self, url: str, params: Dict[str, Any]) -> Any:
        # Use semaphore to limit concurrency
        async with self.semaphore:
            logger.info(f"Async request: {url} {params}")
            try:
                response = await self.client.get(url, params=params)
            except httpx.InvalidURL as e:
                raise InvalidURLError() from e
            except httpx.HTTPError as e:
                logger.warning(f"Async request failed: {e}")
                raise NetworkError(e) from e

        if not response.is_success:
            logger.warning(f"Status {response.status_code} for {url}")
            raise BadStatusError(response.status_code)

        if not response.content:
            raise EmptyResponseError()

        try:
            return response.json()
        except ValueError as e:
            raise DecodingError(e) from e

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
