"""Exceptions raised by the resolver and the catalog store.

Resolver messages are shown to users verbatim, so their text is fixed.
"""
from typing import Optional


class BookServiceError(Exception):
    """Base class for metadata lookup failures."""

    message = "Book service error"

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def __str__(self):
        return self.message


class InvalidURLError(BookServiceError):
    message = "Invalid URL"


class NetworkError(BookServiceError):
    """Transport failure (DNS, connection, timeout...)."""

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"Network error: {cause}")


class InvalidResponseError(BookServiceError):
    message = "Invalid response received from server"


class BadStatusError(BookServiceError):
    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"Bad status code: {status_code}")


class EmptyResponseError(BookServiceError):
    message = "No data returned"


class DecodingError(BookServiceError):
    message = "Error decoding book data"

    def __init__(self, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__()


class NotFoundError(BookServiceError):
    """No result for an ISBN (``isbn`` set) or a free-text query."""

    def __init__(self, key: str, isbn: bool = True):
        self.key = key
        if isbn:
            super().__init__(f"No books found for ISBN {key}")
        else:
            super().__init__(f'No books found for "{key}"')


class StoreError(Exception):
    """Catalog store read or write failure."""


class DuplicateEntryError(StoreError):
    """Another entry already holds this ISBN."""

    def __init__(self, isbn: str):
        self.isbn = isbn
        super().__init__(f"An entry with ISBN {isbn} already exists")
