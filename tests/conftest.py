import json

import pytest

from bookscan.models import NormalizedBookRecord
from bookscan.store import InMemoryCatalogStore


class FakeResponse:
    """Stand-in for requests.Response."""

    def __init__(self, status_code=200, json_data=None, content=None):
        self.status_code = status_code
        if content is None:
            content = json.dumps(json_data).encode("utf-8") if json_data is not None else b""
        self.content = content
        self.text = content.decode("utf-8", errors="replace")

    def json(self):
        return json.loads(self.content)


class FakeGet:
    """Records calls to session.get and replays a canned response or error."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def __call__(self, url, params=None, timeout=None):
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def store():
    return InMemoryCatalogStore()


@pytest.fixture
def clean_code():
    return NormalizedBookRecord(
        title="Clean Code",
        authors="Robert C. Martin",
        isbn="978-0132350884",
        thumbnail_url="https://covers.openlibrary.org/b/id/123-M.jpg",
        publisher="Prentice Hall",
        published_date="2008",
        subjects=("Software engineering", "Agile software development"),
    )
