"""Tests for plain-text export."""
from bookscan.export import entry_to_text, export_text
from bookscan.models import CatalogEntry


def test_full_entry():
    """Test an entry with every field."""
    entry = CatalogEntry(
        id="1",
        title="Clean Code",
        authors="Robert C. Martin",
        isbn="9780132350884",
        publisher="Prentice Hall",
        published_date="2008",
        description="A handbook of agile software craftsmanship.",
        subjects=("Software engineering", "Agile"),
        notes="Lend to Sam",
    )

    assert entry_to_text(entry) == "\n".join([
        "Clean Code",
        "by Robert C. Martin",
        "",
        "ISBN: 9780132350884",
        "Publisher: Prentice Hall",
        "Published: 2008",
        "Subjects: Software engineering, Agile",
        "",
        "A handbook of agile software craftsmanship.",
        "",
        "Notes:",
        "Lend to Sam",
    ])


def test_minimal_entry():
    """Test that missing fields leave no empty lines or labels."""
    entry = CatalogEntry(id="1", title="Untitled", authors="")

    assert entry_to_text(entry) == "Untitled"


def test_export_several():
    """Test the separator between entries."""
    entries = [
        CatalogEntry(id="1", title="A", authors="X"),
        CatalogEntry(id="2", title="B", authors="Y", isbn="2"),
    ]

    assert export_text(entries) == "A\nby X\n\n---\n\nB\nby Y\n\nISBN: 2"
    assert export_text([]) == ""
