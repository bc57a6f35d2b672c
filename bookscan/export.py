"""Plain-text export of saved books."""
from typing import Iterable, List

from bookscan.models import CatalogEntry

SEPARATOR = "---"


def entry_to_text(entry: CatalogEntry) -> str:
    """
    Render one entry::

        Title
        by Authors

        ISBN: ...
        Publisher: ...
        Published: ...
        Subjects: ...

        Description

        Notes:
        Notes text

    Lines and sections for missing fields are left out.
    """
    lines: List[str] = [entry.title]
    if entry.authors:
        lines.append(f"by {entry.authors}")

    details = []
    if entry.isbn:
        details.append(f"ISBN: {entry.isbn}")
    if entry.publisher:
        details.append(f"Publisher: {entry.publisher}")
    if entry.published_date:
        details.append(f"Published: {entry.published_date}")
    if entry.subjects_text:
        details.append(f"Subjects: {entry.subjects_text}")
    if details:
        lines.append("")
        lines.extend(details)

    if entry.description:
        lines.extend(["", entry.description])

    if entry.notes:
        lines.extend(["", "Notes:", entry.notes])

    return "\n".join(lines)


def export_text(entries: Iterable[CatalogEntry]) -> str:
    """Render several entries separated by a ``---`` line."""
    return f"\n\n{SEPARATOR}\n\n".join(entry_to_text(entry) for entry in entries)
