"""Recomputation pipeline and filter option lists."""

from collections.abc import Iterable, Sequence
from datetime import datetime

from card_explorer.core.filters import apply_filters
from card_explorer.core.sorting import apply_pin_order, sort_notes
from card_explorer.models.note import FilterSpec, Note, SortSpec


def recompute(
    notes: Sequence[Note],
    filters: FilterSpec,
    sort: SortSpec,
    pinned: Iterable[str],
    now: datetime,
) -> list[Note]:
    """Build the view: filter, then sort, then move pinned notes first.

    Pure and deterministic for equal inputs; callers replace their previous
    view with the result wholesale.
    """
    filtered = apply_filters(notes, filters, now)
    return apply_pin_order(sort_notes(filtered, sort), pinned)


def parent_folders(folder: str) -> list[str]:
    """Ancestors of a folder path, outermost first.

    ``"a/b/c"`` yields ``["a", "a/b"]``.
    """
    parts = folder.split("/")
    return ["/".join(parts[:i]) for i in range(1, len(parts))]


def collect_folders(notes: Iterable[Note]) -> list[str]:
    """Sorted folder paths, including implied ancestors. The root is omitted."""
    folders: set[str] = set()
    for note in notes:
        if note.folder:
            folders.add(note.folder)
            folders.update(parent_folders(note.folder))
    return sorted(folders)


def collect_tags(notes: Iterable[Note]) -> list[str]:
    """Sorted union of all tags."""
    return sorted({tag for note in notes for tag in note.tags})
