"""Sort comparator and pin reordering."""

from collections.abc import Iterable, Sequence
from functools import cmp_to_key
from typing import Any

from card_explorer.config import MTIME_SORT_KEY
from card_explorer.models.note import Note, SortSpec, parse_datetime

# Numbers and moments share one numeric axis, ranked before text, then anything else.
_RANK_NUMERIC, _RANK_TEXT, _RANK_OTHER = 0, 1, 2


def extract_sort_value(note: Note, key: str) -> Any:
    """Return the raw value to sort ``note`` by.

    Missing or null metadata values fall back to the modification time.
    """
    if key == MTIME_SORT_KEY:
        return note.modified
    value = (note.metadata or {}).get(key)
    if value is None:
        return note.modified
    return value


def _classify(value: Any) -> tuple[int, Any]:
    """Map a sort value to a ``(rank, comparable)`` pair.

    Date-like strings become timestamps before ranking, so they order on the
    same axis as datetimes and the mtime fallback.
    """
    if isinstance(value, bool):
        return _RANK_NUMERIC, int(value)
    if isinstance(value, int | float):
        if value != value:
            return _RANK_OTHER, "nan"
        return _RANK_NUMERIC, value
    moment = parse_datetime(value)
    if moment is not None:
        return _RANK_NUMERIC, moment.timestamp()
    if isinstance(value, str):
        return _RANK_TEXT, value.lower()
    return _RANK_OTHER, str(value).lower()


def _cmp(a: Any, b: Any) -> int:
    return (a > b) - (a < b)


def compare_values(a: Any, b: Any) -> int:
    """Compare two sort values in ascending order. Returns -1, 0 or 1."""
    return _cmp(_classify(a), _classify(b))


def compare_notes(a: Note, b: Note, key: str) -> int:
    """Ascending comparison of two notes by ``key``."""
    return compare_values(extract_sort_value(a, key), extract_sort_value(b, key))


def sort_notes(notes: Sequence[Note], spec: SortSpec) -> list[Note]:
    """Return a new list ordered by ``spec``.

    The sort is stable: notes comparing equal keep their input order in
    both directions.
    """
    sign = -1 if spec.order == "desc" else 1

    def comparator(a: Note, b: Note) -> int:
        return sign * compare_notes(a, b, spec.key)

    return sorted(notes, key=cmp_to_key(comparator))


def apply_pin_order(sorted_notes: Sequence[Note], pinned: Iterable[str]) -> list[Note]:
    """Move pinned notes to the front, keeping relative order in both groups.

    Pins which match no note in ``sorted_notes`` are ignored.
    """
    pinned_set = pinned if isinstance(pinned, set | frozenset) else frozenset(pinned)
    head: list[Note] = []
    tail: list[Note] = []
    for note in sorted_notes:
        (head if note.path in pinned_set else tail).append(note)
    return head + tail


def toggle_pin_state(pinned: frozenset[str], path: str) -> frozenset[str]:
    """Return a new pin set with ``path`` added or removed."""
    if path in pinned:
        return pinned - {path}
    return pinned | {path}
