"""Filter evaluation over notes.

Every check is a small pure function; ``matches`` ANDs them together and
``apply_filters`` keeps the matching notes in their original order.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta

from card_explorer.models.note import DateRange, FilterSpec, Note, parse_datetime, to_utc


def _file_name(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def _folder_selected(folder: str, selected: Iterable[str], *, include_subfolders: bool) -> bool:
    for entry in selected:
        if folder == entry:
            return True
        if include_subfolders and entry and folder.startswith(entry + "/"):
            return True
    return False


def matches_folders(note: Note, spec: FilterSpec) -> bool:
    if not spec.folders:
        return True
    return _folder_selected(note.folder, spec.folders, include_subfolders=spec.include_subfolders)


def excluded_by_folder(note: Note, spec: FilterSpec) -> bool:
    if not spec.exclude_folders:
        return False
    return _folder_selected(
        note.folder, spec.exclude_folders, include_subfolders=spec.include_subfolders
    )


def matches_tags(note: Note, spec: FilterSpec) -> bool:
    """At least one selected tag must be present (OR semantics)."""
    if not spec.tags:
        return True
    return any(tag in note.tags for tag in spec.tags)


def excluded_by_tag(note: Note, spec: FilterSpec) -> bool:
    if not spec.exclude_tags:
        return False
    return any(tag in note.tags for tag in spec.exclude_tags)


def matches_filename(note: Note, spec: FilterSpec) -> bool:
    """Case-insensitive substring match against the title or the file name."""
    term = spec.filename.strip().lower()
    if not term:
        return True
    return term in note.title.lower() or term in _file_name(note.path).lower()


def excluded_by_filename(note: Note, spec: FilterSpec) -> bool:
    title = note.title.lower()
    return any(p.strip() and p.strip().lower() in title for p in spec.exclude_filenames)


def date_cutoff(date_range: DateRange | None, now: datetime) -> datetime | None:
    """Return the earliest accepted modification time, or None for no constraint.

    Invalid ranges (non-positive or non-integer day counts, unparsable dates,
    unknown kinds) are treated as no constraint.
    """
    if date_range is None:
        return None

    if date_range.kind == "within":
        days = date_range.value
        if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
            return None
        return to_utc(now) - timedelta(days=days)

    if date_range.kind == "after":
        return parse_datetime(date_range.value)

    return None


def matches_date_range(note: Note, spec: FilterSpec, now: datetime) -> bool:
    cutoff = date_cutoff(spec.date_range, now)
    if cutoff is None:
        return True
    return note.modified >= cutoff


def matches(note: Note, spec: FilterSpec, now: datetime) -> bool:
    """Check whether a note passes every active criterion."""
    return (
        matches_folders(note, spec)
        and not excluded_by_folder(note, spec)
        and matches_tags(note, spec)
        and not excluded_by_tag(note, spec)
        and matches_filename(note, spec)
        and not excluded_by_filename(note, spec)
        and matches_date_range(note, spec, now)
    )


def apply_filters(notes: Sequence[Note], spec: FilterSpec, now: datetime) -> list[Note]:
    """Return the notes passing ``spec``, preserving input order."""
    return [note for note in notes if matches(note, spec, now)]


def has_active_filter(spec: FilterSpec) -> bool:
    """True if any criterion would restrict the view."""
    return bool(
        spec.folders
        or spec.tags
        or spec.filename.strip()
        or spec.date_range is not None
        or spec.exclude_folders
        or spec.exclude_tags
        or any(p.strip() for p in spec.exclude_filenames)
    )
