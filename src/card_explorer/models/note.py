"""Domain models for the card explorer."""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any, Literal

from card_explorer.config import DEFAULT_SORT_KEY, DEFAULT_SORT_ORDER

DateRangeKind = Literal["within", "after"]
SortOrder = Literal["asc", "desc"]


def to_utc(value: datetime | date) -> datetime:
    """Return an aware UTC datetime. Naive values are taken as UTC."""
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_datetime(value: Any) -> datetime | None:
    """Parse a datetime, date or ISO string into aware UTC, else None."""
    if isinstance(value, datetime | date):
        return to_utc(value)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return to_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


@dataclass(frozen=True)
class Note:
    """A read-only snapshot of one note, rebuilt on every reload.

    Identity across reloads is by ``path`` only.
    """

    path: str
    title: str
    modified: datetime
    preview: str = ""
    metadata: dict[str, Any] | None = None
    tags: tuple[str, ...] = ()
    folder: str = ""

    def __post_init__(self) -> None:
        # Tags are a set in spirit: drop duplicates, keep first-seen order.
        object.__setattr__(self, "tags", tuple(dict.fromkeys(str(t) for t in self.tags)))
        object.__setattr__(self, "modified", to_utc(self.modified))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Note":
        """Build a Note from a JSON-style mapping.

        Raises:
            ValueError: If ``path`` is missing or ``modified`` is unparsable.
        """
        path = data.get("path")
        if not isinstance(path, str) or not path:
            msg = f"note without path: {data!r}"
            raise ValueError(msg)

        raw_modified = data.get("modified")
        if isinstance(raw_modified, int | float) and not isinstance(raw_modified, bool):
            # Epoch milliseconds, as file stats are usually reported by hosts.
            modified = datetime.fromtimestamp(raw_modified / 1000, tz=UTC)
        else:
            parsed = parse_datetime(raw_modified)
            if parsed is None:
                msg = f"bad modified timestamp for {path!r}: {raw_modified!r}"
                raise ValueError(msg)
            modified = parsed

        metadata = data.get("metadata")
        tags = data.get("tags") or ()
        if isinstance(tags, str):
            tags = (tags,)
        title = data.get("title") or path.rsplit("/", 1)[-1].removesuffix(".md")
        folder = data.get("folder")
        if folder is None:
            folder = path.rsplit("/", 1)[0] if "/" in path else ""

        return cls(
            path=path,
            title=str(title),
            modified=modified,
            preview=str(data.get("preview") or ""),
            metadata=dict(metadata) if isinstance(metadata, dict) else None,
            tags=tuple(tags),
            folder=str(folder),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-friendly mapping."""
        return {
            "path": self.path,
            "title": self.title,
            "preview": self.preview,
            "modified": self.modified.isoformat(),
            "metadata": self.metadata,
            "tags": list(self.tags),
            "folder": self.folder,
        }


@dataclass(frozen=True)
class DateRange:
    """A date constraint on the last-modified timestamp.

    ``within`` takes a positive number of days; ``after`` takes a datetime or
    an ISO string. Other values are tolerated and mean "no constraint".
    """

    kind: DateRangeKind
    value: Any


@dataclass(frozen=True)
class FilterSpec:
    """Active inclusion/exclusion criteria. The default instance matches all notes."""

    folders: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    filename: str = ""
    date_range: DateRange | None = None
    exclude_folders: tuple[str, ...] = ()
    exclude_tags: tuple[str, ...] = ()
    exclude_filenames: tuple[str, ...] = ()
    include_subfolders: bool = False


@dataclass(frozen=True)
class SortSpec:
    """Sort field and direction."""

    key: str = DEFAULT_SORT_KEY
    order: SortOrder = DEFAULT_SORT_ORDER  # type: ignore[assignment]


@dataclass(frozen=True)
class HydratedState:
    """Store fields restored from a persisted snapshot."""

    pinned: frozenset[str] = field(default_factory=frozenset)
    filters: FilterSpec = field(default_factory=FilterSpec)
    sort: SortSpec = field(default_factory=SortSpec)
