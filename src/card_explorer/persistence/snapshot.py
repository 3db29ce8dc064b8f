"""Persistence bridge: convert store state to and from a JSON snapshot.

Snapshot shape (version 2)::

    {
        "version": 2,
        "pinnedNotes": ["notes/a.md", ...],
        "lastFilters": {
            "folders": [...], "tags": [...], "filename": "",
            "dateRange": {"type": "within", "value": 7} | null,
            "excludeFolders": [...], "excludeTags": [...],
            "excludeFilenames": [...], "includeSubfolders": false
        },
        "sortKey": "updated"
    }

Reading never raises: absent, null or malformed fields degrade to defaults.
"""

import copy
import math
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any, Protocol

from loguru import logger

from card_explorer.config import DATA_VERSION, DEFAULT_SORT_KEY, SORT_ORDERS
from card_explorer.models.note import DateRange, FilterSpec, HydratedState, SortSpec, parse_datetime


class SnapshotSource(Protocol):
    """The subset of store state that gets persisted."""

    @property
    def pinned_notes(self) -> frozenset[str]: ...

    @property
    def filters(self) -> FilterSpec: ...

    @property
    def sort_config(self) -> SortSpec: ...


# --- Reading ---


def _string_list(value: Any) -> tuple[str, ...] | None:
    """Return the strings in a list, or None if ``value`` is not a list."""
    if not isinstance(value, list | tuple):
        return None
    return tuple(item for item in value if isinstance(item, str))


def parse_date_range(raw: Any) -> DateRange | None:
    """Parse a stored dateRange, returning None for anything unusable."""
    if not isinstance(raw, Mapping):
        return None
    kind = raw.get("type")
    value = raw.get("value")

    if kind == "within":
        if isinstance(value, bool):
            return None
        if isinstance(value, str) and value.strip().isdigit():
            value = int(value.strip())
        if isinstance(value, int) and value > 0:
            return DateRange("within", value)
        return None

    if kind == "after":
        parsed = parse_datetime(value)
        return DateRange("after", parsed) if parsed is not None else None

    return None


def parse_filters(raw: Any) -> FilterSpec:
    """Build a FilterSpec from a stored mapping, field by field."""
    if not isinstance(raw, Mapping):
        return FilterSpec()

    def strings(name: str) -> tuple[str, ...]:
        parsed = _string_list(raw.get(name))
        if parsed is None:
            if raw.get(name) is not None:
                logger.debug("Ignoring malformed lastFilters.{}: {!r}", name, raw.get(name))
            return ()
        return parsed

    filename = raw.get("filename")
    include_subfolders = raw.get("includeSubfolders")
    return FilterSpec(
        folders=strings("folders"),
        tags=strings("tags"),
        filename=filename if isinstance(filename, str) else "",
        date_range=parse_date_range(raw.get("dateRange")),
        exclude_folders=strings("excludeFolders"),
        exclude_tags=strings("excludeTags"),
        exclude_filenames=strings("excludeFilenames"),
        include_subfolders=include_subfolders if isinstance(include_subfolders, bool) else False,
    )


def hydrate(snapshot: Any, default_sort_key: str | None = None) -> HydratedState:
    """Restore store fields from a snapshot.

    Args:
        snapshot: A previously dehydrated mapping, possibly partial, legacy or None.
        default_sort_key: The live sort preference. The snapshot's own
            sortKey is ignored so that sorting follows current settings.

    Returns:
        HydratedState with pins, filters and sort config. Never raises.
    """
    sort_key = default_sort_key.strip() if isinstance(default_sort_key, str) else ""
    sort = SortSpec(key=sort_key or DEFAULT_SORT_KEY)

    if not isinstance(snapshot, Mapping):
        return HydratedState(sort=sort)

    pins = _string_list(snapshot.get("pinnedNotes")) or ()
    return HydratedState(
        pinned=frozenset(pins),
        filters=parse_filters(snapshot.get("lastFilters")),
        sort=sort,
    )


# --- Writing ---


def _dump_date_range(date_range: DateRange | None) -> dict[str, Any] | None:
    if date_range is None:
        return None
    value = date_range.value
    if isinstance(value, datetime):
        value = value.isoformat()
    return {"type": date_range.kind, "value": value}


def dump_filters(filters: FilterSpec) -> dict[str, Any]:
    return {
        "folders": list(filters.folders),
        "tags": list(filters.tags),
        "filename": filters.filename,
        "dateRange": _dump_date_range(filters.date_range),
        "excludeFolders": list(filters.exclude_folders),
        "excludeTags": list(filters.exclude_tags),
        "excludeFilenames": list(filters.exclude_filenames),
        "includeSubfolders": filters.include_subfolders,
    }


def dehydrate(state: SnapshotSource) -> dict[str, Any]:
    """Serialize the persisted subset of store state.

    Pins are written sorted; the pin set has no order to preserve.
    """
    return {
        "version": DATA_VERSION,
        "pinnedNotes": sorted(state.pinned_notes),
        "lastFilters": dump_filters(state.filters),
        "sortKey": state.sort_config.key,
    }


# --- Validation ---


def _is_string_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def validate_filters(raw: Any) -> bool:
    if not isinstance(raw, Mapping):
        return False
    for name in ("folders", "tags"):
        if not _is_string_list(raw.get(name)):
            return False
    for name in ("excludeFolders", "excludeTags", "excludeFilenames"):
        if name in raw and not _is_string_list(raw[name]):
            return False
    if not isinstance(raw.get("filename"), str):
        return False
    if "includeSubfolders" in raw and not isinstance(raw["includeSubfolders"], bool):
        return False
    date_range = raw.get("dateRange")
    return date_range is None or parse_date_range(date_range) is not None


def validate_snapshot(data: Any) -> bool:
    """Check that ``data`` is a well-formed current-version snapshot."""
    if not isinstance(data, Mapping):
        return False
    version = data.get("version")
    if isinstance(version, bool) or not isinstance(version, int) or version < 0:
        return False
    if not _is_string_list(data.get("pinnedNotes")):
        return False
    if not validate_filters(data.get("lastFilters")):
        return False
    sort_key = data.get("sortKey")
    return sort_key is None or isinstance(sort_key, str)


# --- Migration ---

MigrationStep = Callable[[dict[str, Any], datetime], list[str]]


def _migrate_v0(data: dict[str, Any], _now: datetime) -> list[str]:
    """Version-less data: ensure required fields exist."""
    warnings: list[str] = []
    pins = data.get("pinnedNotes")
    if not isinstance(pins, list):
        if pins is not None:
            warnings.append("Fixed invalid pinnedNotes array")
        pins = []
    kept = [p for p in pins if isinstance(p, str)]
    if len(kept) != len(pins):
        warnings.append(f"Dropped {len(pins) - len(kept)} non-string pinned entries")
    data["pinnedNotes"] = kept
    if not isinstance(data.get("lastFilters"), Mapping):
        data["lastFilters"] = dump_filters(FilterSpec())
    warnings.append("Added version info to data format")
    return warnings


def _migrate_v1(data: dict[str, Any], now: datetime) -> list[str]:
    """sortConfig becomes sortKey; "within" ranges store days, not a cut-off date."""
    warnings: list[str] = []
    sort_config = data.pop("sortConfig", None)
    if isinstance(sort_config, Mapping) and isinstance(sort_config.get("key"), str):
        data.setdefault("sortKey", sort_config["key"])
        if sort_config.get("order") not in SORT_ORDERS:
            warnings.append(f"Dropped unknown sort order {sort_config.get('order')!r}")

    filters = data.get("lastFilters")
    if isinstance(filters, dict):
        date_range = filters.get("dateRange")
        if isinstance(date_range, Mapping) and date_range.get("type") == "within":
            cutoff = parse_datetime(date_range.get("value"))
            if cutoff is not None:
                days = max(1, math.ceil((now - cutoff).total_seconds() / 86_400))
                filters["dateRange"] = {"type": "within", "value": days}
                warnings.append(f"Converted 'within' cut-off date to {days} days")
    return warnings


# Step registered under version N upgrades data from N to N + 1.
MIGRATIONS: dict[int, MigrationStep] = {
    0: _migrate_v0,
    1: _migrate_v1,
}


def migrate_snapshot(data: Any, now: datetime | None = None) -> tuple[Any, list[str]]:
    """Upgrade a stored snapshot to DATA_VERSION.

    Returns:
        Tuple of (migrated copy, warnings). Non-mappings are returned unchanged.
    """
    if not isinstance(data, Mapping):
        return data, []

    now = now or datetime.now(tz=UTC)
    migrated: dict[str, Any] = copy.deepcopy(dict(data))
    version = migrated.get("version")
    if isinstance(version, bool) or not isinstance(version, int) or version < 0:
        version = 0

    warnings: list[str] = []
    while version < DATA_VERSION:
        step = MIGRATIONS.get(version)
        if step is None:
            warnings.append(f"No migration step for version {version}")
            break
        warnings.extend(step(migrated, now))
        logger.info("Migrated snapshot from version {} to {}", version, version + 1)
        version += 1
    migrated["version"] = version
    return migrated, warnings
