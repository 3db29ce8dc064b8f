"""Configuration constants and settings for card-explorer."""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

# Reserved sort key: compare by file modification time, never by metadata.
MTIME_SORT_KEY: str = "mtime"

# Metadata field sorted on by default. Notes without it fall back to mtime.
DEFAULT_SORT_KEY: str = "updated"

DEFAULT_SORT_ORDER: str = "desc"

SORT_ORDERS: tuple[str, ...] = ("asc", "desc")

# Reload retry policy. Attempts are total, not retries.
RETRY_MAX_ATTEMPTS: int = 3
RETRY_BASE_DELAY: float = 1.0
RETRY_MAX_DELAY: float = 10.0

# Debounce windows, in seconds.
SAVE_DEBOUNCE_SECONDS: float = 0.5
REFRESH_DEBOUNCE_SECONDS: float = 0.3

# Number of body lines kept as a note preview.
PREVIEW_MAX_LINES: int = 3

# Persisted snapshot schema version. Bump when the stored shape changes and
# add a migration step in persistence/snapshot.py.
DATA_VERSION: int = 2

# Rolling backups kept inside the data file.
MAX_BACKUPS: int = 3

# Error details longer than this are truncated before logging.
MAX_ERROR_DETAILS_LEN: int = 10_000

# Environment override for the default sort key.
SORT_KEY_ENV_VAR: str = "CARD_EXPLORER_SORT_KEY"

# Data file location. First file which exists is used, else the first entry.
DATA_FILES: list[Path] = [
    Path("~/.local/share/card-explorer/data.json").expanduser(),
    Path("~/.config/card-explorer/data.json").expanduser(),
    Path("~/.card-explorer.json").expanduser(),
]


def resolve_data_file() -> Path:
    """Return the first existing data file, or the preferred location."""
    for candidate in DATA_FILES:
        if candidate.is_file():
            return candidate
    return DATA_FILES[0]


@dataclass(frozen=True)
class Settings:
    """User settings stored next to the snapshot in the data file."""

    sort_key: str = DEFAULT_SORT_KEY


def load_settings(raw: Any, *, environ: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from a raw stored mapping.

    Invalid or missing values fall back to defaults. The environment variable
    named by SORT_KEY_ENV_VAR wins over the stored sort key.
    """
    env = os.environ if environ is None else environ
    sort_key = DEFAULT_SORT_KEY
    if isinstance(raw, Mapping):
        stored = raw.get("sortKey")
        if isinstance(stored, str) and stored.strip():
            sort_key = stored.strip()

    override = env.get(SORT_KEY_ENV_VAR, "").strip()
    if override:
        sort_key = override
    return Settings(sort_key=sort_key)


def dump_settings(settings: Settings) -> dict[str, Any]:
    """Serialize Settings to the stored mapping shape."""
    return {"sortKey": settings.sort_key}
