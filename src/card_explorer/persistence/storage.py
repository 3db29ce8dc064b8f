"""JSON data file holding the snapshot, user settings and rolling backups."""

import asyncio
import contextlib
import json
import os
import tempfile
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger

from card_explorer.config import MAX_BACKUPS, Settings, dump_settings, load_settings
from card_explorer.core.errors import ErrorCategory, ErrorHandler, ErrorReporter
from card_explorer.persistence.snapshot import migrate_snapshot, validate_snapshot

SETTINGS_KEY = "settings"
BACKUPS_KEY = "_backups"

# Keys of the data file which are not part of the snapshot itself.
_RESERVED_KEYS = frozenset((SETTINGS_KEY, BACKUPS_KEY))


def _snapshot_part(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k not in _RESERVED_KEYS}


class JsonSnapshotStorage:
    """Snapshot storage backed by a single JSON file.

    File layout::

        {
            "version": 2, "pinnedNotes": [...], "lastFilters": {...}, "sortKey": "...",
            "settings": {"sortKey": "..."},
            "_backups": [{"timestamp": "...", "data": {...snapshot...}}, ...]
        }

    ``_backups`` is newest first and holds at most ``max_backups`` previous
    valid snapshots. Reads fall back to them when the current snapshot does
    not validate.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        max_backups: int = MAX_BACKUPS,
        error_handler: ErrorHandler | None = None,
    ) -> None:
        self.path = Path(path)
        self.max_backups = max_backups
        self._error_handler: ErrorHandler = error_handler or ErrorReporter()

    def _read_file(self) -> dict[str, Any] | None:
        """Return the parsed data file, or None if it is missing or unusable."""
        try:
            contents = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read data file {}: {}", self.path, e)
            return None

        try:
            data = json.loads(contents)
        except json.JSONDecodeError as e:
            logger.warning("Data file {} is not valid JSON: {}", self.path, e)
            return None
        if not isinstance(data, dict):
            logger.warning("Data file {} does not hold an object", self.path)
            return None
        return data

    def _write_file(self, data: dict[str, Any]) -> None:
        """Write ``data`` atomically via a temporary file in the same directory."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        contents = json.dumps(data, sort_keys=True, indent=4) + "\n"
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(contents)
            os.replace(tmp_path, self.path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_path)
            raise
        logger.debug("Wrote data file {}", self.path)

    @staticmethod
    def _usable(candidate: Any) -> dict[str, Any] | None:
        """Migrate ``candidate`` and return it if it validates."""
        migrated, warnings = migrate_snapshot(candidate)
        for warning in warnings:
            logger.info("Snapshot migration: {}", warning)
        return migrated if validate_snapshot(migrated) else None

    def read_snapshot(self) -> dict[str, Any] | None:
        """Return the current snapshot, recovering from backups if needed.

        Never raises. Returns None when no usable snapshot exists.
        """
        data = self._read_file()
        if data is None:
            return None

        current = _snapshot_part(data)
        if current:
            snapshot = self._usable(current)
            if snapshot is not None:
                return snapshot
            logger.warning("Stored snapshot in {} is invalid, trying backups", self.path)

        backups = data.get(BACKUPS_KEY)
        for index, backup in enumerate(backups if isinstance(backups, list) else []):
            if not isinstance(backup, dict):
                continue
            snapshot = self._usable(backup.get("data"))
            if snapshot is not None:
                logger.warning(
                    "Recovered snapshot from backup {} ({})", index, backup.get("timestamp")
                )
                return snapshot

        if current:
            logger.warning("No valid backup in {}, starting from defaults", self.path)
        return None

    def _build_file(self, snapshot: dict[str, Any]) -> dict[str, Any]:
        existing = self._read_file() or {}

        backups = existing.get(BACKUPS_KEY)
        backups = [b for b in backups if isinstance(b, dict)] if isinstance(backups, list) else []
        previous = _snapshot_part(existing)
        if previous and validate_snapshot(previous) and previous != snapshot:
            backups.insert(0, {"timestamp": datetime.now(tz=UTC).isoformat(), "data": previous})

        data = dict(snapshot)
        if SETTINGS_KEY in existing:
            data[SETTINGS_KEY] = existing[SETTINGS_KEY]
        if self.max_backups > 0 and backups:
            data[BACKUPS_KEY] = backups[: self.max_backups]
        return data

    async def write_snapshot(self, snapshot: dict[str, Any]) -> bool:
        """Store ``snapshot``, keeping the previous one as a backup.

        Returns:
            True on success. Invalid snapshots and I/O failures are reported
            through the error handler and return False.
        """
        if not validate_snapshot(snapshot):
            self._error_handler(
                "Refusing to save invalid snapshot",
                ErrorCategory.DATA,
                {"path": str(self.path)},
            )
            return False

        def write() -> None:
            self._write_file(self._build_file(_snapshot_part(snapshot)))

        try:
            await asyncio.to_thread(write)
        except (OSError, TypeError, ValueError) as e:
            self._error_handler(e, ErrorCategory.DATA, {"path": str(self.path)})
            return False
        return True

    def read_settings(self, *, environ: Mapping[str, str] | None = None) -> Settings:
        data = self._read_file() or {}
        return load_settings(data.get(SETTINGS_KEY), environ=environ)

    async def write_settings(self, settings: Settings) -> bool:
        """Replace the settings section, leaving the snapshot untouched."""

        def write() -> None:
            data = self._read_file() or {}
            data[SETTINGS_KEY] = dump_settings(settings)
            self._write_file(data)

        try:
            await asyncio.to_thread(write)
        except OSError as e:
            self._error_handler(e, ErrorCategory.DATA, {"path": str(self.path)})
            return False
        return True
