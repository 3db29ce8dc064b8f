"""The note store: raw notes, user preferences and the derived view."""

import asyncio
import dataclasses
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from loguru import logger

from card_explorer.config import SORT_ORDERS
from card_explorer.core.errors import (
    ErrorCategory,
    ErrorHandler,
    ErrorReporter,
    LoadError,
    RetryPolicy,
    safe_call,
    with_retry,
)
from card_explorer.core.filters import has_active_filter
from card_explorer.core.pipeline import collect_folders, collect_tags, recompute
from card_explorer.core.sorting import toggle_pin_state
from card_explorer.models.note import DateRange, FilterSpec, Note, SortSpec
from card_explorer.persistence.snapshot import dehydrate, hydrate, parse_date_range
from card_explorer.protocols import LoaderProtocol

Listener = Callable[["NoteStore"], None]

_FILTER_FIELDS = frozenset(f.name for f in dataclasses.fields(FilterSpec))
_TUPLE_FIELDS = frozenset(
    ("folders", "tags", "exclude_folders", "exclude_tags", "exclude_filenames")
)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class NoteStore:
    """Single source of truth for the card view.

    Every mutation replaces the affected field with a new value, recomputes
    the view when an input changed, bumps ``version`` and notifies
    subscribers. Synchronous actions do no I/O and never raise.

    Args:
        loader: Source of the raw notes, called by ``refresh``.
        error_handler: Reports load and recompute failures. Defaults to a
            logging-only ErrorReporter.
        retry_policy: Backoff used by ``refresh``.
        clock: Returns the current time for date filters.
    """

    def __init__(
        self,
        loader: LoaderProtocol,
        *,
        error_handler: ErrorHandler | None = None,
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._loader = loader
        self._error_handler: ErrorHandler = error_handler or ErrorReporter()
        self._retry_policy = retry_policy or RetryPolicy()
        self._clock = clock or _utcnow
        self._listeners: list[Listener] = []
        self._version = 0
        self._refreshes_in_flight = 0
        self._set_defaults()

    def _set_defaults(self) -> None:
        self._notes: tuple[Note, ...] = ()
        self._view: tuple[Note, ...] = ()
        self._pinned: frozenset[str] = frozenset()
        self._filters = FilterSpec()
        self._sort = SortSpec()
        self._is_loading = False
        self._error: str | None = None
        self._available_tags: tuple[str, ...] = ()
        self._available_folders: tuple[str, ...] = ()

    # --- State ---

    @property
    def notes(self) -> tuple[Note, ...]:
        return self._notes

    @property
    def filtered_notes(self) -> tuple[Note, ...]:
        """The current view: filtered, sorted, pinned notes first."""
        return self._view

    @property
    def pinned_notes(self) -> frozenset[str]:
        return self._pinned

    @property
    def filters(self) -> FilterSpec:
        return self._filters

    @property
    def sort_config(self) -> SortSpec:
        return self._sort

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def available_tags(self) -> tuple[str, ...]:
        return self._available_tags

    @property
    def available_folders(self) -> tuple[str, ...]:
        return self._available_folders

    @property
    def pinned_count(self) -> int:
        """Number of pins, including pins for notes not currently loaded."""
        return len(self._pinned)

    @property
    def filtered_count(self) -> int:
        return len(self._view)

    @property
    def has_active_filters(self) -> bool:
        return has_active_filter(self._filters)

    @property
    def version(self) -> int:
        """Increments on every mutation."""
        return self._version

    # --- Subscriptions ---

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(store)`` after every mutation.

        Returns:
            A function that removes the listener. Calling it twice is harmless.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self) -> None:
        self._version += 1
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.opt(exception=True).warning("Store listener {!r} failed", listener)

    def _recompute(self, action: str) -> None:
        self._view = tuple(
            safe_call(
                lambda: recompute(
                    self._notes, self._filters, self._sort, self._pinned, self._clock()
                ),
                self._view,
                self._error_handler,
                ErrorCategory.DATA,
                {"action": action},
            )
        )

    # --- Actions ---

    def set_notes(self, notes: Iterable[Note]) -> None:
        """Replace the raw notes and everything derived from them."""
        self._notes = tuple(notes)
        self._available_tags = tuple(collect_tags(self._notes))
        self._available_folders = tuple(collect_folders(self._notes))
        self._recompute("set_notes")
        self._commit()

    def set_filters(self, **changes: Any) -> None:
        """Merge ``changes`` into the current filters.

        Unknown fields are logged and ignored. Lists become tuples, and a
        ``date_range`` mapping in stored form (``{"type", "value"}``) is parsed.
        """
        accepted: dict[str, Any] = {}
        for name, value in changes.items():
            if name not in _FILTER_FIELDS:
                logger.warning("Ignoring unknown filter field {!r}", name)
                continue
            if name in _TUPLE_FIELDS:
                if isinstance(value, str):
                    value = (value,)
                elif value is None:
                    value = ()
                elif isinstance(value, Iterable):
                    value = tuple(str(item) for item in value)
                else:
                    logger.warning("Ignoring filter {}={!r}: not a list", name, value)
                    continue
            elif name == "date_range" and isinstance(value, Mapping):
                value = parse_date_range(value)
            elif name == "date_range" and value is not None and not isinstance(value, DateRange):
                logger.warning("Ignoring invalid date range {!r}", value)
                continue
            elif name == "filename":
                value = "" if value is None else str(value)
            elif name == "include_subfolders":
                value = bool(value)
            accepted[name] = value

        if not accepted:
            return
        self._filters = dataclasses.replace(self._filters, **accepted)
        self._recompute("set_filters")
        self._commit()

    def clear_filters(self) -> None:
        self._filters = FilterSpec()
        self._recompute("clear_filters")
        self._commit()

    def set_sort_key(self, key: str) -> None:
        """Sort by ``key``. The direction goes back to the default."""
        if not isinstance(key, str) or not key.strip():
            logger.warning("Ignoring empty sort key {!r}", key)
            return
        self._sort = SortSpec(key=key.strip())
        self._recompute("set_sort_key")
        self._commit()

    def set_sort_config(self, spec: SortSpec) -> None:
        if not isinstance(spec, SortSpec) or spec.order not in SORT_ORDERS or not spec.key:
            logger.warning("Ignoring invalid sort config {!r}", spec)
            return
        self._sort = spec
        self._recompute("set_sort_config")
        self._commit()

    def toggle_pin(self, path: str) -> None:
        if not isinstance(path, str) or not path:
            logger.warning("Ignoring pin toggle for {!r}", path)
            return
        self._pinned = toggle_pin_state(self._pinned, path)
        self._recompute("toggle_pin")
        self._commit()

    def set_error(self, error: str | None) -> None:
        self._error = error
        self._commit()

    def set_loading(self, loading: bool) -> None:
        self._is_loading = loading
        self._commit()

    def reset(self) -> None:
        """Return to startup defaults. Subscribers stay attached."""
        self._set_defaults()
        self._commit()

    def initialize(self, snapshot: Any, default_sort_key: str | None = None) -> None:
        """Restore pins and filters from a snapshot and recompute the view."""
        state = hydrate(snapshot, default_sort_key)
        self._pinned = state.pinned
        self._filters = state.filters
        self._sort = state.sort
        self._recompute("initialize")
        self._commit()

    def snapshot(self) -> dict[str, Any]:
        return dehydrate(self)

    # --- Reload ---

    async def refresh(self) -> bool:
        """Reload notes from the loader, retrying with backoff.

        On failure the previous notes and view are kept and ``error`` is set.
        Concurrent calls are allowed; whichever resolves last wins, and
        ``is_loading`` stays True until every call has finished.

        Returns:
            True if the notes were replaced.
        """
        self._refreshes_in_flight += 1
        self._is_loading = True
        self._error = None
        self._commit()

        try:
            loaded = await with_retry(self._loader.load_all_documents, self._retry_policy)
            notes = tuple(loaded)
            if not all(isinstance(note, Note) for note in notes):
                msg = "Loader returned an entry that is not a note"
                raise LoadError(msg)
            available_tags = tuple(collect_tags(notes))
            available_folders = tuple(collect_folders(notes))
        except asyncio.CancelledError:
            self._finish_refresh()
            self._commit()
            raise
        except Exception as e:
            info = self._error_handler(e, ErrorCategory.API, {"action": "refresh"})
            self._finish_refresh()
            self._error = info.message
            self._commit()
            return False

        self._notes = notes
        self._available_tags = available_tags
        self._available_folders = available_folders
        self._error = None
        self._recompute("refresh")
        self._finish_refresh()
        logger.debug("Loaded {} notes, {} in view", len(self._notes), len(self._view))
        self._commit()
        return True

    def _finish_refresh(self) -> None:
        self._refreshes_in_flight -= 1
        self._is_loading = self._refreshes_in_flight > 0
