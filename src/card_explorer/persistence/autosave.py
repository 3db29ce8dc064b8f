"""Debounced persistence of the store snapshot."""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from card_explorer.config import REFRESH_DEBOUNCE_SECONDS, SAVE_DEBOUNCE_SECONDS
from card_explorer.protocols import SnapshotStorageProtocol
from card_explorer.store import NoteStore


class Debouncer:
    """Run ``func`` once, ``delay`` seconds after the last ``schedule()`` call.

    ``func`` may be a plain function or return an awaitable. Scheduling needs
    a running event loop.
    """

    def __init__(self, func: Callable[[], Awaitable[Any] | Any], delay: float) -> None:
        self._func = func
        self.delay = delay
        self._timer: asyncio.Task[None] | None = None

    @property
    def pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def schedule(self) -> None:
        """Cancel any pending call and start the delay again."""
        self.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._fire_later())

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def flush(self) -> None:
        """Run the pending call now, if there is one."""
        if self.pending:
            self.cancel()
            await self._invoke()

    async def _fire_later(self) -> None:
        await asyncio.sleep(self.delay)
        # Once the call starts it is no longer pending; a cancel() must not abort it.
        self._timer = None
        await self._invoke()

    async def _invoke(self) -> None:
        result = self._func()
        if inspect.isawaitable(result):
            await result


class AutoSaver:
    """Save the store snapshot shortly after pins or filters change.

    Other mutations (loading flags, errors, reloaded notes) do not trigger
    a save. Call ``close()`` before shutdown to write any pending change.
    """

    def __init__(
        self,
        store: NoteStore,
        storage: SnapshotStorageProtocol,
        delay: float = SAVE_DEBOUNCE_SECONDS,
    ) -> None:
        self._store = store
        self._storage = storage
        self._debouncer = Debouncer(self.save, delay)
        self._pinned = store.pinned_notes
        self._filters = store.filters
        self._unsubscribe = store.subscribe(self._on_change)

    @property
    def pending(self) -> bool:
        return self._debouncer.pending

    def _on_change(self, store: NoteStore) -> None:
        if store.pinned_notes is self._pinned and store.filters is self._filters:
            return
        self._pinned = store.pinned_notes
        self._filters = store.filters
        self._debouncer.schedule()

    async def save(self) -> bool:
        """Write the current snapshot now. Failures are logged, not raised."""
        try:
            saved = await self._storage.write_snapshot(self._store.snapshot())
        except Exception:
            logger.opt(exception=True).error("Saving snapshot failed")
            return False
        if not saved:
            logger.warning("Snapshot was not saved")
        return saved

    async def close(self) -> None:
        self._unsubscribe()
        await self._debouncer.flush()


def refresh_debouncer(store: NoteStore, delay: float = REFRESH_DEBOUNCE_SECONDS) -> Debouncer:
    """Debouncer coalescing bursts of change events into one ``store.refresh()``."""
    return Debouncer(store.refresh, delay)
