"""Protocols for the collaborators injected into the store."""

from typing import Any, Protocol, runtime_checkable

from card_explorer.models.note import Note


@runtime_checkable
class LoaderProtocol(Protocol):
    """Source of the raw note collection."""

    async def load_all_documents(self) -> list[Note]:
        """Return every note. May raise; the store retries."""
        ...


@runtime_checkable
class SnapshotStorageProtocol(Protocol):
    """Durable home for the persisted snapshot."""

    def read_snapshot(self) -> dict[str, Any] | None:
        """Return the stored snapshot, or None if there is no usable prior state."""
        ...

    async def write_snapshot(self, snapshot: dict[str, Any]) -> bool:
        """Store a snapshot. Returns False instead of raising on failure."""
        ...
