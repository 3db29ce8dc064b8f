"""Reactive card view over a collection of notes: filter, sort, pin, persist."""

from card_explorer.core.errors import ErrorCategory, ErrorInfo, ErrorReporter, RetryPolicy
from card_explorer.loaders.http import HttpLoader
from card_explorer.loaders.vault import VaultLoader
from card_explorer.models.note import DateRange, FilterSpec, Note, SortSpec
from card_explorer.persistence.autosave import AutoSaver, Debouncer
from card_explorer.persistence.storage import JsonSnapshotStorage
from card_explorer.protocols import LoaderProtocol, SnapshotStorageProtocol
from card_explorer.store import NoteStore

__all__ = [
    "AutoSaver",
    "DateRange",
    "Debouncer",
    "ErrorCategory",
    "ErrorInfo",
    "ErrorReporter",
    "FilterSpec",
    "HttpLoader",
    "JsonSnapshotStorage",
    "LoaderProtocol",
    "Note",
    "NoteStore",
    "RetryPolicy",
    "SnapshotStorageProtocol",
    "SortSpec",
    "VaultLoader",
]
