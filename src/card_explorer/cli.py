"""CLI for card-explorer: list the card view and manage pins, filters and sorting."""

import asyncio
import json
from pathlib import Path
from typing import Annotated, Any

import typer
from loguru import logger

from card_explorer.config import MTIME_SORT_KEY, Settings, resolve_data_file
from card_explorer.core.errors import ErrorReporter
from card_explorer.loaders.http import HttpLoader
from card_explorer.loaders.vault import VaultLoader
from card_explorer.logging_config import configure_logging
from card_explorer.models.note import DateRange, FilterSpec, Note, SortSpec, parse_datetime
from card_explorer.persistence.autosave import AutoSaver
from card_explorer.persistence.storage import JsonSnapshotStorage
from card_explorer.protocols import LoaderProtocol
from card_explorer.store import NoteStore

app = typer.Typer(help="Card explorer: browse notes as a filtered, sorted, pinned card view.")

SourceOption = Annotated[
    Path | None,
    typer.Option("--source", "-s", help="Vault directory with markdown notes (default: cwd)"),
]
UrlOption = Annotated[
    str | None,
    typer.Option("--url", "-u", help="HTTP endpoint serving notes as JSON, instead of a vault"),
]
DataFileOption = Annotated[
    Path | None,
    typer.Option("--data-file", "-d", help="JSON file holding pins, filters and settings"),
]


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log warnings and errors"),
) -> None:
    configure_logging(verbose=verbose, quiet=quiet)


def _notify(message: str) -> None:
    typer.echo(message, err=True)


def _make_loader(source: Path | None, url: str | None) -> LoaderProtocol:
    if url:
        return HttpLoader(url)
    return VaultLoader(source or Path.cwd())


def _open_storage(data_file: Path | None) -> JsonSnapshotStorage:
    path = data_file or resolve_data_file()
    logger.debug("Using data file {}", path)
    return JsonSnapshotStorage(path, error_handler=ErrorReporter(notify=_notify))


def _make_store(loader: LoaderProtocol, storage: JsonSnapshotStorage) -> NoteStore:
    """Build a store restored from the persisted snapshot and settings."""
    store = NoteStore(loader, error_handler=ErrorReporter(notify=_notify))
    store.initialize(storage.read_snapshot(), storage.read_settings().sort_key)
    return store


async def _load(store: NoteStore) -> None:
    if not await store.refresh():
        raise typer.Exit(1)


def _describe_filters(filters: FilterSpec) -> list[str]:
    lines = []
    if filters.folders:
        suffix = " (with subfolders)" if filters.include_subfolders else ""
        lines.append(f"folders: {', '.join(filters.folders)}{suffix}")
    if filters.tags:
        lines.append(f"tags: {', '.join(filters.tags)}")
    if filters.filename.strip():
        lines.append(f"name contains: {filters.filename.strip()}")
    if filters.date_range is not None:
        value = filters.date_range.value
        if filters.date_range.kind == "within":
            lines.append(f"modified within {value} days")
        else:
            lines.append(f"modified after {value}")
    if filters.exclude_folders:
        lines.append(f"excluding folders: {', '.join(filters.exclude_folders)}")
    if filters.exclude_tags:
        lines.append(f"excluding tags: {', '.join(filters.exclude_tags)}")
    if filters.exclude_filenames:
        lines.append(f"excluding names: {', '.join(filters.exclude_filenames)}")
    return lines


def _format_note(note: Note, *, pinned: bool) -> str:
    marker = "*" if pinned else " "
    folder = f"  [{note.folder}]" if note.folder else ""
    tags = "  " + " ".join(f"#{t}" for t in note.tags) if note.tags else ""
    return f"{marker} {note.modified:%Y-%m-%d}  {note.title}{folder}{tags}"


def _dump_json(data: Any) -> str:
    # Front matter values may be dates.
    return json.dumps(data, indent=2, default=str)


@app.command(name="list")
def list_cmd(
    source: SourceOption = None,
    url: UrlOption = None,
    data_file: DataFileOption = None,
    sort_key: Annotated[
        str | None,
        typer.Option("--sort", help=f"Sort by this metadata key ('{MTIME_SORT_KEY}' = mtime)"),
    ] = None,
    ascending: bool = typer.Option(False, "--asc", help="Oldest / smallest first"),
    limit: int = typer.Option(0, "--limit", "-n", help="Show at most this many notes"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Show the card view: filtered, sorted, pinned notes first."""
    storage = _open_storage(data_file)
    store = _make_store(_make_loader(source, url), storage)
    if sort_key or ascending:
        store.set_sort_config(
            SortSpec(key=sort_key or store.sort_config.key, order="asc" if ascending else "desc")
        )
    asyncio.run(_load(store))

    notes = store.filtered_notes[:limit] if limit > 0 else store.filtered_notes
    if output_json:
        data = {
            "notes": [
                {**note.to_dict(), "pinned": note.path in store.pinned_notes} for note in notes
            ],
            "total": len(store.notes),
            "filtered": store.filtered_count,
            "pinned": store.pinned_count,
            "sort": {"key": store.sort_config.key, "order": store.sort_config.order},
        }
        typer.echo(_dump_json(data))
        return

    typer.echo(
        f"Showing {len(notes)} of {len(store.notes)} notes "
        f"({store.pinned_count} pinned, sorted by {store.sort_config.key} "
        f"{store.sort_config.order})"
    )
    for line in _describe_filters(store.filters):
        typer.echo(f"  filter {line}")
    for note in notes:
        typer.echo(_format_note(note, pinned=note.path in store.pinned_notes))


@app.command()
def pin(
    path: str = typer.Argument(..., help="Note path relative to the vault, e.g. notes/idea.md"),
    source: SourceOption = None,
    url: UrlOption = None,
    data_file: DataFileOption = None,
) -> None:
    """Pin a note, or unpin it if it is already pinned."""
    storage = _open_storage(data_file)
    store = _make_store(_make_loader(source, url), storage)

    async def run() -> None:
        saver = AutoSaver(store, storage, delay=0)
        store.toggle_pin(path)
        await saver.close()

    asyncio.run(run())
    action = "Pinned" if path in store.pinned_notes else "Unpinned"
    typer.echo(f"{action} {path} ({store.pinned_count} pinned)")


@app.command()
def tags(
    source: SourceOption = None,
    url: UrlOption = None,
    data_file: DataFileOption = None,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List every tag used by the notes."""
    store = _make_store(_make_loader(source, url), _open_storage(data_file))
    asyncio.run(_load(store))
    if output_json:
        typer.echo(_dump_json(list(store.available_tags)))
        return
    for tag in store.available_tags:
        typer.echo(tag)


@app.command()
def folders(
    source: SourceOption = None,
    url: UrlOption = None,
    data_file: DataFileOption = None,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List every folder holding notes, including parent folders."""
    store = _make_store(_make_loader(source, url), _open_storage(data_file))
    asyncio.run(_load(store))
    if output_json:
        typer.echo(_dump_json(list(store.available_folders)))
        return
    for folder in store.available_folders:
        typer.echo(folder)


@app.command(name="filter")
def filter_cmd(
    folder: Annotated[
        list[str] | None, typer.Option("--folder", "-f", help="Only notes in this folder")
    ] = None,
    tag: Annotated[
        list[str] | None, typer.Option("--tag", "-t", help="Only notes with any of these tags")
    ] = None,
    name: Annotated[
        str | None, typer.Option("--name", "-n", help="Title or file name contains this")
    ] = None,
    within: Annotated[
        int | None, typer.Option("--within", min=1, help="Modified in the last N days")
    ] = None,
    after: Annotated[
        str | None, typer.Option("--after", help="Modified on or after this ISO date")
    ] = None,
    exclude_folder: Annotated[
        list[str] | None, typer.Option("--exclude-folder", help="Hide notes in this folder")
    ] = None,
    exclude_tag: Annotated[
        list[str] | None, typer.Option("--exclude-tag", help="Hide notes with this tag")
    ] = None,
    exclude_name: Annotated[
        list[str] | None, typer.Option("--exclude-name", help="Hide titles containing this")
    ] = None,
    subfolders: bool = typer.Option(
        False, "--subfolders", help="Folder filters include subfolders"
    ),
    no_subfolders: bool = typer.Option(
        False, "--no-subfolders", help="Folder filters match the folder only"
    ),
    no_date: bool = typer.Option(False, "--no-date", help="Remove the date filter"),
    source: SourceOption = None,
    url: UrlOption = None,
    data_file: DataFileOption = None,
) -> None:
    """Change the saved filters. Options not given keep their current value."""
    if within is not None and after is not None:
        typer.echo("Use either --within or --after, not both.", err=True)
        raise typer.Exit(2)
    if after is not None and parse_datetime(after) is None:
        typer.echo(f"Not an ISO date: {after!r}", err=True)
        raise typer.Exit(2)

    changes: dict[str, Any] = {}
    if folder is not None:
        changes["folders"] = folder
    if tag is not None:
        changes["tags"] = tag
    if name is not None:
        changes["filename"] = name
    if within is not None:
        changes["date_range"] = DateRange("within", within)
    elif after is not None:
        changes["date_range"] = DateRange("after", after)
    elif no_date:
        changes["date_range"] = None
    if exclude_folder is not None:
        changes["exclude_folders"] = exclude_folder
    if exclude_tag is not None:
        changes["exclude_tags"] = exclude_tag
    if exclude_name is not None:
        changes["exclude_filenames"] = exclude_name
    if subfolders or no_subfolders:
        changes["include_subfolders"] = subfolders

    storage = _open_storage(data_file)
    store = _make_store(_make_loader(source, url), storage)

    async def run() -> None:
        saver = AutoSaver(store, storage, delay=0)
        store.set_filters(**changes)
        await saver.close()

    asyncio.run(run())
    lines = _describe_filters(store.filters)
    if not lines:
        typer.echo("No filters active.")
    for line in lines:
        typer.echo(line)


@app.command(name="clear-filters")
def clear_filters(
    source: SourceOption = None,
    url: UrlOption = None,
    data_file: DataFileOption = None,
) -> None:
    """Remove every saved filter."""
    storage = _open_storage(data_file)
    store = _make_store(_make_loader(source, url), storage)

    async def run() -> None:
        saver = AutoSaver(store, storage, delay=0)
        store.clear_filters()
        await saver.close()

    asyncio.run(run())
    typer.echo("Filters cleared.")


@app.command(name="sort-key")
def sort_key_cmd(
    key: str | None = typer.Argument(
        None, help=f"Metadata key to sort by, or '{MTIME_SORT_KEY}'. Omit to show."
    ),
    data_file: DataFileOption = None,
) -> None:
    """Show or set the default sort key."""
    storage = _open_storage(data_file)
    if key is None:
        typer.echo(storage.read_settings().sort_key)
        return
    if not key.strip():
        typer.echo("Sort key must not be empty.", err=True)
        raise typer.Exit(2)
    if not asyncio.run(storage.write_settings(Settings(sort_key=key.strip()))):
        raise typer.Exit(1)
    typer.echo(f"Default sort key set to {key.strip()}")
