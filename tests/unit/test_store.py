"""Tests for the note store."""

import asyncio
from datetime import datetime

import pytest

from card_explorer.core.errors import LoadError, RetryPolicy
from card_explorer.models.note import DateRange, FilterSpec, Note, SortSpec
from card_explorer.store import NoteStore
from tests.unit.fakes import NOW, FakeLoader, RecordingHandler, make_note


def _store(loader: FakeLoader, policy: RetryPolicy, **kwargs) -> NoteStore:
    return NoteStore(loader, retry_policy=policy, clock=lambda: NOW, **kwargs)


def _paths(notes: tuple[Note, ...]) -> list[str]:
    return [n.path for n in notes]


def _loaded(notes: list[Note], policy: RetryPolicy) -> NoteStore:
    store = _store(FakeLoader(notes), policy)
    assert asyncio.run(store.refresh())
    return store


def test_initial_state(fast_retry: RetryPolicy) -> None:
    store = _store(FakeLoader(), fast_retry)
    assert store.notes == ()
    assert store.filtered_notes == ()
    assert store.pinned_notes == frozenset()
    assert store.filters == FilterSpec()
    assert store.sort_config == SortSpec()
    assert not store.is_loading
    assert store.error is None
    assert store.version == 0


def test_refresh_loads_notes_and_options(sample_notes: list[Note], fast_retry: RetryPolicy) -> None:
    store = _loaded(sample_notes, fast_retry)
    assert store.notes == tuple(sample_notes)
    assert store.filtered_count == 5
    assert store.available_tags == ("daily", "todo", "work")
    assert "projects/beta" in store.available_folders
    assert not store.is_loading
    assert store.error is None


def test_refresh_sets_loading_while_pending(fast_retry: RetryPolicy) -> None:
    store = _store(FakeLoader([make_note("a.md")]), fast_retry)
    seen: list[bool] = []
    store.subscribe(lambda s: seen.append(s.is_loading))

    asyncio.run(store.refresh())
    assert seen[0] is True
    assert seen[-1] is False


def test_priority_sort_then_pin(fast_retry: RetryPolicy) -> None:
    notes = [
        make_note("p3.md", metadata={"priority": 3}),
        make_note("p1.md", metadata={"priority": 1}),
        make_note("p2.md", metadata={"priority": 2}),
    ]
    store = _loaded(notes, fast_retry)
    store.set_sort_key("priority")
    assert _paths(store.filtered_notes) == ["p3.md", "p2.md", "p1.md"]

    store.toggle_pin("p1.md")
    assert _paths(store.filtered_notes) == ["p1.md", "p3.md", "p2.md"]
    assert store.pinned_count == 1

    store.toggle_pin("p1.md")
    assert _paths(store.filtered_notes) == ["p3.md", "p2.md", "p1.md"]


def test_tag_filter_scenario(fast_retry: RetryPolicy) -> None:
    notes = [
        make_note("1.md", tags=["a", "b"], days_ago=3),
        make_note("2.md", tags=["b", "c"], days_ago=2),
        make_note("3.md", tags=["c"], days_ago=1),
    ]
    store = _loaded(notes, fast_retry)
    store.set_sort_config(SortSpec(key="mtime", order="asc"))
    store.set_filters(tags=["b"])
    assert store.filters.tags == ("b",)
    assert _paths(store.filtered_notes) == ["1.md", "2.md"]
    assert store.has_active_filters


def test_clear_filters_restores_full_view(
    sample_notes: list[Note], fast_retry: RetryPolicy
) -> None:
    store = _loaded(sample_notes, fast_retry)
    full = store.filtered_notes

    store.set_filters(filename="x")
    assert store.filtered_count == 0

    store.clear_filters()
    assert store.filtered_notes == full
    assert not store.has_active_filters


def test_failed_refresh_keeps_previous_notes(
    sample_notes: list[Note], fast_retry: RetryPolicy
) -> None:
    """Three rejections: error set, loading cleared, notes and view unchanged."""
    loader = FakeLoader(sample_notes, LoadError("server down"))
    store = _store(loader, fast_retry)
    assert asyncio.run(store.refresh())
    before_notes, before_view = store.notes, store.filtered_notes

    assert asyncio.run(store.refresh()) is False
    assert loader.calls == 1 + 3
    assert store.error == "Failed to load notes: server down"
    assert not store.is_loading
    assert store.notes == before_notes
    assert store.filtered_notes == before_view


def test_failed_refresh_reports_through_handler(fast_retry: RetryPolicy) -> None:
    handler = RecordingHandler()
    store = _store(
        FakeLoader(LoadError("Vault directory not found")), fast_retry, error_handler=handler
    )

    assert not asyncio.run(store.refresh())
    assert len(handler.reported) == 1
    assert handler.reported[0].category.value == "api"
    assert store.error == handler.reported[0].message


class RawLoader:
    """Returns the first payload, then ``later`` on every following call."""

    def __init__(self, first: object, later: object) -> None:
        self.payloads = [first, later]
        self.calls = 0

    async def load_all_documents(self) -> object:
        payload = self.payloads[min(self.calls, 1)]
        self.calls += 1
        return payload


@pytest.mark.parametrize("bad_payload", [None, [object()], 42])
def test_malformed_loader_result_fails_refresh_cleanly(
    sample_notes: list[Note], fast_retry: RetryPolicy, bad_payload: object
) -> None:
    handler = RecordingHandler()
    loader = RawLoader(sample_notes, bad_payload)
    store = _store(loader, fast_retry, error_handler=handler)  # type: ignore[arg-type]
    assert asyncio.run(store.refresh())
    before_notes, before_view = store.notes, store.filtered_notes
    before_tags = store.available_tags

    assert asyncio.run(store.refresh()) is False
    assert not store.is_loading
    assert store.error is not None
    assert handler.reported[-1].category.value == "api"
    assert store.notes == before_notes
    assert store.filtered_notes == before_view
    assert store.available_tags == before_tags


def test_refresh_recovers_after_transient_failure(fast_retry: RetryPolicy) -> None:
    loader = FakeLoader(LoadError("flaky"), [make_note("a.md")])
    store = _store(loader, fast_retry)
    assert asyncio.run(store.refresh())
    assert loader.calls == 2
    assert _paths(store.notes) == ["a.md"]
    assert store.error is None


def test_refresh_clears_previous_error(fast_retry: RetryPolicy) -> None:
    store = _store(FakeLoader([make_note("a.md")]), fast_retry)
    store.set_error("old failure")
    assert asyncio.run(store.refresh())
    assert store.error is None


def test_refresh_uses_filters_current_at_completion(fast_retry: RetryPolicy) -> None:
    """Edits made while a reload is in flight apply to the reloaded notes."""
    gate = asyncio.Event()

    class SlowLoader:
        async def load_all_documents(self) -> list[Note]:
            await gate.wait()
            return [make_note("keep.md", tags=["x"]), make_note("drop.md")]

    store = _store(SlowLoader(), fast_retry)  # type: ignore[arg-type]

    async def run() -> None:
        task = asyncio.create_task(store.refresh())
        await asyncio.sleep(0)
        store.set_filters(tags=("x",))
        gate.set()
        await task

    asyncio.run(run())
    assert _paths(store.filtered_notes) == ["keep.md"]


def test_concurrent_refresh_last_resolution_wins(fast_retry: RetryPolicy) -> None:
    first_gate, second_gate = asyncio.Event(), asyncio.Event()

    class GatedLoader:
        def __init__(self) -> None:
            self.calls = 0

        async def load_all_documents(self) -> list[Note]:
            self.calls += 1
            if self.calls == 1:
                await first_gate.wait()
                return [make_note("first.md")]
            await second_gate.wait()
            return [make_note("second.md")]

    store = _store(GatedLoader(), fast_retry)  # type: ignore[arg-type]

    async def run() -> None:
        first = asyncio.create_task(store.refresh())
        second = asyncio.create_task(store.refresh())
        await asyncio.sleep(0)
        second_gate.set()
        await second
        first_gate.set()
        await first

    asyncio.run(run())
    assert _paths(store.notes) == ["first.md"]


def test_overlapping_refreshes_stay_loading_until_the_last_finishes(
    fast_retry: RetryPolicy,
) -> None:
    first_gate, second_gate = asyncio.Event(), asyncio.Event()
    gates = [first_gate, second_gate]

    class GatedLoader:
        def __init__(self) -> None:
            self.calls = 0

        async def load_all_documents(self) -> list[Note]:
            gate = gates[self.calls]
            self.calls += 1
            await gate.wait()
            return [make_note("a.md")]

    store = _store(GatedLoader(), fast_retry)  # type: ignore[arg-type]
    seen: list[bool] = []

    async def run() -> None:
        first = asyncio.create_task(store.refresh())
        second = asyncio.create_task(store.refresh())
        await asyncio.sleep(0)
        first_gate.set()
        await first
        seen.append(store.is_loading)
        second_gate.set()
        await second
        seen.append(store.is_loading)

    asyncio.run(run())
    assert seen == [True, False]


def test_cancelled_refresh_clears_loading(fast_retry: RetryPolicy) -> None:
    class HangingLoader:
        async def load_all_documents(self) -> list[Note]:
            await asyncio.Event().wait()
            return []

    store = _store(HangingLoader(), fast_retry)  # type: ignore[arg-type]

    async def run() -> None:
        task = asyncio.create_task(store.refresh())
        await asyncio.sleep(0)
        assert store.is_loading
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(run())
    assert not store.is_loading


def test_set_filters_merges_and_ignores_unknown(fast_retry: RetryPolicy) -> None:
    store = _store(FakeLoader(), fast_retry)
    store.set_filters(folders=["projects"], bogus=1)
    store.set_filters(date_range={"type": "within", "value": 7})
    assert store.filters.folders == ("projects",)
    assert store.filters.date_range == DateRange("within", 7)
    assert not hasattr(store.filters, "bogus")


def test_set_filters_with_only_unknown_fields_is_a_noop(fast_retry: RetryPolicy) -> None:
    store = _store(FakeLoader(), fast_retry)
    version = store.version
    store.set_filters(colour="red")
    assert store.version == version


def test_set_sort_key_resets_order(fast_retry: RetryPolicy) -> None:
    store = _store(FakeLoader(), fast_retry)
    store.set_sort_config(SortSpec(key="title", order="asc"))
    store.set_sort_key("priority")
    assert store.sort_config == SortSpec(key="priority", order="desc")


def test_invalid_actions_are_ignored(fast_retry: RetryPolicy) -> None:
    store = _store(FakeLoader(), fast_retry)
    version = store.version
    store.set_sort_key("  ")
    store.set_sort_config(SortSpec(key="x", order="sideways"))  # type: ignore[arg-type]
    store.toggle_pin("")
    assert store.version == version
    assert store.sort_config == SortSpec()
    assert store.pinned_notes == frozenset()


def test_pins_for_unloaded_notes_are_kept(fast_retry: RetryPolicy) -> None:
    store = _loaded([make_note("a.md")], fast_retry)
    store.toggle_pin("elsewhere.md")
    assert store.pinned_notes == {"elsewhere.md"}
    assert store.pinned_count == 1
    assert _paths(store.filtered_notes) == ["a.md"]


def test_every_mutation_bumps_version_and_notifies(fast_retry: RetryPolicy) -> None:
    store = _store(FakeLoader(), fast_retry)
    calls: list[int] = []
    unsubscribe = store.subscribe(lambda s: calls.append(s.version))

    store.toggle_pin("a.md")
    store.set_loading(True)
    store.set_error("x")
    assert calls == [1, 2, 3]

    unsubscribe()
    unsubscribe()
    store.reset()
    assert calls == [1, 2, 3]
    assert store.version == 4


def test_failing_listener_does_not_break_actions(fast_retry: RetryPolicy) -> None:
    store = _store(FakeLoader(), fast_retry)
    seen: list[int] = []

    def broken(_store: NoteStore) -> None:
        raise RuntimeError("listener bug")

    store.subscribe(broken)
    store.subscribe(lambda s: seen.append(s.version))
    store.toggle_pin("a.md")
    assert seen == [1]
    assert store.pinned_notes == {"a.md"}


def test_reset_restores_defaults(sample_notes: list[Note], fast_retry: RetryPolicy) -> None:
    store = _loaded(sample_notes, fast_retry)
    store.toggle_pin("inbox.md")
    store.set_filters(tags=("work",))
    store.reset()
    assert store.notes == ()
    assert store.pinned_notes == frozenset()
    assert store.filters == FilterSpec()
    assert store.available_tags == ()


def test_initialize_hydrates_and_recomputes(
    sample_notes: list[Note], fast_retry: RetryPolicy
) -> None:
    store = _loaded(sample_notes, fast_retry)
    store.initialize(
        {
            "version": 2,
            "pinnedNotes": ["archive/old.md"],
            "lastFilters": {"folders": [], "tags": ["work", "daily"], "filename": ""},
            "sortKey": "ignored",
        },
        default_sort_key="mtime",
    )
    assert store.sort_config == SortSpec(key="mtime")
    assert store.pinned_notes == {"archive/old.md"}
    assert _paths(store.filtered_notes) == [
        "projects/alpha.md",
        "projects/beta/plan.md",
        "journal/2024-06-01.md",
    ]


def test_snapshot_round_trips_through_initialize(fast_retry: RetryPolicy) -> None:
    store = _store(FakeLoader(), fast_retry)
    store.toggle_pin("b.md")
    store.toggle_pin("a.md")
    store.set_filters(tags=("x",), date_range=DateRange("within", 3), include_subfolders=True)

    other = _store(FakeLoader(), fast_retry)
    other.initialize(store.snapshot(), default_sort_key=store.sort_config.key)
    assert other.pinned_notes == store.pinned_notes
    assert other.filters == store.filters
    assert store.snapshot()["pinnedNotes"] == ["a.md", "b.md"]


def test_clock_drives_date_filters(fast_retry: RetryPolicy) -> None:
    current = [NOW]
    store = NoteStore(
        FakeLoader([make_note("a.md", days_ago=2)]),
        retry_policy=fast_retry,
        clock=lambda: current[0],
    )
    asyncio.run(store.refresh())
    store.set_filters(date_range=DateRange("within", 3))
    assert store.filtered_count == 1

    current[0] = datetime(2024, 7, 1, tzinfo=NOW.tzinfo)
    store.set_filters(date_range=DateRange("within", 3))
    assert store.filtered_count == 0
