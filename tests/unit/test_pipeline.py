"""Tests for the recompute pipeline and option lists."""

from datetime import datetime

from card_explorer.core.pipeline import collect_folders, collect_tags, parent_folders, recompute
from card_explorer.models.note import DateRange, FilterSpec, Note, SortSpec
from tests.unit.fakes import make_note


def test_recompute_filters_sorts_and_pins(sample_notes: list[Note], now: datetime) -> None:
    view = recompute(
        sample_notes,
        FilterSpec(date_range=DateRange("within", 30)),
        SortSpec(key="mtime", order="asc"),
        frozenset({"projects/alpha.md"}),
        now,
    )
    assert [n.path for n in view] == [
        "projects/alpha.md",
        "journal/2024-06-01.md",
        "projects/beta/plan.md",
        "inbox.md",
    ]


def test_recompute_is_idempotent(sample_notes: list[Note], now: datetime) -> None:
    args = (sample_notes, FilterSpec(tags=("work",)), SortSpec(), frozenset({"x.md"}), now)
    assert recompute(*args) == recompute(*args)


def test_pinned_notes_precede_unpinned(sample_notes: list[Note], now: datetime) -> None:
    pinned = frozenset({"archive/old.md", "projects/beta/plan.md", "not-loaded.md"})
    view = recompute(sample_notes, FilterSpec(), SortSpec(), pinned, now)
    flags = [n.path in pinned for n in view]
    assert flags == sorted(flags, reverse=True)
    assert sum(flags) == 2


def test_filtered_out_pins_stay_hidden(sample_notes: list[Note], now: datetime) -> None:
    view = recompute(
        sample_notes, FilterSpec(tags=("daily",)), SortSpec(), frozenset({"inbox.md"}), now
    )
    assert [n.path for n in view] == ["journal/2024-06-01.md"]


def test_parent_folders() -> None:
    assert parent_folders("a/b/c") == ["a", "a/b"]
    assert parent_folders("a") == []


def test_collect_folders_includes_ancestors(sample_notes: list[Note]) -> None:
    assert collect_folders(sample_notes) == [
        "archive",
        "journal",
        "projects",
        "projects/beta",
    ]
    assert collect_folders([make_note("x/y/z/n.md")]) == ["x", "x/y", "x/y/z"]


def test_collect_tags_is_sorted_union(sample_notes: list[Note]) -> None:
    assert collect_tags(sample_notes) == ["daily", "todo", "work"]
