"""Shared test fixtures."""

from datetime import datetime

import pytest

from card_explorer.core.errors import RetryPolicy
from card_explorer.models.note import Note
from tests.unit.fakes import NOW, make_note


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Retry policy with the default attempt count and no waiting."""
    return RetryPolicy(base_delay=0, max_delay=0)


@pytest.fixture
def sample_notes() -> list[Note]:
    """Five notes across folders, tags and ages."""
    return [
        make_note("inbox.md", days_ago=1, tags=["todo"]),
        make_note("projects/alpha.md", days_ago=3, tags=["work", "todo"]),
        make_note("projects/beta/plan.md", days_ago=10, tags=["work"]),
        make_note("journal/2024-06-01.md", days_ago=14, tags=["daily"]),
        make_note("archive/old.md", days_ago=400),
    ]
