from __future__ import annotations

import time
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from tweetcord.models.types import Author, FetchResult, Item, Media, MediaKind
from tweetcord.storage.database import SqliteWatermarkStore
from tweetcord.storage.watermark import MemoryWatermarkStore


def make_item(item_id: str, **overrides) -> Item:
    fields = {
        "id": item_id,
        "author_id": "42",
        "text": f"Post number {item_id}",
        "created_at": datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc),
        "likes": 10,
        "shares": 2,
        "replies": 3,
    }
    fields.update(overrides)
    return Item(**fields)


def make_items(*ids: str) -> list[Item]:
    """Items in the order given; pass ids newest-first to mimic the source."""
    return [make_item(item_id) for item_id in ids]


@pytest.fixture
def sample_author() -> Author:
    """The tracked account as returned in the fetch side list."""
    return Author(
        id="42",
        handle="nasa",
        display_name="NASA",
        verified=True,
        avatar_url="https://pbs.twimg.com/profile_images/nasa.jpg",
    )


@pytest.fixture
def sample_photo() -> Media:
    return Media(
        key="3_1",
        kind=MediaKind.PHOTO,
        url="https://pbs.twimg.com/media/photo.jpg",
        width=1200,
        height=800,
    )


@pytest.fixture
def fetch_result(sample_author) -> FetchResult:
    """Five posts newest-first, ids id5..id1."""
    return FetchResult(
        items=make_items("id5", "id4", "id3", "id2", "id1"),
        authors=[sample_author],
        account_id="42",
    )


@pytest.fixture
def memory_store() -> MemoryWatermarkStore:
    return MemoryWatermarkStore()


@pytest.fixture
def mock_publisher() -> MagicMock:
    """A publisher whose send_item succeeds unless a side_effect is set."""
    publisher = MagicMock()
    publisher.send_item.return_value = None
    publisher.send_text.return_value = None
    return publisher


@pytest.fixture
def temp_database(tmp_path):
    """A SqliteWatermarkStore backed by a temporary file, closed after the test."""
    store = SqliteWatermarkStore(db_path=str(tmp_path / "test_tweetcord.db"))
    yield store
    store.close()


@pytest.fixture
def no_backoff(monkeypatch):
    """Make tenacity retries instant."""
    monkeypatch.setattr(time, "sleep", lambda _seconds: None)
