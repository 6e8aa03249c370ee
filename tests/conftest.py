"""Shared fixtures and fakes for catalog tests."""

from datetime import datetime, timedelta, timezone

import pytest

from audiobook_catalog.models import ContentRecord
from audiobook_catalog.store import ContentStore

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeMetadata:
    """Stands in for OpenLibraryClient: canned search results and works."""

    def __init__(self, results=None, works=None):
        self.results = list(results or [])
        self.works = dict(works or {})
        self.queries: list[str] = []

    async def search(self, query, limit=20):
        self.queries.append(query)
        return self.results[:limit]

    async def get_by_id(self, canonical_id):
        return self.works.get(canonical_id)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def store(tmp_path):
    s = ContentStore(tmp_path / "catalog.db")
    yield s
    s.close()


@pytest.fixture
def make_record():
    """Factory for ContentRecords with sensible defaults."""

    def _make(key: str, minutes: int = 0, **overrides) -> ContentRecord:
        fields = {
            "unique_key": key,
            "origin_id": key,
            "title": f"Title {key}",
            "author": "Some Author",
            "source_id": "librivox",
            "locator": f"https://archive.org/download/{key}",
            "scraped_at": T0 + timedelta(minutes=minutes),
        }
        fields.update(overrides)
        return ContentRecord(**fields)

    return _make


@pytest.fixture
def metadata():
    return FakeMetadata()


@pytest.fixture
def clock():
    return FakeClock()
