"""Tests for store.py -- SQLite upsert-by-key content store."""

import sqlite3
import threading

import pytest

from audiobook_catalog.errors import StoreUnavailable
from audiobook_catalog.models import AudioFormat
from audiobook_catalog.store import ContentStore


class TestUpsert:
    def test_roundtrip_fields(self, store, make_record):
        record = make_record(
            "k1",
            narrator="Karen Savage",
            audio_format=AudioFormat.M4B,
            bitrate_kbps=64,
            size_bytes=1234,
        )
        store.upsert_one(record)
        assert store.get("k1") == record

    def test_missing_key_returns_none(self, store):
        assert store.get("nope") is None

    def test_last_write_wins(self, store, make_record):
        store.upsert_one(make_record("k1", title="Old", size_bytes=1))
        store.upsert_one(make_record("k1", title="New", size_bytes=2, minutes=5))
        stored = store.get("k1")
        assert stored.title == "New"
        assert stored.size_bytes == 2
        assert store.count() == 1

    def test_repeat_scrape_does_not_duplicate(self, store, make_record):
        batch = [make_record(f"k{i}") for i in range(3)]
        assert store.upsert_many(batch) == 3
        assert store.upsert_many(batch) == 3
        assert store.count() == 3

    def test_empty_batch(self, store):
        assert store.upsert_many([]) == 0

    def test_canonical_id_survives_rescrape(self, store, make_record):
        store.upsert_one(make_record("k1"))
        store.set_canonical_id("k1", "ol:OL1W")
        store.upsert_one(make_record("k1", title="Rescraped"))
        stored = store.get("k1")
        assert stored.canonical_id == "ol:OL1W"
        assert stored.title == "Rescraped"

    def test_incoming_canonical_id_overrides(self, store, make_record):
        store.upsert_one(make_record("k1", canonical_id="ol:OL1W"))
        store.upsert_one(make_record("k1", canonical_id="ol:OL2W"))
        assert store.get("k1").canonical_id == "ol:OL2W"

    def test_update_keeps_store_order(self, store, make_record):
        store.upsert_many([make_record("a"), make_record("b")])
        store.upsert_one(make_record("a", title="Updated"))
        assert [r.unique_key for r in store.find()] == ["a", "b"]


class TestFind:
    @pytest.fixture
    def populated(self, store, make_record):
        store.upsert_many(
            [
                make_record("a", minutes=1, source_id="librivox"),
                make_record("b", minutes=3, source_id="archive-org"),
                make_record("c", minutes=2, source_id="librivox", canonical_id="ol:OL1W"),
            ]
        )
        return store

    def test_equality_filter(self, populated):
        found = populated.find({"source_id": "librivox"})
        assert [r.unique_key for r in found] == ["a", "c"]

    def test_none_filter_matches_null(self, populated):
        found = populated.find({"canonical_id": None})
        assert [r.unique_key for r in found] == ["a", "b"]

    def test_order_by_descending_with_limit(self, populated):
        found = populated.find(None, "scraped_at", True, 2)
        assert [r.unique_key for r in found] == ["b", "c"]

    def test_count_with_filter(self, populated):
        assert populated.count({"source_id": "librivox"}) == 2
        assert populated.count({"source_id": "nothing"}) == 0

    def test_unknown_column_rejected(self, populated):
        with pytest.raises(ValueError):
            populated.find({"title; DROP TABLE content": "x"})
        with pytest.raises(ValueError):
            populated.find(order_by="nope")


class TestSearch:
    def test_case_insensitive_title_author_narrator(self, store, make_record):
        store.upsert_many(
            [
                make_record("t", title="Project Hail Mary"),
                make_record("a", author="Andy WEIR"),
                make_record("n", narrator="Ray Porter"),
                make_record("x", title="Unrelated"),
            ]
        )
        assert [r.unique_key for r in store.search("hail")] == ["t"]
        assert [r.unique_key for r in store.search("weir")] == ["a"]
        assert [r.unique_key for r in store.search("PORTER")] == ["n"]

    def test_like_wildcards_are_literal(self, store, make_record):
        store.upsert_many(
            [make_record("p", title="100% Real"), make_record("q", title="1000 Real")]
        )
        assert [r.unique_key for r in store.search("100%")] == ["p"]

    def test_limit(self, store, make_record):
        store.upsert_many([make_record(f"k{i}", title="Dune") for i in range(5)])
        assert len(store.search("dune", limit=2)) == 2

    def test_non_ascii_case_folding(self, store, make_record):
        store.upsert_many(
            [
                make_record("e", title="Émile ou de l'éducation"),
                make_record("s", author="Fjodor DOSTOJEWSKI"),
                make_record("x", title="Emma"),
            ]
        )
        assert [r.unique_key for r in store.search("émile")] == ["e"]
        assert [r.unique_key for r in store.search("ÉMILE")] == ["e"]
        assert [r.unique_key for r in store.search("ÉDUCATION")] == ["e"]
        assert [r.unique_key for r in store.search("dostojewski")] == ["s"]


class TestFailures:
    def test_closed_connection_raises_store_unavailable(self, store):
        store._get_conn().close()
        with pytest.raises(StoreUnavailable):
            store.count()
        with pytest.raises(StoreUnavailable):
            store.find()

    def test_unopenable_path(self, tmp_path):
        with pytest.raises(StoreUnavailable):
            ContentStore(tmp_path)


class TestThreadSafety:
    def test_concurrent_upserts(self, store, make_record):
        errors = []

        def writer(prefix):
            try:
                for i in range(20):
                    store.upsert_one(make_record(f"{prefix}-{i}"))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(p,)) for p in "abc"]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert store.count() == 60


class TestClose:
    def test_closes_worker_thread_connections(self, store):
        opened = []
        worker = threading.Thread(target=lambda: opened.append(store._get_conn()))
        worker.start()
        worker.join()

        store.close()
        with pytest.raises(sqlite3.ProgrammingError):
            opened[0].execute("SELECT 1")

    def test_reopens_after_close(self, store, make_record):
        store.upsert_one(make_record("k1"))
        store.close()
        assert store.count() == 1
