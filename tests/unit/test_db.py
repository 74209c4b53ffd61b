"""Tests for the database layer: init, show/creator upsert, features TTL, status."""

from datetime import datetime, timedelta

import pytest

from podmatch.core.db import (
    CREATOR_FEATURES,
    SHOW_FEATURES,
    get_creator,
    get_show,
    get_status,
    init_db,
    list_features,
    list_show_ids,
    load_features,
    put_status,
    save_features,
    upsert_creator,
    upsert_shows,
)
from podmatch.core.schemas import CandidateRecord, CreatorRecord, ProcessingStatus


def _show(show_id: str = "s1", **kw: object) -> CandidateRecord:
    defaults: dict[str, object] = {"id": show_id, "title": f"Show {show_id}"}
    defaults.update(kw)
    return CandidateRecord(**defaults)  # type: ignore[arg-type]


@pytest.fixture()
def db(tmp_path):  # type: ignore[no-untyped-def]
    """Provide a fresh SQLite connection per test."""
    return init_db(tmp_path / "test.db")


class TestInitDb:
    def test_creates_tables(self, db) -> None:  # type: ignore[no-untyped-def]
        tables = {
            row[0]
            for row in db.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()
        }
        assert {"shows", "creators", "features", "processing_status"} <= tables

    def test_idempotent(self, tmp_path) -> None:  # type: ignore[no-untyped-def]
        """Calling init_db twice on the same path doesn't error."""
        p = tmp_path / "double.db"
        init_db(p).close()
        init_db(p).close()

    def test_creates_parent_dir(self, tmp_path) -> None:  # type: ignore[no-untyped-def]
        conn = init_db(tmp_path / "nested" / "dir" / "x.db")
        conn.close()
        assert (tmp_path / "nested" / "dir" / "x.db").exists()


class TestShows:
    def test_upsert_and_get(self, db) -> None:  # type: ignore[no-untyped-def]
        assert upsert_shows(db, [_show("1"), _show("2")]) == 2
        record = get_show(db, "1")
        assert record is not None
        assert record.title == "Show 1"

    def test_upsert_replaces(self, db) -> None:  # type: ignore[no-untyped-def]
        upsert_shows(db, [_show("1", title="Old")])
        upsert_shows(db, [_show("1", title="New")])
        count = db.execute("SELECT COUNT(*) FROM shows").fetchone()[0]
        assert count == 1
        assert get_show(db, "1").title == "New"  # type: ignore[union-attr]

    def test_get_missing(self, db) -> None:  # type: ignore[no-untyped-def]
        assert get_show(db, "nope") is None

    def test_list_ids_ordered(self, db) -> None:  # type: ignore[no-untyped-def]
        upsert_shows(db, [_show("b"), _show("a"), _show("c")])
        assert list_show_ids(db) == ["a", "b", "c"]

    def test_list_ids_topic_containment(self, db) -> None:  # type: ignore[no-untyped-def]
        upsert_shows(db, [
            _show("1", categories=["Technology", "Business"]),
            _show("2", categories=["technology"]),
            _show("3", categories=["Comedy"]),
        ])
        assert list_show_ids(db, topics=["technology"]) == ["1", "2"]
        assert list_show_ids(db, topics=["Technology", "business"]) == ["1"]

    def test_list_ids_exclusion(self, db) -> None:  # type: ignore[no-untyped-def]
        upsert_shows(db, [_show("1"), _show("2"), _show("3")])
        assert list_show_ids(db, exclude_ids=["2"]) == ["1", "3"]


class TestCreators:
    def test_upsert_and_get(self, db) -> None:  # type: ignore[no-untyped-def]
        upsert_creator(db, CreatorRecord(id="c1", name="Ada", topics=["ai"]))
        record = get_creator(db, "c1")
        assert record is not None
        assert record.name == "Ada"
        assert record.topics == ["ai"]

    def test_get_missing(self, db) -> None:  # type: ignore[no-untyped-def]
        assert get_creator(db, "nope") is None


class TestFeatures:
    def test_save_and_load(self, db) -> None:  # type: ignore[no-untyped-def]
        save_features(db, "s1", SHOW_FEATURES, '{"x": 1}', datetime.now())
        assert load_features(db, "s1", SHOW_FEATURES) == '{"x": 1}'

    def test_kinds_are_separate(self, db) -> None:  # type: ignore[no-untyped-def]
        save_features(db, "id", SHOW_FEATURES, '"show"', datetime.now())
        save_features(db, "id", CREATOR_FEATURES, '"creator"', datetime.now())
        assert load_features(db, "id", SHOW_FEATURES) == '"show"'
        assert load_features(db, "id", CREATOR_FEATURES) == '"creator"'

    def test_ttl_excludes_stale(self, db) -> None:  # type: ignore[no-untyped-def]
        save_features(db, "old", SHOW_FEATURES, "{}", datetime.now() - timedelta(days=40))
        assert load_features(db, "old", SHOW_FEATURES, ttl_days=30) is None
        assert load_features(db, "old", SHOW_FEATURES) == "{}"

    def test_ttl_keeps_fresh(self, db) -> None:  # type: ignore[no-untyped-def]
        save_features(db, "new", SHOW_FEATURES, "{}", datetime.now() - timedelta(days=2))
        assert load_features(db, "new", SHOW_FEATURES, ttl_days=30) == "{}"

    def test_list_by_kind(self, db) -> None:  # type: ignore[no-untyped-def]
        save_features(db, "b", SHOW_FEATURES, "1", datetime.now())
        save_features(db, "a", SHOW_FEATURES, "2", datetime.now())
        save_features(db, "c", CREATOR_FEATURES, "3", datetime.now())
        assert list_features(db, SHOW_FEATURES) == [("a", "2"), ("b", "1")]


class TestStatus:
    def test_put_and_get(self, db) -> None:  # type: ignore[no-untyped-def]
        status = ProcessingStatus(
            status="processing", progress=0.5, processed_count=1, total_count=2,
        )
        put_status(db, "match_status:c1", status)
        loaded = get_status(db, "match_status:c1")
        assert loaded == status

    def test_last_writer_wins(self, db) -> None:  # type: ignore[no-untyped-def]
        put_status(db, "k", ProcessingStatus(status="processing", total_count=2))
        put_status(db, "k", ProcessingStatus(status="failed", error="boom"))
        loaded = get_status(db, "k")
        assert loaded is not None
        assert loaded.status == "failed"
        assert loaded.error == "boom"

    def test_get_missing(self, db) -> None:  # type: ignore[no-untyped-def]
        assert get_status(db, "nope") is None
