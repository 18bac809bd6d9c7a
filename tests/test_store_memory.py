"""In-memory store: keyset pages, chunked flagging, fixtures, and subscriptions."""
import json
from pathlib import Path

import pytest

from export_console.core.errors import PartialExportFailure, StoreUnavailable
from export_console.core.models import Record
from export_console.store.base import chunked, unique_ids
from export_console.store.memory import MemoryRecordStore

COLLECTION = "website_transactions"


def test_chunked_splits_at_the_batch_limit():
    assert list(chunked(["a", "b", "c", "d", "e"], 2)) == [["a", "b"], ["c", "d"], ["e"]]
    assert list(chunked([], 3)) == []
    with pytest.raises(ValueError):
        list(chunked(["a"], 0))


def test_unique_ids_keeps_first_seen_order():
    assert unique_ids(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]


def test_pages_never_overlap_when_records_arrive_between_fetches(make_record):
    records = [make_record() for _ in range(5)]
    store = MemoryRecordStore({COLLECTION: records})

    first = store.fetch_page(COLLECTION, {}, "createdAt", limit=2)
    store.add(COLLECTION, make_record("newest", createdAt=records[0].created_at.replace(year=2030)))
    second = store.fetch_page(COLLECTION, {}, "createdAt", cursor=first.cursor, limit=2)
    third = store.fetch_page(COLLECTION, {}, "createdAt", cursor=second.cursor, limit=2)

    assert [record.id for record in first.records] == ["doc-0001", "doc-0002"]
    assert [record.id for record in second.records] == ["doc-0003", "doc-0004"]
    assert [record.id for record in third.records] == ["doc-0005"]
    assert first.is_last_page is False
    assert third.is_last_page is True


def test_ascending_order_and_equality_filters(make_record):
    records = [
        make_record("a", status="approved"),
        make_record("b", status="failed"),
        make_record("c", status="approved", exported=True),
        make_record("d", status="approved"),
    ]
    store = MemoryRecordStore({COLLECTION: records})

    page = store.fetch_page(COLLECTION, {"status": "approved", "exported": False}, "createdAt", descending=False)

    assert [record.id for record in page.records] == ["d", "a"]


def test_fetch_all_respects_limit(make_record):
    store = MemoryRecordStore({COLLECTION: [make_record() for _ in range(4)]})

    assert len(store.fetch_all(COLLECTION, {}, limit=3, order_field="createdAt")) == 3
    assert len(store.fetch_all(COLLECTION, {}, limit=None)) == 4
    assert store.fetch_all("missing", {}, limit=10) == []


def test_batch_mark_exported_flags_in_chunks(make_record):
    records = [make_record() for _ in range(5)]
    store = MemoryRecordStore({COLLECTION: records})

    flagged = store.batch_mark_exported(COLLECTION, [record.id for record in records] + ["doc-0001"], batch_limit=2)

    assert flagged == 5
    assert all(record.exported for record in store.records(COLLECTION))


def test_failure_after_a_committed_chunk_is_partial(make_record):
    records = [make_record() for _ in range(5)]
    store = MemoryRecordStore({COLLECTION: records}, fail_on_chunk=2)

    with pytest.raises(PartialExportFailure) as excinfo:
        store.batch_mark_exported(COLLECTION, [record.id for record in records], batch_limit=2)

    assert (excinfo.value.attempted, excinfo.value.flagged) == (5, 2)
    assert [record.exported for record in store.records(COLLECTION)] == [True, True, False, False, False]


def test_failure_on_the_first_chunk_is_unavailable(make_record):
    store = MemoryRecordStore({COLLECTION: [make_record()]}, fail_on_chunk=1)

    with pytest.raises(StoreUnavailable):
        store.batch_mark_exported(COLLECTION, ["doc-0001"])

    assert store.get(COLLECTION, "doc-0001").exported is False


def test_unavailable_store_fails_every_read():
    store = MemoryRecordStore(unavailable=True)

    with pytest.raises(StoreUnavailable):
        store.fetch_page(COLLECTION, {}, "createdAt")
    with pytest.raises(StoreUnavailable):
        store.fetch_all(COLLECTION, {}, limit=1)


def test_from_json_loads_collections(fixture_file: Path, caplog):
    caplog.set_level("INFO")

    store = MemoryRecordStore.from_json(fixture_file)

    assert [record.id for record in store.records("delivery_queue")] == ["u1", "u2", "u3", "u4"]
    assert store.get("numbers", "n1").get("networkProvider") == "MTN"
    assert "id" not in store.get("numbers", "n1").fields
    assert any("Loaded fixture" in message for message in caplog.messages)


def test_from_json_generates_missing_ids(tmp_path: Path):
    path = tmp_path / "fixture.json"
    path.write_text(json.dumps({"numbers": [{"phoneNumber": "0201112222"}]}), encoding="utf-8")

    record = MemoryRecordStore.from_json(path).records("numbers")[0]

    assert record.id
    assert record.get("phoneNumber") == "0201112222"


def test_subscribe_delivers_snapshots_until_unsubscribed(make_record):
    store = MemoryRecordStore({COLLECTION: [make_record("a", status="approved")]})
    snapshots = []

    unsubscribe = store.subscribe(COLLECTION, {"exported": False}, lambda rows: snapshots.append([r.id for r in rows]))
    store.insert(COLLECTION, {"status": "approved"}, record_id="b")
    store.batch_mark_exported(COLLECTION, ["a"])
    unsubscribe()
    store.insert(COLLECTION, {"status": "approved"}, record_id="c")

    assert snapshots == [["a"], ["a", "b"], ["b"]]


def test_records_returns_a_copy():
    store = MemoryRecordStore({COLLECTION: [Record("a")]})

    store.records(COLLECTION).clear()

    assert len(store.records(COLLECTION)) == 1


def test_fetch_in_matches_any_of_the_values(make_record):
    store = MemoryRecordStore(
        {
            "delivery_queue": [
                make_record("a", externalRef="R1", exported=True),
                make_record("b", externalRef="R1"),
                make_record("c", externalRef="R2", exported=True),
                make_record("d", externalRef="R3", exported=True),
                make_record("e"),
            ]
        }
    )

    found = store.fetch_in("delivery_queue", "externalRef", ["R1", "R2"], {"exported": True})

    assert [record.id for record in found] == ["a", "c"]
    assert store.fetch_in("delivery_queue", "externalRef", ["R1", "R2", "R3"], {"exported": True}, limit=1)[0].id == "a"
