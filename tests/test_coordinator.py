"""Export dialog, capped export, chunked flagging, and error reconciliation."""
import io
from datetime import datetime

import pytest
from openpyxl import load_workbook

from export_console.core.config import DEFAULT_CHANNELS, Settings
from export_console.core.errors import (
    CountFetchFailed,
    EmptyExportSet,
    ExportInProgress,
    ExportPartiallyApplied,
    InvalidTransition,
    StoreUnavailable,
)
from export_console.core.models import Record
from export_console.export.coordinator import ExportCoordinator, ExportState, confirmation_message
from export_console.pagination.cursor import PaginationManager
from export_console.store.memory import MemoryRecordStore

USSD = DEFAULT_CHANNELS["ussd"]
WEBSITE = DEFAULT_CHANNELS["website"]


def _coordinator(store, channel, settings=None):
    settings = settings or Settings()
    pages = PaginationManager(store, channel, settings.page_size)
    return ExportCoordinator(store, channel, pages, settings)


def _duplicate_store(make_record, exported_member=False):
    records = [
        make_record("r1", msisdn="233549856098", gig="2", amount="10", externalRef="R1", status="approved"),
        make_record("r2", msisdn="233549856098", gig="2", amount="10", externalRef="R1", status="approved", exported=exported_member),
        make_record("r3", msisdn="233549856098", gig="2", amount="10", externalRef="R1", status="approved"),
    ]
    return MemoryRecordStore({USSD.collection: records})


def test_dialog_counts_unique_events_not_rows(make_record):
    store = _duplicate_store(make_record)
    coordinator = _coordinator(store, USSD)

    prompt = coordinator.open_confirm()

    assert prompt.count == 1
    assert coordinator.state == ExportState.AWAITING_CONFIRMATION
    assert "Only the first" not in prompt.message


def test_exporting_a_group_flags_every_member(make_record):
    store = _duplicate_store(make_record)
    coordinator = _coordinator(store, USSD)
    coordinator.open_confirm()

    result = coordinator.confirm()

    assert result.exported_groups == 1
    assert result.flagged_documents == 3
    assert all(record.exported for record in store.records(USSD.collection))
    assert result.pending_total == 0
    assert coordinator.state == ExportState.IDLE
    assert coordinator.last_outcome == "success"

    sheet = load_workbook(io.BytesIO(result.file.content)).active
    rows = list(sheet.iter_rows(values_only=True))
    assert rows[0] == ("Phone Number", "GB", "Amount", "Reference")
    assert rows[1] == ("0549856098", "2", "10", "R1")
    assert len(rows) == 2


def test_already_exported_event_is_not_offered_again(make_record):
    store = _duplicate_store(make_record, exported_member=True)
    coordinator = _coordinator(store, USSD)

    assert coordinator.open_confirm().count == 0
    with pytest.raises(EmptyExportSet):
        coordinator.confirm()
    assert not any(method == "batch_mark_exported" for method, _ in store.calls)


def test_rerunning_an_export_converges_to_nothing_pending(make_record):
    store = _duplicate_store(make_record)
    coordinator = _coordinator(store, USSD)
    coordinator.open_confirm()
    coordinator.confirm()

    assert coordinator.open_confirm().count == 0


def test_export_cap_limits_groups_and_flags_their_members(make_record):
    settings = Settings(export_cap=5, batch_limit=3)
    records = []
    for index in range(7):
        records.append(make_record(f"g{index}a", externalRef=f"R{index}", status="approved"))
        records.append(make_record(f"g{index}b", externalRef=f"R{index}", status="approved"))
    store = MemoryRecordStore({USSD.collection: records})
    coordinator = _coordinator(store, USSD, settings)

    prompt = coordinator.open_confirm()
    result = coordinator.confirm()

    assert prompt.count == 7
    assert prompt.capped is True
    assert "Only the first 5 will be processed" in prompt.message
    assert result.exported_groups == 5
    assert result.flagged_documents == 10
    assert result.file.row_count == 5
    assert result.pending_total == 2
    flagged = {record.id for record in store.records(USSD.collection) if record.exported}
    assert flagged == {f"g{index}{suffix}" for index in range(5) for suffix in "ab"}


def test_confirm_rereads_instead_of_trusting_the_dialog(make_record):
    store = MemoryRecordStore({WEBSITE.collection: [make_record("w1", status="approved")]})
    coordinator = _coordinator(store, WEBSITE)
    assert coordinator.open_confirm().count == 1

    store.add(WEBSITE.collection, make_record("w2", status="approved"))
    result = coordinator.confirm()

    assert result.exported_groups == 2


def test_cancel_has_no_side_effects(website_store):
    coordinator = _coordinator(website_store, WEBSITE)
    coordinator.pagination.go_to_page(1)
    coordinator.open_confirm()
    fetches_before = len(website_store.calls)

    coordinator.cancel()

    assert coordinator.state == ExportState.IDLE
    assert coordinator.prompt is None
    assert coordinator.pagination.is_cached(1)
    assert len(website_store.calls) == fetches_before
    assert not any(record.exported for record in website_store.records(WEBSITE.collection))


def test_confirm_requires_an_open_dialog(website_store):
    coordinator = _coordinator(website_store, WEBSITE)

    with pytest.raises(InvalidTransition):
        coordinator.confirm()


def test_count_failure_blocks_the_dialog(website_store):
    website_store.unavailable = True
    coordinator = _coordinator(website_store, WEBSITE)

    with pytest.raises(CountFetchFailed):
        coordinator.open_confirm()

    assert coordinator.state == ExportState.IDLE
    assert coordinator.last_outcome == "error"
    assert coordinator.prompt is None


def test_partial_write_is_reported_and_pages_are_reset(website_store):
    settings = Settings(batch_limit=5)
    coordinator = _coordinator(website_store, WEBSITE, settings)
    coordinator.pagination.go_to_page(1)
    coordinator.pagination.next()
    coordinator.open_confirm()
    website_store.fail_on_chunk = 2

    with pytest.raises(ExportPartiallyApplied) as excinfo:
        coordinator.confirm()

    assert excinfo.value.attempted == 13
    assert excinfo.value.flagged == 5
    assert excinfo.value.export_file.row_count == 13
    assert coordinator.pagination.page == 1
    assert not coordinator.pagination.is_cached(2)
    assert coordinator.pending_total == 8
    assert coordinator.last_outcome == "error"
    assert sum(record.exported for record in website_store.records(WEBSITE.collection)) == 5


def test_failed_first_chunk_still_resets_pages(website_store):
    coordinator = _coordinator(website_store, WEBSITE)
    coordinator.pagination.go_to_page(1)
    coordinator.pagination.next()
    coordinator.open_confirm()
    website_store.fail_on_chunk = 1

    with pytest.raises(StoreUnavailable):
        coordinator.confirm()

    assert not coordinator.pagination.is_cached(2)
    assert coordinator.state == ExportState.IDLE


def test_page_one_is_fetched_fresh_after_export(website_store):
    coordinator = _coordinator(website_store, WEBSITE)
    coordinator.pagination.go_to_page(1)
    coordinator.open_confirm()
    fetches_before = sum(1 for method, _ in website_store.calls if method == "fetch_page")

    coordinator.confirm()

    fetches_after = sum(1 for method, _ in website_store.calls if method == "fetch_page")
    assert fetches_after == fetches_before + 1
    assert coordinator.pagination.rows == []
    assert coordinator.pagination.has_more is False


class _ReentrantStore(MemoryRecordStore):
    """Starts a second export while the first one is writing."""

    coordinator = None
    nested_error = None
    busy_during_write = None

    def batch_mark_exported(self, collection, ids, batch_limit=500):
        self.busy_during_write = self.coordinator.busy
        try:
            self.coordinator.confirm()
        except ExportInProgress as exc:
            self.nested_error = exc
        return super().batch_mark_exported(collection, ids, batch_limit)


def test_second_export_on_the_same_channel_is_refused(make_record):
    store = _ReentrantStore({WEBSITE.collection: [make_record("w1", status="approved")]})
    coordinator = _coordinator(store, WEBSITE)
    store.coordinator = coordinator
    coordinator.open_confirm()

    coordinator.confirm()

    assert isinstance(store.nested_error, ExportInProgress)
    assert store.busy_during_write is True
    assert coordinator.busy is False
    assert sum(record.exported for record in store.records(WEBSITE.collection)) == 1


def test_grouped_channel_reads_extra_rows_for_duplicates(make_record, settings):
    store = _duplicate_store(make_record)
    coordinator = _coordinator(store, USSD, settings)

    coordinator.refresh_total()

    assert settings.raw_fetch_limit(USSD) == settings.export_cap * settings.duplicate_headroom
    assert settings.raw_fetch_limit(WEBSITE) == settings.export_cap


@pytest.mark.parametrize(
    ("count", "expected"),
    [
        (0, "No pending USSD Transactions records to export."),
        (1, "Export 1 pending USSD Transactions record and mark them as exported?"),
        (1000, "Export 1000 pending USSD Transactions records and mark them as exported? Only the first 1000 will be processed."),
    ],
)
def test_confirmation_message(count, expected):
    assert confirmation_message("USSD Transactions", count, 1000) == expected


def test_watch_pending_delivers_grouped_rows(make_record):
    from export_console.export.coordinator import watch_pending

    store = _duplicate_store(make_record)
    deliveries = []

    unsubscribe = watch_pending(store, USSD, deliveries.append)
    store.add(USSD.collection, make_record("r4", externalRef="R2", status="approved"))
    store.batch_mark_exported(USSD.collection, ["r1"])
    unsubscribe()
    store.add(USSD.collection, make_record("r5", externalRef="R3", status="approved"))

    assert [[record.id for record in rows] for rows in deliveries] == [["r1"], ["r1", "r4"], ["r4"]]


def test_records_are_plain_documents():
    record = Record("x", {"status": "Approved"})

    assert record.is_approved
    assert record.exported is False
    assert record.to_dict() == {"id": "x", "status": "Approved"}


def test_exported_history_does_not_crowd_out_older_pending_events(make_record):
    records = [make_record(f"x{index}", externalRef=f"X{index}", status="approved", exported=True) for index in range(4)]
    records += [
        make_record("p1", externalRef="P1", status="approved"),
        make_record("p2", externalRef="P2", status="approved"),
    ]
    store = MemoryRecordStore({USSD.collection: records})
    coordinator = _coordinator(store, USSD, Settings(export_cap=2, duplicate_headroom=2))

    assert coordinator.open_confirm().count == 2
    result = coordinator.confirm()

    assert result.flagged_documents == 2
    assert result.pending_total == 0


def test_retry_of_a_long_exported_event_stays_suppressed(make_record):
    records = [make_record("retry", externalRef="R1", status="approved")]
    records += [make_record(f"n{index}", externalRef=f"N{index}", status="approved", exported=True) for index in range(5)]
    records.append(make_record("original", externalRef="R1", status="approved", exported=True))
    store = MemoryRecordStore({USSD.collection: records})
    coordinator = _coordinator(store, USSD, Settings(export_cap=1, duplicate_headroom=1))

    assert coordinator.open_confirm().count == 0
    assert ("fetch_in", USSD.collection) in store.calls


NOW = datetime(2024, 5, 1, 12, 30)
TELLER = DEFAULT_CHANNELS["teller"]


def _teller_store(make_record):
    return MemoryRecordStore(
        {
            TELLER.collection: [
                make_record("t1", status="approved", r_switch="MTN"),
                make_record("t2", status="approved", r_switch="VOD", createdAt=datetime(2024, 4, 30, 23, 0)),
                make_record("t3", status="failed", r_switch="MTN"),
                make_record("t4", status="approved", r_switch="MTN", exported=True),
            ]
        }
    )


def test_today_total_counts_pending_records_created_today(make_record):
    store = _teller_store(make_record)
    pages = PaginationManager(store, TELLER, clock=lambda: NOW)
    coordinator = ExportCoordinator(store, TELLER, pages, Settings(), clock=lambda: NOW)

    assert coordinator.refresh_total() == 2
    assert coordinator.today_total == 1


def test_browsing_another_view_does_not_change_the_export(make_record):
    store = _teller_store(make_record)
    pages = PaginationManager(store, TELLER, clock=lambda: NOW)
    coordinator = ExportCoordinator(store, TELLER, pages, Settings(), clock=lambda: NOW)
    pages.set_view("all")

    assert coordinator.open_confirm().count == 2
    result = coordinator.confirm()

    assert result.file.filename == "approved_transactions_20240501_123000.csv"
    assert result.file.content.decode("utf-8").splitlines()[0] == (
        "code,createdAt,customer_id,desc,r_switch,reason,status,subscriber_number,transaction_id"
    )
    assert {record.id for record in store.records(TELLER.collection) if record.exported} == {"t1", "t2", "t4"}
    assert pages.view == "all"
