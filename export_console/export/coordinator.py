"""Count, confirm, export, and flag one channel's pending records."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from export_console.core.config import ChannelConfig, Settings
from export_console.core.errors import (
    CountFetchFailed,
    EmptyExportSet,
    ExportInProgress,
    ExportPartiallyApplied,
    InvalidTransition,
    PartialExportFailure,
    StoreUnavailable,
)
from export_console.core.models import ExportBatch, ExportResult, Record, RecordGroup
from export_console.pagination.cursor import PaginationManager
from export_console.processing.filters import created_today
from export_console.processing.grouping import representatives, resolve_pending_groups
from export_console.reporting.sinks import build_export_file
from export_console.reporting.templates import records_to_template_rows, template_headers
from export_console.store.base import Filters, RecordStore

logger = logging.getLogger(__name__)


class ExportState(str, Enum):
    IDLE = "idle"
    COUNTING = "counting"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    EXPORTING = "exporting"


@dataclass
class ConfirmPrompt:
    """What the confirmation dialog shows before an export."""

    channel: str
    count: int
    capped: bool
    message: str


def confirmation_message(label: str, count: int, cap: int) -> str:
    if count == 0:
        return f"No pending {label} records to export."
    noun = "record" if count == 1 else "records"
    message = f"Export {count} pending {label} {noun} and mark them as exported?"
    if count >= cap:
        message += f" Only the first {cap} will be processed."
    return message


class ExportCoordinator:
    """Drives the export dialog for a single channel.

    ``open_confirm`` counts pending groups for the dialog. ``confirm`` reads
    them again (the dialog's count may be stale), builds the file, flags every
    member document of the exported groups, then resets the channel's pages.
    Only one export runs per coordinator at a time.
    """

    def __init__(
        self,
        store: RecordStore,
        channel: ChannelConfig,
        pagination: PaginationManager,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.channel = channel
        self.pagination = pagination
        self.settings = settings or Settings()
        self._clock = clock
        self._lock = threading.Lock()
        self.state = ExportState.IDLE
        self.prompt: Optional[ConfirmPrompt] = None
        self.pending_total: Optional[int] = None
        self.today_total: Optional[int] = None
        self.last_outcome: Optional[str] = None
        self.last_error: Optional[Exception] = None

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def _pending_groups(self) -> List[RecordGroup]:
        raw = self.store.fetch_all(
            self.channel.collection,
            self.pagination.export_filters,
            limit=self.settings.raw_fetch_limit(self.channel),
            order_field=self.channel.order_field,
            descending=self.channel.descending,
        )
        return resolve_pending_groups(self.store, self.channel, raw, now=self._clock())

    def _record_totals(self, groups: List[RecordGroup]) -> None:
        self.pending_total = len(groups)
        now = self._clock()
        self.today_total = sum(1 for group in groups if created_today(group.representative, now))

    def refresh_total(self) -> int:
        """Recount pending groups; the same count the dialog shows.

        Also refreshes ``today_total``, the pending groups created today.
        """

        self._record_totals(self._pending_groups())
        return self.pending_total

    def open_confirm(self) -> ConfirmPrompt:
        if self.state not in (ExportState.IDLE, ExportState.AWAITING_CONFIRMATION):
            raise InvalidTransition(f"Cannot open the export dialog while {self.state.value}")

        self.state = ExportState.COUNTING
        try:
            groups = self._pending_groups()
        except StoreUnavailable as exc:
            self.state = ExportState.IDLE
            self.prompt = None
            self.last_outcome = "error"
            self.last_error = exc
            logger.error("Pending count failed for %s: %s", self.channel.name, exc)
            raise CountFetchFailed(f"Could not count pending {self.channel.label} records: {exc}") from exc

        count = len(groups)
        self._record_totals(groups)
        self.prompt = ConfirmPrompt(
            channel=self.channel.name,
            count=count,
            capped=count >= self.settings.export_cap,
            message=confirmation_message(self.channel.label, count, self.settings.export_cap),
        )
        self.state = ExportState.AWAITING_CONFIRMATION
        logger.info("Export dialog for %s opened with %d pending groups", self.channel.name, count)
        return self.prompt

    def cancel(self) -> None:
        if self.state == ExportState.IDLE:
            return
        if self.state != ExportState.AWAITING_CONFIRMATION:
            raise InvalidTransition(f"Cannot cancel while {self.state.value}")
        self.state = ExportState.IDLE
        self.prompt = None
        self.last_outcome = "cancelled"

    def confirm(self) -> ExportResult:
        if not self._lock.acquire(blocking=False):
            raise ExportInProgress(f"An export of {self.channel.label} is already running")
        try:
            if self.state != ExportState.AWAITING_CONFIRMATION:
                raise InvalidTransition(f"Cannot export while {self.state.value}")
            self.state = ExportState.EXPORTING
            try:
                result = self._export()
            except Exception as exc:
                self.last_outcome = "error"
                self.last_error = exc
                raise
            self.last_outcome = "success"
            self.last_error = None
            return result
        finally:
            if self.state == ExportState.EXPORTING:
                self.state = ExportState.IDLE
                self.prompt = None
            self._lock.release()

    def _export(self) -> ExportResult:
        groups = self._pending_groups()
        batch = ExportBatch(groups=groups[: self.settings.export_cap])
        if not batch:
            logger.info("Nothing pending to export for %s", self.channel.name)
            raise EmptyExportSet(f"No pending {self.channel.label} records to export.")

        rows = records_to_template_rows(batch.records, self.channel.name)
        export_file = build_export_file(
            rows,
            template_headers(self.channel.name),
            self.channel.export_format,
            self.channel.filename_prefix or self.channel.name,
            now=self._clock(),
        )
        ids = batch.document_ids
        logger.info(
            "Exporting %d groups (%d documents) from %s",
            len(batch),
            len(ids),
            self.channel.name,
        )

        try:
            flagged = self.store.batch_mark_exported(self.channel.collection, ids, self.settings.batch_limit)
        except PartialExportFailure as exc:
            logger.warning(
                "Partial export on %s: %d of %d documents flagged",
                self.channel.name,
                exc.flagged,
                exc.attempted,
            )
            self._reset_after_write()
            raise ExportPartiallyApplied(exc.attempted, exc.flagged, export_file) from exc
        except StoreUnavailable:
            self._reset_after_write()
            raise

        total = self._reset_after_write()
        return ExportResult(
            file=export_file,
            exported_groups=len(batch),
            flagged_documents=flagged,
            pending_total=total if total is not None else 0,
        )

    def _reset_after_write(self) -> Optional[int]:
        """Drop cached pages, reload page one, and recount pending groups."""

        self.pagination.invalidate()
        try:
            self.pagination.go_to_page(1)
            return self.refresh_total()
        except StoreUnavailable as exc:
            self.pending_total = None
            self.today_total = None
            logger.warning("Refresh after export on %s failed: %s", self.channel.name, exc)
            return None


def watch_pending(
    store: RecordStore,
    channel: ChannelConfig,
    on_change: Callable[[List[Record]], None],
    filters: Optional[Filters] = None,
    clock: Callable[[], datetime] = datetime.now,
) -> Callable[[], None]:
    """Subscribe to a channel and deliver its pending representatives on change."""

    query = {**channel.pending_filters(), **(filters or {})}

    def _deliver(records: List[Record]) -> None:
        on_change(representatives(resolve_pending_groups(store, channel, records, now=clock())))

    return store.subscribe(
        channel.collection,
        query,
        _deliver,
        order_field=channel.order_field,
        descending=channel.descending,
    )
