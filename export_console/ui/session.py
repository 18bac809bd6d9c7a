"""Per-channel view state shared by the dashboard and the CLI."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, List, Optional, Set

from export_console.core.config import ChannelConfig, Settings
from export_console.core.errors import (
    CountFetchFailed,
    EmptyExportSet,
    ExportConsoleError,
    ExportInProgress,
    ExportPartiallyApplied,
    StoreUnavailable,
)
from export_console.core.models import ExportFile, ExportResult, Record
from export_console.export.coordinator import ConfirmPrompt, ExportCoordinator
from export_console.pagination.cursor import PaginationManager
from export_console.processing.filters import filter_records, network_options
from export_console.store.base import RecordStore
from export_console.ui.debounce import Debouncer

logger = logging.getLogger(__name__)


@dataclass
class Banner:
    message: str
    level: str
    expires_at: float


def describe_error(exc: Exception) -> str:
    """Return the banner text for an error raised by the core."""

    if isinstance(exc, ExportPartiallyApplied):
        return str(exc)
    if isinstance(exc, CountFetchFailed):
        return f"Could not open the export dialog. {exc}"
    if isinstance(exc, EmptyExportSet):
        return str(exc)
    if isinstance(exc, ExportInProgress):
        return "An export is already running for this channel. Wait for it to finish."
    if isinstance(exc, StoreUnavailable):
        return f"The database is unreachable right now. Try again shortly. ({exc})"
    return str(exc)


class ChannelSession:
    """Pagination, export dialog, filters, and error banner for one channel."""

    def __init__(
        self,
        store: RecordStore,
        channel: ChannelConfig,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.settings = settings or Settings()
        self.channel = channel
        self.pagination = PaginationManager(store, channel, self.settings.page_size, clock=now)
        self.coordinator = ExportCoordinator(store, channel, self.pagination, self.settings, clock=now)
        self.debouncer = Debouncer(self.settings.debounce_seconds, clock=clock)
        self.search = ""
        self.network = ""
        self.known_networks: Set[str] = set()
        self.banner: Optional[Banner] = None
        self.last_export: Optional[ExportFile] = None
        self._clock = clock

    def notify(self, message: str, level: str = "error") -> None:
        self.banner = Banner(message, level, self._clock() + self.settings.banner_seconds)

    def active_banner(self) -> Optional[Banner]:
        if self.banner and self._clock() >= self.banner.expires_at:
            self.banner = None
        return self.banner

    def dismiss(self) -> None:
        self.banner = None

    def run(self, action: Callable[..., Any], *args: Any) -> Any:
        """Call ``action`` and turn core errors into a banner instead of raising."""

        try:
            return action(*args)
        except ExportConsoleError as exc:
            logger.warning("%s action failed: %s", self.channel.name, exc)
            level = "info" if isinstance(exc, EmptyExportSet) else "error"
            self.notify(describe_error(exc), level)
            if isinstance(exc, ExportPartiallyApplied) and exc.export_file is not None:
                self.last_export = exc.export_file
            return None

    def _remember_networks(self, records: List[Record]) -> None:
        self.known_networks.update(network_options(records, self.channel.network_field))

    def load(self) -> List[Record]:
        """Make sure the current page and the pending total are available."""

        if not self.pagination.is_cached(self.pagination.page):
            rows = self.run(self.pagination.go_to_page, self.pagination.page)
            if rows is not None:
                self._remember_networks(rows)
        if self.coordinator.pending_total is None:
            self.run(self.coordinator.refresh_total)
        return self.visible_rows()

    def visible_rows(self) -> List[Record]:
        return filter_records(self.pagination.rows, self.search)

    def _step(self, move: Callable[[], List[Record]]) -> None:
        rows = self.run(move)
        if rows is not None:
            self._remember_networks(rows)

    def request_next(self) -> None:
        self.debouncer.submit(lambda: self._step(self.pagination.next))

    def request_prev(self) -> None:
        self.debouncer.submit(lambda: self._step(self.pagination.prev))

    def settle(self) -> None:
        """Run the last requested page move once its debounce window ends."""

        self.debouncer.drain()

    def set_network(self, network: str) -> None:
        self.network = network
        field = self.channel.network_field
        filters = {field: network} if field and network else {}
        self.pagination.set_filters(filters)
        self.coordinator.pending_total = None
        self.coordinator.today_total = None

    def set_view(self, view: str) -> None:
        """Browse another status view; counts and exports stay on pending rows."""

        self.pagination.set_view(view)

    def open_export(self) -> Optional[ConfirmPrompt]:
        return self.run(self.coordinator.open_confirm)

    def cancel_export(self) -> None:
        self.coordinator.cancel()

    def confirm_export(self) -> Optional[ExportResult]:
        result = self.run(self.coordinator.confirm)
        if result is not None:
            self.last_export = result.file
            self.notify(
                f"Exported {result.exported_groups} {self.channel.label} records "
                f"({result.flagged_documents} documents flagged).",
                "success",
            )
        return result
