"""Cursor-chained pagination with a per-channel page cache."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set

from export_console.core.config import PAGE_SIZE, PENDING_VIEW, RECENT_VIEW, ChannelConfig
from export_console.core.errors import PageNotReachable
from export_console.core.models import Record
from export_console.processing.filters import created_today
from export_console.processing.grouping import correlation_key_fn, representatives, resolve_pending_groups
from export_console.store.base import Filters, RecordStore

logger = logging.getLogger(__name__)


@dataclass
class PageState:
    """Everything one channel remembers about the pages it has fetched.

    ``cursors[n]`` marks the end of page ``n`` and is the only way to reach
    page ``n + 1``; ``seen_keys[n]`` holds the correlation keys read on page
    ``n`` so a later page never lists the same group again.
    """

    page: int = 1
    cursors: Dict[int, Any] = field(default_factory=dict)
    cache: Dict[int, List[Record]] = field(default_factory=dict)
    seen_keys: Dict[int, Set[str]] = field(default_factory=dict)
    more: Dict[int, bool] = field(default_factory=dict)
    has_more: bool = True


class PaginationManager:
    """Walks one channel's pending records a page at a time.

    Only sequential navigation is supported: page ``n`` can be fetched once
    page ``n - 1`` has been, because its cursor is required. Cached pages are
    served without a store round-trip until ``invalidate`` is called.

    The pending views list one representative per pending group, decided by
    the same engine that counts and exports. Other views (``all`` and the
    status views) list raw documents for browsing only.
    """

    def __init__(
        self,
        store: RecordStore,
        channel: ChannelConfig,
        page_size: int = PAGE_SIZE,
        filters: Optional[Filters] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.channel = channel
        self.page_size = page_size
        self.state = PageState()
        self._extra_filters: Filters = dict(filters or {})
        self._clock = clock
        self.view = PENDING_VIEW

    @property
    def page(self) -> int:
        return self.state.page

    @property
    def has_more(self) -> bool:
        return self.state.has_more

    @property
    def rows(self) -> List[Record]:
        return list(self.state.cache.get(self.state.page, []))

    @property
    def filters(self) -> Filters:
        """Store filters for the rows currently browsed."""

        return {**self.channel.view_filters(self.view), **self._extra_filters}

    @property
    def export_filters(self) -> Filters:
        """Store filters for the exportable rows, whatever view is browsed."""

        return {**self.channel.pending_filters(), **self._extra_filters}

    @property
    def grouped_view(self) -> bool:
        return self.view in (PENDING_VIEW, RECENT_VIEW)

    def set_view(self, view: str) -> None:
        """Switch the browsing view; cached pages no longer apply."""

        self.channel.view_filters(view)
        if view != self.view:
            self.view = view
            self.invalidate()

    def set_filters(self, filters: Optional[Filters]) -> None:
        """Replace the extra equality filters; cached pages no longer apply."""

        new_filters = dict(filters or {})
        if new_filters != self._extra_filters:
            self._extra_filters = new_filters
            self.invalidate()

    def is_cached(self, page: int) -> bool:
        return page in self.state.cache

    def go_to_page(self, page: int) -> List[Record]:
        state = self.state
        if page < 1:
            raise PageNotReachable(f"Page numbers start at 1, got {page}")

        cached = state.cache.get(page)
        if cached is not None:
            state.page = page
            state.has_more = state.more.get(page, False)
            return list(cached)

        if page > 1 and (page - 1) not in state.cursors:
            raise PageNotReachable(
                f"Page {page} of {self.channel.name} needs page {page - 1} to be fetched first"
            )

        cursor = state.cursors.get(page - 1) if page > 1 else None
        result = self.store.fetch_page(
            self.channel.collection,
            self.filters,
            self.channel.order_field,
            cursor=cursor,
            limit=self.page_size,
            descending=self.channel.descending,
        )

        key_fn = correlation_key_fn(self.channel.correlation_field)
        if self.grouped_view:
            earlier: Set[str] = set()
            for number, keys in state.seen_keys.items():
                if number < page:
                    earlier |= keys
            fresh = [record for record in result.records if key_fn(record) not in earlier]
            now = self._clock()
            if self.view == RECENT_VIEW:
                fresh = [record for record in fresh if created_today(record, now)]
            rows = representatives(resolve_pending_groups(self.store, self.channel, fresh, now=now))
        else:
            rows = list(result.records)

        state.cache[page] = rows
        state.cursors[page] = result.cursor
        state.seen_keys[page] = {key_fn(record) for record in result.records}
        state.more[page] = len(result.records) == self.page_size
        state.has_more = state.more[page]
        state.page = page
        logger.info(
            "Fetched page %d of %s: %d raw, %d shown, has_more=%s",
            page,
            self.channel.name,
            len(result.records),
            len(rows),
            state.has_more,
        )
        return list(rows)

    def next(self) -> List[Record]:
        if not self.state.has_more:
            return self.rows
        return self.go_to_page(self.state.page + 1)

    def prev(self) -> List[Record]:
        if self.state.page <= 1:
            return self.rows
        return self.go_to_page(self.state.page - 1)

    def invalidate(self) -> None:
        self.state = PageState()
        logger.debug("Invalidated page cache for %s", self.channel.name)
