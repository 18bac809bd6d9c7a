"""The document-store contract every adapter implements."""
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Protocol

from export_console.core.models import PageResult, Record

Filters = Dict[str, Any]
ChangeCallback = Callable[[List[Record]], None]


class RecordStore(Protocol):
    """Filtered, ordered, paginated reads plus chunked atomic flag writes."""

    def fetch_page(
        self,
        collection: str,
        filters: Filters,
        order_field: str,
        cursor: Any = None,
        limit: int = 6,
        descending: bool = True,
    ) -> PageResult:
        ...

    def fetch_all(
        self,
        collection: str,
        filters: Filters,
        limit: Optional[int],
        order_field: Optional[str] = None,
        descending: bool = True,
    ) -> List[Record]:
        ...

    def fetch_in(
        self,
        collection: str,
        field: str,
        values: Iterable[str],
        filters: Filters,
        limit: Optional[int] = None,
    ) -> List[Record]:
        ...

    def batch_mark_exported(self, collection: str, ids: Iterable[str], batch_limit: int = 500) -> int:
        ...

    def subscribe(
        self,
        collection: str,
        filters: Filters,
        on_change: ChangeCallback,
        order_field: Optional[str] = None,
        descending: bool = True,
    ) -> Callable[[], None]:
        ...


def chunked(ids: Iterable[str], size: int) -> Iterator[List[str]]:
    """Yield consecutive lists of at most ``size`` ids."""

    if size < 1:
        raise ValueError("chunk size must be positive")
    chunk: List[str] = []
    for value in ids:
        chunk.append(value)
        if len(chunk) == size:
            yield chunk
            chunk = []
    if chunk:
        yield chunk


def unique_ids(ids: Iterable[str]) -> List[str]:
    """Drop repeated ids while keeping first-seen order."""

    return list(dict.fromkeys(ids))
