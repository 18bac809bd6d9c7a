"""In-process record store for fixtures, demos, and tests."""
from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from export_console.core.errors import PartialExportFailure, StoreUnavailable
from export_console.core.models import PageResult, Record
from export_console.store.base import ChangeCallback, Filters, chunked, unique_ids

logger = logging.getLogger(__name__)


def _field_value(record: Record, key: str) -> Any:
    if key == "exported":
        return record.exported
    return record.get(key)


def _matches(record: Record, filters: Filters) -> bool:
    return all(_field_value(record, key) == value for key, value in filters.items())


def _sort_key(record: Record, order_field: str) -> Tuple[bool, Any, str]:
    value = record.get(order_field)
    return (value is not None, value, record.id)


class MemoryRecordStore:
    """Keeps collections of records in memory and mimics the hosted store.

    Cursors are keyset positions (the sort key of the last record on a page),
    so inserting or flagging records between page fetches never shifts a
    page boundary. ``fail_on_chunk`` makes the given 1-based write chunk fail,
    and ``unavailable`` makes every call fail, to exercise error paths.
    """

    def __init__(
        self,
        collections: Optional[Dict[str, Iterable[Record]]] = None,
        fail_on_chunk: Optional[int] = None,
        unavailable: bool = False,
    ) -> None:
        self._collections: Dict[str, List[Record]] = {
            name: list(records) for name, records in (collections or {}).items()
        }
        self._listeners: List[Tuple[str, Filters, ChangeCallback, Optional[str], bool]] = []
        self.fail_on_chunk = fail_on_chunk
        self.unavailable = unavailable
        self.calls: List[Tuple[str, str]] = []

    @classmethod
    def from_json(cls, path: Path) -> "MemoryRecordStore":
        """Load ``{"collection": [{"id": ..., ...}, ...]}`` from a JSON file."""

        payload = json.loads(path.read_text(encoding="utf-8"))
        store = cls()
        for collection, documents in payload.items():
            for document in documents:
                fields = dict(document)
                record_id = str(fields.pop("id", "") or uuid.uuid4().hex)
                store.add(collection, Record(id=record_id, fields=fields))
        logger.info("Loaded fixture %s with %d collections", path, len(payload))
        return store

    def add(self, collection: str, record: Record) -> Record:
        self._collections.setdefault(collection, []).append(record)
        self._notify(collection)
        return record

    def insert(self, collection: str, fields: Dict[str, Any], record_id: Optional[str] = None) -> Record:
        return self.add(collection, Record(id=record_id or uuid.uuid4().hex, fields=dict(fields)))

    def records(self, collection: str) -> List[Record]:
        return list(self._collections.get(collection, []))

    def get(self, collection: str, record_id: str) -> Optional[Record]:
        for record in self._collections.get(collection, []):
            if record.id == record_id:
                return record
        return None

    def _check_available(self, method: str, collection: str) -> None:
        self.calls.append((method, collection))
        if self.unavailable:
            raise StoreUnavailable(f"Store unavailable while running {method} on {collection}")

    def _query(
        self, collection: str, filters: Filters, order_field: Optional[str], descending: bool
    ) -> List[Record]:
        matching = [record for record in self._collections.get(collection, []) if _matches(record, filters)]
        if order_field:
            matching.sort(key=lambda record: _sort_key(record, order_field), reverse=descending)
        return matching

    def fetch_page(
        self,
        collection: str,
        filters: Filters,
        order_field: str,
        cursor: Any = None,
        limit: int = 6,
        descending: bool = True,
    ) -> PageResult:
        self._check_available("fetch_page", collection)
        ordered = self._query(collection, filters, order_field, descending)
        if cursor is not None:
            if descending:
                ordered = [record for record in ordered if _sort_key(record, order_field) < cursor]
            else:
                ordered = [record for record in ordered if _sort_key(record, order_field) > cursor]
        page = ordered[:limit]
        next_cursor = _sort_key(page[-1], order_field) if page else cursor
        return PageResult(records=page, cursor=next_cursor, is_last_page=len(ordered) <= limit)

    def fetch_all(
        self,
        collection: str,
        filters: Filters,
        limit: Optional[int],
        order_field: Optional[str] = None,
        descending: bool = True,
    ) -> List[Record]:
        self._check_available("fetch_all", collection)
        ordered = self._query(collection, filters, order_field, descending)
        return ordered if limit is None else ordered[:limit]

    def fetch_in(
        self,
        collection: str,
        field: str,
        values: Iterable[str],
        filters: Filters,
        limit: Optional[int] = None,
    ) -> List[Record]:
        """Records whose ``field`` equals one of ``values`` and match ``filters``."""

        self._check_available("fetch_in", collection)
        wanted = {str(value) for value in values}
        found = [
            record
            for record in self._collections.get(collection, [])
            if record.get(field) is not None and str(record.get(field)) in wanted and _matches(record, filters)
        ]
        return found if limit is None else found[:limit]

    def batch_mark_exported(self, collection: str, ids: Iterable[str], batch_limit: int = 500) -> int:
        self._check_available("batch_mark_exported", collection)
        targets = unique_ids(ids)
        by_id = {record.id: record for record in self._collections.get(collection, [])}
        flagged = 0
        for index, chunk in enumerate(chunked(targets, batch_limit), start=1):
            if self.fail_on_chunk is not None and index >= self.fail_on_chunk:
                if flagged == 0:
                    raise StoreUnavailable(f"Write chunk {index} on {collection} was rejected")
                self._notify(collection)
                raise PartialExportFailure(attempted=len(targets), flagged=flagged)
            for record_id in chunk:
                record = by_id.get(record_id)
                if record is not None:
                    record.fields["exported"] = True
            flagged += len(chunk)
            logger.debug("Committed chunk %d (%d ids) on %s", index, len(chunk), collection)
        self._notify(collection)
        return flagged

    def subscribe(
        self,
        collection: str,
        filters: Filters,
        on_change: ChangeCallback,
        order_field: Optional[str] = None,
        descending: bool = True,
    ) -> Callable[[], None]:
        self._check_available("subscribe", collection)
        listener = (collection, dict(filters), on_change, order_field, descending)
        self._listeners.append(listener)
        on_change(self._query(collection, filters, order_field, descending))

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, collection: str) -> None:
        for name, filters, callback, order_field, descending in list(self._listeners):
            if name == collection:
                callback(self._query(collection, filters, order_field, descending))
