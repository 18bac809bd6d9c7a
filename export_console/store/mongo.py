"""MongoDB-backed record store."""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional

import pymongo
from bson import ObjectId
from pymongo.errors import OperationFailure, PyMongoError

from export_console.core.config import Settings
from export_console.core.errors import PartialExportFailure, StoreUnavailable
from export_console.core.models import PageResult, Record
from export_console.store.base import ChangeCallback, Filters, chunked, unique_ids

logger = logging.getLogger(__name__)

WATCH_POLL_SECONDS = 0.5
# IllegalOperation: transactions on a standalone server
NO_TRANSACTIONS_CODE = 20


class MongoCursor(NamedTuple):
    """Keyset position after the last document of a page."""

    value: Any
    doc_id: Any


def _to_record(document: Dict[str, Any]) -> Record:
    fields = dict(document)
    doc_id = fields.pop("_id")
    return Record(id=str(doc_id), fields=fields)


def _equality_query(filters: Filters) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    for key, value in filters.items():
        # A missing flag reads as False, matching documents never flagged.
        query[key] = {"$ne": True} if value is False else value
    return query


def _after_cursor(order_field: str, cursor: MongoCursor, descending: bool) -> Dict[str, Any]:
    op = "$lt" if descending else "$gt"
    if cursor.value is None:
        if descending:
            return {order_field: None, "_id": {op: cursor.doc_id}}
        return {
            "$or": [
                {order_field: None, "_id": {op: cursor.doc_id}},
                {order_field: {"$ne": None}},
            ]
        }
    clauses: List[Dict[str, Any]] = [
        {order_field: {op: cursor.value}},
        {order_field: cursor.value, "_id": {op: cursor.doc_id}},
    ]
    if descending:
        # nulls sort below every value, so they follow in descending order
        clauses.append({order_field: None})
    return {"$or": clauses}


def _write_hint(exc: PyMongoError) -> str:
    if isinstance(exc, OperationFailure) and exc.code == NO_TRANSACTIONS_CODE:
        return " (the server does not support transactions; set MONGO_TRANSACTIONS=false)"
    return ""


def _id_candidates(ids: Iterable[str]) -> List[Any]:
    candidates: List[Any] = []
    for value in ids:
        candidates.append(value)
        if ObjectId.is_valid(value):
            candidates.append(ObjectId(value))
    return candidates


class MongoRecordStore:
    """Reads and flags pending documents in a MongoDB database."""

    def __init__(self, client: Any, database: str, use_transactions: bool = True) -> None:
        self._client = client
        self._database = client[database]
        self.use_transactions = use_transactions

    @classmethod
    def from_settings(cls, settings: Settings) -> "MongoRecordStore":
        client = pymongo.MongoClient(settings.mongo_uri, serverSelectionTimeoutMS=5000)
        return cls(client, settings.mongo_database, use_transactions=settings.mongo_transactions)

    def _collection(self, name: str):
        return self._database[name]

    def fetch_page(
        self,
        collection: str,
        filters: Filters,
        order_field: str,
        cursor: Any = None,
        limit: int = 6,
        descending: bool = True,
    ) -> PageResult:
        query = _equality_query(filters)
        if cursor is not None:
            query = {"$and": [query, _after_cursor(order_field, MongoCursor(*cursor), descending)]}
        direction = pymongo.DESCENDING if descending else pymongo.ASCENDING
        try:
            documents = list(
                self._collection(collection)
                .find(query)
                .sort([(order_field, direction), ("_id", direction)])
                .limit(limit + 1)
            )
        except PyMongoError as exc:
            logger.exception("Page fetch failed for %s", collection)
            raise StoreUnavailable(f"Could not read {collection}: {exc}") from exc

        page = documents[:limit]
        next_cursor = cursor
        if page:
            last = page[-1]
            next_cursor = MongoCursor(last.get(order_field), last["_id"])
        return PageResult(
            records=[_to_record(document) for document in page],
            cursor=next_cursor,
            is_last_page=len(documents) <= limit,
        )

    def fetch_all(
        self,
        collection: str,
        filters: Filters,
        limit: Optional[int],
        order_field: Optional[str] = None,
        descending: bool = True,
    ) -> List[Record]:
        try:
            found = self._collection(collection).find(_equality_query(filters))
            if order_field:
                direction = pymongo.DESCENDING if descending else pymongo.ASCENDING
                found = found.sort([(order_field, direction), ("_id", direction)])
            if limit is not None:
                found = found.limit(limit)
            documents = list(found)
        except PyMongoError as exc:
            logger.exception("Bulk fetch failed for %s", collection)
            raise StoreUnavailable(f"Could not read {collection}: {exc}") from exc
        return [_to_record(document) for document in documents]

    def fetch_in(
        self,
        collection: str,
        field: str,
        values: Iterable[str],
        filters: Filters,
        limit: Optional[int] = None,
    ) -> List[Record]:
        query = {**_equality_query(filters), field: {"$in": list(values)}}
        try:
            found = self._collection(collection).find(query)
            if limit is not None:
                found = found.limit(limit)
            documents = list(found)
        except PyMongoError as exc:
            logger.exception("Key lookup failed for %s", collection)
            raise StoreUnavailable(f"Could not read {collection}: {exc}") from exc
        return [_to_record(document) for document in documents]

    def _flag_chunk(self, collection: str, chunk: List[str]) -> None:
        target = self._collection(collection)
        query = {"_id": {"$in": _id_candidates(chunk)}}
        update = {"$set": {"exported": True}}
        if not self.use_transactions:
            target.update_many(query, update)
            return
        with self._client.start_session() as session:
            session.with_transaction(lambda s: target.update_many(query, update, session=s))

    def batch_mark_exported(self, collection: str, ids: Iterable[str], batch_limit: int = 500) -> int:
        targets = unique_ids(ids)
        flagged = 0
        for index, chunk in enumerate(chunked(targets, batch_limit), start=1):
            try:
                self._flag_chunk(collection, chunk)
            except PyMongoError as exc:
                logger.error(
                    "Write chunk %d on %s failed after %d flagged documents: %s",
                    index,
                    collection,
                    flagged,
                    exc,
                )
                if flagged == 0:
                    raise StoreUnavailable(
                        f"Could not flag documents in {collection}: {exc}{_write_hint(exc)}"
                    ) from exc
                raise PartialExportFailure(attempted=len(targets), flagged=flagged) from exc
            flagged += len(chunk)
        logger.info("Flagged %d documents as exported in %s", flagged, collection)
        return flagged

    def subscribe(
        self,
        collection: str,
        filters: Filters,
        on_change: ChangeCallback,
        order_field: Optional[str] = None,
        descending: bool = True,
    ) -> Callable[[], None]:
        """Watch the collection's change stream and re-deliver the filtered set.

        Change streams need a replica set; the watcher logs and stops when
        the server refuses one.
        """

        stop = threading.Event()

        def _snapshot() -> None:
            on_change(self.fetch_all(collection, filters, None, order_field, descending))

        def _watch() -> None:
            try:
                with self._collection(collection).watch() as stream:
                    _snapshot()
                    while not stop.is_set() and stream.alive:
                        if stream.try_next() is None:
                            stop.wait(WATCH_POLL_SECONDS)
                            continue
                        _snapshot()
            except (PyMongoError, StoreUnavailable):
                logger.exception("Change stream on %s stopped", collection)

        thread = threading.Thread(target=_watch, name=f"watch-{collection}", daemon=True)
        thread.start()

        def unsubscribe() -> None:
            stop.set()
            thread.join(timeout=WATCH_POLL_SECONDS * 4)

        return unsubscribe
