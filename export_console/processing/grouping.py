"""Collapse logically-duplicate records into groups with one representative.

A channel whose deliveries can be retried stores one document per attempt, all
sharing a correlation key (for USSD, the external reference). Counting,
displaying, and exporting happen per group so each logical event is charged
and exported once:

* a group is pending only while none of its members is exported and, when the
  channel requires it, at least one member is approved;
* stores are queried for pending rows only, so members exported earlier are
  found with a lookup by key (``find_exported_keys``) and passed in;
* the representative is the first member not yet exported.

Unrelated records that happen to carry the same key value are merged; the
source data offers no way to tell them apart.
"""
from __future__ import annotations

from datetime import datetime
from typing import AbstractSet, Callable, Dict, Iterable, List, Optional, Set

from export_console.core.config import ChannelConfig
from export_console.core.models import Record, RecordGroup
from export_console.processing.filters import created_today
from export_console.store.base import RecordStore, chunked

KeyFn = Callable[[Record], object]

KEY_LOOKUP_BATCH = 100


def identity_key(record: Record) -> str:
    return record.id


def correlation_key_fn(field: Optional[str]) -> KeyFn:
    """Return a key function reading ``field``, falling back to the record id."""

    if not field:
        return identity_key

    def _key(record: Record) -> str:
        value = record.get(field)
        if value is None or str(value).strip() == "":
            return record.id
        return str(value)

    return _key


def group_records(
    records: Iterable[Record],
    key_fn: Optional[KeyFn] = None,
    status_required: bool = True,
    exported_keys: AbstractSet[str] = frozenset(),
) -> List[RecordGroup]:
    """Partition records by key and keep the groups still pending export.

    ``exported_keys`` names groups known to have an exported member that is
    not among ``records``.
    """

    key_fn = key_fn or identity_key
    partitions: Dict[str, List[Record]] = {}
    for record in records:
        key = key_fn(record)
        key = record.id if key is None or str(key) == "" else str(key)
        partitions.setdefault(key, []).append(record)

    groups: List[RecordGroup] = []
    for key, members in partitions.items():
        has_exported = key in exported_keys or any(member.exported for member in members)
        has_approved = not status_required or any(member.is_approved for member in members)
        if not has_exported and has_approved:
            groups.append(RecordGroup(key=key, members=members))
    return groups


def group_for_channel(
    records: Iterable[Record],
    channel: ChannelConfig,
    exported_keys: AbstractSet[str] = frozenset(),
) -> List[RecordGroup]:
    """Group records with the channel's correlation field and status rule."""

    return group_records(
        records,
        key_fn=correlation_key_fn(channel.correlation_field),
        status_required=channel.require_approved,
        exported_keys=exported_keys,
    )


def representatives(groups: Iterable[RecordGroup]) -> List[Record]:
    return [group.representative for group in groups]


def document_ids(groups: Iterable[RecordGroup]) -> List[str]:
    """Every member id of every group, so duplicates are flagged alongside."""

    ids: List[str] = []
    for group in groups:
        ids.extend(group.document_ids)
    return ids


def pending_groups(
    records: Iterable[Record],
    channel: ChannelConfig,
    now: Optional[datetime] = None,
    exported_keys: AbstractSet[str] = frozenset(),
) -> List[RecordGroup]:
    """Group records for display or export, honouring ``today_only`` channels."""

    if channel.today_only:
        records = [record for record in records if created_today(record, now)]
    return group_for_channel(records, channel, exported_keys)


def find_exported_keys(store: RecordStore, channel: ChannelConfig, records: Iterable[Record]) -> Set[str]:
    """Correlation keys of ``records`` that already have an exported document."""

    if not channel.grouped:
        return set()
    key_fn = correlation_key_fn(channel.correlation_field)
    keys = list(dict.fromkeys(str(key_fn(record)) for record in records))
    found: Set[str] = set()
    for batch in chunked(keys, KEY_LOOKUP_BATCH):
        for record in store.fetch_in(channel.collection, channel.correlation_field, batch, {"exported": True}):
            found.add(str(key_fn(record)))
    return found


def resolve_pending_groups(
    store: RecordStore,
    channel: ChannelConfig,
    records: Iterable[Record],
    now: Optional[datetime] = None,
) -> List[RecordGroup]:
    """Pending groups of freshly read rows, checked against earlier exports.

    Counts, pages, exports, and live updates all go through here.
    """

    records = list(records)
    return pending_groups(records, channel, now=now, exported_keys=find_exported_keys(store, channel, records))
