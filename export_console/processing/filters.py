"""Client-side filters for the page grid: search, network, and today's records."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Iterable, List, Optional

from export_console.core.models import Record


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def matches_search(record: Record, term: str) -> bool:
    """Case-insensitive substring match against every field value."""

    needle = term.strip().lower()
    if not needle:
        return True
    values = [record.id, *record.fields.values()]
    return any(needle in str(value).lower() for value in values if value is not None)


def created_on(record: Record, day: date) -> bool:
    created = _as_datetime(record.created_at)
    return created is not None and created.date() == day


def created_today(record: Record, now: Optional[datetime] = None) -> bool:
    return created_on(record, (now or datetime.now()).date())


def filter_records(records: Iterable[Record], search: str = "") -> List[Record]:
    """Apply the search box to a page of records."""

    return [record for record in records if matches_search(record, search)]


def network_options(records: Iterable[Record], network_field: Optional[str]) -> List[str]:
    """Distinct non-empty network values, sorted for a dropdown."""

    if not network_field:
        return []
    return sorted({str(record.get(network_field)) for record in records if record.get(network_field)})
