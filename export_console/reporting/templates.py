"""Per-channel column layouts for exported spreadsheets and CSV files."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List

from export_console.core.models import Record
from export_console.reporting.fields import (
    extract_plan_size,
    format_timestamp,
    normalize_phone,
    resolve_field,
    text_or_na,
)


@dataclass(frozen=True)
class TemplateColumn:
    header: str
    concept: str
    formatter: Callable[[Any], str] = text_or_na


PHONE_COLUMN = TemplateColumn("Phone Number", "phone", normalize_phone)

CHANNEL_TEMPLATES: Dict[str, List[TemplateColumn]] = {
    "numbers": [
        PHONE_COLUMN,
        TemplateColumn("Network", "network"),
    ],
    "website": [
        PHONE_COLUMN,
        TemplateColumn("GB", "plan_description", extract_plan_size),
        TemplateColumn("Amount", "amount"),
        TemplateColumn("Created At", "created_at", format_timestamp),
    ],
    "ussd": [
        PHONE_COLUMN,
        TemplateColumn("GB", "plan_size"),
        TemplateColumn("Amount", "amount"),
        TemplateColumn("Reference", "reference"),
    ],
    "teller": [
        TemplateColumn("code", "code"),
        TemplateColumn("createdAt", "createdAt", format_timestamp),
        TemplateColumn("customer_id", "customer_id"),
        TemplateColumn("desc", "desc"),
        TemplateColumn("r_switch", "r_switch"),
        TemplateColumn("reason", "reason"),
        TemplateColumn("status", "status"),
        TemplateColumn("subscriber_number", "subscriber_number"),
        TemplateColumn("transaction_id", "transaction_id"),
    ],
}


def template_columns(channel: str) -> List[TemplateColumn]:
    try:
        return CHANNEL_TEMPLATES[channel]
    except KeyError as exc:
        raise KeyError(f"No export template for channel '{channel}'") from exc


def template_headers(channel: str) -> List[str]:
    return [column.header for column in template_columns(channel)]


def record_to_template_row(record: Record, channel: str) -> Dict[str, str]:
    """Convert a record into the channel's ordered export row."""

    return {
        column.header: column.formatter(resolve_field(record, column.concept, channel))
        for column in template_columns(channel)
    }


def records_to_template_rows(records: Iterable[Record], channel: str) -> List[Dict[str, str]]:
    return [record_to_template_row(record, channel) for record in records]
