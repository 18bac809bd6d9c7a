"""Grouping and filtering of fetched records."""
from export_console.processing.filters import created_today, filter_records, matches_search, network_options
from export_console.processing.grouping import (
    correlation_key_fn,
    document_ids,
    find_exported_keys,
    group_for_channel,
    group_records,
    pending_groups,
    representatives,
    resolve_pending_groups,
)

__all__ = [
    "correlation_key_fn",
    "created_today",
    "document_ids",
    "filter_records",
    "find_exported_keys",
    "group_for_channel",
    "group_records",
    "matches_search",
    "network_options",
    "pending_groups",
    "representatives",
    "resolve_pending_groups",
]
