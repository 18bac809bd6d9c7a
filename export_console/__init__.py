"""Browse pending records and export them once, flagging what was exported."""
from export_console.core import (
    ChannelConfig,
    ExportBatch,
    ExportFile,
    ExportResult,
    PageResult,
    Record,
    RecordGroup,
    Settings,
    configure_logging,
    load_settings,
)
from export_console.export import ConfirmPrompt, ExportCoordinator, ExportState, watch_pending
from export_console.pagination import PageState, PaginationManager
from export_console.processing import group_for_channel, group_records, pending_groups
from export_console.reporting import extract_plan_size, normalize_phone
from export_console.store import MemoryRecordStore, RecordStore

__all__ = [
    "ChannelConfig",
    "ConfirmPrompt",
    "ExportBatch",
    "ExportCoordinator",
    "ExportFile",
    "ExportResult",
    "ExportState",
    "MemoryRecordStore",
    "PageResult",
    "PageState",
    "PaginationManager",
    "Record",
    "RecordGroup",
    "RecordStore",
    "Settings",
    "configure_logging",
    "extract_plan_size",
    "group_for_channel",
    "group_records",
    "load_settings",
    "normalize_phone",
    "pending_groups",
    "watch_pending",
]
