"""Core building blocks for the export console."""
from export_console.core.config import ChannelConfig, Settings, load_settings
from export_console.core.logging import configure_logging
from export_console.core.models import (
    ExportBatch,
    ExportFile,
    ExportResult,
    PageResult,
    Record,
    RecordGroup,
)

__all__ = [
    "ChannelConfig",
    "ExportBatch",
    "ExportFile",
    "ExportResult",
    "PageResult",
    "Record",
    "RecordGroup",
    "Settings",
    "configure_logging",
    "load_settings",
]
