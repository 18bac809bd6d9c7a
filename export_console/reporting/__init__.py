"""Row transforms and file sinks for exports."""
from export_console.reporting.fields import (
    NOT_AVAILABLE,
    extract_plan_size,
    format_timestamp,
    normalize_phone,
    resolve_field,
)
from export_console.reporting.sinks import build_export_file, csv_bytes, excel_bytes, write_csv, write_excel
from export_console.reporting.templates import (
    CHANNEL_TEMPLATES,
    record_to_template_row,
    records_to_template_rows,
    template_headers,
)

__all__ = [
    "CHANNEL_TEMPLATES",
    "NOT_AVAILABLE",
    "build_export_file",
    "csv_bytes",
    "excel_bytes",
    "extract_plan_size",
    "format_timestamp",
    "normalize_phone",
    "record_to_template_row",
    "records_to_template_rows",
    "resolve_field",
    "template_headers",
    "write_csv",
    "write_excel",
]
