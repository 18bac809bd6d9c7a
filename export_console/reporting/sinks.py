"""Spreadsheet and CSV sinks for exported rows."""
from __future__ import annotations

import csv
import io
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from openpyxl import Workbook

from export_console.core.models import ExportFile

SHEET_TITLE = "pending_export"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CSV_MEDIA_TYPE = "text/csv"


def ensure_output_dir(output_path: Path) -> None:
    """Create parent folders for sink outputs when missing."""

    output_path.parent.mkdir(parents=True, exist_ok=True)


def _headers(rows: List[Dict[str, Any]], headers: Optional[Sequence[str]]) -> List[str]:
    if headers:
        return list(headers)
    return list(rows[0].keys()) if rows else []


def excel_bytes(rows: Iterable[Dict[str, Any]], headers: Optional[Sequence[str]] = None) -> bytes:
    """Serialize rows into a single-sheet workbook, keeping header order."""

    rows = list(rows)
    columns = _headers(rows, headers)
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = SHEET_TITLE
    sheet.append(columns)
    for row in rows:
        sheet.append([row.get(header, "") for header in columns])
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def csv_bytes(rows: Iterable[Dict[str, Any]], headers: Optional[Sequence[str]] = None) -> bytes:
    """Serialize rows as UTF-8 CSV with a fixed field order."""

    rows = list(rows)
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=_headers(rows, headers), extrasaction="ignore")
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue().encode("utf-8")


def write_excel(rows: Iterable[Dict[str, Any]], output_path: Path, headers: Optional[Sequence[str]] = None) -> None:
    """Write rows to an Excel workbook using openpyxl."""

    ensure_output_dir(output_path)
    output_path.write_bytes(excel_bytes(rows, headers))


def write_csv(rows: Iterable[Dict[str, Any]], output_path: Path, headers: Optional[Sequence[str]] = None) -> None:
    """Write rows to a CSV file with consistent headers."""

    ensure_output_dir(output_path)
    output_path.write_bytes(csv_bytes(rows, headers))


def export_filename(prefix: str, export_format: str, now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return f"{prefix}_{stamp}.{export_format}"


def build_export_file(
    rows: List[Dict[str, Any]],
    headers: Sequence[str],
    export_format: str,
    prefix: str,
    now: Optional[datetime] = None,
) -> ExportFile:
    """Serialize rows in the requested format and name the download."""

    if export_format == "csv":
        content, media_type = csv_bytes(rows, headers), CSV_MEDIA_TYPE
    elif export_format == "xlsx":
        content, media_type = excel_bytes(rows, headers), XLSX_MEDIA_TYPE
    else:
        raise ValueError(f"Unsupported export format '{export_format}'")
    return ExportFile(
        filename=export_filename(prefix, export_format, now),
        content=content,
        media_type=media_type,
        row_count=len(rows),
    )
