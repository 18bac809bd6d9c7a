"""Pytest configuration to make the local package importable without installation."""
import json
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, List

import pytest

# Ensure repository root is on sys.path for module resolution
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from export_console.core.config import DEFAULT_CHANNELS, Settings
from export_console.core.models import Record
from export_console.store.memory import MemoryRecordStore

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep local secrets files and overrides out of the tests."""

    monkeypatch.setenv("EXPORT_CONSOLE_ENV_FILE", str(tmp_path / "missing.env"))
    for key in ("EXPORT_PAGE_SIZE", "EXPORT_MAX_RECORDS", "EXPORT_BATCH_LIMIT", "USSD_CORRELATION_FIELD"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def make_record() -> Callable[..., Record]:
    """Build records with increasing ids and descending creation times."""

    counter = {"n": 0}

    def _make(record_id: str | None = None, **fields) -> Record:
        counter["n"] += 1
        fields.setdefault("createdAt", BASE_TIME - timedelta(minutes=counter["n"]))
        return Record(id=record_id or f"doc-{counter['n']:04d}", fields=fields)

    return _make


@pytest.fixture
def website_records(make_record) -> List[Record]:
    """Thirteen approved, unexported website purchases."""

    return [
        make_record(phoneNumber=f"23354{index:07d}", serviceName=f"Daily {index}GB Bundle", amount=index, status="approved")
        for index in range(13)
    ]


@pytest.fixture
def website_store(website_records) -> MemoryRecordStore:
    return MemoryRecordStore({DEFAULT_CHANNELS["website"].collection: website_records})


@pytest.fixture
def fixture_file(tmp_path: Path) -> Path:
    """Write a small JSON fixture covering the USSD and numbers channels."""

    payload = {
        "delivery_queue": [
            {"id": "u1", "msisdn": "233549856098", "gig": "2", "amount": "10", "externalRef": "R1", "status": "approved", "createdAt": "2024-05-01T10:00:00"},
            {"id": "u2", "msisdn": "233549856098", "gig": "2", "amount": "10", "externalRef": "R1", "status": "approved", "createdAt": "2024-05-01T09:59:00"},
            {"id": "u3", "msisdn": "0201234567", "gig": "5", "amount": "25", "externalRef": "R2", "status": "approved", "createdAt": "2024-05-01T09:00:00"},
            {"id": "u4", "msisdn": "0241112222", "gig": "1", "amount": "5", "externalRef": "R3", "status": "failed", "createdAt": "2024-05-01T08:00:00"},
        ],
        "numbers": [
            {"id": "n1", "phoneNumber": "233201112222", "networkProvider": "MTN", "createdAt": "2024-05-01T10:00:00"},
            {"id": "n2", "phoneNumber": "0551112222", "networkProvider": "Telecel", "createdAt": "2024-05-01T09:00:00"},
        ],
    }
    path = tmp_path / "fixture.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


@pytest.fixture
def run_cli(monkeypatch: pytest.MonkeyPatch):
    """Helper to invoke the CLI with custom arguments inside tests."""

    from export_console.cli import main as cli_main

    def _run(args: list[str]) -> int:
        monkeypatch.setattr(sys, "argv", ["export_console.cli", *args])
        return cli_main()

    return _run
