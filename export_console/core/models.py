"""Data models for pending records, groups, and export batches."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

APPROVED_STATUS = "approved"


@dataclass
class Record:
    """A single stored document: its store-assigned id plus its fields."""

    id: str
    fields: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)

    @property
    def status(self) -> Optional[str]:
        value = self.fields.get("status")
        return str(value) if value is not None else None

    @property
    def is_approved(self) -> bool:
        return (self.status or "").strip().lower() == APPROVED_STATUS

    @property
    def exported(self) -> bool:
        return bool(self.fields.get("exported", False))

    @property
    def created_at(self) -> Any:
        return self.fields.get("createdAt")

    def to_dict(self) -> Dict[str, Any]:
        """Return a plain dictionary including the id, for tabular rendering."""

        return {"id": self.id, **self.fields}


@dataclass
class RecordGroup:
    """Records sharing a correlation key, in fetch order."""

    key: str
    members: List[Record] = field(default_factory=list)

    @property
    def representative(self) -> Record:
        for member in self.members:
            if not member.exported:
                return member
        return self.members[0]

    @property
    def document_ids(self) -> List[str]:
        return [member.id for member in self.members]


@dataclass
class PageResult:
    """One page returned by a store: records, the cursor after them, and end flag."""

    records: List[Record]
    cursor: Any = None
    is_last_page: bool = False


@dataclass
class ExportBatch:
    """The capped set of groups selected for a single export."""

    groups: List[RecordGroup]

    @property
    def records(self) -> List[Record]:
        return [group.representative for group in self.groups]

    @property
    def document_ids(self) -> List[str]:
        ids: List[str] = []
        for group in self.groups:
            ids.extend(group.document_ids)
        return ids

    def __len__(self) -> int:
        return len(self.groups)


@dataclass
class ExportFile:
    """A downloadable export payload."""

    filename: str
    content: bytes
    media_type: str
    row_count: int


@dataclass
class ExportResult:
    """Outcome of a confirmed export."""

    file: ExportFile
    exported_groups: int
    flagged_documents: int
    pending_total: int = 0
