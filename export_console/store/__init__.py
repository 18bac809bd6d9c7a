"""Document-store adapters."""
from export_console.store.base import RecordStore, chunked, unique_ids
from export_console.store.memory import MemoryRecordStore

__all__ = ["MemoryRecordStore", "RecordStore", "chunked", "unique_ids"]
