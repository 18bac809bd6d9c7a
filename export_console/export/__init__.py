"""Export orchestration."""
from export_console.export.coordinator import (
    ConfirmPrompt,
    ExportCoordinator,
    ExportState,
    confirmation_message,
    watch_pending,
)

__all__ = ["ConfirmPrompt", "ExportCoordinator", "ExportState", "confirmation_message", "watch_pending"]
