"""Exception types raised by the store adapters, pagination, and export flow."""
from __future__ import annotations

from typing import Any


class ExportConsoleError(Exception):
    """Base class for every error the console surfaces to staff."""


class ConfigurationError(ExportConsoleError, ValueError):
    """Raised when a setting override cannot be parsed."""


class StoreUnavailable(ExportConsoleError):
    """The document store could not be reached (transport, auth, or timeout).

    Recoverable: re-issuing the same fetch is safe.
    """


class PartialExportFailure(ExportConsoleError):
    """Some mark-as-exported chunks committed and a later chunk failed."""

    def __init__(self, attempted: int, flagged: int, message: str | None = None) -> None:
        self.attempted = attempted
        self.flagged = flagged
        super().__init__(
            message or f"Flagged {flagged} of {attempted} documents before the store write failed"
        )


class CountFetchFailed(ExportConsoleError):
    """The pending count for the confirmation dialog could not be fetched."""


class EmptyExportSet(ExportConsoleError):
    """No eligible records were pending when the export was confirmed."""


class ExportPartiallyApplied(ExportConsoleError):
    """The export file was built but only part of its documents were flagged.

    ``export_file`` holds the already generated file so an operator can keep it
    and reconcile the remaining documents manually.
    """

    def __init__(self, attempted: int, flagged: int, export_file: Any = None) -> None:
        self.attempted = attempted
        self.flagged = flagged
        self.export_file = export_file
        super().__init__(
            f"Export partially applied: {flagged} of {attempted} documents were marked as exported. "
            "Reconcile the remaining documents before exporting again."
        )


class ExportInProgress(ExportConsoleError):
    """Another export is already running for the same channel."""


class InvalidTransition(ExportConsoleError):
    """An export step was requested from a state that does not allow it."""


class PageNotReachable(ExportConsoleError, LookupError):
    """A page was requested before the cursor of its previous page is known."""
