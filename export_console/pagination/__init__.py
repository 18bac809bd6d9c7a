"""Per-channel page navigation."""
from export_console.pagination.cursor import PageState, PaginationManager

__all__ = ["PageState", "PaginationManager"]
