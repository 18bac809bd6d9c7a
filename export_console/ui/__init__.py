"""Presentation helpers; the Streamlit page lives in ``dashboard``."""
from export_console.ui.debounce import Debouncer
from export_console.ui.session import Banner, ChannelSession, describe_error

__all__ = ["Banner", "ChannelSession", "Debouncer", "describe_error"]
