"""Streamlit dashboard to browse pending records and export them in batches."""
from pathlib import Path
from typing import Dict, List

import streamlit as st

# Allow running via "streamlit run export_console/ui/dashboard.py" without installing the package
# by ensuring the repository root is on ``sys.path``.
if __package__ in {None, ""}:
    import sys

    sys.path.append(str(Path(__file__).resolve().parents[2]))

from export_console.core.config import Settings, load_settings
from export_console.core.logging import configure_logging
from export_console.core.models import Record
from export_console.core.utils import get_config_value
from export_console.reporting.templates import records_to_template_rows
from export_console.store.base import RecordStore
from export_console.store.memory import MemoryRecordStore
from export_console.ui.session import ChannelSession

LEVEL_RENDERERS = {
    "success": st.success,
    "info": st.info,
    "warning": st.warning,
    "error": st.error,
}


@st.cache_resource
def _open_store(fixture: str, mongo_uri: str, database: str, transactions: bool) -> RecordStore:
    """Connect once per process; reruns reuse the same client."""

    if fixture:
        return MemoryRecordStore.from_json(Path(fixture))

    from export_console.store.mongo import MongoRecordStore

    return MongoRecordStore.from_settings(
        Settings(mongo_uri=mongo_uri, mongo_database=database, mongo_transactions=transactions)
    )


def _sessions(store: RecordStore, settings: Settings) -> Dict[str, ChannelSession]:
    """Create one independent session per channel and keep it across reruns."""

    if "channel_sessions" not in st.session_state:
        st.session_state.channel_sessions = {
            name: ChannelSession(store, channel, settings) for name, channel in settings.channels.items()
        }
    return st.session_state.channel_sessions


def _rerun_app() -> None:
    """Trigger a Streamlit rerun, compatible with newer and older APIs."""

    rerun = getattr(st, "rerun", None) or getattr(st, "experimental_rerun", None)
    if not rerun:
        raise RuntimeError("Streamlit does not expose a rerun helper.")
    rerun()


def _render_banner(session: ChannelSession) -> None:
    banner = session.active_banner()
    if not banner:
        return
    cols = st.columns([6, 1])
    with cols[0]:
        LEVEL_RENDERERS.get(banner.level, st.info)(banner.message)
    with cols[1]:
        if st.button("Dismiss", key=f"dismiss_{session.channel.name}"):
            session.dismiss()
            _rerun_app()


def _grid_rows(session: ChannelSession, records: List[Record]) -> List[dict]:
    rows = records_to_template_rows(records, session.channel.name)
    for row, record in zip(rows, records):
        row["Status"] = record.status or "N/A"
    return rows


def _render_filters(session: ChannelSession) -> None:
    name = session.channel.name
    views = session.channel.views
    if len(views) > 1:
        view = st.radio(
            "View",
            options=list(views),
            index=views.index(session.pagination.view),
            format_func=lambda value: value.capitalize(),
            horizontal=True,
            key=f"view_{name}",
        )
        if view != session.pagination.view:
            session.set_view(view)
            _rerun_app()
    filter_cols = st.columns([2, 1])
    with filter_cols[0]:
        session.search = st.text_input("Search this page", value=session.search, key=f"search_{name}")
    if session.channel.network_field:
        with filter_cols[1]:
            options = ["", *sorted(session.known_networks | ({session.network} - {""}))]
            selected = st.selectbox(
                "Network",
                options=options,
                index=options.index(session.network),
                format_func=lambda value: value or "All networks",
                key=f"network_{name}",
            )
            if selected != session.network:
                session.set_network(selected)
                _rerun_app()


def _render_pagination(session: ChannelSession) -> None:
    name = session.channel.name
    nav_cols = st.columns([1, 2, 1])
    with nav_cols[0]:
        if st.button("Previous", key=f"prev_{name}", disabled=session.pagination.page <= 1):
            session.request_prev()
            session.settle()
            _rerun_app()
    with nav_cols[1]:
        st.markdown(
            f"<p style='text-align:center; font-weight:600;'>Page {session.pagination.page}</p>",
            unsafe_allow_html=True,
        )
    with nav_cols[2]:
        if st.button("Next", key=f"next_{name}", disabled=not session.pagination.has_more):
            session.request_next()
            session.settle()
            _rerun_app()


def _render_export(session: ChannelSession) -> None:
    name = session.channel.name
    coordinator = session.coordinator
    prompt = coordinator.prompt

    if prompt is None:
        if st.button(f"Export {session.channel.label}", key=f"export_{name}", type="primary"):
            session.open_export()
            _rerun_app()
    else:
        st.warning(prompt.message)
        confirm_cols = st.columns(2)
        with confirm_cols[0]:
            if st.button(
                "Confirm export",
                key=f"confirm_{name}",
                type="primary",
                disabled=prompt.count == 0 or coordinator.busy,
            ):
                with st.spinner("Exporting and flagging records..."):
                    session.confirm_export()
                _rerun_app()
        with confirm_cols[1]:
            if st.button("Cancel", key=f"cancel_{name}"):
                session.cancel_export()
                _rerun_app()

    if session.last_export is not None:
        st.download_button(
            f"Download {session.last_export.filename}",
            data=session.last_export.content,
            file_name=session.last_export.filename,
            mime=session.last_export.media_type,
            key=f"download_{name}",
        )


def _render_channel(session: ChannelSession) -> None:
    _render_banner(session)
    records = session.load()

    total = session.coordinator.pending_total
    total_text = "?" if total is None else str(total)
    caption = f"{total_text} pending export | Showing {len(records)} on page {session.pagination.page}"
    today = session.coordinator.today_total
    if session.channel.today_count and today is not None:
        caption += f" | {today} approved today, not exported"
    st.caption(caption)
    _render_filters(session)

    if records:
        st.dataframe(_grid_rows(session, records), use_container_width=True, hide_index=True)
    else:
        st.info(f"No {session.channel.label} records in this view.")

    _render_pagination(session)
    st.markdown("### Export")
    _render_export(session)


def main() -> None:
    """Launch the pending-export dashboard."""

    configure_logging()
    st.set_page_config(page_title="Pending Exports", layout="wide")
    st.title("Pending Exports")
    st.caption("Export pending records once; exported records drop out of every view.")

    settings = load_settings()
    store = _open_store(
        get_config_value("EXPORT_CONSOLE_FIXTURE", ""),
        settings.mongo_uri,
        settings.mongo_database,
        settings.mongo_transactions,
    )
    sessions = _sessions(store, settings)

    tabs = st.tabs([session.channel.label for session in sessions.values()])
    for tab, session in zip(tabs, sessions.values()):
        with tab:
            _render_channel(session)


if __name__ == "__main__":
    main()
