"""Channel definitions and overridable settings for the export console."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Optional, Tuple

from export_console.core.errors import ConfigurationError
from export_console.core.utils import get_config_value, load_env_file

logger = logging.getLogger(__name__)

DEFAULT_ENV_FILE = Path("secrets/mongo.env")
_ENV_LOADED = False

PAGE_SIZE = 6
MAX_EXPORT_RECORDS = 1000
BATCH_LIMIT = 500
DUPLICATE_HEADROOM = 3
BANNER_SECONDS = 5.0
DEBOUNCE_SECONDS = 0.3

PENDING_VIEW = "pending"
RECENT_VIEW = "recent"
ALL_VIEW = "all"


@dataclass(frozen=True)
class ChannelConfig:
    """How one channel's collection is read, grouped, and exported."""

    name: str
    label: str
    collection: str
    correlation_field: Optional[str] = None
    require_approved: bool = True
    order_field: str = "createdAt"
    descending: bool = True
    export_format: str = "xlsx"
    filename_prefix: str = ""
    today_only: bool = False
    network_field: Optional[str] = None
    status_views: Tuple[str, ...] = ()
    today_count: bool = False

    @property
    def grouped(self) -> bool:
        return bool(self.correlation_field)

    def pending_filters(self) -> Dict[str, object]:
        """Equality filters selecting the channel's pending documents.

        Grouped channels read the same pending rows; groups that already have
        an exported member are found with a separate lookup by key.
        """

        filters: Dict[str, object] = {}
        if self.require_approved:
            filters["status"] = "approved"
        filters["exported"] = False
        return filters

    @property
    def views(self) -> Tuple[str, ...]:
        """Browsing views offered for the channel, the pending view first."""

        return (PENDING_VIEW, *self.status_views)

    def view_filters(self, view: str) -> Dict[str, object]:
        """Store filters for a browsing view.

        Only the pending views select exportable rows; ``all`` and the status
        views are for browsing and never feed an export.
        """

        if view not in self.views:
            raise ConfigurationError(f"Channel '{self.name}' has no '{view}' view")
        if view in (PENDING_VIEW, RECENT_VIEW):
            return self.pending_filters()
        if view == ALL_VIEW:
            return {}
        return {"status": view}


DEFAULT_CHANNELS: Dict[str, ChannelConfig] = {
    "numbers": ChannelConfig(
        name="numbers",
        label="New Numbers",
        collection="numbers",
        require_approved=False,
        filename_prefix="numbers",
        network_field="networkProvider",
    ),
    "website": ChannelConfig(
        name="website",
        label="Website Transactions",
        collection="website_transactions",
        filename_prefix="website_transactions",
    ),
    "ussd": ChannelConfig(
        name="ussd",
        label="USSD Transactions",
        collection="delivery_queue",
        correlation_field="externalRef",
        filename_prefix="ussd_transactions",
    ),
    "teller": ChannelConfig(
        name="teller",
        label="Teller Responses",
        collection="teller_response",
        export_format="csv",
        filename_prefix="approved_transactions",
        network_field="r_switch",
        status_views=(RECENT_VIEW, ALL_VIEW, "approved", "failed", "declined"),
        today_count=True,
    ),
}


@dataclass(frozen=True)
class Settings:
    """Resolved settings shared by every channel.

    ``mongo_transactions`` wraps each write chunk in a multi-document
    transaction, which MongoDB only allows on a replica set or a sharded
    cluster. Against a standalone server (the default ``mongo_uri``) set
    ``MONGO_TRANSACTIONS=false``, otherwise every export fails with
    ``StoreUnavailable``.
    """

    page_size: int = PAGE_SIZE
    export_cap: int = MAX_EXPORT_RECORDS
    batch_limit: int = BATCH_LIMIT
    duplicate_headroom: int = DUPLICATE_HEADROOM
    banner_seconds: float = BANNER_SECONDS
    debounce_seconds: float = DEBOUNCE_SECONDS
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_database: str = "dashboard"
    mongo_transactions: bool = True
    channels: Dict[str, ChannelConfig] = field(default_factory=lambda: dict(DEFAULT_CHANNELS))

    def channel(self, name: str) -> ChannelConfig:
        try:
            return self.channels[name]
        except KeyError as exc:
            known = ", ".join(sorted(self.channels))
            raise ConfigurationError(f"Unknown channel '{name}'. Known channels: {known}") from exc

    def raw_fetch_limit(self, channel: ChannelConfig) -> int:
        """How many pending documents to read so that ``export_cap`` groups fit.

        Grouped channels read extra rows for retried deliveries that share a key.
        """

        if channel.grouped:
            return self.export_cap * self.duplicate_headroom
        return self.export_cap


def _ensure_env() -> None:
    """Populate settings from secrets/mongo.env once per process."""

    global _ENV_LOADED
    if _ENV_LOADED:
        return
    _ENV_LOADED = True

    env_path = Path(os.getenv("EXPORT_CONSOLE_ENV_FILE", DEFAULT_ENV_FILE))
    load_env_file(env_path)


def _int_setting(key: str, default: int, minimum: int = 1) -> int:
    raw = get_config_value(key, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be an integer, got '{raw}'") from exc
    if value < minimum:
        raise ConfigurationError(f"{key} must be at least {minimum}, got {value}")
    return value


def _float_setting(key: str, default: float) -> float:
    raw = get_config_value(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be a number, got '{raw}'") from exc


def _bool_setting(key: str, default: bool) -> bool:
    raw = get_config_value(key, "").strip().lower()
    if not raw:
        return default
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    raise ConfigurationError(f"{key} must be a boolean flag, got '{raw}'")


def _channel_overrides(channel: ChannelConfig) -> ChannelConfig:
    prefix = channel.name.upper()
    collection = get_config_value(f"{prefix}_COLLECTION", "").strip() or channel.collection
    correlation = get_config_value(f"{prefix}_CORRELATION_FIELD", "").strip()
    if correlation.lower() == "none":
        correlation_field = None
    else:
        correlation_field = correlation or channel.correlation_field
    return replace(
        channel,
        collection=collection,
        correlation_field=correlation_field,
        require_approved=_bool_setting(f"{prefix}_REQUIRE_APPROVED", channel.require_approved),
        today_only=_bool_setting(f"{prefix}_TODAY_ONLY", channel.today_only),
    )


def load_settings() -> Settings:
    """Resolve settings from Streamlit secrets, the environment, and the env file."""

    _ensure_env()
    channels = {name: _channel_overrides(channel) for name, channel in DEFAULT_CHANNELS.items()}
    settings = Settings(
        page_size=_int_setting("EXPORT_PAGE_SIZE", PAGE_SIZE),
        export_cap=_int_setting("EXPORT_MAX_RECORDS", MAX_EXPORT_RECORDS),
        batch_limit=_int_setting("EXPORT_BATCH_LIMIT", BATCH_LIMIT),
        duplicate_headroom=_int_setting("EXPORT_DUPLICATE_HEADROOM", DUPLICATE_HEADROOM),
        banner_seconds=_float_setting("EXPORT_BANNER_SECONDS", BANNER_SECONDS),
        debounce_seconds=_float_setting("EXPORT_DEBOUNCE_SECONDS", DEBOUNCE_SECONDS),
        mongo_uri=get_config_value("MONGO_URI", "mongodb://localhost:27017"),
        mongo_database=get_config_value("MONGO_DATABASE", "dashboard"),
        mongo_transactions=_bool_setting("MONGO_TRANSACTIONS", True),
        channels=channels,
    )
    logger.debug(
        "Settings resolved: page_size=%d export_cap=%d batch_limit=%d",
        settings.page_size,
        settings.export_cap,
        settings.batch_limit,
    )
    return settings
