"""Field lookup and value formatting for export rows.

Channels name the same concept differently (``phoneNumber`` on website
purchases, ``msisdn`` on the USSD queue, ``subscriber_number`` on teller
responses), so rows are built from concepts resolved through a per-channel
alias table instead of ad-hoc fallbacks.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from export_console.core.models import Record

NOT_AVAILABLE = "N/A"
COUNTRY_CODE = "233"
NATIONAL_NUMBER_LENGTH = 10
PLAN_UNIT = "GB"

FIELD_ALIASES: Dict[str, List[str]] = {
    "phone": ["phoneNumber", "msisdn", "subscriber_number", "phone"],
    "network": ["networkProvider", "network", "r_switch"],
    "plan_size": ["gig", "bundleSize"],
    "plan_description": ["serviceName", "desc", "description"],
    "amount": ["amount"],
    "reference": ["externalRef", "reference"],
    "created_at": ["createdAt"],
}

CHANNEL_FIELD_ALIASES: Dict[str, Dict[str, List[str]]] = {
    "numbers": {"phone": ["phoneNumber", "phone"]},
    "website": {"phone": ["phoneNumber", "msisdn"]},
    "ussd": {"phone": ["msisdn", "phoneNumber"], "plan_size": ["gig"]},
    "teller": {"phone": ["subscriber_number"], "network": ["r_switch"]},
}


def candidate_keys(concept: str, channel: Optional[str] = None) -> List[str]:
    """Keys to try for ``concept``, channel-specific ones first."""

    keys: List[str] = []
    if channel:
        keys.extend(CHANNEL_FIELD_ALIASES.get(channel, {}).get(concept, []))
    keys.extend(FIELD_ALIASES.get(concept, [concept]))
    return list(dict.fromkeys(keys))


def resolve_field(record: Record, concept: str, channel: Optional[str] = None) -> Any:
    """Return the first non-empty value for ``concept`` on ``record``."""

    for key in candidate_keys(concept, channel):
        value = record.get(key)
        if value is not None and str(value).strip() != "":
            return value
    return None


def text_or_na(value: Any) -> str:
    if value is None:
        return NOT_AVAILABLE
    text = " ".join(str(value).split())
    return text or NOT_AVAILABLE


def normalize_phone(
    value: Any,
    country_code: str = COUNTRY_CODE,
    national_length: int = NATIONAL_NUMBER_LENGTH,
) -> str:
    """Strip a literal leading country code and restore the trunk ``0``.

    ``233549856098`` becomes ``0549856098``; numbers already in national form
    pass through untouched.
    """

    if value is None:
        return NOT_AVAILABLE
    text = str(value).strip()
    if text.startswith(country_code):
        text = text[len(country_code):].strip()
    if len(text) == national_length - 1:
        return f"0{text}"
    return text or NOT_AVAILABLE


def extract_plan_size(description: Any, unit: str = PLAN_UNIT) -> str:
    """Return the first integer directly followed by ``unit`` (case-insensitive)."""

    if not description:
        return NOT_AVAILABLE
    match = re.search(rf"(\d+){re.escape(unit)}", str(description), re.IGNORECASE)
    return match.group(1) if match else NOT_AVAILABLE


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def format_timestamp(value: Any) -> str:
    """Render a timestamp like ``Jan 5, 2024, 02:03:04 PM UTC``."""

    moment = _as_datetime(value)
    if moment is None:
        return NOT_AVAILABLE
    text = f"{moment:%b} {moment.day}, {moment:%Y}, {moment:%I:%M:%S %p}"
    zone = moment.tzname()
    return f"{text} {zone}" if zone else text
