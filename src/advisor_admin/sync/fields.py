"""Field formatting and extraction helpers shared by generation and filtering.

Location strings are stored as ``"City, ST"``. The state-code filter and the
fallback generator both go through LOCATION_SEPARATOR, so a generated
location is always extractable by the filter that reads it back.

Amounts are stored as display strings (``"$135M"``, ``"$980K"``) and parsed
to millions of dollars for range filters and sorting.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

LOCATION_SEPARATOR = ", "

_AMOUNT_SCALE: dict[str, float] = {
    "": 1.0,
    "K": 0.001,
    "M": 1.0,
    "B": 1000.0,
}

_AMOUNT_RE = re.compile(r"^(-?\d+(?:\.\d+)?)([KMB]?)$", re.IGNORECASE)

# Long dates as rendered by the admin UI, e.g. "March 4, 2025"
_DISPLAY_DATE_FORMATS = ("%B %d, %Y", "%b %d, %Y", "%Y-%m-%d")


# ── Locations ───────────────────────────────────────────────────────────────


def format_location(city: str, state: str) -> str:
    """Build a ``"City, ST"`` location string."""
    return f"{city}{LOCATION_SEPARATOR}{state}"


def state_code(location: Any) -> str | None:
    """Extract the state code from a ``"City, ST"`` location string.

    Returns None when the value is not a string or has no second token.
    """
    if not isinstance(location, str):
        return None
    parts = location.split(LOCATION_SEPARATOR)
    if len(parts) < 2:
        return None
    code = parts[1].strip()
    return code or None


# ── Amounts ─────────────────────────────────────────────────────────────────


def parse_amount(value: Any) -> float | None:
    """Parse a formatted dollar amount into millions.

    ``"$135M"`` -> 135.0, ``"$980K"`` -> 0.98, ``"1,500"`` -> 1500.0.
    Plain numbers are taken as already expressed in millions.
    Returns None for anything that does not parse (``"N/A"``, None, "").
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None

    cleaned = value.replace("$", "").replace(",", "").replace(" ", "").strip()
    match = _AMOUNT_RE.match(cleaned)
    if match is None:
        return None

    number, suffix = match.groups()
    return float(number) * _AMOUNT_SCALE[suffix.upper()]


def format_amount(millions: float) -> str:
    """Format an amount in millions the way listings display it.

    Values of one million or more render as ``"$1.5M"``; smaller values
    render in thousands, e.g. ``"$850K"``.
    """
    if millions >= 1:
        return f"${millions:.1f}M"
    return f"${round(millions * 1000)}K"


# ── Dates ───────────────────────────────────────────────────────────────────


def parse_date(value: Any) -> datetime | None:
    """Parse an ISO timestamp or a long display date into an aware datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        parsed = _parse_date_string(value)
        if parsed is None:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_date_string(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        pass

    for fmt in _DISPLAY_DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def format_display_date(value: datetime) -> str:
    """Render a date as ``"March 4, 2025"``."""
    return f"{value.strftime('%B')} {value.day}, {value.year}"


def slugify(title: str) -> str:
    """Lowercase, drop punctuation, hyphenate whitespace."""
    stripped = re.sub(r"[^\w\s]", "", title.lower())
    return re.sub(r"\s+", "-", stripped.strip())
