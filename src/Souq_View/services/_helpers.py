"""Shared helpers for the backend service modules.

Consolidates lenient number coercion (upstream JSON mixes numbers, numeric
strings, blanks and garbage) and URL sanitizing for request logging.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any, Final
from urllib.parse import urlencode

# ---------------------------------------------------------------------------
# Shared constants
# ---------------------------------------------------------------------------

BACKEND_SOURCE: Final[str] = "backend"
SUPABASE_SOURCE: Final[str] = "supabase"

# Query parameters that must never reach a log line
SECRET_PARAMS: Final[frozenset[str]] = frozenset(
    {"apikey", "api_key", "token", "access_token", "key", "password"}
)


# ---------------------------------------------------------------------------
# Safe type conversions
# ---------------------------------------------------------------------------


def coerce_number(value: object) -> float:
    """Coerce an arbitrary JSON value to a float, NaN when not numeric.

    Booleans count as 1/0 and a blank string as 0, matching how loosely
    typed upstream payloads encode numbers. ``None`` is treated as 0.
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, int | float):
        try:
            return float(value)
        except OverflowError:
            # JSON integers beyond float range
            return math.inf if value > 0 else -math.inf
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        # float() accepts "1_000"; a numeric field never does
        if "_" in text:
            return math.nan
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def finite_number(value: object) -> float | None:
    """Return *value* as a float only when it is a real, finite JSON number."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def clean_text(value: object) -> str:
    """Return ``str(value).strip()``, or ``""`` for ``None``."""
    if value is None:
        return ""
    return str(value).strip()


# ---------------------------------------------------------------------------
# Logging helpers
# ---------------------------------------------------------------------------


def sanitized_url(
    base_url: str,
    path: str,
    params: Mapping[str, Any] | None = None,
) -> str:
    """Build the full request URL for logging, with secret params masked.

    Empty and ``None`` params are dropped the same way the client drops them.
    """
    base = base_url.rstrip("/")
    url = f"{base}/{path.lstrip('/')}"
    if not params:
        return url
    shown = {
        key: ("***" if key.lower() in SECRET_PARAMS else str(value))
        for key, value in params.items()
        if value is not None and value != ""
    }
    if not shown:
        return url
    return f"{url}?{urlencode(shown, safe=',')}"
