"""Utility helpers for generating identifiers and timestamps."""
from __future__ import annotations

import datetime as _dt
import time
import uuid


def new_id(prefix: str) -> str:
    """Return a fresh, never repeating identifier with the provided ``prefix``."""

    return f"{prefix}_{uuid.uuid4().hex}"


def utc_now() -> str:
    """Return the current UTC time formatted as an ISO 8601 string."""

    return _dt.datetime.now(_dt.timezone.utc).isoformat()


def now_ms() -> int:
    """Return the current wall clock time in epoch milliseconds."""

    return int(time.time() * 1000)
