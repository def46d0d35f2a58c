"""Display helpers shared by the CLI renderers."""

from __future__ import annotations

import json
import math
from datetime import datetime
from typing import Any, Optional

from .models import Thread

PREVIEW_LIMIT = 80

# Values below this are epoch seconds, at or above it epoch milliseconds.
MILLIS_THRESHOLD = 1_000_000_000_000


def format_timestamp(raw: Any) -> str:
    """Render an epoch timestamp in local time, or "-" when unusable."""
    if raw in (None, ""):
        return "-"
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return "-"
    if not math.isfinite(value) or value <= 0:
        return "-"

    seconds = value if value < MILLIS_THRESHOLD else value / 1000.0
    try:
        return datetime.fromtimestamp(seconds).strftime("%Y-%m-%d %H:%M:%S")
    except (OverflowError, OSError, ValueError):
        return "-"


def thread_display_name(thread: Thread, index: int) -> str:
    preview = thread.preview.strip()
    if preview:
        if len(preview) > PREVIEW_LIMIT:
            return f"{preview[:PREVIEW_LIMIT]}..."
        return preview
    return f"Thread {index + 1}"


def format_payload(payload: Any, limit: Optional[int] = None) -> str:
    """One-line rendering of an event payload."""
    text = payload if isinstance(payload, str) else json.dumps(payload, default=str)
    if limit is not None and len(text) > limit:
        return text[:limit] + "..."
    return text
