from __future__ import annotations

import re
import time

INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1F]')


def sanitize_token(value: str | None, fallback: str = "poster") -> str:
    text = (value or "").strip()
    if not text:
        text = fallback
    text = INVALID_FILENAME_CHARS.sub("_", text)
    text = re.sub(r"\s+", "-", text)
    text = text.strip(" ._-")
    return text or fallback


def current_timestamp_ms() -> int:
    return int(time.time() * 1000)


def build_output_name(event_id: str | None, timestamp_ms: int | None = None, extension: str = "png") -> str:
    """Download filename: ``<event-id>-<timestamp>.<ext>``."""
    stamp = current_timestamp_ms() if timestamp_ms is None else int(timestamp_ms)
    ext = extension.lower().lstrip(".") or "png"
    return f"{sanitize_token(event_id)}-{stamp}.{ext}"
