# Hand-off of a finished poster to its consumers: file download and share dispatch.
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Protocol, runtime_checkable

from posterstamp.errors import ShareUnsupported
from posterstamp.models import ComposedPoster
from posterstamp.naming import build_output_name

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class ShareDispatcher(Protocol):
    """Platform share capability. Receives only the encoded poster bytes."""

    name: str

    def can_share(self, filename: str, mime_type: str) -> bool: ...

    def share(self, data: bytes, filename: str, mime_type: str) -> None: ...


def save_poster(
    poster: ComposedPoster,
    out_dir: Path,
    event_id: str | None,
    *,
    timestamp_ms: int | None = None,
) -> Path:
    out_dir.mkdir(parents=True, exist_ok=True)
    target = out_dir / build_output_name(event_id, timestamp_ms)
    target.write_bytes(poster.data)
    LOGGER.info("saved poster %s (%s bytes)", target, len(poster.data))
    return target


def share_poster(
    poster: ComposedPoster,
    dispatchers: Iterable[ShareDispatcher],
    filename: str,
) -> str:
    """Offer the poster to each dispatcher in order; returns the one that took it.

    Raises ShareUnsupported when none can share, so the caller can fall back
    to ``save_poster``.
    """
    tried: list[str] = []
    for dispatcher in dispatchers:
        tried.append(dispatcher.name)
        if not dispatcher.can_share(filename, poster.mime_type):
            LOGGER.debug("share dispatcher %s declined %s", dispatcher.name, filename)
            continue
        dispatcher.share(poster.data, filename, poster.mime_type)
        LOGGER.info("shared %s via %s", filename, dispatcher.name)
        return dispatcher.name
    raise ShareUnsupported(f"no share dispatcher available (tried: {', '.join(tried) or 'none'})")
