from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Iterable

from posterstamp.constants import DEFAULT_EVENT_ID
from posterstamp.editor.transform import TransformEditor
from posterstamp.errors import EditorStateError, ShareUnsupported
from posterstamp.export import ShareDispatcher, save_poster, share_poster
from posterstamp.models import ComposedPoster, CroppedRaster, PosterTemplate, SourceImage, ViewportTransform
from posterstamp.naming import build_output_name
from posterstamp.render.compositor import compose

LOGGER = logging.getLogger(__name__)


class PosterSession:
    """One user's poster: the crop editor, the confirmed crop, and exports.

    Closing the session releases the source image and cancels every compose
    still in flight, so a stale crop is never composited.
    """

    def __init__(
        self,
        template: PosterTemplate,
        *,
        editor: TransformEditor | None = None,
        event_id: str = DEFAULT_EVENT_ID,
        font_path: Path | None = None,
    ) -> None:
        self.template = template
        self.editor = editor or TransformEditor()
        self.event_id = event_id
        self.font_path = font_path
        self.cropped: CroppedRaster | None = None
        self._compose_tasks: set[asyncio.Task[ComposedPoster]] = set()

    def __enter__(self) -> PosterSession:
        return self

    def __exit__(self, exc_type, exc_value, exc_tb) -> None:
        self.close()

    def open_photo(self, source: SourceImage | Path | bytes, mime_type: str | None = None) -> ViewportTransform:
        return self.editor.load(source, mime_type=mime_type)

    def confirm_photo(self) -> CroppedRaster:
        self.cropped = self.editor.confirm()
        return self.cropped

    def discard_photo(self) -> None:
        self.editor.discard()

    def set_template(self, template: PosterTemplate) -> None:
        self.template = template

    @property
    def can_export(self) -> bool:
        return bool(self.cropped)

    async def export(self) -> ComposedPoster:
        if not self.cropped:
            raise EditorStateError("no confirmed photo to export")
        task = asyncio.ensure_future(compose(self.template, self.cropped, font_path=self.font_path))
        self._compose_tasks.add(task)
        try:
            return await task
        finally:
            self._compose_tasks.discard(task)

    async def download(self, out_dir: Path, *, timestamp_ms: int | None = None) -> Path:
        poster = await self.export()
        return save_poster(poster, out_dir, self.event_id, timestamp_ms=timestamp_ms)

    async def share(
        self,
        dispatchers: Iterable[ShareDispatcher],
        *,
        fallback_dir: Path | None = None,
    ) -> str:
        """Share via the first capable dispatcher, else download into ``fallback_dir``.

        Returns the dispatcher name, or ``"download"`` for the fallback.
        """
        poster = await self.export()
        filename = build_output_name(self.event_id)
        try:
            return share_poster(poster, dispatchers, filename)
        except ShareUnsupported:
            if fallback_dir is None:
                raise
            LOGGER.info("share unsupported, falling back to download")
            save_poster(poster, fallback_dir, self.event_id)
            return "download"

    def close(self) -> None:
        pending = [task for task in self._compose_tasks if not task.done()]
        if pending:
            LOGGER.info("cancelling %s in-flight compose(s)", len(pending))
        for task in pending:
            task.cancel()
        self._compose_tasks.clear()
        self.editor.discard()
        self.cropped = None
