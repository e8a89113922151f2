# Viewport fit math and the interactive crop/pan/zoom session.
# No GUI dependencies; pointer and slider events are plain method calls.
from __future__ import annotations

import io
import logging
from pathlib import Path

from PIL import Image

from posterstamp.constants import (
    CROP_FILL_COLOR,
    CROP_JPEG_QUALITY,
    CROP_MIME_TYPE,
    MAX_SCALE,
    MIN_SCALE,
    VIEWPORT_SIZE,
    ZOOM_STEP,
)
from posterstamp.decoders.image_decoder import decode_source, load_source
from posterstamp.errors import EditorStateError, EncodeError, InvalidImage
from posterstamp.models import CroppedRaster, Position, SourceImage, ViewportTransform

LOGGER = logging.getLogger(__name__)


def initialize_cover_scale(natural_width: float, natural_height: float, viewport_size: float) -> float:
    """Smallest scale at which the image, drawn inside the square viewport, covers it.

    Drawing puts ``viewport_size * scale`` on the dominant axis and derives the
    other axis from the aspect ratio, so covering means the smaller side equals
    the viewport: ``scale = aspect`` for landscape, ``1 / aspect`` otherwise.
    """
    if natural_width <= 0 or natural_height <= 0:
        raise InvalidImage(f"degenerate image size: {natural_width}x{natural_height}")
    if viewport_size <= 0:
        raise InvalidImage(f"viewport size must be positive, got: {viewport_size!r}")
    aspect = natural_width / float(natural_height)
    if aspect > 1:
        return aspect
    return 1.0 / aspect


def compute_draw_size(scale: float, aspect: float, viewport_size: float) -> tuple[float, float]:
    dominant = viewport_size * scale
    if aspect > 1:
        return (dominant, dominant / aspect)
    return (dominant * aspect, dominant)


def compute_pan_bounds(draw_width: float, draw_height: float, viewport_size: float) -> tuple[float, float]:
    max_x = max(0.0, (draw_width - viewport_size) / 2.0)
    max_y = max(0.0, (draw_height - viewport_size) / 2.0)
    return (max_x, max_y)


def clamp_position(position: Position, max_x: float, max_y: float) -> Position:
    x = max(-max_x, min(max_x, position.x))
    y = max(-max_y, min(max_y, position.y))
    # normalise -0.0 so a pinned axis always reads as 0
    return Position(x + 0.0, y + 0.0)


class TransformEditor:
    """Crop/pan/zoom session for one source image.

    At most one decoded source is held at a time. ``confirm()`` and
    ``discard()`` both release it; using the editor as a context manager
    releases it on exit as well.
    """

    def __init__(
        self,
        viewport_size: int = VIEWPORT_SIZE,
        *,
        min_scale: float = MIN_SCALE,
        max_scale: float = MAX_SCALE,
        crop_size: int | None = None,
        crop_quality: int = CROP_JPEG_QUALITY,
        fill_color: str = CROP_FILL_COLOR,
    ) -> None:
        if viewport_size <= 0:
            raise ValueError(f"viewport size must be positive, got: {viewport_size!r}")
        if min_scale <= 0 or max_scale < min_scale:
            raise ValueError(f"invalid scale bounds: [{min_scale}, {max_scale}]")
        self.viewport_size = int(viewport_size)
        self.min_scale = float(min_scale)
        self.max_scale = float(max_scale)
        self.crop_size = int(crop_size or viewport_size)
        self.crop_quality = max(1, min(100, int(crop_quality)))
        self.fill_color = fill_color
        self._source: SourceImage | None = None
        self._scale = 1.0
        self._position = Position()
        self._drag_origin: tuple[float, float] | None = None

    def __enter__(self) -> TransformEditor:
        return self

    def __exit__(self, exc_type, exc_value, exc_tb) -> None:
        self.discard()

    # -- session ---------------------------------------------------------

    def load(self, source: SourceImage | Path | bytes, mime_type: str | None = None) -> ViewportTransform:
        if isinstance(source, SourceImage):
            loaded = source
        elif isinstance(source, (bytes, bytearray)):
            if mime_type is None:
                raise InvalidImage("mime type is required for raw image bytes")
            loaded = decode_source(bytes(source), mime_type)
        else:
            loaded = load_source(Path(source), mime_type=mime_type)
        if loaded.closed:
            raise InvalidImage("source image has already been released")

        try:
            cover = initialize_cover_scale(loaded.natural_width, loaded.natural_height, self.viewport_size)
        except InvalidImage:
            loaded.close()
            raise

        self._release_source()
        self._source = loaded
        self._scale = cover
        self._position = Position()
        self._drag_origin = None
        LOGGER.info(
            "loaded %s %sx%s cover_scale=%.4f",
            loaded.name or "<image>",
            loaded.natural_width,
            loaded.natural_height,
            cover,
        )
        return self.transform

    def discard(self) -> None:
        self._release_source()
        self._scale = 1.0
        self._position = Position()
        self._drag_origin = None

    def _release_source(self) -> None:
        if self._source is not None:
            self._source.close()
            self._source = None

    def _require_source(self) -> SourceImage:
        if self._source is None:
            raise EditorStateError("no source image loaded")
        return self._source

    @property
    def has_source(self) -> bool:
        return self._source is not None

    @property
    def source(self) -> SourceImage | None:
        return self._source

    # -- geometry --------------------------------------------------------

    @property
    def aspect(self) -> float:
        return self._require_source().aspect

    @property
    def cover_scale(self) -> float:
        source = self._require_source()
        return initialize_cover_scale(source.natural_width, source.natural_height, self.viewport_size)

    @property
    def scale(self) -> float:
        return self._scale

    @property
    def zoom_percent(self) -> int:
        return int(round(self._scale * 100))

    @property
    def draw_size(self) -> tuple[float, float]:
        return compute_draw_size(self._scale, self.aspect, self.viewport_size)

    @property
    def pan_bounds(self) -> tuple[float, float]:
        draw_width, draw_height = self.draw_size
        return compute_pan_bounds(draw_width, draw_height, self.viewport_size)

    @property
    def position(self) -> Position:
        if self._source is None:
            return self._position
        max_x, max_y = self.pan_bounds
        return clamp_position(self._position, max_x, max_y)

    @property
    def transform(self) -> ViewportTransform:
        return ViewportTransform(scale=self._scale, position=self.position)

    # -- interaction -----------------------------------------------------

    def set_scale(self, value: float) -> float:
        self._require_source()
        self._scale = max(self.min_scale, min(self.max_scale, float(value)))
        self._position = self.position
        return self._scale

    def zoom_by(self, steps: float = 1.0) -> float:
        return self.set_scale(self._scale + steps * ZOOM_STEP)

    def pan(self, dx: float, dy: float) -> Position:
        self._require_source()
        max_x, max_y = self.pan_bounds
        self._position = clamp_position(self._position.moved(dx, dy), max_x, max_y)
        return self._position

    def drag_start(self, pointer_x: float, pointer_y: float) -> None:
        self._require_source()
        current = self.position
        self._drag_origin = (pointer_x - current.x, pointer_y - current.y)

    def drag_move(self, pointer_x: float, pointer_y: float) -> Position:
        if self._drag_origin is None:
            return self.position
        origin_x, origin_y = self._drag_origin
        max_x, max_y = self.pan_bounds
        self._position = clamp_position(
            Position(pointer_x - origin_x, pointer_y - origin_y),
            max_x,
            max_y,
        )
        return self._position

    def drag_end(self) -> None:
        self._drag_origin = None

    def reset(self) -> ViewportTransform:
        # Scale goes back to 1, not to the cover scale.
        self._scale = 1.0
        self._position = Position()
        self._drag_origin = None
        return ViewportTransform(scale=self._scale, position=self._position)

    # -- rasterisation ---------------------------------------------------

    def _rasterize(self, size: int) -> Image.Image:
        source = self._require_source()
        image = source.image
        viewport = float(self.viewport_size)
        factor = size / viewport
        draw_width, draw_height = self.draw_size
        position = self.position
        draw_x = (viewport - draw_width) / 2.0 + position.x
        draw_y = (viewport - draw_height) / 2.0 + position.y

        canvas = Image.new("RGB", (size, size), color=self.fill_color)
        left = max(0.0, draw_x)
        top = max(0.0, draw_y)
        right = min(viewport, draw_x + draw_width)
        bottom = min(viewport, draw_y + draw_height)
        if right <= left or bottom <= top:
            return canvas

        unit_x = source.natural_width / draw_width
        unit_y = source.natural_height / draw_height
        box = (
            max(0.0, (left - draw_x) * unit_x),
            max(0.0, (top - draw_y) * unit_y),
            min(float(source.natural_width), (right - draw_x) * unit_x),
            min(float(source.natural_height), (bottom - draw_y) * unit_y),
        )
        dest_left = int(round(left * factor))
        dest_top = int(round(top * factor))
        dest_width = max(1, int(round(right * factor)) - dest_left)
        dest_height = max(1, int(round(bottom * factor)) - dest_top)
        region = image.resize((dest_width, dest_height), Image.Resampling.LANCZOS, box=box)
        canvas.paste(region, (dest_left, dest_top))
        return canvas

    def render_preview(self) -> Image.Image:
        """Viewport-sized rendering of the current transform."""
        return self._rasterize(self.viewport_size)

    def confirm(self) -> CroppedRaster:
        """Rasterize the visible viewport and end the session."""
        self._require_source()
        try:
            raster = self._rasterize(self.crop_size)
            buffer = io.BytesIO()
            try:
                raster.save(buffer, format="JPEG", quality=self.crop_quality)
            except (OSError, ValueError) as exc:
                raise EncodeError(f"crop encode failed: {exc}") from exc
            LOGGER.info(
                "confirmed crop scale=%.4f position=(%.1f, %.1f) size=%s",
                self._scale,
                self.position.x,
                self.position.y,
                self.crop_size,
            )
            return CroppedRaster(data=buffer.getvalue(), size=self.crop_size, mime_type=CROP_MIME_TYPE)
        finally:
            self.discard()
