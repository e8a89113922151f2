# Poster compositing: template blit, circular photo clip, text layers, PNG encode.
# Pure functions over Pillow images; no shared drawing surface between calls.
from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterable, Sequence, Union

from PIL import Image, ImageChops, ImageColor, ImageDraw, ImageOps

from posterstamp.constants import POSTER_MIME_TYPE, POSTER_SIZE
from posterstamp.decoders.image_decoder import decode_raster
from posterstamp.errors import EncodeError, ImageLoadError
from posterstamp.models import (
    ComposedPoster,
    CroppedRaster,
    FrameGeometry,
    GradientStop,
    PosterTemplate,
    TextLayer,
)
from posterstamp.render.typography import load_font, text_size

LOGGER = logging.getLogger(__name__)

RasterSource = Union[bytes, str, Path, Image.Image]

_MASK_SUPERSAMPLE = 4
_TEXT_SIDE_MARGIN_PX = 24
_MIN_FONT_SIZE = 8


@dataclass(frozen=True, slots=True)
class RenderTarget:
    """Explicit drawing surface description handed to each composition."""

    width: int
    height: int
    background: str | tuple[int, int, int, int] = (0, 0, 0, 0)

    @classmethod
    def for_size(cls, size: tuple[int, int]) -> RenderTarget:
        return cls(width=int(size[0]), height=int(size[1]))

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    def new_canvas(self) -> Image.Image:
        if self.width <= 0 or self.height <= 0:
            raise EncodeError(f"render target unavailable: {self.width}x{self.height}")
        try:
            return Image.new("RGBA", self.size, color=self.background)
        except (ValueError, MemoryError) as exc:
            raise EncodeError(f"render target unavailable: {exc}") from exc


def _rgba(color: str) -> tuple[int, int, int, int]:
    rgb = ImageColor.getrgb(color)
    if len(rgb) == 4:
        return (int(rgb[0]), int(rgb[1]), int(rgb[2]), int(rgb[3]))
    return (int(rgb[0]), int(rgb[1]), int(rgb[2]), 255)


def _interpolate_stops(stops: Sequence[GradientStop], t: float) -> tuple[int, int, int, int]:
    ordered = sorted(stops, key=lambda stop: stop.offset)
    if t <= ordered[0].offset:
        return _rgba(ordered[0].color)
    for start, end in zip(ordered, ordered[1:]):
        if t <= end.offset:
            span = end.offset - start.offset
            local = 0.0 if span <= 0 else (t - start.offset) / span
            a = _rgba(start.color)
            b = _rgba(end.color)
            return tuple(int(round(a[i] + (b[i] - a[i]) * local)) for i in range(4))  # type: ignore[return-value]
    return _rgba(ordered[-1].color)


def horizontal_gradient(size: tuple[int, int], stops: Sequence[GradientStop]) -> Image.Image:
    """RGBA gradient running left to right across the full width."""
    width, height = size
    denominator = max(1, width - 1)
    row = [_interpolate_stops(stops, col / float(denominator)) for col in range(width)]
    gradient = Image.new("RGBA", (width, 1))
    gradient.putdata(row)
    if height > 1:
        gradient = gradient.resize((width, height), resample=Image.Resampling.NEAREST)
    return gradient


def _circle_mask(size: tuple[int, int]) -> Image.Image:
    width, height = size
    big_width = width * _MASK_SUPERSAMPLE
    big_height = height * _MASK_SUPERSAMPLE
    mask = Image.new("L", (big_width, big_height), 0)
    ImageDraw.Draw(mask).ellipse((0, 0, big_width - 1, big_height - 1), fill=255)
    return mask.resize(size, resample=Image.Resampling.BOX)


def draw_clipped_photo(canvas: Image.Image, photo: Image.Image, frame: FrameGeometry) -> None:
    """Paint ``photo`` inside the frame circle; nothing outside it changes."""
    left, top, right, bottom = frame.bbox
    size = (right - left, bottom - top)
    if size[0] <= 0 or size[1] <= 0:
        return
    # Non-square inputs are centre-cropped before filling the clip square.
    fitted = ImageOps.fit(
        photo.convert("RGBA"),
        size,
        method=Image.Resampling.LANCZOS,
        centering=(0.5, 0.5),
    )
    mask = ImageChops.multiply(_circle_mask(size), fitted.getchannel("A"))
    fitted.putalpha(mask)
    layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    layer.paste(fitted, (left, top))
    canvas.alpha_composite(layer)


def _iter_font_sizes(base_size: int, minimum: int = _MIN_FONT_SIZE) -> list[int]:
    start = max(minimum, int(base_size))
    sizes = [start]
    if start <= minimum:
        return sizes
    step = max(1, int(round(start * 0.08)))
    current = start - step
    while current > minimum:
        sizes.append(current)
        current -= step
    if sizes[-1] != minimum:
        sizes.append(minimum)
    return sizes


def _fit_font(draw: ImageDraw.ImageDraw, layer: TextLayer, max_width: int, font_path: Path | None):
    stroke = layer.stroke.width if layer.stroke else 0
    font = None
    for size in _iter_font_sizes(layer.font.size):
        font = load_font(replace(layer.font, size=size), font_path)
        width, _ = text_size(draw, layer.content, font)
        if width + stroke * 2 <= max_width:
            return font
    return font


def draw_text_layer(
    canvas: Image.Image,
    layer: TextLayer,
    frame: FrameGeometry,
    *,
    font_path: Path | None = None,
) -> None:
    if not layer.content:
        return
    draw = ImageDraw.Draw(canvas)
    font = _fit_font(draw, layer, canvas.width - _TEXT_SIDE_MARGIN_PX * 2, font_path)
    x, y = layer.anchor.resolve(frame, canvas.width)

    if layer.stroke is not None and layer.stroke.width > 0:
        draw.text(
            (x, y),
            layer.content,
            font=font,
            fill=layer.stroke.color,
            anchor="mm",
            stroke_width=layer.stroke.width,
            stroke_fill=layer.stroke.color,
        )

    if layer.fill.is_gradient:
        mask = Image.new("L", canvas.size, 0)
        ImageDraw.Draw(mask).text((x, y), layer.content, font=font, fill=255, anchor="mm")
        gradient = horizontal_gradient(canvas.size, layer.fill.stops)
        gradient.putalpha(ImageChops.multiply(gradient.getchannel("A"), mask))
        canvas.alpha_composite(gradient)
    else:
        draw.text((x, y), layer.content, font=font, fill=layer.fill.color, anchor="mm")


def render_poster(
    template_image: Image.Image,
    user_image: Image.Image,
    frame: FrameGeometry,
    text_layers: Iterable[TextLayer],
    target: RenderTarget,
    *,
    font_path: Path | None = None,
) -> Image.Image:
    """Paint order: template, clipped photo, then text layers back to front."""
    canvas = target.new_canvas()
    background = template_image.convert("RGBA")
    if background.size != target.size:
        background = background.resize(target.size, resample=Image.Resampling.LANCZOS)
    canvas.alpha_composite(background)
    draw_clipped_photo(canvas, user_image, frame)
    for layer in text_layers:
        draw_text_layer(canvas, layer, frame, font_path=font_path)
    return canvas


def encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    try:
        image.save(buffer, format="PNG")
    except (OSError, ValueError) as exc:
        raise EncodeError(f"poster encode failed: {exc}") from exc
    return buffer.getvalue()


def _user_source(user_raster: CroppedRaster | RasterSource) -> RasterSource:
    if isinstance(user_raster, CroppedRaster):
        if not user_raster:
            raise ImageLoadError("user", "cropped raster is empty")
        return user_raster.data
    return user_raster


async def decode_inputs(template_source: RasterSource, user_source: RasterSource) -> tuple[Image.Image, Image.Image]:
    """Decode both inputs concurrently; returns only once both have resolved."""
    results = await asyncio.gather(
        asyncio.to_thread(decode_raster, template_source, "template"),
        asyncio.to_thread(decode_raster, user_source, "user"),
        return_exceptions=True,
    )
    failures = [result for result in results if isinstance(result, BaseException)]
    if failures:
        for result in results:
            if isinstance(result, Image.Image):
                result.close()
        raise failures[0]
    template_image, user_image = results
    return (template_image, user_image)


async def compose(
    template: PosterTemplate | RasterSource,
    user_raster: CroppedRaster | RasterSource,
    frame_geometry: FrameGeometry | None = None,
    text_layers: Sequence[TextLayer] | None = None,
    output_size: tuple[int, int] | None = None,
    *,
    target: RenderTarget | None = None,
    font_path: Path | None = None,
) -> ComposedPoster:
    """Compose one poster from scratch.

    ``template`` is either a PosterTemplate (its background, frame, text layers
    and size act as defaults) or a bare background raster, in which case
    ``frame_geometry`` must be given. Failures surface when awaited:
    ImageLoadError tagged with the failing asset, or EncodeError.
    """
    if isinstance(template, PosterTemplate):
        template_source: RasterSource = template.background
        frame = frame_geometry or template.frame
        layers = tuple(text_layers if text_layers is not None else template.text_layers)
        size = output_size or template.output_size
    else:
        if frame_geometry is None:
            raise ValueError("frame_geometry is required when template is a bare raster")
        template_source = template
        frame = frame_geometry
        layers = tuple(text_layers or ())
        size = output_size or POSTER_SIZE

    render_target = target or RenderTarget.for_size(size)
    template_image, user_image = await decode_inputs(template_source, _user_source(user_raster))
    try:
        canvas = render_poster(
            template_image,
            user_image,
            frame,
            layers,
            render_target,
            font_path=font_path,
        )
        data = encode_png(canvas)
    finally:
        template_image.close()
        user_image.close()
    LOGGER.info(
        "composed poster %sx%s layers=%s bytes=%s",
        render_target.width,
        render_target.height,
        len(layers),
        len(data),
    )
    return ComposedPoster(
        data=data,
        width=render_target.width,
        height=render_target.height,
        mime_type=POSTER_MIME_TYPE,
    )
