from __future__ import annotations

import io
import logging
import mimetypes
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from posterstamp.constants import HEIF_EXTENSIONS, IMAGE_MIME_PREFIX, SUPPORTED_EXTENSIONS
from posterstamp.errors import ImageLoadError, InvalidImage
from posterstamp.models import SourceImage

LOGGER = logging.getLogger(__name__)

_HEIF_REGISTERED = False


def _register_heif_opener() -> bool:
    global _HEIF_REGISTERED
    if _HEIF_REGISTERED:
        return True
    try:
        from pillow_heif import register_heif_opener
    except ImportError:
        return False
    register_heif_opener()
    _HEIF_REGISTERED = True
    return True


def guess_mime_type(path: Path) -> str | None:
    ext = path.suffix.lower()
    if ext in HEIF_EXTENSIONS:
        return "image/heif"
    mime_type, _ = mimetypes.guess_type(path.name)
    return mime_type


def ensure_image_mime(mime_type: str | None) -> str:
    text = (mime_type or "").strip().lower()
    if not text.startswith(IMAGE_MIME_PREFIX):
        raise InvalidImage(f"not an image: mime type {mime_type!r}")
    return text


def _open_standard(stream) -> Image.Image:
    with Image.open(stream) as image:
        return ImageOps.exif_transpose(image).convert("RGB").copy()


def _decode_bytes(data: bytes, *, heif: bool = False) -> Image.Image:
    if heif and not _register_heif_opener():
        raise InvalidImage("pillow-heif is required to decode HEIF/HEIC/HIF")
    try:
        return _open_standard(io.BytesIO(data))
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        if not heif and _register_heif_opener():
            try:
                return _open_standard(io.BytesIO(data))
            except (UnidentifiedImageError, OSError, ValueError):
                pass
        raise InvalidImage(f"cannot decode image: {exc}") from exc


def _source_from_image(image: Image.Image, mime_type: str, name: str) -> SourceImage:
    width, height = image.size
    if width <= 0 or height <= 0:
        image.close()
        raise InvalidImage(f"degenerate image size: {width}x{height}")
    return SourceImage(
        image=image,
        mime_type=mime_type,
        natural_width=width,
        natural_height=height,
        name=name,
    )


def decode_source(data: bytes, mime_type: str, name: str = "") -> SourceImage:
    """Decode an uploaded or captured image resource into a SourceImage.

    The MIME type is checked before any decode work.
    """
    mime = ensure_image_mime(mime_type)
    if not data:
        raise InvalidImage("empty image resource")
    heif = mime in {"image/heif", "image/heic"}
    image = _decode_bytes(data, heif=heif)
    LOGGER.debug("decoded %s (%s) %sx%s", name or "<bytes>", mime, image.width, image.height)
    return _source_from_image(image, mime, name)


def load_source(path: Path, mime_type: str | None = None) -> SourceImage:
    ext = path.suffix.lower()
    mime = ensure_image_mime(mime_type or guess_mime_type(path))
    if ext and ext not in SUPPORTED_EXTENSIONS:
        raise InvalidImage(f"unsupported image format: {path.suffix}")
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise InvalidImage(f"cannot read image: {path}") from exc
    return decode_source(data, mime, name=path.name)


def decode_raster(source: bytes | str | Path | Image.Image, asset: str) -> Image.Image:
    """Decode a compositing input, tagging failures with the asset name."""
    if isinstance(source, Image.Image):
        return source.copy()
    try:
        if isinstance(source, (bytes, bytearray)):
            with Image.open(io.BytesIO(source)) as image:
                return image.convert("RGBA").copy()
        path = Path(source)
        if path.suffix.lower() in HEIF_EXTENSIONS:
            _register_heif_opener()
        with Image.open(path) as image:
            return image.convert("RGBA").copy()
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ImageLoadError(asset, f"failed to load {asset} image: {exc}") from exc
