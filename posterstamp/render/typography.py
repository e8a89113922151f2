from __future__ import annotations

import logging
import platform
from functools import lru_cache
from pathlib import Path

from PIL import ImageDraw, ImageFont

from posterstamp.models import FontSpec

LOGGER = logging.getLogger(__name__)


def _system_font_candidates(bold: bool) -> list[Path]:
    system = platform.system().lower()
    if "windows" in system:
        if bold:
            return [Path(r"C:\Windows\Fonts\arialbd.ttf"), Path(r"C:\Windows\Fonts\segoeuib.ttf")]
        return [Path(r"C:\Windows\Fonts\arial.ttf"), Path(r"C:\Windows\Fonts\segoeui.ttf")]
    if "darwin" in system:
        if bold:
            return [
                Path("/System/Library/Fonts/Supplemental/Arial Bold.ttf"),
                Path("/Library/Fonts/Arial Bold.ttf"),
                Path("/System/Library/Fonts/Helvetica.ttc"),
            ]
        return [
            Path("/System/Library/Fonts/Supplemental/Arial.ttf"),
            Path("/Library/Fonts/Arial.ttf"),
            Path("/System/Library/Fonts/Helvetica.ttc"),
        ]
    if bold:
        return [
            Path("/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf"),
            Path("/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"),
            Path("/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf"),
        ]
    return [
        Path("/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf"),
        Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
        Path("/usr/share/fonts/dejavu/DejaVuSans.ttf"),
    ]


@lru_cache(maxsize=64)
def _load_font_cached(font_path: str | None, size: int, bold: bool) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    candidates: list[Path] = []
    if font_path:
        candidates.append(Path(font_path))
    candidates.extend(_system_font_candidates(bold))
    for candidate in candidates:
        if candidate.exists():
            try:
                return ImageFont.truetype(str(candidate), size=size)
            except OSError:
                LOGGER.debug("font unusable: %s", candidate)
                continue
    LOGGER.debug("no system font found, using Pillow default at %spx", size)
    return ImageFont.load_default(size=size)


def load_font(spec: FontSpec, font_path: Path | None = None) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Resolve a font spec; a spec path wins over the configured override."""
    path = spec.path or (str(font_path) if font_path else None)
    return _load_font_cached(path, max(1, int(spec.size)), bool(spec.bold))


def text_size(draw: ImageDraw.ImageDraw, text: str, font: ImageFont.ImageFont) -> tuple[int, int]:
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    return right - left, bottom - top
