from __future__ import annotations


class PosterStampError(Exception):
    """Base class for every error raised by posterstamp."""


class InvalidImage(PosterStampError):
    """Input is not an image, or its dimensions are degenerate."""


class ImageLoadError(PosterStampError):
    """A template or user raster failed to decode.

    ``asset`` names which input failed: ``"template"`` or ``"user"``.
    """

    def __init__(self, asset: str, message: str | None = None) -> None:
        self.asset = asset
        super().__init__(message or f"failed to load {asset} image")


class EncodeError(PosterStampError):
    """Render target unavailable or the raster could not be encoded."""


class ShareUnsupported(PosterStampError):
    """No share dispatcher accepted the poster; callers fall back to download."""


class EditorStateError(PosterStampError):
    """Editor operation called without a loaded source image."""


class TemplateError(PosterStampError):
    """Template file is missing or malformed."""
