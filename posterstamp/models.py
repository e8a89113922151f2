from __future__ import annotations

from dataclasses import dataclass, field, replace

from PIL import Image

TEXT_ANCHOR_EDGES = ("top", "center", "bottom")


@dataclass(slots=True)
class SourceImage:
    """Decoded photo owned by one editor session."""

    image: Image.Image | None
    mime_type: str
    natural_width: int
    natural_height: int
    name: str = ""

    @property
    def aspect(self) -> float:
        return self.natural_width / float(self.natural_height)

    @property
    def closed(self) -> bool:
        return self.image is None

    def close(self) -> None:
        if self.image is not None:
            self.image.close()
            self.image = None


@dataclass(frozen=True, slots=True)
class Position:
    x: float = 0.0
    y: float = 0.0

    def moved(self, dx: float, dy: float) -> Position:
        return Position(self.x + dx, self.y + dy)


@dataclass(frozen=True, slots=True)
class ViewportTransform:
    scale: float
    position: Position = field(default_factory=Position)

    def with_scale(self, scale: float) -> ViewportTransform:
        return replace(self, scale=scale)

    def with_position(self, position: Position) -> ViewportTransform:
        return replace(self, position=position)


@dataclass(frozen=True, slots=True)
class CroppedRaster:
    data: bytes
    size: int
    mime_type: str = "image/jpeg"

    def __bool__(self) -> bool:
        return bool(self.data)


@dataclass(frozen=True, slots=True)
class FrameGeometry:
    center_x: float
    center_y: float
    radius: float

    @property
    def bbox(self) -> tuple[int, int, int, int]:
        # round each edge, not the diameter
        return (
            int(round(self.center_x - self.radius)),
            int(round(self.center_y - self.radius)),
            int(round(self.center_x + self.radius)),
            int(round(self.center_y + self.radius)),
        )

    @property
    def top(self) -> float:
        return self.center_y - self.radius

    @property
    def bottom(self) -> float:
        return self.center_y + self.radius


@dataclass(frozen=True, slots=True)
class FontSpec:
    size: int
    bold: bool = False
    path: str | None = None


@dataclass(frozen=True, slots=True)
class GradientStop:
    offset: float
    color: str


@dataclass(frozen=True, slots=True)
class TextFill:
    """Flat color, or a horizontal gradient spanning the output width."""

    color: str = "#FFFFFF"
    stops: tuple[GradientStop, ...] = ()

    @property
    def is_gradient(self) -> bool:
        return len(self.stops) >= 2


@dataclass(frozen=True, slots=True)
class TextStroke:
    color: str = "#000000"
    width: int = 2


@dataclass(frozen=True, slots=True)
class TextAnchor:
    """Vertical offset from an edge of the frame; text stays horizontally centred."""

    edge: str = "center"
    offset_y: float = 0.0
    offset_x: float = 0.0

    def resolve(self, frame: FrameGeometry, output_width: int) -> tuple[float, float]:
        if self.edge == "top":
            base_y = frame.top
        elif self.edge == "bottom":
            base_y = frame.bottom
        else:
            base_y = frame.center_y
        return (output_width / 2.0 + self.offset_x, base_y + self.offset_y)


@dataclass(frozen=True, slots=True)
class TextLayer:
    content: str
    font: FontSpec
    fill: TextFill = field(default_factory=TextFill)
    stroke: TextStroke | None = None
    anchor: TextAnchor = field(default_factory=TextAnchor)


@dataclass(frozen=True, slots=True)
class PosterTemplate:
    name: str
    background: str
    frame: FrameGeometry
    text_layers: tuple[TextLayer, ...] = ()
    width: int = 1080
    height: int = 1920

    @property
    def output_size(self) -> tuple[int, int]:
        return (self.width, self.height)


@dataclass(frozen=True, slots=True)
class ComposedPoster:
    data: bytes
    width: int
    height: int
    mime_type: str = "image/png"

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)
