import asyncio
import io
from pathlib import Path

import pytest
from PIL import Image

from conftest import TEMPLATE_COLOR, solid_png
from posterstamp.errors import EncodeError, ImageLoadError
from posterstamp.models import (
    CroppedRaster,
    FontSpec,
    FrameGeometry,
    GradientStop,
    TextAnchor,
    TextFill,
    TextLayer,
    TextStroke,
)
from posterstamp.render import compositor
from posterstamp.render.compositor import (
    RenderTarget,
    compose,
    draw_clipped_photo,
    horizontal_gradient,
    render_poster,
)
from posterstamp.template_loader import load_template

FRAME = FrameGeometry(center_x=540, center_y=960, radius=310)


def _decode(data: bytes) -> Image.Image:
    with Image.open(io.BytesIO(data)) as image:
        return image.convert("RGB").copy()


def _red_crop() -> CroppedRaster:
    return CroppedRaster(data=solid_png((300, 300), (255, 0, 0)), size=300)


def _headline(offset_y: float = -720) -> TextLayer:
    return TextLayer(
        content="I'M ATTENDING",
        font=FontSpec(size=68, bold=True),
        fill=TextFill(color="#FFFFFF"),
        stroke=TextStroke(color="#000000", width=2),
        anchor=TextAnchor(edge="center", offset_y=offset_y),
    )


def test_compose_output_has_poster_dimensions(template_png: Path) -> None:
    poster = asyncio.run(compose(template_png, _red_crop(), FRAME, [], (1080, 1920)))

    assert poster.mime_type == "image/png"
    assert poster.size == (1080, 1920)
    with Image.open(io.BytesIO(poster.data)) as image:
        assert image.format == "PNG"
        assert image.size == (1080, 1920)


def test_compose_stretches_template_to_output_size(tmp_path: Path) -> None:
    small = tmp_path / "small.png"
    Image.new("RGB", (270, 480), color=TEMPLATE_COLOR).save(small)

    poster = asyncio.run(compose(small, _red_crop(), FRAME, [], (1080, 1920)))
    image = _decode(poster.data)

    assert image.size == (1080, 1920)
    assert image.getpixel((5, 5)) == TEMPLATE_COLOR


def test_photo_is_clipped_to_frame_circle(template_png: Path) -> None:
    poster = asyncio.run(compose(template_png, _red_crop(), FRAME, [], (1080, 1920)))
    image = _decode(poster.data)
    left, top, right, bottom = FRAME.bbox

    assert image.getpixel((540, 960)) == (255, 0, 0)
    # corners of the bounding square lie outside the circle
    for point in [(left + 2, top + 2), (right - 3, top + 2), (left + 2, bottom - 3), (right - 3, bottom - 3)]:
        assert image.getpixel(point) == TEMPLATE_COLOR
    # just beyond the radius on each axis
    assert image.getpixel((540, top - 2)) == TEMPLATE_COLOR
    assert image.getpixel((right + 2, 960)) == TEMPLATE_COLOR


def test_non_square_user_raster_stays_inside_circle(template_png: Path) -> None:
    wide = Image.new("RGB", (900, 300), color=(0, 0, 255))
    wide.paste((0, 255, 0), (0, 0, 300, 300))
    buffer = io.BytesIO()
    wide.save(buffer, format="PNG")

    poster = asyncio.run(compose(template_png, buffer.getvalue(), FRAME, [], (1080, 1920)))
    image = _decode(poster.data)
    left, top, right, bottom = FRAME.bbox

    # centre crop keeps the blue middle; the green left band is cut away
    assert image.getpixel((540, 960)) == (0, 0, 255)
    for x in range(0, 1080, 9):
        for y in (top - 1, bottom + 1):
            assert image.getpixel((x, y)) == TEMPLATE_COLOR
    for y in range(top, bottom, 9):
        assert image.getpixel((left - 1, y)) == TEMPLATE_COLOR
        assert image.getpixel((right + 1, y)) == TEMPLATE_COLOR
    assert image.getpixel((left + 3, top + 3)) == TEMPLATE_COLOR


def test_compose_is_deterministic(template_png: Path) -> None:
    layers = [
        _headline(),
        TextLayer(
            content="WORDCAMP",
            font=FontSpec(size=88, bold=True),
            fill=TextFill(
                stops=(
                    GradientStop(0.0, "#21759b"),
                    GradientStop(0.5, "#d54e21"),
                    GradientStop(1.0, "#21759b"),
                )
            ),
            stroke=TextStroke(color="#FFFFFF", width=3),
            anchor=TextAnchor(edge="center", offset_y=-620),
        ),
    ]

    async def _twice():
        first = await compose(template_png, _red_crop(), FRAME, layers, (1080, 1920))
        second = await compose(template_png, _red_crop(), FRAME, layers, (1080, 1920))
        return first, second

    first, second = asyncio.run(_twice())

    assert first.data == second.data


def test_concurrent_composes_do_not_share_state(template_png: Path) -> None:
    blue = CroppedRaster(data=solid_png((300, 300), (0, 0, 255)), size=300)

    async def _both():
        return await asyncio.gather(
            compose(template_png, _red_crop(), FRAME, [], (1080, 1920)),
            compose(template_png, blue, FRAME, [], (1080, 1920)),
        )

    red_poster, blue_poster = asyncio.run(_both())

    assert _decode(red_poster.data).getpixel((540, 960)) == (255, 0, 0)
    assert _decode(blue_poster.data).getpixel((540, 960)) == (0, 0, 255)


def test_text_layer_is_drawn_at_anchor_offset() -> None:
    background = Image.new("RGB", (1080, 1920), color=TEMPLATE_COLOR)
    photo = Image.new("RGB", (300, 300), color=(255, 0, 0))

    plain = render_poster(background, photo, FRAME, [], RenderTarget(1080, 1920)).convert("RGB")
    texted = render_poster(background, photo, FRAME, [_headline()], RenderTarget(1080, 1920)).convert("RGB")

    band = (0, 200, 1080, 280)
    assert plain.crop(band).getcolors() == [(1080 * 80, TEMPLATE_COLOR)]
    colors = {color for _, color in texted.crop(band).getcolors(maxcolors=1080 * 80)}
    assert (255, 255, 255) in colors
    assert (0, 0, 0) in colors
    # rows far from the anchor are untouched
    assert texted.crop((0, 1500, 1080, 1600)).getcolors() == [(1080 * 100, TEMPLATE_COLOR)]


def test_text_layers_paint_over_photo() -> None:
    background = Image.new("RGB", (1080, 1920), color=TEMPLATE_COLOR)
    photo = Image.new("RGB", (300, 300), color=(255, 0, 0))
    layer = TextLayer(content="XXXX", font=FontSpec(size=120, bold=True), fill=TextFill(color="#00FF00"))

    canvas = render_poster(background, photo, FRAME, [layer], RenderTarget(1080, 1920)).convert("RGB")
    colors = {color for _, color in canvas.crop((440, 900, 640, 1020)).getcolors(maxcolors=200 * 120)}

    assert (0, 255, 0) in colors
    assert (255, 0, 0) in colors


def test_horizontal_gradient_spans_full_width() -> None:
    stops = (GradientStop(0.0, "#21759b"), GradientStop(0.5, "#d54e21"), GradientStop(1.0, "#21759b"))

    gradient = horizontal_gradient((101, 3), stops)

    assert gradient.size == (101, 3)
    assert gradient.getpixel((0, 0)) == (0x21, 0x75, 0x9B, 255)
    assert gradient.getpixel((50, 2)) == (0xD5, 0x4E, 0x21, 255)
    assert gradient.getpixel((100, 1)) == (0x21, 0x75, 0x9B, 255)


def test_missing_template_is_tagged(tmp_path: Path) -> None:
    with pytest.raises(ImageLoadError) as exc_info:
        asyncio.run(compose(tmp_path / "missing.png", _red_crop(), FRAME, [], (1080, 1920)))

    assert exc_info.value.asset == "template"


def test_undecodable_user_raster_is_tagged(template_png: Path) -> None:
    broken = CroppedRaster(data=b"not-an-image", size=300)

    with pytest.raises(ImageLoadError) as exc_info:
        asyncio.run(compose(template_png, broken, FRAME, [], (1080, 1920)))

    assert exc_info.value.asset == "user"


def test_template_failure_reported_first_when_both_fail(tmp_path: Path) -> None:
    with pytest.raises(ImageLoadError) as exc_info:
        asyncio.run(compose(tmp_path / "missing.png", b"garbage", FRAME, [], (1080, 1920)))

    assert exc_info.value.asset == "template"


def test_empty_render_target_raises_encode_error(template_png: Path) -> None:
    with pytest.raises(EncodeError):
        asyncio.run(compose(template_png, _red_crop(), FRAME, [], target=RenderTarget(0, 0)))


def test_compose_accepts_poster_template(template_yaml: Path) -> None:
    template = load_template(template_yaml)

    poster = asyncio.run(compose(template, _red_crop()))
    image = _decode(poster.data)

    assert poster.size == (1080, 1920)
    assert image.getpixel((540, 960)) == (255, 0, 0)
    assert image.getpixel((5, 1900)) == TEMPLATE_COLOR


def test_transparent_template_areas_stay_transparent(tmp_path: Path) -> None:
    clear = tmp_path / "clear.png"
    Image.new("RGBA", (1080, 1920), (0, 0, 0, 0)).save(clear)

    poster = asyncio.run(compose(clear, _red_crop(), FRAME, [], (1080, 1920)))

    with Image.open(io.BytesIO(poster.data)) as image:
        rgba = image.convert("RGBA")
    assert rgba.getpixel((5, 5))[3] == 0
    assert rgba.getpixel((540, 960)) == (255, 0, 0, 255)


def test_fractional_frame_bbox_is_centred() -> None:
    left, top, right, bottom = FrameGeometry(center_x=50.5, center_y=50.5, radius=10.25).bbox

    assert (left, top, right, bottom) == (40, 40, 61, 61)
    assert (left + right) / 2 == 50.5


def test_clip_follows_uneven_rounded_bbox() -> None:
    frame = FrameGeometry(center_x=50.5, center_y=50.0, radius=10.25)
    canvas = Image.new("RGBA", (100, 100), TEMPLATE_COLOR + (255,))

    draw_clipped_photo(canvas, Image.new("RGB", (30, 30), (255, 0, 0)), frame)

    assert frame.bbox == (40, 40, 61, 60)
    assert canvas.getpixel((50, 50)) == (255, 0, 0, 255)
    assert canvas.getpixel((40, 40)) == TEMPLATE_COLOR + (255,)
    assert canvas.getpixel((50, 62)) == TEMPLATE_COLOR + (255,)


def test_failed_decode_closes_the_other_input(monkeypatch) -> None:
    closed: list[str] = []

    def _fake_decode(source, asset):
        if asset == "user":
            raise ImageLoadError("user")
        image = Image.new("RGBA", (4, 4))
        image.close = lambda: closed.append(asset)
        return image

    monkeypatch.setattr(compositor, "decode_raster", _fake_decode)

    with pytest.raises(ImageLoadError) as exc_info:
        asyncio.run(compositor.decode_inputs(b"template", b"user"))

    assert exc_info.value.asset == "user"
    assert closed == ["template"]
