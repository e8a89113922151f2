"""Shared fixtures: Pillow-generated photos and a poster template on disk."""

import io
from pathlib import Path

import pytest
from PIL import Image

TEMPLATE_COLOR = (40, 40, 40)


def encode_image(image: Image.Image, fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def solid_png(size: tuple[int, int], color) -> bytes:
    return encode_image(Image.new("RGB", size, color=color))


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch) -> Path:
    home = tmp_path / "home"
    monkeypatch.setenv("POSTERSTAMP_HOME", str(home))
    return home


@pytest.fixture
def template_png(tmp_path: Path) -> Path:
    path = tmp_path / "background.png"
    Image.new("RGB", (1080, 1920), color=TEMPLATE_COLOR).save(path)
    return path


@pytest.fixture
def template_yaml(tmp_path: Path, template_png: Path) -> Path:
    path = tmp_path / "event.yaml"
    path.write_text(
        "\n".join(
            [
                "name: event",
                f"background: {template_png.name}",
                "frame: {center_x: 540, center_y: 960, radius: 310}",
                "text_layers:",
                "  - content: HELLO",
                "    font: {size: 68, bold: true}",
                "    fill: '#FFFFFF'",
                "    stroke: {color: '#000000', width: 2}",
                "    anchor: {edge: center, offset_y: -720}",
            ]
        ),
        encoding="utf-8",
    )
    return path
