from __future__ import annotations

import json
import logging
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from PIL import ImageColor

from posterstamp.config import get_assets_dir, get_template_dir
from posterstamp.constants import POSTER_HEIGHT, POSTER_WIDTH
from posterstamp.errors import TemplateError
from posterstamp.models import (
    TEXT_ANCHOR_EDGES,
    FontSpec,
    FrameGeometry,
    GradientStop,
    PosterTemplate,
    TextAnchor,
    TextFill,
    TextLayer,
    TextStroke,
)

LOGGER = logging.getLogger(__name__)

_TEMPLATE_SUFFIXES = (".yaml", ".yml", ".json")


def _clamp_int(value: Any, minimum: int, maximum: int, fallback: int) -> int:
    try:
        parsed = int(float(value))
    except (TypeError, ValueError):
        parsed = fallback
    return max(minimum, min(maximum, parsed))


def _clamp_float(value: Any, minimum: float, maximum: float, fallback: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        parsed = fallback
    return max(minimum, min(maximum, parsed))


def safe_color(value: Any, fallback: str) -> str:
    text = str(value or "").strip()
    if not text:
        return fallback
    try:
        ImageColor.getrgb(text)
    except ValueError:
        return fallback
    return text


def list_builtin_templates() -> list[str]:
    files = resources.files("posterstamp.templates")
    names = []
    for item in files.iterdir():
        if item.name.endswith(_TEMPLATE_SUFFIXES):
            names.append(Path(item.name).stem)
    return sorted(set(names))


def _parse_text(text: str, suffix: str, origin: str) -> dict[str, Any]:
    try:
        data = json.loads(text) if suffix == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise TemplateError(f"template is not valid {suffix.lstrip('.')}: {origin}: {exc}") from exc
    if not isinstance(data, dict):
        raise TemplateError(f"template file is not a dict: {origin}")
    return data


def _load_file(path: Path) -> dict[str, Any]:
    return _parse_text(path.read_text(encoding="utf-8"), path.suffix.lower(), str(path))


def _load_builtin(name: str) -> tuple[dict[str, Any], Path | None]:
    pkg = resources.files("posterstamp.templates")
    for suffix in _TEMPLATE_SUFFIXES:
        candidate = pkg / f"{name}{suffix}"
        if candidate.is_file():
            data = _parse_text(candidate.read_text(encoding="utf-8"), suffix, f"builtin:{name}")
            return (data, None)
    user_dir = get_template_dir()
    for suffix in _TEMPLATE_SUFFIXES:
        candidate_path = user_dir / f"{name}{suffix}"
        if candidate_path.is_file():
            return (_load_file(candidate_path), candidate_path.parent)
    raise TemplateError(f"template not found: {name}")


def _normalize_fill(data: Any) -> TextFill:
    if isinstance(data, str) or data is None:
        return TextFill(color=safe_color(data, "#FFFFFF"))
    if not isinstance(data, dict):
        raise TemplateError(f"invalid text fill: {data!r}")
    stops_raw = data.get("gradient") or data.get("stops") or []
    stops: list[GradientStop] = []
    for item in stops_raw:
        if not isinstance(item, dict):
            continue
        stops.append(
            GradientStop(
                offset=round(_clamp_float(item.get("offset"), 0.0, 1.0, 0.0), 4),
                color=safe_color(item.get("color"), "#FFFFFF"),
            )
        )
    stops.sort(key=lambda stop: stop.offset)
    return TextFill(color=safe_color(data.get("color"), "#FFFFFF"), stops=tuple(stops))


def _normalize_stroke(data: Any) -> TextStroke | None:
    if not data:
        return None
    if not isinstance(data, dict):
        raise TemplateError(f"invalid text stroke: {data!r}")
    width = _clamp_int(data.get("width"), 0, 40, 2)
    if width <= 0:
        return None
    return TextStroke(color=safe_color(data.get("color"), "#000000"), width=width)


def _normalize_anchor(data: Any) -> TextAnchor:
    if not isinstance(data, dict):
        data = {}
    edge = str(data.get("edge") or "center").strip().lower()
    if edge not in TEXT_ANCHOR_EDGES:
        edge = "center"
    return TextAnchor(
        edge=edge,
        offset_y=_clamp_float(data.get("offset_y"), -10000.0, 10000.0, 0.0),
        offset_x=_clamp_float(data.get("offset_x"), -10000.0, 10000.0, 0.0),
    )


def normalize_text_layer(data: dict[str, Any]) -> TextLayer:
    font_raw = data.get("font") or {}
    if not isinstance(font_raw, dict):
        font_raw = {}
    font_path = font_raw.get("path")
    font = FontSpec(
        size=_clamp_int(font_raw.get("size"), 8, 300, 48),
        bold=bool(font_raw.get("bold", False)),
        path=str(font_path) if font_path else None,
    )
    return TextLayer(
        content=str(data.get("content") or ""),
        font=font,
        fill=_normalize_fill(data.get("fill")),
        stroke=_normalize_stroke(data.get("stroke")),
        anchor=_normalize_anchor(data.get("anchor")),
    )


def _resolve_background(background: str, base_dir: Path | None) -> str:
    candidate = Path(background)
    if candidate.is_absolute():
        return str(candidate)
    search = []
    if base_dir is not None:
        search.append(base_dir / candidate)
    search.append(get_assets_dir() / candidate)
    for path in search:
        if path.exists():
            return str(path)
    # Unresolved paths surface as ImageLoadError("template") at compose time.
    return str(search[-1])


def normalize_template_dict(data: dict[str, Any], base_dir: Path | None = None) -> PosterTemplate:
    name = str(data.get("name") or "custom")
    background = str(data.get("background") or "").strip()
    if not background:
        raise TemplateError(f"template {name!r} has no background image")

    size = data.get("size") or {}
    if not isinstance(size, dict):
        size = {}
    width = _clamp_int(size.get("width"), 1, 10000, POSTER_WIDTH)
    height = _clamp_int(size.get("height"), 1, 10000, POSTER_HEIGHT)

    frame_raw = data.get("frame") or {}
    if not isinstance(frame_raw, dict):
        frame_raw = {}
    frame = FrameGeometry(
        center_x=_clamp_float(frame_raw.get("center_x"), 0.0, float(width), width / 2.0),
        center_y=_clamp_float(frame_raw.get("center_y"), 0.0, float(height), height / 2.0),
        radius=_clamp_float(frame_raw.get("radius"), 1.0, float(max(width, height)), 310.0),
    )

    layers_raw = data.get("text_layers") or []
    if not isinstance(layers_raw, list):
        raise TemplateError(f"template {name!r}: text_layers must be a list")
    layers = tuple(normalize_text_layer(item) for item in layers_raw if isinstance(item, dict))

    return PosterTemplate(
        name=name,
        background=_resolve_background(background, base_dir),
        frame=frame,
        text_layers=layers,
        width=width,
        height=height,
    )


def load_template(template_name_or_path: str | Path) -> PosterTemplate:
    path = Path(template_name_or_path)
    if path.suffix.lower() in _TEMPLATE_SUFFIXES and path.exists():
        raw = _load_file(path)
        base_dir: Path | None = path.parent
        raw.setdefault("name", path.stem)
    else:
        raw, base_dir = _load_builtin(str(template_name_or_path))
    template = normalize_template_dict(raw, base_dir=base_dir)
    LOGGER.debug("template %s: background=%s layers=%s", template.name, template.background, len(template.text_layers))
    return template
