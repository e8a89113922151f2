from __future__ import annotations

import copy
import os
import platform
from pathlib import Path
from typing import Any

import yaml

from posterstamp.constants import (
    CROP_FILL_COLOR,
    CROP_JPEG_QUALITY,
    DEFAULT_EVENT_ID,
    DEFAULT_TEMPLATE,
    MAX_SCALE,
    MIN_SCALE,
    VIEWPORT_SIZE,
)

DEFAULT_CONFIG: dict[str, Any] = {
    "template": DEFAULT_TEMPLATE,
    "event_id": DEFAULT_EVENT_ID,
    "output_dir": None,
    "font_path": None,
    "editor": {
        "viewport_size": VIEWPORT_SIZE,
        "min_scale": MIN_SCALE,
        "max_scale": MAX_SCALE,
        "crop_size": None,
        "crop_quality": CROP_JPEG_QUALITY,
        "fill_color": CROP_FILL_COLOR,
    },
}


def get_user_data_dir() -> Path:
    env_dir = os.environ.get("POSTERSTAMP_HOME")
    if env_dir:
        return Path(env_dir)

    system_name = platform.system().lower()
    if system_name == "windows":
        base = (
            os.environ.get("APPDATA")
            or os.environ.get("LOCALAPPDATA")
            or str(Path.home() / "AppData" / "Roaming")
        )
        return Path(base) / "PosterStamp"
    if system_name == "darwin":
        return Path.home() / "Library" / "Application Support" / "PosterStamp"

    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config_home:
        return Path(xdg_config_home) / "PosterStamp"
    return Path.home() / ".config" / "PosterStamp"


def get_config_path() -> Path:
    return get_user_data_dir() / "Config" / "config.yaml"


def get_template_dir() -> Path:
    return get_user_data_dir() / "templates"


def get_assets_dir() -> Path:
    return get_user_data_dir() / "assets"


def _deep_merge(base: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in incoming.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Path | None = None) -> dict[str, Any]:
    cfg_path = path or get_config_path()
    if not cfg_path.exists():
        return copy.deepcopy(DEFAULT_CONFIG)

    text = cfg_path.read_text(encoding="utf-8")
    loaded = yaml.safe_load(text) or {}
    if not isinstance(loaded, dict):
        loaded = {}
    return _deep_merge(DEFAULT_CONFIG, loaded)


def write_default_config(path: Path | None = None, force: bool = False) -> Path:
    cfg_path = path or get_config_path()
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    if cfg_path.exists() and not force:
        return cfg_path
    cfg_path.write_text(
        yaml.safe_dump(copy.deepcopy(DEFAULT_CONFIG), sort_keys=False, allow_unicode=True),
        encoding="utf-8",
    )
    return cfg_path
