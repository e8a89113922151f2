from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import typer

from posterstamp.config import load_config, write_default_config
from posterstamp.editor.transform import TransformEditor
from posterstamp.errors import PosterStampError
from posterstamp.export import save_poster
from posterstamp.render.compositor import compose
from posterstamp.template_loader import list_builtin_templates, load_template

app = typer.Typer(add_completion=False, no_args_is_help=True, help="Attendee poster CLI.")
LOGGER = logging.getLogger("posterstamp")


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def _editor_from_config(cfg: dict[str, Any]) -> TransformEditor:
    editor_cfg = cfg.get("editor") or {}
    return TransformEditor(
        int(editor_cfg.get("viewport_size") or 300),
        min_scale=float(editor_cfg.get("min_scale") or 0.5),
        max_scale=float(editor_cfg.get("max_scale") or 5.0),
        crop_size=editor_cfg.get("crop_size") or None,
        crop_quality=int(editor_cfg.get("crop_quality") or 80),
        fill_color=str(editor_cfg.get("fill_color") or "#000000"),
    )


def _apply_transform(editor: TransformEditor, scale: float | None, pan_x: float, pan_y: float) -> None:
    if scale is not None:
        editor.set_scale(scale)
    if pan_x or pan_y:
        editor.pan(pan_x, pan_y)
    transform = editor.transform
    LOGGER.info(
        "transform scale=%.4f position=(%.1f, %.1f)",
        transform.scale,
        transform.position.x,
        transform.position.y,
    )


@app.command()
def render(
    photo: Path = typer.Argument(..., exists=True, dir_okay=False, resolve_path=True),
    template: str | None = typer.Option(None, "--template", help="Template name or .yaml/.json path."),
    out: Path | None = typer.Option(None, "--out", help="Output directory."),
    event_id: str | None = typer.Option(None, "--event-id", help="Prefix of the output filename."),
    scale: float | None = typer.Option(None, "--scale", help="Zoom scale (default: cover fit)."),
    pan_x: float = typer.Option(0.0, "--pan-x", help="Horizontal pan in viewport pixels."),
    pan_y: float = typer.Option(0.0, "--pan-y", help="Vertical pan in viewport pixels."),
    font: Path | None = typer.Option(None, "--font", exists=True, dir_okay=False, help="Font file override."),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Crop a photo into the frame and compose the poster."""
    _setup_logging(log_level)
    cfg = load_config()
    template_name = template or str(cfg.get("template") or "poster1")
    out_dir = out or Path(cfg.get("output_dir") or Path.cwd())
    font_path = font or (Path(cfg["font_path"]) if cfg.get("font_path") else None)

    try:
        poster_template = load_template(template_name)
        with _editor_from_config(cfg) as editor:
            editor.load(photo)
            _apply_transform(editor, scale, pan_x, pan_y)
            cropped = editor.confirm()
        poster = asyncio.run(compose(poster_template, cropped, font_path=font_path))
        target = save_poster(poster, out_dir, event_id or str(cfg.get("event_id") or "poster"))
    except PosterStampError as exc:
        typer.secho(f"Render failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(1)
    typer.echo(f"Poster written: {target}")


@app.command()
def crop(
    photo: Path = typer.Argument(..., exists=True, dir_okay=False, resolve_path=True),
    out: Path = typer.Option(..., "--out", dir_okay=False, help="Output JPEG path."),
    scale: float | None = typer.Option(None, "--scale", help="Zoom scale (default: cover fit)."),
    pan_x: float = typer.Option(0.0, "--pan-x"),
    pan_y: float = typer.Option(0.0, "--pan-y"),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Write only the confirmed square crop."""
    _setup_logging(log_level)
    cfg = load_config()
    try:
        with _editor_from_config(cfg) as editor:
            editor.load(photo)
            _apply_transform(editor, scale, pan_x, pan_y)
            cropped = editor.confirm()
    except PosterStampError as exc:
        typer.secho(f"Crop failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(1)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(cropped.data)
    typer.echo(f"Crop written: {out} ({cropped.size}x{cropped.size})")


@app.command("templates")
def templates_list() -> None:
    """List built-in poster templates."""
    for name in list_builtin_templates():
        typer.echo(name)


@app.command("init-config")
def init_config(
    force: bool = typer.Option(False, "--force", help="Overwrite existing config file."),
) -> None:
    path = write_default_config(force=force)
    typer.echo(f"Config initialized: {path}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
