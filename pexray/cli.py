from __future__ import annotations

import json
from importlib import metadata
from pathlib import Path
from typing import Optional

import typer

from pexray.config import AppConfig, load_config
from pexray.errors import DecodeError
from pexray.image import Image, decode
from pexray.log import setup_logging
from pexray.model import build_report
from pexray.reporters.console import console, render_console, render_sections

app = typer.Typer(add_completion=False)


def version_callback(value: bool):
    if value:
        try:
            v = metadata.version("pexray")
        except metadata.PackageNotFoundError:
            v = "0.1.0-dev"
        typer.echo(f"pexray version: {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None, "--version", callback=version_callback, is_eager=True, help="Show version and exit."
    ),
):
    """
    Static PE/COFF header decoder. Never executes or modifies input.
    """
    pass


def read_file_bytes(path: Path, *, max_bytes: int) -> bytes:
    size = path.stat().st_size
    if size > max_bytes:
        raise typer.BadParameter(f"{path.name} is {size} bytes, over max_input_bytes={max_bytes}.")
    return path.read_bytes()


def hexdump(data: bytes, *, base: int = 0, width: int = 16) -> str:
    lines = []
    for i in range(0, len(data), width):
        chunk = data[i : i + width]
        hex_part = " ".join(f"{b:02x}" for b in chunk)
        text = "".join(chr(b) if 0x20 <= b < 0x7F else "." for b in chunk)
        lines.append(f"{base + i:08x}  {hex_part:<{width * 3 - 1}}  {text}")
    return "\n".join(lines)


def _load(path: str, cfg: AppConfig) -> Image:
    p = Path(path).expanduser().resolve()
    if not p.is_file():
        raise typer.BadParameter(f"Path is not a file: {p}")
    data = read_file_bytes(p, max_bytes=cfg.limits.max_input_bytes)
    try:
        return decode(data)
    except DecodeError as e:
        typer.secho(f"Error decoding {p.name}: {e.code}: {e.message}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


def _setup(config: Optional[str]) -> AppConfig:
    cfg = load_config(config)
    setup_logging(cfg.log.level)
    return cfg


@app.command()
def inspect(
    path: str = typer.Argument(..., help="PE file to decode."),
    config: str = typer.Option(None, "--config", help="Path to YAML config."),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON."),
):
    """
    Decode and print the DOS, COFF, optional header and section table.
    """
    cfg = _setup(config)
    image = _load(path, cfg)
    report = build_report(image, schema_version=cfg.schema_version)
    if as_json:
        typer.echo(json.dumps(report.model_dump(), indent=2, ensure_ascii=False))
    else:
        render_console(report, source=Path(path).name)


@app.command()
def sections(
    path: str = typer.Argument(..., help="PE file to decode."),
    config: str = typer.Option(None, "--config", help="Path to YAML config."),
    dump: str = typer.Option(None, "--dump", help="Hexdump the raw data of the named section."),
):
    """
    List section headers, optionally hexdumping one section's raw bytes.
    """
    cfg = _setup(config)
    image = _load(path, cfg)
    report = build_report(image, schema_version=cfg.schema_version)
    console.print(render_sections(report.sections))

    if dump is None:
        return
    match = next((s for s in image.sections if s.name == dump), None)
    if match is None:
        raise typer.BadParameter(f"No section named {dump!r}.")
    try:
        raw = match.raw_data()
    except DecodeError as e:
        typer.secho(f"Section {dump} raw data unreadable: {e.code}: {e.message}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    limit = cfg.limits.max_dump_bytes
    typer.echo(hexdump(raw[:limit], base=match.pointer_to_raw_data))
    if len(raw) > limit:
        typer.echo(f"... {len(raw) - limit} more byte(s) not shown (max_dump_bytes={limit})")


if __name__ == "__main__":
    app()
