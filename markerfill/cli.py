"""
CLI Interface
=============
Command-line interface for the template engine.

Usage:
    python -m markerfill detect <pdf_path>
    python -m markerfill upload <pdf_path> [--storage DIR]
    python -m markerfill manifest <template_id>
    python -m markerfill generate <template_id> --set name=value -o out.pdf
    python -m markerfill calc <daily>
    python -m markerfill migrate
    python -m markerfill info <pdf_path>
    python -m markerfill serve
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .calculations import calculate_consumption
from .detector import DetectorConfig, MarkerDetector
from .engine import EngineConfig, TemplateEngine
from .errors import MarkerFillError
from .models import CalculationOptions, FillOptions, TextField

console = Console()

storage_option = click.option(
    "--storage", "-s",
    default=lambda: os.getenv("MARKERFILL_STORAGE_DIR", "storage"),
    show_default="storage",
    help="Registry directory (manifests/ and templates/)",
)
log_level_option = click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level",
)


def _engine(storage: str, log_level: str, font_path: str = None) -> TemplateEngine:
    return TemplateEngine(EngineConfig(
        storage_dir=storage,
        font_path=font_path or os.getenv("MARKERFILL_FONT_PATH") or None,
        log_level=log_level,
    ))


def _fail(error: MarkerFillError):
    console.print(f"[red]Error ({error.kind}):[/] {error.message}")
    if error.detail:
        console.print(f"[dim]{error.detail}[/]")
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="markerfill")
def cli():
    """markerfill: detect markers in PDF templates and fill them."""
    pass


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--gap", default=6.0, type=float, help="Gap between marker and value")
@click.option("--json-output", is_flag=True, default=False, help="Print fields as JSON")
def detect(pdf_path: str, gap: float, json_output: bool):
    """Detect marker fields in a PDF without storing anything."""
    detector = MarkerDetector(DetectorConfig(gap=gap))
    try:
        result = detector.scan(Path(pdf_path).read_bytes())
    except MarkerFillError as e:
        _fail(e)

    if json_output:
        click.echo(json.dumps(
            [f.model_dump(mode="json", by_alias=True) for f in result.fields],
            indent=2,
            ensure_ascii=False,
        ))
        return

    console.print(
        f"[bold]{os.path.basename(pdf_path)}[/]: "
        f"{result.page_count} page(s), {len(result.fields)} field(s)"
    )
    _display_fields(result.fields)


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True, dir_okay=False))
@storage_option
@click.option("--gap", default=None, type=float, help="Gap between marker and value")
@log_level_option
@click.option("--json-output", is_flag=True, default=False, help="Print manifest as JSON")
def upload(pdf_path: str, storage: str, gap: float, log_level: str, json_output: bool):
    """Register a template and store its manifest."""
    engine = _engine(storage, log_level)
    try:
        registration = engine.upload_file(pdf_path, FillOptions(gap=gap))
    except MarkerFillError as e:
        _fail(e)

    if json_output:
        click.echo(json.dumps(
            registration.manifest.to_json_dict(), indent=2, ensure_ascii=False
        ))
        return

    status = "[yellow]cached[/]" if not registration.created else "[green]created[/]"
    console.print(
        Panel.fit(
            f"[bold cyan]Template registered[/] ({status})\n"
            f"[dim]templateId: {registration.template_id}[/]",
            border_style="cyan",
        )
    )
    _display_fields(registration.manifest.fields)


@cli.command()
@click.argument("template_id")
@storage_option
@log_level_option
def manifest(template_id: str, storage: str, log_level: str):
    """Print the stored manifest of a template."""
    engine = _engine(storage, log_level)
    try:
        stored = engine.get_manifest(template_id)
    except MarkerFillError as e:
        _fail(e)
    click.echo(json.dumps(stored.to_json_dict(), indent=2, ensure_ascii=False))


@cli.command()
@click.argument("template_id")
@storage_option
@click.option("--values", "values_file", type=click.Path(exists=True, dir_okay=False),
              help="JSON file with field values")
@click.option("--set", "assignments", multiple=True, metavar="NAME=VALUE",
              help="Field value (repeatable)")
@click.option("--output", "-o", default="filled_template.pdf", help="Output PDF path")
@click.option("--font-size", default=None, type=float, help="Override font size")
@click.option("--font-path", default=None, help="Unicode font file (TTF/OTF)")
@click.option("--calculate", is_flag=True, default=False,
              help="Derive max_hourly and msr_secondly from msr_daily")
@log_level_option
def generate(
    template_id: str,
    storage: str,
    values_file: str,
    assignments: tuple,
    output: str,
    font_size: float,
    font_path: str,
    calculate: bool,
    log_level: str,
):
    """Fill a registered template and write the resulting PDF."""
    values: dict = {}
    if values_file:
        with open(values_file, "r", encoding="utf-8") as f:
            loaded = json.load(f)
        if not isinstance(loaded, dict):
            raise click.BadParameter("values file must contain a JSON object")
        values.update(loaded)
    for item in assignments:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"expected NAME=VALUE, got {item!r}")
        values[name.strip()] = value

    options = FillOptions(
        font_size=font_size,
        calculation_options=CalculationOptions() if calculate else None,
    )

    engine = _engine(storage, log_level, font_path)
    try:
        pdf_bytes = engine.generate(template_id, values, options)
    except MarkerFillError as e:
        _fail(e)

    Path(output).write_bytes(pdf_bytes)
    console.print(f"[green]✓[/] Wrote {output} ({len(pdf_bytes) / 1024:.1f} KB)")


@cli.command()
@click.argument("daily", type=float)
@click.option("--multiplier", default=3.9, type=float, help="Hourly multiplier")
@click.option("--divisor", default=3.6, type=float, help="Secondly divisor")
@click.option("--precision", default=2, type=int, help="Decimal places")
def calc(daily: float, multiplier: float, divisor: float, precision: int):
    """Compute hourly and secondly consumption from a daily figure."""
    try:
        result = calculate_consumption(daily, CalculationOptions(
            hourly_multiplier=multiplier,
            secondly_divisor=divisor,
            precision=precision,
        ))
    except ValueError as e:
        raise click.BadParameter(str(e))

    table = Table(title="Consumption", border_style="cyan")
    table.add_column("Quantity", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Daily", str(result.daily))
    table.add_row("Hourly", str(result.hourly))
    table.add_row("Secondly", str(result.secondly))
    console.print(table)


@cli.command()
@storage_option
@log_level_option
def migrate(storage: str, log_level: str):
    """Rename stored templates to their canonical names."""
    engine = _engine(storage, log_level)
    report = engine.registry.migrate()

    table = Table(title="Migration Summary", border_style="green")
    table.add_column("Metric", style="bold")
    table.add_column("Count", justify="right")
    table.add_row("Manifests updated", str(report.updated_manifests))
    table.add_row("Files renamed", str(report.renamed_files))
    table.add_row("Warnings", str(report.warnings))
    console.print(table)


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True, dir_okay=False))
def info(pdf_path: str):
    """Display PDF file information."""
    import fitz

    from .registry import compute_template_id

    data = Path(pdf_path).read_bytes()
    doc = fitz.open(stream=data, filetype="pdf")

    table = Table(title="PDF Information", border_style="cyan")
    table.add_column("Property", style="bold")
    table.add_column("Value")

    table.add_row("File", os.path.basename(pdf_path))
    table.add_row("Template ID", compute_template_id(data))
    table.add_row("Pages", str(doc.page_count))
    table.add_row("File Size", f"{len(data) / 1024:.1f} KB")
    table.add_row("Form Fields", str(sum(len(list(page.widgets())) for page in doc)))

    metadata = doc.metadata or {}
    for key in ["title", "author", "creator", "producer"]:
        val = metadata.get(key, "")
        if val:
            table.add_row(key.title(), val)

    doc.close()
    console.print(table)


@cli.command()
@click.option("--host", default="0.0.0.0", help="Server host")
@click.option("--port", default=5000, type=int, help="Server port")
@click.option("--debug", is_flag=True, default=False, help="Debug mode")
def serve(host: str, port: int, debug: bool):
    """Start the HTTP service."""
    from .server import run_server

    console.print(
        Panel.fit(
            f"[bold cyan]markerfill service v{__version__}[/]\n"
            f"[dim]Starting on {host}:{port}[/]",
            border_style="cyan",
        )
    )
    run_server(host=host, port=port, debug=debug)


# ─── Display Helpers ──────────────────────────────────────────────────────────


def _display_fields(fields):
    if not fields:
        console.print("[yellow]No fields detected[/]")
        return

    table = Table(title="Fields", border_style="cyan")
    table.add_column("#", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Marker")
    table.add_column("Page", justify="right")
    table.add_column("Draw at", justify="right")

    for index, field in enumerate(fields, start=1):
        if isinstance(field, TextField):
            where = f"{field.draw.x:.1f}, {field.draw.y:.1f}"
        else:
            where = f"form: {field.acroform_name}"
        table.add_row(str(index), field.name, field.marker, str(field.page), where)

    console.print(table)


if __name__ == "__main__":
    cli()
