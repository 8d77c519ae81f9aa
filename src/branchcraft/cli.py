"""Branchcraft CLI - typer application entry point."""

from __future__ import annotations

import asyncio
import atexit
import json
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from branchcraft.config import EditorConfigError, create_default_config, load_editor_config
from branchcraft.models.adventure import Adventure
from branchcraft.observability import close_file_logging, configure_logging, get_logger
from branchcraft.validation.engine import ValidationEngine
from branchcraft.validation.types import ValidationOptions

if TYPE_CHECKING:
    from branchcraft.config import EditorConfig
    from branchcraft.validation.types import Finding, ValidationResult

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="bc",
    help="Branchcraft: validate and analyze branching adventures.",
    no_args_is_help=True,
)
console = Console()
log = get_logger(__name__)

LEVEL_STYLES = {"error": "red", "warning": "yellow", "info": "cyan"}
LEVEL_ICONS = {"error": "✗", "warning": "!", "info": "i"}


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity: -v for INFO, -vv for DEBUG.",
        ),
    ] = 0,
    log_dir: Annotated[
        Path | None,
        typer.Option(
            "--log-dir",
            help="Also write debug.jsonl logs to this directory.",
            envvar="BRANCHCRAFT_LOG_DIR",
        ),
    ] = None,
) -> None:
    """Branchcraft: validate and analyze branching adventures."""
    configure_logging(verbosity=verbose, log_dir=log_dir)
    if log_dir is not None:
        atexit.register(close_file_logging)


ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="Editor config YAML (validation and history settings).",
        envvar="BRANCHCRAFT_CONFIG",
    ),
]


def _load_config(config_path: Path | None) -> EditorConfig:
    if config_path is None:
        return create_default_config()
    try:
        return load_editor_config(config_path)
    except EditorConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


def _load_adventure(path: Path) -> Adventure:
    """Read an adventure JSON file or exit with a readable error."""
    if not path.exists():
        console.print(f"[red]Error:[/red] File not found: {path}")
        raise typer.Exit(1)
    try:
        return Adventure.model_validate_json(path.read_text(encoding="utf-8"))
    except ValidationError as e:
        console.print(f"[red]Error:[/red] {path} is not a valid adventure")
        for err in e.errors()[:10]:
            location = ".".join(str(part) for part in err["loc"])
            console.print(f"  [red]•[/red] {location}: {err['msg']}")
        raise typer.Exit(1) from e


def _print_findings(title: str, findings: list[Finding], level: str) -> None:
    if not findings:
        return
    style = LEVEL_STYLES[level]
    console.print(f"[bold {style}]{title} ({len(findings)})[/bold {style}]")
    for finding in findings:
        location = f" [dim]({finding.location})[/dim]" if finding.location else ""
        console.print(f"  [{style}]{LEVEL_ICONS[level]}[/{style}] {finding.message}{location}")
        if finding.fix:
            console.print(f"    [dim]→ {finding.fix}[/dim]")


def _print_result(adventure: Adventure, result: ValidationResult) -> None:
    console.print()
    console.print(f"[bold]{adventure.title or adventure.id or 'Untitled adventure'}[/bold]")
    _print_findings("Errors", result.errors, "error")
    _print_findings("Warnings", result.warnings, "warning")
    _print_findings("Info", result.info, "info")
    console.print()
    if result.is_valid:
        console.print(f"[green]✓[/green] Valid ({result.summary})")
    else:
        console.print(f"[red]✗[/red] Invalid ({result.summary})")


@app.command()
def version() -> None:
    """Show version information."""
    from branchcraft import __version__

    console.print(f"Branchcraft v{__version__}")


@app.command()
def validate(
    path: Annotated[Path, typer.Argument(help="Adventure JSON file.")],
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the result as JSON."),
    ] = False,
    include_context: Annotated[
        bool,
        typer.Option("--include-context", help="Include reachability details in JSON output."),
    ] = False,
    config: ConfigOption = None,
) -> None:
    """Validate an adventure. Exits with status 1 when blocking errors are found."""
    editor_config = _load_config(config)
    adventure = _load_adventure(path)

    engine = ValidationEngine(editor_config.validation)
    options = ValidationOptions(include_context=include_context)
    result = asyncio.run(engine.validate(adventure, options))
    log.info("cli_validate", path=str(path), summary=result.summary)

    if as_json:
        data = result.to_dict()
        if include_context and result.context is not None:
            ctx = result.context
            data["context"] = {
                "reachable": ctx.in_scene_order(ctx.reachable),
                "orphaned": ctx.in_scene_order(ctx.orphaned),
                "dead_ends": ctx.in_scene_order(ctx.dead_ends),
                "circular_references": [list(cycle) for cycle in ctx.circular_references],
                "node_complexity": ctx.node_complexity,
            }
        typer.echo(json.dumps(data, indent=2, default=str))
    else:
        _print_result(adventure, result)

    if not result.is_valid:
        raise typer.Exit(1)


@app.command()
def analyze(
    path: Annotated[Path, typer.Argument(help="Adventure JSON file.")],
    config: ConfigOption = None,
) -> None:
    """Show the structure of an adventure: reachability, cycles, complexity."""
    editor_config = _load_config(config)
    adventure = _load_adventure(path)

    engine = ValidationEngine(editor_config.validation)
    result = asyncio.run(engine.validate(adventure, ValidationOptions(include_context=True)))
    ctx = result.context
    if ctx is None:
        _print_findings("Errors", result.errors, "error")
        raise typer.Exit(1)

    threshold = editor_config.validation.complexity_threshold
    table = Table(title=f"Scenes: {adventure.title or adventure.id or 'Untitled'}")
    table.add_column("Scene", style="cyan")
    table.add_column("Choices", justify="right")
    table.add_column("Reachable")
    table.add_column("Dead end")
    table.add_column("Complexity", justify="right")

    for scene_id, scene in ctx.nodes.items():
        score = ctx.node_complexity.get(scene_id, 0.0)
        score_display = f"[yellow]{score:g}[/yellow]" if score > threshold else f"{score:g}"
        reachable = "[green]✓[/green]" if scene_id in ctx.reachable else "[red]✗[/red]"
        dead_end = "[dim]yes[/dim]" if scene_id in ctx.dead_ends else ""
        marker = " [bold](start)[/bold]" if scene_id == ctx.start_scene_id else ""
        table.add_row(f"{scene_id}{marker}", str(len(scene.choices)), reachable, dead_end, score_display)

    console.print()
    console.print(table)
    console.print()
    console.print(f"  Scenes: [bold]{len(ctx.nodes)}[/bold], reachable: [bold]{len(ctx.reachable)}[/bold]")

    orphaned = ctx.in_scene_order(ctx.orphaned)
    if orphaned:
        console.print(f"  [yellow]Unreachable:[/yellow] {', '.join(orphaned)}")

    if ctx.circular_references:
        console.print(f"  Cycles: [bold]{len(ctx.circular_references)}[/bold]")
        for cycle in ctx.circular_references[:10]:
            console.print(f"    • {' → '.join(cycle)}")
        if len(ctx.circular_references) > 10:
            console.print(f"    ... and {len(ctx.circular_references) - 10} more")

    if ctx.undefined_stats_used:
        console.print(f"  [red]Undefined stats:[/red] {', '.join(sorted(ctx.undefined_stats_used))}")
    if ctx.unused_stats:
        console.print(f"  [dim]Unused stats: {', '.join(sorted(ctx.unused_stats))}[/dim]")
    categories = result.by_category()
    if categories:
        console.print()
        console.print("  [bold]Findings by category:[/bold]")
        for category, levels in sorted(categories.items()):
            counts = ", ".join(f"{len(found)} {level}" for level, found in levels.items() if found)
            console.print(f"    {category}: {counts}")
    console.print()
    console.print(f"Validation: {result.summary}")
