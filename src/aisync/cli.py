"""aisync command-line interface."""

from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .compiler import ArtifactCompiler, ArtifactStatus, ArtifactWriter, CompileResult
from .config import CONFIG_DIR, default_config_yaml
from .exceptions import AiSyncError
from .loaders import KIND_DIRECTORIES
from .models import Diagnostic, Platform, Severity

app = typer.Typer(
    name="aisync",
    help="aisync: compile AI assistant rules, personas, commands and hooks "
    "for Cursor, Claude Code and Factory",
    add_completion=False,
)
console = Console()

STATUS_STYLES = {
    ArtifactStatus.NEW: "green",
    ArtifactStatus.MODIFIED: "yellow",
    ArtifactStatus.UNCHANGED: "dim",
}

EXAMPLE_RULE = """\
---
name: code-style
description: Shared coding conventions
always_apply: true
priority: high
---

Keep functions small and name things after what they do.

{{#claude}}
Prefer the Grep tool over shell searches.
{{/claude}}
"""


def _get_version_string() -> str:
    try:
        return get_version("aisync")
    except PackageNotFoundError:
        return f"{__version__} (development)"


def version_callback(value: bool) -> None:
    """Callback for --version flag."""
    if value:
        console.print(f"aisync version {_get_version_string()}")
        raise typer.Exit


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _print_diagnostics(diagnostics: list[Diagnostic]) -> None:
    for diagnostic in diagnostics:
        style = "red" if diagnostic.severity == Severity.ERROR else "yellow"
        label = diagnostic.severity.value.capitalize()
        where = f"{diagnostic.provenance}: " if diagnostic.provenance else ""
        console.print(f"[{style}]{label}:[/{style}] {where}{diagnostic.message}")


def _compile(
    project: Path,
    targets: list[Platform] | None,
    strict: bool | None,
) -> tuple[ArtifactCompiler, CompileResult]:
    compiler = ArtifactCompiler(project)
    return compiler, compiler.compile(targets or None, strict=strict)


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """aisync: one source of AI assistant guidance, many tool layouts."""


@app.command()
def init(
    path: Path = typer.Option(
        Path.cwd(),
        "--path",
        "-p",
        help="Project directory to initialize",
    ),
    project_name: str | None = typer.Option(
        None,
        "--name",
        help="Project name shown in generated entry points",
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration"),
) -> None:
    """Create the .ai/ content directory with a starter configuration."""
    content_dir = path / CONFIG_DIR
    config_path = content_dir / "config.yaml"

    if config_path.exists() and not force:
        console.print(f"[yellow]Warning:[/yellow] Configuration exists at {config_path}")
        if not typer.confirm("Overwrite existing configuration?"):
            console.print("Initialization cancelled")
            return

    try:
        for directory in KIND_DIRECTORIES:
            (content_dir / directory).mkdir(parents=True, exist_ok=True)
        config_path.write_text(
            default_config_yaml(project_name or path.resolve().name),
            encoding="utf-8",
        )
        example = content_dir / "rules" / "code-style.md"
        if not example.exists():
            example.write_text(EXAMPLE_RULE, encoding="utf-8")
    except OSError as e:
        console.print(f"[red]Error:[/red] Failed to initialize {content_dir}: {e}")
        raise typer.Exit(1) from e

    console.print(f"[green]✓[/green] Initialized {content_dir}")
    console.print("\nNext steps:")
    console.print(f"  1. Add rules, personas, commands and hooks under {content_dir}")
    console.print("  2. Run 'aisync sync' to generate tool configuration")


@app.command()
def sync(
    project: Path = typer.Option(Path.cwd(), "--project", "-p", help="Project directory"),
    target: list[Platform] | None = typer.Option(
        None,
        "--target",
        "-t",
        help="Platform to generate (repeatable, defaults to configured targets)",
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show changes without writing"),
    strict: bool = typer.Option(False, "--strict", help="Treat warnings as failures"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Resolve content and write artifacts for each target."""
    _configure_logging(verbose)
    try:
        compiler, result = _compile(project, target, strict or None)
    except AiSyncError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    strict_mode = strict or compiler.config.strict
    _print_diagnostics(result.diagnostics)
    if result.failed(strict_mode):
        console.print("[red]Sync aborted:[/red] resolve the problems above first")
        raise typer.Exit(1)

    try:
        statuses = ArtifactWriter(project).write(result.artifacts(), dry_run=dry_run)
    except OSError as e:
        console.print(f"[red]Error:[/red] Failed to write artifacts: {e}")
        raise typer.Exit(1) from e

    changed = {p: s for p, s in statuses.items() if s != ArtifactStatus.UNCHANGED}
    for path, artifact_status in changed.items():
        style = STATUS_STYLES[artifact_status]
        console.print(f"  [{style}]{artifact_status.value:>9}[/{style}] {path}")

    verb = "Would update" if dry_run else "Updated"
    console.print(
        f"[green]✓[/green] {verb} {len(changed)} of {len(statuses)} artifacts "
        f"for {', '.join(p.value for p in result.targets)}",
    )


@app.command()
def validate(
    project: Path = typer.Option(Path.cwd(), "--project", "-p", help="Project directory"),
    strict: bool = typer.Option(False, "--strict", help="Treat warnings as failures"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Check that all content parses, resolves and generates cleanly."""
    _configure_logging(verbose)
    try:
        compiler, result = _compile(project, None, strict or None)
    except AiSyncError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    strict_mode = strict or compiler.config.strict
    diagnostics = result.diagnostics
    _print_diagnostics(diagnostics)
    if result.failed(strict_mode):
        errors = sum(1 for d in diagnostics if d.is_error)
        console.print(
            f"[red]✗[/red] Validation failed: {errors} errors, "
            f"{len(diagnostics) - errors} warnings",
        )
        raise typer.Exit(1)
    console.print("[green]✓[/green] All content is valid")


@app.command()
def status(
    project: Path = typer.Option(Path.cwd(), "--project", "-p", help="Project directory"),
    target: list[Platform] | None = typer.Option(None, "--target", "-t", help="Platform"),
) -> None:
    """Compare generated artifacts with the files on disk."""
    try:
        _, result = _compile(project, target, None)
    except AiSyncError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    statuses = ArtifactWriter(project).plan(result.artifacts())
    table = Table(title="aisync status")
    table.add_column("Artifact", style="cyan")
    table.add_column("Status")
    for path, artifact_status in statuses.items():
        style = STATUS_STYLES[artifact_status]
        table.add_row(path, f"[{style}]{artifact_status.value}[/{style}]")
    console.print(table)


@app.command()
def inspect(
    project: Path = typer.Option(Path.cwd(), "--project", "-p", help="Project directory"),
    target: list[Platform] | None = typer.Option(None, "--target", "-t", help="Platform"),
) -> None:
    """Show the resolved documents for each target."""
    try:
        compiler, result = _compile(project, target, None)
    except AiSyncError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    summary = Table(title="aisync configuration")
    summary.add_column("Setting", style="cyan")
    summary.add_column("Value", style="green")
    summary.add_row("Project", compiler.config.project_name or project.resolve().name)
    summary.add_row("Sources", ", ".join(s.source_id for s in compiler.config.sources))
    summary.add_row("Targets", ", ".join(p.value for p in result.targets))
    if compiler.config.subfolder_contexts:
        summary.add_row("Subfolders", ", ".join(compiler.config.subfolder_contexts))
    console.print(summary)

    for platform, output in result.targets.items():
        table = Table(title=f"{platform.value} content")
        table.add_column("Kind", style="cyan")
        table.add_column("Name")
        table.add_column("Source", style="dim")
        for document in output.content.documents():
            table.add_row(document.kind, document.name, str(document.provenance))
        for name in output.content.mcp_servers:
            table.add_row("mcp", name, "")
        console.print(table)

    _print_diagnostics(result.diagnostics)


def main() -> None:
    """Entry point for the aisync command."""
    app()


if __name__ == "__main__":
    main()
