"""
annotest CLI - Command-line interface for directive-driven test runs.

Provides commands for scanning test sources, running labelled tests and
initializing configuration.
"""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from annotest.config import CONFIG_FILE_NAME, ConfigLoader
from annotest.directives.resolver import ParseResult
from annotest.loader import SuiteLoader
from annotest.testing.models import RunResult, TestResult, TestStatus

app = typer.Typer(
    name="annotest",
    help="Directive-driven test orchestration with labels and typed fixtures",
    add_completion=False,
)

console = Console()

_STATUS_STYLE = {
    TestStatus.PASSED: "[green]✓ PASS[/green]",
    TestStatus.FAILED: "[red]✗ FAIL[/red]",
    TestStatus.ERROR: "[red]✗ ERROR[/red]",
    TestStatus.SKIPPED: "[yellow]- SKIP[/yellow]",
    TestStatus.PENDING: "[dim]? PENDING[/dim]",
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def version_callback(value: bool) -> None:
    """Display version information."""
    if value:
        from annotest import __version__

        console.print(f"[bold blue]annotest[/bold blue] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """annotest - Directive-driven test orchestration."""
    pass


@app.command()
def scan(
    path: str = typer.Argument(..., help="Test file or directory"),
    format_: str = typer.Option("console", "--format", "-f", help="Output format: console, json, yaml"),
    no_auto: bool = typer.Option(False, "--no-auto", help="Disable name-prefix classification"),
    pattern: str = typer.Option(None, "--pattern", "-p", help="Glob for test files"),
) -> None:
    """
    Scan test sources and show how every function was classified.
    """
    target = Path(path)
    if not target.exists():
        console.print(f"[red]Error:[/red] Path not found: {path}")
        raise typer.Exit(1)

    config = ConfigLoader.discover(target)
    loader = SuiteLoader(
        auto_classify=config.auto_classify and not no_auto,
        file_pattern=pattern or config.file_pattern,
    )
    scan_result = loader.scan(target)
    resolution = loader.resolve(scan_result)

    if format_ == "json":
        console.print_json(resolution.to_json())
        return
    if format_ == "yaml":
        console.print(resolution.to_yaml(), markup=False, highlight=False)
        return

    console.print(
        Panel(
            f"[bold]Scanning:[/bold] {path}\n[dim]{len(scan_result.files)} file(s)[/dim]",
            title="🔎 annotest scan",
            border_style="blue",
        )
    )
    for error in scan_result.errors:
        console.print(f"[red]✗ {escape(error)}[/red]")
    _display_resolution(resolution)


@app.command()
def run(
    path: str = typer.Argument(..., help="Test file or directory"),
    labels: str = typer.Option(None, "--labels", "-l", help="Comma-separated labels to run"),
    config_file: str = typer.Option(None, "--config", "-c", help=f"Config file (default: {CONFIG_FILE_NAME})"),
    no_auto: bool = typer.Option(False, "--no-auto", help="Disable name-prefix classification"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
    format_: str = typer.Option("console", "--format", "-f", help="Output format: console, yaml"),
) -> None:
    """
    Load test sources and run the tests selected by label.

    Exits with status 1 when any test fails or errors.
    """
    target = Path(path)
    if not target.exists():
        console.print(f"[red]Error:[/red] Path not found: {path}")
        raise typer.Exit(1)

    try:
        config = ConfigLoader.from_yaml(config_file) if config_file else ConfigLoader.discover(target)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    _configure_logging(verbose or config.verbose)

    loader = SuiteLoader(
        auto_classify=config.auto_classify and not no_auto,
        file_pattern=config.file_pattern,
    )
    loaded = loader.load(target)
    selector = labels or config.labels

    if format_ != "yaml":
        console.print(
            Panel(
                f"[bold]Running:[/bold] {path}\n"
                f"[dim]Labels: {selector or loaded.suite.default_label}[/dim]",
                title="🧪 annotest run",
                border_style="blue",
            )
        )
        for error in loaded.errors:
            console.print(f"[red]✗ {escape(error)}[/red]")
        for warning in loaded.warnings:
            console.print(f"[yellow]⚠ {escape(warning)}[/yellow]")

    result = loaded.suite.run(selector)

    if format_ == "yaml":
        result = result.model_copy(update={"warnings": loaded.warnings + result.warnings})
        console.print(result.to_yaml(), markup=False, highlight=False)
    else:
        _display_run_result(result)

    exit_code = result.exit_code or (1 if loaded.has_errors else 0)
    if exit_code:
        raise typer.Exit(exit_code)


@app.command()
def init(
    path: str = typer.Argument(".", help="Directory to initialize"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite existing config"),
) -> None:
    """
    Write a sample annotest.yaml.
    """
    target_path = Path(path)
    config_file = target_path / CONFIG_FILE_NAME

    if config_file.exists() and not force:
        console.print(f"[yellow]⚠️  Config file already exists:[/yellow] {config_file}")
        console.print("[dim]Use --force to overwrite[/dim]")
        raise typer.Exit(1)

    target_path.mkdir(parents=True, exist_ok=True)
    config_file.write_text(ConfigLoader.generate_sample_config())
    console.print(f"[green]✓[/green] Created {config_file}")


# =============================================================================
# Display helpers
# =============================================================================


def _display_resolution(resolution: ParseResult) -> None:
    """Display resolved labels, registrations and warnings."""
    labels_table = Table(title="Labels", show_header=True, header_style="bold")
    labels_table.add_column("Label", style="cyan")
    labels_table.add_column("Prefixes")
    for label, prefixes in resolution.label_table.items():
        name = f"{label} [dim](default)[/dim]" if label == resolution.default_label else label
        labels_table.add_row(name, ", ".join(prefixes) or "[dim]-[/dim]")
    console.print(labels_table)

    table = Table(title="Registrations", show_header=True, header_style="bold")
    table.add_column("Function", style="cyan")
    table.add_column("Role")
    table.add_column("Labels")
    for registration in resolution.registrations:
        table.add_row(
            registration.function.qualified_name,
            registration.role.value,
            ", ".join(registration.labels) or "[dim]-[/dim]",
        )
    console.print(table)

    if resolution.warnings:
        console.print(f"\n[yellow]⚠ {len(resolution.warnings)} warning(s)[/yellow]")
        for warning in resolution.warnings:
            console.print(f"  [yellow]{escape(warning)}[/yellow]")


def _display_run_result(result: RunResult) -> None:
    """Display per-test results and a summary."""
    for warning in result.warnings:
        console.print(f"[yellow]⚠ {escape(warning)}[/yellow]")

    for test_result in result.results:
        console.print(_result_tree(test_result))

    summary = Table(show_header=True, header_style="bold")
    summary.add_column("Metric", style="cyan")
    summary.add_column("Value")
    summary.add_row("Total", str(result.total))
    summary.add_row("Passed", f"[green]{result.passed}[/green]")
    summary.add_row("Failed", f"[red]{result.failed}[/red]" if result.failed else "0")
    summary.add_row("Errors", f"[red]{result.errors}[/red]" if result.errors else "0")
    summary.add_row("Skipped", str(result.skipped))
    console.print(summary)


def _result_tree(test_result: TestResult) -> Tree:
    label = f"{_STATUS_STYLE[test_result.status]} {test_result.name}"
    if test_result.duration_ms is not None:
        label += f" [dim]({test_result.duration_ms}ms)[/dim]"
    tree = Tree(label)
    if test_result.error_message and test_result.status != TestStatus.PASSED:
        tree.add(f"[dim]{escape(test_result.error_message)}[/dim]")
    for line in test_result.output:
        tree.add(f"[dim]│ {escape(line)}[/dim]")
    for child in test_result.children:
        tree.add(_result_tree(child))
    return tree


if __name__ == "__main__":
    app()
