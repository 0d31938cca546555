"""resx-scanner CLI - cross-reference .resx localization keys with their IStringLocalizer usages."""
import asyncio
import time
from pathlib import Path
from typing import List, Optional

import click
import typer
from rich.markup import escape
from rich.table import Table

from resx_scanner.analyzer.catalog import CatalogError
from resx_scanner.analyzer.workspace import WorkspaceError
from resx_scanner.config import ScanOptions, __version__, get_config
from resx_scanner.reporting.audit import audit as audit_entries
from resx_scanner.reporting.writer import build_report, to_json_bytes, write_report
from resx_scanner.scanner import ScanResult, Scanner
from resx_scanner.utils.logger import configure_logging
from resx_scanner.utils.safe_console import SafeConsole

app = typer.Typer(
    name="resx-scanner",
    help="Cross-reference .resx localization keys with their usages in C# code",
    add_completion=False
)
# Use SafeConsole for terminals without UTF-8
console = SafeConsole()


def _options(source: str, destination: Optional[str], max_path_count: Optional[int],
             locales: Optional[List[str]], localizer_types: Optional[List[str]]) -> ScanOptions:
    try:
        return ScanOptions.from_config(
            get_config(), source,
            destination=destination,
            max_path_count=max_path_count,
            locales=locales,
            localizer_types=localizer_types,
        )
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


def run_scan(options: ScanOptions) -> ScanResult:
    """Run the scan behind a rich progress spinner.

    Raises:
        typer.Exit: On workspace, catalog or configuration errors
    """
    with console.progress() as progress:
        task = progress.add_task("Starting...", total=None)

        def on_phase(description: str):
            progress.update(task, description=description)

        try:
            return asyncio.run(Scanner(options, on_phase=on_phase).scan())
        except (WorkspaceError, CatalogError, ValueError) as e:
            progress.stop()
            console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
            raise typer.Exit(1)


def resolve_destination(destination: Optional[Path], result: ScanResult) -> Path:
    """Explicit destinations are relative to the working directory, the default to the solution."""
    if destination is not None:
        return destination.resolve()
    default = Path(get_config().destination)
    if default.is_absolute():
        return default
    return (result.solution_directory / default).resolve()


@app.command()
def scan(
    source: str = typer.Option(..., "--source", "-s", help="Solution (.sln/.slnx), project (.csproj) or directory"),
    destination: Optional[str] = typer.Option(None, "--destination", "-d", help="Output JSON file (default: locale-keys.json next to the solution)"),
    max_path_count: Optional[int] = typer.Option(None, "--max-path-count", "-m", min=1, help="Maximum usage paths kept per key (default 20)"),
    locale: Optional[List[str]] = typer.Option(None, "--locale", "-l", help="Locale prefix of a report column; repeat for more (default: en, ar)"),
    localizer_type: Optional[List[str]] = typer.Option(None, "--localizer-type", help="Localizer type name, replacing the configured list; repeat for more"),
    pretty: bool = typer.Option(False, "--pretty", help="Indent the JSON output"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Scan the solution and write the merged key report."""
    configure_logging(console, verbose)
    options = _options(source, destination, max_path_count, locale, localizer_type)

    console.print(f"[bold blue]Scanning:[/bold blue] {escape(str(Path(source).resolve()))}\n")
    start_time = time.time()
    result = run_scan(options)
    elapsed = time.time() - start_time

    report = build_report(result.entries, options.buckets)
    output = resolve_destination(options.destination, result)
    try:
        write_report(output, to_json_bytes(report, indent=2 if pretty else None))
    except OSError as e:
        console.print(f"[bold red]Error:[/bold red] Cannot write {escape(str(output))}: {escape(str(e))}")
        raise typer.Exit(1)

    table = Table(title="Localization Keys")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="green", justify="right")
    table.add_row("C# documents", str(result.document_count))
    table.add_row("Key definitions", str(result.definition_count))
    table.add_row("Key usages", str(result.usage_count))
    table.add_row("Report keys", str(len(result.entries)))
    table.add_row("Unused keys", str(sum(1 for e in result.entries if e.defined and e.usage_count == 0)))
    table.add_row("Undefined keys", str(sum(1 for e in result.entries if not e.defined)))
    console.print(table)

    console.print(f"\n[bold green]✓ Report written:[/bold green] {escape(click.format_filename(output))}")
    console.print(f"[dim]Completed in {elapsed:.2f}s[/dim]")


def _key_table(title: str, keys: List[str], style: str) -> Table:
    table = Table(title=title)
    table.add_column("Key", style=style, no_wrap=False)
    for key in keys:
        table.add_row(escape(key))
    return table


@app.command()
def audit(
    source: str = typer.Option(..., "--source", "-s", help="Solution (.sln/.slnx), project (.csproj) or directory"),
    max_path_count: Optional[int] = typer.Option(None, "--max-path-count", "-m", min=1, help="Maximum usage paths kept per key (default 20)"),
    locale: Optional[List[str]] = typer.Option(None, "--locale", "-l", help="Locale prefix of a report column; repeat for more (default: en, ar)"),
    localizer_type: Optional[List[str]] = typer.Option(None, "--localizer-type", help="Localizer type name, replacing the configured list; repeat for more"),
    strict: bool = typer.Option(False, "--strict", help="Exit with code 1 when any issue is found"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """List unused keys, keys used but never defined, and keys missing a translation."""
    configure_logging(console, verbose)
    options = _options(source, None, max_path_count, locale, localizer_type)

    console.print(f"[bold blue]Auditing:[/bold blue] {escape(str(Path(source).resolve()))}\n")
    result = run_scan(options)
    findings = audit_entries(result.entries, options.buckets)

    if findings.unused:
        console.print(_key_table("Unused Keys (defined, never referenced)", findings.unused, "yellow"))
    if findings.undefined:
        console.print(_key_table("Undefined Keys (referenced, never defined)", findings.undefined, "red"))
    for bucket_name, keys in findings.missing.items():
        if keys:
            console.print(_key_table(f"Missing {bucket_name} Values", keys, "magenta"))

    if findings.issue_count == 0:
        console.print("[bold green]✓ No localization issues found![/bold green]")
        return

    console.print(f"\n[bold yellow]⚠ {findings.issue_count} issue(s) found[/bold yellow]")
    if strict:
        raise typer.Exit(1)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show the version and exit", is_eager=True),
):
    """resx-scanner - find unused, undefined and untranslated localization keys."""
    if version:
        console.print(f"resx-scanner {__version__}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


if __name__ == "__main__":
    app()
