"""
planreplay CLI - capture Query Store plans and replay them elsewhere.

Usage:
    planreplay run "mssql+pyodbc://..." --target "mssql+pyodbc://..." --hours 4
    planreplay run "mssql+pyodbc://..." --export-only --output ./capture
    planreplay parse ./capture/plans/prod_Sales_0000000042_0x..._0x..._20260101120000123456-a1b2c3.sqlplan
    planreplay --help
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from planreplay import __version__
from planreplay.config import get_config
from planreplay.db.handle import connect
from planreplay.engine import ReplayService
from planreplay.exceptions import PlanReplayError
from planreplay.output.renderers import comparison_table, render_json, summary_table
from planreplay.parser.showplan import parse_plan_document

app = typer.Typer(
    name="planreplay",
    help="Replay Query Store plans from one SQL Server database against another",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"planreplay version {__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=error_console, show_path=False)],
    )


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """planreplay - Query Store capture and replay."""
    pass


@app.command()
def run(
    source_url: Annotated[
        str,
        typer.Argument(help="SQLAlchemy URL of the source database"),
    ],
    target_url: Annotated[
        Optional[str],
        typer.Option("--target", "-t", help="SQLAlchemy URL of the target database"),
    ] = None,
    hours: Annotated[
        Optional[int],
        typer.Option("--hours", "-H", min=1, help="Capture window in hours"),
    ] = None,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Staging directory for plans and artifacts"),
    ] = None,
    export_only: Annotated[
        Optional[bool],
        typer.Option(
            "--export-only/--no-export-only",
            help="Export and build artifacts without replaying",
        ),
    ] = None,
    select_only: Annotated[
        Optional[bool],
        typer.Option("--select-only/--no-select-only", help="Only replay SELECT statements"),
    ] = None,
    check_plans: Annotated[
        Optional[bool],
        typer.Option(
            "--check-plans/--no-check-plans",
            help="Verify the target produced the same plan",
        ),
    ] = None,
    compare_perf: Annotated[
        Optional[bool],
        typer.Option(
            "--compare-perf/--no-compare-perf",
            help="Compare source and target durations",
        ),
    ] = None,
    include_statements: Annotated[
        Optional[bool],
        typer.Option(
            "--include-statements/--no-include-statements",
            help="Show statement previews in the comparison",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output the run report as JSON"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Debug logging"),
    ] = False,
) -> None:
    """
    Capture recent plans from the source and replay them on the target.

    Flags override PLANREPLAY_* environment settings.

    Examples:

        # Replay the last 4 hours of SELECTs and compare durations
        $ planreplay run "$SRC" --target "$DST" --hours 4 --select-only --compare-perf

        # Just stage the artifacts for review
        $ planreplay run "$SRC" --export-only -o ./capture
    """
    configure_logging(verbose)

    base = get_config()
    flags = {
        "export_only": export_only,
        "select_only": select_only,
        "plan_consistency": check_plans,
        "compare_perf": compare_perf,
        "include_statements": include_statements,
    }
    # Only flags given on the command line override the environment
    updates: dict[str, object] = {k: v for k, v in flags.items() if v is not None}
    if hours is not None:
        updates["window_hours"] = hours
    if output is not None:
        updates["staging_root"] = output
    config = base.model_copy(update=updates)

    source = None
    target = None
    try:
        source = connect(source_url, config.statement_timeout_seconds)
        if target_url and not config.export_only:
            target = connect(target_url, config.statement_timeout_seconds)

        report = ReplayService(config).run(source, target)
    except PlanReplayError as e:
        if json_output:
            console.print_json(json.dumps(e.to_dict()))
        else:
            error_console.print(f"[red]Error:[/red] {escape(e.message)}")
        raise typer.Exit(code=1)
    finally:
        if source is not None:
            source.close()
        if target is not None:
            target.close()

    if json_output:
        console.print_json(render_json(report))
        return

    console.print(summary_table(report))
    if report.comparison:
        console.print(comparison_table(report, include_statements=config.include_statements))
    if report.failure_count:
        console.print(
            f"[red]{report.failure_count} artifact(s) failed to replay.[/red] "
            f"[dim]Artifacts are in {config.staging_root}[/dim]"
        )


@app.command()
def parse(
    plan_file: Annotated[
        Path,
        typer.Argument(
            help="Path to a Showplan XML file (.sqlplan)",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output as JSON"),
    ] = False,
) -> None:
    """
    Show the parameters and statements recovered from one plan file.
    """
    try:
        parsed = parse_plan_document(plan_file.read_text(encoding="utf-8-sig"))
    except PlanReplayError as e:
        error_console.print(f"[red]Error:[/red] {escape(e.message)}")
        raise typer.Exit(code=1)

    if json_output:
        data = {
            "parameters": [
                {
                    "name": p.name,
                    "declared_type": p.declared_type,
                    "compiled_value": p.compiled_value,
                }
                for p in parsed.parameters
            ],
            "statements": [
                {
                    "text": s.text,
                    "kind": s.kind.value,
                    "statement_type": s.statement_type,
                    "length": s.length,
                }
                for s in parsed.statements
            ],
        }
        console.print_json(json.dumps(data))
        return

    params = Table(title="Parameters")
    params.add_column("Name", style="cyan")
    params.add_column("Type")
    params.add_column("Compiled value")
    for p in parsed.parameters:
        params.add_row(p.name, p.declared_type, escape(p.compiled_value or ""))
    console.print(params)

    for i, statement in enumerate(parsed.statements):
        style = "green" if statement.is_select else "yellow"
        console.print(
            f"[{style}]#{i} {statement.statement_type or 'UNKNOWN'}[/{style}] "
            f"[dim]({statement.length} chars)[/dim]"
        )
        console.print(escape(statement.text))


if __name__ == "__main__":
    app()
