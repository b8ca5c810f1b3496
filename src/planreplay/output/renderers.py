"""
Output renderers for a replay run.

Separates presentation from the replay engine:
- render_json: stable JSON built from the schema models
- summary_table / comparison_table: rich tables for the terminal
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.markup import escape
from rich.table import Table

from planreplay.output.schema import (
    ComparisonRowSchema,
    OutcomeSchema,
    ReplayReportSchema,
    RunSummarySchema,
)

if TYPE_CHECKING:
    from planreplay.engine import ReplayReport


def report_to_schema(report: "ReplayReport") -> ReplayReportSchema:
    """Convert a ReplayReport to its JSON schema model."""
    return ReplayReportSchema(
        summary=RunSummarySchema(**report.context.summary()),
        outcomes=[
            OutcomeSchema(
                artifact_id=o.artifact_id,
                succeeded=o.succeeded,
                error=o.error_detail,
                plan_consistent=o.plan_consistent,
            )
            for o in report.outcomes
        ],
        comparison=[ComparisonRowSchema(**r.as_row()) for r in report.comparison],
        malformed=[m.to_dict() for m in report.malformed],
    )


def render_json(report: "ReplayReport", indent: int = 2) -> str:
    return report_to_schema(report).model_dump_json(indent=indent)


def summary_table(report: "ReplayReport") -> Table:
    """Two-column table of run counters."""
    table = Table(title="Replay summary", show_header=False)
    table.add_column("Counter", style="cyan")
    table.add_column("Value", justify="right")

    for name, value in report.context.summary().items():
        style = ""
        if name == "failures" and value:
            style = "red bold"
        elif name in ("drift_detected", "malformed_documents") and value:
            style = "yellow"
        rendered = f"[{style}]{value}[/{style}]" if style else str(value)
        table.add_row(name.replace("_", " "), rendered)
    return table


def comparison_table(report: "ReplayReport", include_statements: bool = False) -> Table:
    """The source/target duration comparison (durations in microseconds)."""
    table = Table(title="Source vs. target")
    table.add_column("Source plan", justify="right", style="cyan")
    table.add_column("Source query", justify="right")
    if include_statements:
        table.add_column("Statement", overflow="fold")
    table.add_column("Target plan", justify="right")
    table.add_column("Target query", justify="right")
    table.add_column("Source µs", justify="right")
    table.add_column("Target µs", justify="right")

    for record in report.comparison:
        row = record.as_row()
        target = row["target_duration"] or ""
        if record.drift:
            target = f"[yellow]{target}[/yellow]"
        cells = [str(row["source_plan_id"]), str(row["source_query_id"])]
        if include_statements:
            cells.append(escape(row["statement"]))
        cells.extend([
            _cell(row["target_plan_id"]),
            _cell(row["target_query_id"]),
            _cell(row["source_duration"]),
            target,
        ])
        table.add_row(*cells)
    return table


def _cell(value: object) -> str:
    return "" if value is None else str(value)
