"""
Output module - separates rendering from the replay engine.

Usage:
    from planreplay.output import render_json, comparison_table

    report = service.run(source, target)
    print(render_json(report))
    console.print(comparison_table(report))
"""

from planreplay.output.renderers import (
    comparison_table,
    render_json,
    report_to_schema,
    summary_table,
)
from planreplay.output.schema import ComparisonRowSchema, ReplayReportSchema

__all__ = [
    "comparison_table",
    "render_json",
    "report_to_schema",
    "summary_table",
    "ComparisonRowSchema",
    "ReplayReportSchema",
]
