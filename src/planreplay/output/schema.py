"""
Pydantic schemas for JSON output of a replay run.

These models are the single source of truth for the JSON shape; renderers
build them from a ReplayReport and never assemble dicts by hand.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ComparisonRowSchema(BaseModel):
    """One comparison table row (the seven report columns)."""

    model_config = ConfigDict(frozen=True)

    source_plan_id: int
    source_query_id: int
    statement: str = ""
    target_plan_id: int | None = None
    target_query_id: int | None = None
    source_duration: int | None = Field(default=None, description="Microseconds")
    target_duration: str | None = Field(
        default=None,
        description="Microseconds, suffixed with a marker when the plan drifted",
    )


class OutcomeSchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    artifact_id: str
    succeeded: bool
    error: str | None = None
    plan_consistent: bool | None = None


class RunSummarySchema(BaseModel):
    """Run counters."""

    model_config = ConfigDict(frozen=True)

    server: str
    database: str
    run_stamp: str
    plans_captured: int = 0
    documents_exported: int = 0
    malformed_documents: int = 0
    statements_found: int = 0
    parameters_found: int = 0
    artifacts_built: int = 0
    artifacts_filtered: int = 0
    replayed: int = 0
    failures: int = 0
    drift_detected: int = 0
    verification_unknown: int = 0
    durations_missing: int = 0


class ReplayReportSchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: str = "1.0"
    summary: RunSummarySchema
    outcomes: list[OutcomeSchema] = Field(default_factory=list)
    comparison: list[ComparisonRowSchema] = Field(default_factory=list)
    malformed: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Skipped plan documents, as MalformedDocument.to_dict()",
    )
