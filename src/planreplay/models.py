"""
Domain records shared by every replay phase.

A run moves through these types in order:

    CapturedPlan -> ParsedPlan (Parameter, StatementRecord)
                 -> ReplayArtifact -> ReplayOutcome
                 -> ComparisonRecord

All of them live for one run only. The composite CorrelationKey of a
CapturedPlan is copied onto everything derived from it so the source
capture, the replay artifact and the target re-capture can be joined.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

# Marker appended to a rendered target duration when the plan drifted.
DRIFT_MARKER = "(plan changed)"


@dataclass(frozen=True, order=True)
class CorrelationKey:
    """Identity of a captured plan: (plan id, plan-shape hash, query hash)."""

    plan_id: int
    plan_hash: str
    query_hash: str


@dataclass(frozen=True)
class CapturedPlan:
    """
    One row of the Query Store capture.

    Attributes:
        plan_id: Query Store plan id on the source.
        query_id: Query Store query id on the source.
        plan_hash: query_plan_hash as 0x-prefixed hex text.
        query_hash: query_hash (statement content hash) as 0x-prefixed hex.
        document: Raw Showplan XML.
    """

    plan_id: int
    query_id: int
    plan_hash: str
    query_hash: str
    document: str

    @property
    def key(self) -> CorrelationKey:
        return CorrelationKey(self.plan_id, self.plan_hash, self.query_hash)


@dataclass(frozen=True)
class Parameter:
    """A parameter binding recovered from a plan's ParameterList."""

    name: str
    declared_type: str
    compiled_value: str | None = None


class StatementKind(str, Enum):
    """Coarse statement classification used by the SELECT-only filter."""

    SELECT = "select"
    OTHER = "other"


@dataclass(frozen=True)
class StatementRecord:
    """
    A statement found in a plan document.

    Attributes:
        text: StatementText, untouched.
        kind: SELECT when StatementType is exactly "SELECT".
        statement_type: Raw StatementType attribute ("" when absent).
        length: Raw text length.
    """

    text: str
    kind: StatementKind
    statement_type: str = ""
    length: int = 0

    @property
    def is_select(self) -> bool:
        return self.kind is StatementKind.SELECT


@dataclass(frozen=True)
class ParsedPlan:
    """Parser output for one plan document."""

    parameters: tuple[Parameter, ...] = ()
    statements: tuple[StatementRecord, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.parameters and not self.statements


@dataclass(frozen=True)
class ReplayArtifact:
    """
    A self-contained replay script for one statement of one plan.

    Attributes:
        artifact_id: Stable identity, also the artifact file stem.
        key: Correlation key of the originating plan.
        parameters: Declared parameters in parser-emission order.
        statement: The statement record being replayed.
        statement_index: Position of the statement within its plan.
        content: Full script text (declarations, then statement).
    """

    artifact_id: str
    key: CorrelationKey
    parameters: tuple[Parameter, ...]
    statement: StatementRecord
    statement_index: int
    content: str

    @property
    def statement_text(self) -> str:
        return self.statement.text


@dataclass(frozen=True)
class ReplayOutcome:
    """
    Result of executing one artifact on the target.

    plan_consistent is tri-state: True (matching plan found), False (drift),
    None (not checked or target stats never materialized).
    """

    artifact_id: str
    succeeded: bool
    error_detail: str | None = None
    plan_consistent: bool | None = None

    @property
    def drifted(self) -> bool:
        return self.plan_consistent is False


@dataclass
class ComparisonRecord:
    """
    One row of the source/target comparison table.

    Created once per captured plan before replay, then completed in place
    as target statistics become available.
    """

    source_plan_id: int
    source_query_id: int
    query_hash: str
    statement_preview: str = ""
    target_plan_id: int | None = None
    target_query_id: int | None = None
    source_duration: int | None = None
    target_duration: int | None = None
    drift: bool = False

    def merge_target(
        self,
        duration: int | None,
        plan_id: int | None,
        query_id: int | None,
        drift: bool = False,
    ) -> None:
        """Overwrite target-side fields with the latest observation."""
        self.target_duration = duration
        self.target_plan_id = plan_id
        self.target_query_id = query_id
        self.drift = self.drift or drift

    @property
    def duration_delta(self) -> int | None:
        """Target minus source duration, in microseconds."""
        if self.source_duration is None or self.target_duration is None:
            return None
        return self.target_duration - self.source_duration

    @property
    def display_target_duration(self) -> str:
        if self.target_duration is None:
            return ""
        if self.drift:
            return f"{self.target_duration} {DRIFT_MARKER}"
        return str(self.target_duration)

    def as_row(self) -> dict[str, Any]:
        """The seven report columns, target duration carrying the drift marker."""
        return {
            "source_plan_id": self.source_plan_id,
            "source_query_id": self.source_query_id,
            "statement": self.statement_preview,
            "target_plan_id": self.target_plan_id,
            "target_query_id": self.target_query_id,
            "source_duration": self.source_duration,
            "target_duration": self.display_target_duration or None,
        }


def _run_stamp() -> str:
    """Sortable local time to the microsecond plus a random suffix."""
    return f"{datetime.now().strftime('%Y%m%d%H%M%S%f')}-{secrets.token_hex(3)}"


@dataclass
class RunContext:
    """
    Run-scoped identity and counters, passed explicitly through each phase.

    server and database label the source and end up in artifact names;
    run_stamp keeps artifact names from separate runs apart.
    """

    server: str = "local"
    database: str = "default"
    run_stamp: str = field(default_factory=_run_stamp)

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

    def summary(self) -> dict[str, Any]:
        """Counters for the final run summary."""
        return {
            "server": self.server,
            "database": self.database,
            "run_stamp": self.run_stamp,
            "plans_captured": self.plans_captured,
            "documents_exported": self.documents_exported,
            "malformed_documents": self.malformed_documents,
            "statements_found": self.statements_found,
            "parameters_found": self.parameters_found,
            "artifacts_built": self.artifacts_built,
            "artifacts_filtered": self.artifacts_filtered,
            "replayed": self.replayed,
            "failures": self.failures,
            "drift_detected": self.drift_detected,
            "verification_unknown": self.verification_unknown,
            "durations_missing": self.durations_missing,
        }
