"""
Replay artifact builder.

Turns a captured plan and its parsed contents into self-contained T-SQL
scripts: the plan's parameters declared as local variables holding their
compiled values, followed by the statement text. One artifact is built per
statement; with select_only, non-SELECT statements produce nothing.

Building is deterministic: the same plan and parse output always produce
the same artifact ids and byte-identical content.
"""

from __future__ import annotations

import logging
from typing import Iterable

from planreplay.models import (
    CapturedPlan,
    Parameter,
    ParsedPlan,
    ReplayArtifact,
    RunContext,
)
from planreplay.replay.artifacts import artifact_id_for

logger = logging.getLogger(__name__)


def render_declaration(parameter: Parameter) -> str:
    """
    DECLARE line for one parameter.

    Declared type and compiled value are used verbatim. A parameter
    without a compiled value is declared without an initializer.
    """
    line = f"DECLARE {parameter.name} {parameter.declared_type}"
    if parameter.compiled_value is not None:
        line += f" = {parameter.compiled_value}"
    return line + ";"


def render_script(parameters: Iterable[Parameter], statement_text: str) -> str:
    """Full artifact text: declarations in order, then the statement."""
    lines = [render_declaration(p) for p in parameters]
    lines.append(statement_text)
    return "\n".join(lines) + "\n"


def build_artifacts(
    plan: CapturedPlan,
    parsed: ParsedPlan,
    context: RunContext,
    select_only: bool = False,
) -> list[ReplayArtifact]:
    """
    Build the replay artifacts for one captured plan.

    Args:
        plan: The captured plan the statements came from.
        parsed: Parser output for plan.document.
        context: Run context (labels for ids, counters).
        select_only: Discard artifacts whose statement is not a SELECT.

    Returns:
        Artifacts in statement order. Statement indexes keep their
        position in the document even when earlier statements were
        filtered, so ids do not shift between filtered and unfiltered runs.
    """
    artifacts: list[ReplayArtifact] = []

    for index, statement in enumerate(parsed.statements):
        if select_only and not statement.is_select:
            context.artifacts_filtered += 1
            logger.debug(
                "Plan %d statement %d skipped: %s is not a SELECT",
                plan.plan_id, index, statement.statement_type or "untyped",
            )
            continue

        artifacts.append(ReplayArtifact(
            artifact_id=artifact_id_for(context, plan.key, index),
            key=plan.key,
            parameters=parsed.parameters,
            statement=statement,
            statement_index=index,
            content=render_script(parsed.parameters, statement.text),
        ))

    context.artifacts_built += len(artifacts)
    return artifacts
