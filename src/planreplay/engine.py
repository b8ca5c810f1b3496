"""
ReplayService - orchestration layer for a capture-and-replay run.

This is the single entry point for running a replay. The CLI (and anything
else that drives a run) should use this service rather than sequencing the
phases itself.

Phases, strictly in order:
    1. Preconditions: mode combinations, Query Store state on each database
    2. Capture: read plans executed in the window from the source
    3. Parse + build: export raw plans, build and stage replay artifacts
    4. Replay: read the staged artifacts back from disk and execute them on
       the target one at a time, verifying plans and collecting durations
       after each one

Connectivity and precondition failures propagate and end the run; staged
files are left in place. Malformed documents and failed artifacts are
counted in the RunContext and the run continues.

Usage:
    from planreplay.config import Config
    from planreplay.db import connect
    from planreplay.engine import ReplayService

    service = ReplayService(Config(select_only=True, compare_perf=True))
    report = service.run(connect(source_url), connect(target_url))
    for row in report.comparison:
        print(row.as_row())
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from planreplay.config import Config, get_config
from planreplay.db.handle import DatabaseHandle
from planreplay.db.store import capture_plans, statistics_enabled
from planreplay.exceptions import (
    FeatureDisabled,
    MalformedDocument,
    SourceUnavailable,
    TargetUnavailable,
)
from planreplay.models import (
    CapturedPlan,
    ComparisonRecord,
    ParsedPlan,
    ReplayArtifact,
    ReplayOutcome,
    RunContext,
)
from planreplay.parser.showplan import parse_plan_document
from planreplay.replay.artifacts import ArtifactStore
from planreplay.replay.builder import build_artifacts
from planreplay.replay.executor import ReplayExecutor
from planreplay.verification.consistency import ConsistencyVerifier
from planreplay.verification.performance import PerformanceCorrelator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReplayReport:
    """
    Everything a run produced.

    comparison is empty unless compare_perf was on; outcomes is empty in
    export_only mode.
    """

    context: RunContext
    artifacts: tuple[ReplayArtifact, ...] = ()
    outcomes: tuple[ReplayOutcome, ...] = ()
    comparison: tuple[ComparisonRecord, ...] = ()
    malformed: tuple[MalformedDocument, ...] = ()

    @property
    def failure_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.succeeded)

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def drift_count(self) -> int:
        return sum(1 for o in self.outcomes if o.drifted)


class ReplayService:
    """Runs capture, build and replay for one source/target pair."""

    def __init__(
        self,
        config: Config | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or get_config()
        self._sleep = sleep

    def run(
        self,
        source: DatabaseHandle,
        target: DatabaseHandle | None = None,
        cancel: threading.Event | None = None,
    ) -> ReplayReport:
        """
        Execute a full run.

        Raises:
            ConfigurationError: Invalid mode combination.
            FeatureDisabled: Query Store off where it is needed.
            SourceUnavailable: Source cannot be read.
            TargetUnavailable: Target unreachable before replay.
        """
        config = self.config
        config.validate_modes(has_target=target is not None)
        self.check_preconditions(source, target)

        context = RunContext(server=source.server, database=source.database)
        store = ArtifactStore(config.staging_root)
        store.prepare()

        plans = capture_plans(source, config.window_hours)
        context.plans_captured = len(plans)

        parsed, malformed = self._parse_all(plans, context, store)
        artifacts = self._build_all(plans, parsed, context, store)

        if config.export_only or target is None:
            logger.info(
                "Export only: %d plan(s), %d artifact(s) staged in %s",
                context.documents_exported, len(artifacts), store.root,
            )
            return ReplayReport(
                context=context,
                artifacts=tuple(artifacts),
                malformed=tuple(malformed),
            )

        correlator = None
        if config.compare_perf:
            correlator = PerformanceCorrelator(
                source,
                target,
                settle=config.settle,
                include_statements=config.include_statements,
                preview_length=config.preview_length,
                sleep=self._sleep,
            )
            for plan in plans:
                statements = parsed[plan.plan_id].statements if plan.plan_id in parsed else ()
                correlator.seed(plan, statements[0].text if statements else None)

        verifier = None
        if config.plan_consistency:
            verifier = ConsistencyVerifier(target, settle=config.settle, sleep=self._sleep)

        def after_execute(artifact: ReplayArtifact) -> bool | None:
            consistent = verifier.check(artifact, context) if verifier else None
            if correlator is not None:
                correlator.record(artifact, context, drift=consistent is False)
            return consistent

        executor = ReplayExecutor(target)
        hook = after_execute if (verifier or correlator) else None
        staged = store.load_staged(artifacts)
        outcomes = executor.run(staged, context, after_execute=hook, cancel=cancel)

        return ReplayReport(
            context=context,
            artifacts=tuple(artifacts),
            outcomes=tuple(outcomes),
            comparison=tuple(correlator.table()) if correlator else (),
            malformed=tuple(malformed),
        )

    def check_preconditions(
        self,
        source: DatabaseHandle,
        target: DatabaseHandle | None,
    ) -> None:
        """
        Verify Query Store is usable wherever the configured modes need it.

        The source needs readable Query Store history. The target needs a
        capturing Query Store when plans or durations are checked.
        """
        try:
            source_ok = statistics_enabled(source)
        except SQLAlchemyError as e:
            raise SourceUnavailable(
                f"Cannot query source: {e}",
                server=source.server,
                database=source.database,
            ) from e
        if not source_ok:
            raise FeatureDisabled(
                f"Query Store is off on source {source.server}/{source.database}",
                role="source",
            )

        if target is None or not (self.config.plan_consistency or self.config.compare_perf):
            return

        try:
            target_ok = statistics_enabled(target, require_capture=True)
        except SQLAlchemyError as e:
            raise TargetUnavailable(
                f"Cannot query target: {e}",
                server=target.server,
                database=target.database,
            ) from e
        if not target_ok:
            raise FeatureDisabled(
                f"Query Store is not capturing on target {target.server}/{target.database}",
                role="target",
            )

    def _parse_all(
        self,
        plans: list[CapturedPlan],
        context: RunContext,
        store: ArtifactStore,
    ) -> tuple[dict[int, ParsedPlan], list[MalformedDocument]]:
        parsed: dict[int, ParsedPlan] = {}
        malformed: list[MalformedDocument] = []

        for plan in plans:
            store.write_plan_document(context, plan)
            try:
                result = parse_plan_document(plan.document, plan_id=plan.plan_id)
            except MalformedDocument as e:
                context.malformed_documents += 1
                malformed.append(e)
                logger.warning("Skipping plan %d: %s", plan.plan_id, e.message)
                continue
            context.statements_found += len(result.statements)
            context.parameters_found += len(result.parameters)
            parsed[plan.plan_id] = result

        return parsed, malformed

    def _build_all(
        self,
        plans: list[CapturedPlan],
        parsed: dict[int, ParsedPlan],
        context: RunContext,
        store: ArtifactStore,
    ) -> list[ReplayArtifact]:
        artifacts: list[ReplayArtifact] = []
        for plan in plans:
            if plan.plan_id not in parsed:
                continue
            built = build_artifacts(
                plan,
                parsed[plan.plan_id],
                context,
                select_only=self.config.select_only,
            )
            for artifact in built:
                store.write_artifact(artifact)
            artifacts.extend(built)

        logger.info(
            "Built %d artifact(s) from %d plan(s) (%d filtered)",
            len(artifacts), len(parsed), context.artifacts_filtered,
        )
        return artifacts
