"""
Replay executor: runs artifacts against the target, one at a time.

Replay is a best-effort batch. Each artifact is executed on its own; a
failure is recorded and the loop moves on. Only a target that cannot be
reached before the first artifact aborts the phase.

Artifacts run sequentially in lexicographic artifact-id order so that the
target's "most recent duration" for a statement is always the one this run
just produced.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError

from planreplay.db.handle import DatabaseHandle
from planreplay.exceptions import ReplayFailed, TargetUnavailable
from planreplay.models import ReplayArtifact, ReplayOutcome, RunContext

logger = logging.getLogger(__name__)

# Called after each successful execution; returns the plan-consistency
# verdict for the artifact (None when unknown or not checked).
AfterExecute = Callable[[ReplayArtifact], "bool | None"]


class ReplayExecutor:
    """
    Sequential executor for replay artifacts.

    Attributes:
        failures: ReplayFailed records for every artifact that failed,
            in execution order.
    """

    def __init__(self, target: DatabaseHandle) -> None:
        self._target = target
        self.failures: list[ReplayFailed] = []

    def check_target(self) -> None:
        """
        Make sure the target answers before anything runs.

        Raises:
            TargetUnavailable: If the target cannot execute a trivial query.
        """
        try:
            self._target.ping()
        except SQLAlchemyError as e:
            raise TargetUnavailable(
                f"Target is unreachable: {e}",
                server=self._target.server,
                database=self._target.database,
            ) from e

    def run(
        self,
        artifacts: Iterable[ReplayArtifact],
        context: RunContext,
        after_execute: AfterExecute | None = None,
        cancel: threading.Event | None = None,
    ) -> list[ReplayOutcome]:
        """
        Execute every artifact and return one outcome per artifact run.

        Args:
            artifacts: Artifacts to replay; order is normalized here.
            context: Run context; replayed and failures are updated.
            after_execute: Hook run after each successful execution.
            cancel: When set, the loop stops before the next artifact.

        Raises:
            TargetUnavailable: If the target is unreachable up front.
        """
        ordered = sorted(artifacts, key=lambda a: a.artifact_id)
        self.check_target()

        logger.info(
            "Replaying %d artifact(s) on %s/%s",
            len(ordered), self._target.server, self._target.database,
        )

        outcomes: list[ReplayOutcome] = []
        for artifact in ordered:
            if cancel is not None and cancel.is_set():
                logger.info(
                    "Replay cancelled with %d artifact(s) remaining",
                    len(ordered) - len(outcomes),
                )
                break
            outcomes.append(self._run_one(artifact, context, after_execute))

        if context.failures:
            logger.warning(
                "Replay finished: %d of %d artifact(s) failed",
                context.failures, len(outcomes),
            )
        else:
            logger.info("Replay finished: %d artifact(s) succeeded", len(outcomes))
        return outcomes

    def _run_one(
        self,
        artifact: ReplayArtifact,
        context: RunContext,
        after_execute: AfterExecute | None,
    ) -> ReplayOutcome:
        context.replayed += 1
        try:
            self._target.execute(artifact.content)
        except SQLAlchemyError as e:
            failure = ReplayFailed(artifact.artifact_id, _first_line(e))
            self.failures.append(failure)
            context.failures += 1
            logger.warning("%s", failure.message)
            return ReplayOutcome(
                artifact_id=artifact.artifact_id,
                succeeded=False,
                error_detail=failure.detail,
            )

        logger.debug("Replayed %s", artifact.artifact_id)
        consistent = after_execute(artifact) if after_execute is not None else None
        return ReplayOutcome(
            artifact_id=artifact.artifact_id,
            succeeded=True,
            plan_consistent=consistent,
        )


def _first_line(error: Exception) -> str:
    """Driver errors carry the full SQL after the message; keep the message."""
    text = str(error).strip()
    return text.splitlines()[0] if text else type(error).__name__
