"""
Source/target duration correlation.

Before replay, every captured plan gets a ComparisonRecord seeded with its
latest source duration. After each artifact runs, the target's latest
duration, plan id and query id for the same query hash are polled for and
merged into that record. Records are keyed by (query hash, source plan id),
so two source plans that share statement text never update each other's
row.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError

from planreplay.config import SettleConfig
from planreplay.db.handle import DatabaseHandle
from planreplay.db.store import latest_source_duration, latest_target_stats
from planreplay.exceptions import VerificationUnavailable
from planreplay.models import (
    CapturedPlan,
    ComparisonRecord,
    ReplayArtifact,
    RunContext,
)
from planreplay.verification.settle import poll_until

logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_LENGTH = 100


def statement_preview(text: str, length: int = DEFAULT_PREVIEW_LENGTH) -> str:
    """Single-line prefix of a statement, at most length characters."""
    flat = text.replace("\r\n", " ").replace("\r", " ").replace("\n", " ")
    return flat[:length]


class PerformanceCorrelator:
    """
    Builds the comparison table for one run.

    Usage:
        correlator = PerformanceCorrelator(source, target, settle)
        for plan in plans:
            correlator.seed(plan, first_statement_text)
        ...  # after each replayed artifact:
        correlator.record(artifact, context, drift=False)
        rows = correlator.table()
    """

    def __init__(
        self,
        source: DatabaseHandle,
        target: DatabaseHandle,
        settle: SettleConfig | None = None,
        include_statements: bool = False,
        preview_length: int = DEFAULT_PREVIEW_LENGTH,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._source = source
        self._target = target
        self._settle = settle or SettleConfig()
        self._include_statements = include_statements
        self._preview_length = preview_length
        self._sleep = sleep
        self._records: dict[tuple[str, int], ComparisonRecord] = {}

    def seed(
        self,
        plan: CapturedPlan,
        statement_text: str | None = None,
    ) -> ComparisonRecord:
        """
        Create the record for a captured plan with its source duration.

        Seeding the same plan twice returns the existing record.
        """
        record_key = (plan.query_hash, plan.plan_id)
        existing = self._records.get(record_key)
        if existing is not None:
            return existing

        record = ComparisonRecord(
            source_plan_id=plan.plan_id,
            source_query_id=plan.query_id,
            query_hash=plan.query_hash,
            source_duration=latest_source_duration(self._source, plan.plan_id),
        )
        if statement_text:
            self._set_preview(record, statement_text)
        self._records[record_key] = record
        return record

    def seed_all(self, plans: Iterable[CapturedPlan]) -> None:
        for plan in plans:
            self.seed(plan)

    def record(
        self,
        artifact: ReplayArtifact,
        context: RunContext,
        drift: bool = False,
    ) -> bool:
        """
        Merge the target's latest statistics for a replayed artifact.

        Returns:
            True when target statistics were found and merged. On False the
            record's target fields keep whatever an earlier merge left.
        """
        key = artifact.key
        record = self._records.get((key.query_hash, key.plan_id))
        if record is None:
            logger.warning(
                "No seeded comparison row for plan %d; creating one without a source duration",
                key.plan_id,
            )
            record = ComparisonRecord(
                source_plan_id=key.plan_id,
                source_query_id=0,
                query_hash=key.query_hash,
            )
            self._records[(key.query_hash, key.plan_id)] = record

        if not record.statement_preview:
            self._set_preview(record, artifact.statement_text)

        try:
            polled = poll_until(
                lambda: latest_target_stats(self._target, key.query_hash),
                self._settle,
                sleep=self._sleep,
            )
        except SQLAlchemyError as e:
            context.durations_missing += 1
            logger.warning(
                "Reading target stats for %s failed: %s", artifact.artifact_id, e
            )
            return False

        if polled.gave_up:
            context.durations_missing += 1
            unavailable = VerificationUnavailable(artifact.artifact_id, polled.attempts)
            logger.info("%s; target duration left unset", unavailable.message)
            return False

        stats = polled.value
        record.merge_target(
            duration=stats.duration,
            plan_id=stats.plan_id,
            query_id=stats.query_id,
            drift=drift,
        )
        logger.debug(
            "Plan %d: source %s us, target %s us",
            key.plan_id, record.source_duration, record.target_duration,
        )
        return True

    def table(self) -> list[ComparisonRecord]:
        """Comparison records in seed order."""
        return list(self._records.values())

    def _set_preview(self, record: ComparisonRecord, text: str) -> None:
        if self._include_statements:
            record.statement_preview = statement_preview(text, self._preview_length)
