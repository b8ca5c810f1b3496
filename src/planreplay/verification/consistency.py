"""
Plan consistency check on the target.

After an artifact runs, the target's Query Store should eventually hold a
plan for the same query. If one of the target's plans has the same
plan-shape hash as the source plan, the optimizer chose an equivalent plan;
otherwise the plan drifted. Drift is informational and never stops a run.

Requires Query Store on the target. The service refuses to enable this
check when the target's Query Store is off.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from planreplay.config import SettleConfig
from planreplay.db.handle import DatabaseHandle
from planreplay.db.store import find_target_plans, find_target_query
from planreplay.exceptions import VerificationUnavailable
from planreplay.models import ReplayArtifact, RunContext
from planreplay.verification.settle import poll_until

logger = logging.getLogger(__name__)


class ConsistencyVerifier:
    """Compares a replayed artifact's source plan hash with the target's plans."""

    def __init__(
        self,
        target: DatabaseHandle,
        settle: SettleConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._target = target
        self._settle = settle or SettleConfig()
        self._sleep = sleep

    def check(self, artifact: ReplayArtifact, context: RunContext) -> bool | None:
        """
        Verify the target produced an equivalent plan.

        Returns:
            True when a target plan with the same plan-shape hash exists,
            False when the query is on the target under a different plan
            (drift), None when the target never captured the query.
        """
        key = artifact.key
        try:
            seen = poll_until(
                lambda: True if find_target_query(self._target, key.query_hash) else None,
                self._settle,
                sleep=self._sleep,
            )
            if seen.gave_up:
                unavailable = VerificationUnavailable(artifact.artifact_id, seen.attempts)
                context.verification_unknown += 1
                logger.info("%s; plan consistency unknown", unavailable.message)
                return None
            target_plans = find_target_plans(self._target, key.plan_hash)
        except SQLAlchemyError as e:
            context.verification_unknown += 1
            logger.warning(
                "Plan check for %s failed, consistency unknown: %s",
                artifact.artifact_id, e,
            )
            return None

        if target_plans:
            logger.debug(
                "Plan %d consistent on target (plan id(s) %s)",
                key.plan_id, target_plans,
            )
            return True

        context.drift_detected += 1
        logger.info(
            "Plan drift: source plan %d (%s) has no equivalent plan on target",
            key.plan_id, key.plan_hash,
        )
        return False
