"""
Tests for the replay executor.

The executor is a best-effort batch: one failing artifact never stops the
others, and only an unreachable target aborts the phase.
"""

from __future__ import annotations

import threading

import pytest

from conftest import FakeDatabase, make_plan
from planreplay.exceptions import TargetUnavailable
from planreplay.models import ReplayArtifact, RunContext
from planreplay.parser import parse_plan_document
from planreplay.replay import ReplayExecutor, build_artifacts


def make_artifacts(context: RunContext, count: int) -> list[ReplayArtifact]:
    artifacts = []
    for plan_id in range(1, count + 1):
        document = (
            '<ShowPlanXML><Statements>'
            f'<StmtSimple StatementText="SELECT {plan_id} FROM dbo.T{plan_id}" StatementType="SELECT" />'
            '</Statements></ShowPlanXML>'
        )
        plan = make_plan(plan_id=plan_id, document=document)
        artifacts.extend(build_artifacts(plan, parse_plan_document(document), context))
    return artifacts


class TestFailureIsolation:

    def test_second_of_three_fails(self, target_db: FakeDatabase, context: RunContext) -> None:
        artifacts = make_artifacts(context, 3)
        target_db.fail_scripts_containing.add("dbo.T2")

        executor = ReplayExecutor(target_db)
        outcomes = executor.run(artifacts, context)

        assert [o.succeeded for o in outcomes] == [True, False, True]
        assert context.failures == 1
        assert context.replayed == 3
        assert len(target_db.executed) == 3
        assert "dbo.T2" in (outcomes[1].error_detail or "")
        assert [f.artifact_id for f in executor.failures] == [artifacts[1].artifact_id]

    def test_all_fail_still_runs_everything(self, target_db: FakeDatabase, context: RunContext) -> None:
        artifacts = make_artifacts(context, 3)
        target_db.fail_scripts_containing.add("SELECT")

        outcomes = ReplayExecutor(target_db).run(artifacts, context)

        assert not any(o.succeeded for o in outcomes)
        assert context.failures == 3

    def test_failed_artifact_skips_hook(self, target_db: FakeDatabase, context: RunContext) -> None:
        artifacts = make_artifacts(context, 2)
        target_db.fail_scripts_containing.add("dbo.T1")
        seen: list[str] = []

        def hook(artifact: ReplayArtifact) -> bool | None:
            seen.append(artifact.artifact_id)
            return True

        outcomes = ReplayExecutor(target_db).run(artifacts, context, after_execute=hook)

        assert seen == [artifacts[1].artifact_id]
        assert outcomes[0].plan_consistent is None
        assert outcomes[1].plan_consistent is True


class TestOrdering:

    def test_runs_in_artifact_id_order(self, target_db: FakeDatabase, context: RunContext) -> None:
        artifacts = make_artifacts(context, 3)

        outcomes = ReplayExecutor(target_db).run(list(reversed(artifacts)), context)

        assert [o.artifact_id for o in outcomes] == sorted(a.artifact_id for a in artifacts)
        assert "dbo.T1" in target_db.executed[0]


class TestConnectivity:

    def test_unreachable_target_aborts_before_loop(
        self, target_db: FakeDatabase, context: RunContext
    ) -> None:
        target_db.unreachable = True

        with pytest.raises(TargetUnavailable) as exc_info:
            ReplayExecutor(target_db).run(make_artifacts(context, 2), context)

        assert target_db.executed == []
        assert context.replayed == 0
        assert exc_info.value.server == "test-sql"


class TestCancellation:

    def test_cancel_stops_before_next_artifact(
        self, target_db: FakeDatabase, context: RunContext
    ) -> None:
        artifacts = make_artifacts(context, 3)
        cancel = threading.Event()

        def hook(artifact: ReplayArtifact) -> bool | None:
            cancel.set()
            return None

        outcomes = ReplayExecutor(target_db).run(
            artifacts, context, after_execute=hook, cancel=cancel
        )

        assert len(outcomes) == 1
        assert len(target_db.executed) == 1

    def test_empty_artifact_list(self, target_db: FakeDatabase, context: RunContext) -> None:
        assert ReplayExecutor(target_db).run([], context) == []
        assert context.failures == 0
