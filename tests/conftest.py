"""
Shared test fixtures.

FakeDatabase stands in for a source or target SQL Server. It answers the
Query Store SQL constants from planreplay.db.store with canned rows (or a
callable computing rows from the bind parameters), records every executed
script, and can be told to fail.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Mapping, Union

import pytest
from sqlalchemy.exc import OperationalError

from planreplay.config import Config, SettleConfig
from planreplay.db import store
from planreplay.models import CapturedPlan, RunContext

FIXTURES_DIR = Path(__file__).parent / "fixtures"

Rows = list[dict[str, Any]]
Responder = Union[Rows, Callable[[dict[str, Any]], Rows]]


def db_error(message: str) -> OperationalError:
    """A driver-level error as SQLAlchemy would raise it."""
    return OperationalError("statement", {}, Exception(message))


def load_plan(name: str) -> str:
    """Load a Showplan XML fixture."""
    return (FIXTURES_DIR / f"{name}.sqlplan").read_text(encoding="utf-8")


def make_plan(
    plan_id: int = 1,
    document: str | None = None,
    query_id: int | None = None,
    plan_hash: str = "0x1122334455667788",
    query_hash: str = "0x9C1A2B3C4D5E6F70",
) -> CapturedPlan:
    return CapturedPlan(
        plan_id=plan_id,
        query_id=query_id if query_id is not None else plan_id * 10,
        plan_hash=plan_hash,
        query_hash=query_hash,
        document=document if document is not None else load_plan("select_with_params"),
    )


def plan_row(plan: CapturedPlan) -> dict[str, Any]:
    """The capture query row a CapturedPlan comes from."""
    return {
        "plan_id": plan.plan_id,
        "query_id": plan.query_id,
        "plan_hash": plan.plan_hash,
        "query_hash": plan.query_hash,
        "query_plan": plan.document,
    }


class FakeDatabase:
    """In-memory DatabaseHandle."""

    def __init__(self, server: str = "fake-sql", database: str = "Sales") -> None:
        self.server = server
        self.database = database
        self.responses: dict[str, Responder] = {
            store.QUERY_STORE_STATE_SQL: [{"actual_state_desc": "READ_WRITE"}],
        }
        self.queries: list[tuple[str, dict[str, Any]]] = []
        self.executed: list[str] = []
        self.fail_scripts_containing: set[str] = set()
        self.fetch_error: Exception | None = None
        self.unreachable = False
        self.closed = False
        self.on_execute: list[Callable[[str], None]] = []

    def respond(self, sql: str, responder: Responder) -> None:
        self.responses[sql] = responder

    def fetch_all(
        self,
        sql: str,
        params: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        bound = dict(params or {})
        self.queries.append((sql, bound))
        if self.fetch_error is not None:
            raise self.fetch_error
        responder = self.responses.get(sql)
        if responder is None:
            return []
        if callable(responder):
            return responder(bound)
        return [dict(row) for row in responder]

    def execute(self, script: str) -> None:
        self.executed.append(script)
        for marker in self.fail_scripts_containing:
            if marker in script:
                raise db_error(f"Invalid object name near '{marker}'")
        for callback in self.on_execute:
            callback(script)

    def ping(self) -> None:
        if self.unreachable:
            raise db_error("Login timeout expired")

    def close(self) -> None:
        self.closed = True

    def queries_for(self, sql: str) -> list[dict[str, Any]]:
        return [params for q, params in self.queries if q == sql]


class SimulatedQueryStore:
    """
    Target-side Query Store that captures statements as they execute.

    register() tells it which query hash and plan a statement text maps to;
    after a matching script executes, the stats become visible, optionally
    only after `delay_reads` empty reads.
    """

    def __init__(self, db: FakeDatabase, delay_reads: int = 0) -> None:
        self.db = db
        self.delay_reads = delay_reads
        self._known: dict[str, tuple[str, str, int, int, int]] = {}
        self._captured: dict[str, tuple[str, int, int, int]] = {}
        self._pending_reads: dict[str, int] = {}
        db.on_execute.append(self._capture)
        db.respond(store.TARGET_LATEST_STATS_SQL, self._latest_stats)
        db.respond(store.TARGET_QUERY_BY_HASH_SQL, self._query_by_hash)
        db.respond(store.TARGET_PLANS_BY_HASH_SQL, self._plans_by_hash)

    def register(
        self,
        statement_text: str,
        query_hash: str,
        plan_hash: str,
        plan_id: int,
        query_id: int,
        duration: int,
    ) -> None:
        self._known[statement_text] = (query_hash, plan_hash, plan_id, query_id, duration)

    def _capture(self, script: str) -> None:
        for text, (query_hash, plan_hash, plan_id, query_id, duration) in self._known.items():
            if text in script:
                self._captured[query_hash] = (plan_hash, plan_id, query_id, duration)
                self._pending_reads[query_hash] = self.delay_reads

    def _visible(self, query_hash: str) -> bool:
        if query_hash not in self._captured:
            return False
        if self._pending_reads.get(query_hash, 0) > 0:
            self._pending_reads[query_hash] -= 1
            return False
        return True

    def _latest_stats(self, params: dict[str, Any]) -> Rows:
        query_hash = params["query_hash"]
        if not self._visible(query_hash):
            return []
        _, plan_id, query_id, duration = self._captured[query_hash]
        return [{"last_duration": duration, "plan_id": plan_id, "query_id": query_id}]

    def _query_by_hash(self, params: dict[str, Any]) -> Rows:
        query_hash = params["query_hash"]
        if not self._visible(query_hash):
            return []
        return [{"query_id": self._captured[query_hash][2]}]

    def _plans_by_hash(self, params: dict[str, Any]) -> Rows:
        return [
            {"plan_id": plan_id}
            for plan_hash, plan_id, _, _ in self._captured.values()
            if plan_hash == params["plan_hash"]
        ]


def no_sleep(seconds: float) -> None:
    """Sleep replacement that records nothing and returns immediately."""
    return None


@pytest.fixture
def fast_settle() -> SettleConfig:
    """Settle bounds with no real waiting."""
    return SettleConfig(
        initial_delay_seconds=0.0,
        max_attempts=3,
        multiplier=0.0,
        max_delay_seconds=0.0,
    )


@pytest.fixture
def context() -> RunContext:
    return RunContext(server="prod-sql", database="Sales", run_stamp="20260101120000")


@pytest.fixture
def source_db() -> FakeDatabase:
    return FakeDatabase(server="prod-sql", database="Sales")


@pytest.fixture
def target_db() -> FakeDatabase:
    return FakeDatabase(server="test-sql", database="Sales")


@pytest.fixture
def make_config(tmp_path: Path, fast_settle: SettleConfig) -> Callable[..., Config]:
    """Config factory rooted in tmp_path with instant settling."""

    def factory(**overrides: Any) -> Config:
        values: dict[str, Any] = {
            "staging_root": tmp_path / "staging",
            "settle": fast_settle,
        }
        values.update(overrides)
        return Config(**values)

    return factory
