"""
Tests for Query Store reads.
"""

from __future__ import annotations

import pytest

from conftest import FakeDatabase, db_error, make_plan, plan_row
from planreplay.db import store
from planreplay.exceptions import ConfigurationError, SourceUnavailable


class TestCapturePlans:

    def test_rows_become_plans_in_order(self, source_db: FakeDatabase) -> None:
        plans = [make_plan(plan_id=1), make_plan(plan_id=2, query_hash="0x0000000000000002")]
        source_db.respond(store.CAPTURE_PLANS_SQL, [plan_row(p) for p in plans])

        captured = store.capture_plans(source_db, 4)

        assert captured == plans
        assert source_db.queries_for(store.CAPTURE_PLANS_SQL) == [{"hours": 4}]

    def test_binary_hashes_are_normalized(self, source_db: FakeDatabase) -> None:
        source_db.respond(
            store.CAPTURE_PLANS_SQL,
            [{
                "plan_id": 9,
                "query_id": 90,
                "plan_hash": b"\x11\x22\x33\x44\x55\x66\x77\x88",
                "query_hash": "0x9c1a2b3c4d5e6f70",
                "query_plan": "<ShowPlanXML />",
            }],
        )

        (plan,) = store.capture_plans(source_db, 1)

        assert plan.plan_hash == "0x1122334455667788"
        assert plan.query_hash == "0x9C1A2B3C4D5E6F70"

    def test_null_document_becomes_empty_text(self, source_db: FakeDatabase) -> None:
        row = plan_row(make_plan())
        row["query_plan"] = None
        source_db.respond(store.CAPTURE_PLANS_SQL, [row])

        (plan,) = store.capture_plans(source_db, 1)

        assert plan.document == ""

    def test_nothing_in_window_is_empty(self, source_db: FakeDatabase) -> None:
        assert store.capture_plans(source_db, 1) == []

    @pytest.mark.parametrize("hours", [0, -3, 1.5, "2", True, None])
    def test_invalid_window_rejected(self, source_db: FakeDatabase, hours: object) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            store.capture_plans(source_db, hours)  # type: ignore[arg-type]

        assert exc_info.value.config_key == "window_hours"
        assert source_db.queries == []

    def test_driver_error_is_source_unavailable(self, source_db: FakeDatabase) -> None:
        source_db.fetch_error = db_error("Login failed")

        with pytest.raises(SourceUnavailable) as exc_info:
            store.capture_plans(source_db, 1)

        assert exc_info.value.server == "prod-sql"
        assert exc_info.value.database == "Sales"


class TestQueryStoreState:

    @pytest.mark.parametrize(
        ("state", "for_source", "for_target"),
        [
            ("READ_WRITE", True, True),
            ("READ_ONLY", True, False),
            ("ERROR", True, False),
            ("OFF", False, False),
        ],
    )
    def test_statistics_enabled(
        self, source_db: FakeDatabase, state: str, for_source: bool, for_target: bool
    ) -> None:
        source_db.respond(store.QUERY_STORE_STATE_SQL, [{"actual_state_desc": state}])

        assert store.statistics_enabled(source_db) is for_source
        assert store.statistics_enabled(source_db, require_capture=True) is for_target

    def test_no_options_row_means_off(self, source_db: FakeDatabase) -> None:
        source_db.respond(store.QUERY_STORE_STATE_SQL, [])

        assert store.query_store_state(source_db) == "OFF"
        assert not store.statistics_enabled(source_db)

    def test_state_is_upper_cased(self, source_db: FakeDatabase) -> None:
        source_db.respond(store.QUERY_STORE_STATE_SQL, [{"actual_state_desc": "read_write"}])

        assert store.query_store_state(source_db) == "READ_WRITE"


class TestDurations:

    def test_latest_source_duration(self, source_db: FakeDatabase) -> None:
        source_db.respond(store.SOURCE_DURATION_SQL, [{"last_duration": 1234}])

        assert store.latest_source_duration(source_db, 5) == 1234
        assert source_db.queries_for(store.SOURCE_DURATION_SQL) == [{"plan_id": 5}]

    def test_source_duration_missing(self, source_db: FakeDatabase) -> None:
        assert store.latest_source_duration(source_db, 5) is None

    def test_source_duration_error(self, source_db: FakeDatabase) -> None:
        source_db.fetch_error = db_error("timeout")

        with pytest.raises(SourceUnavailable):
            store.latest_source_duration(source_db, 5)

    def test_latest_target_stats(self, target_db: FakeDatabase) -> None:
        target_db.respond(
            store.TARGET_LATEST_STATS_SQL,
            [{"last_duration": 800, "plan_id": 3, "query_id": 30}],
        )

        stats = store.latest_target_stats(target_db, "0xAB")

        assert stats == store.TargetStats(duration=800, plan_id=3, query_id=30)
        assert target_db.queries_for(store.TARGET_LATEST_STATS_SQL) == [{"query_hash": "0xAB"}]

    def test_latest_target_stats_missing(self, target_db: FakeDatabase) -> None:
        assert store.latest_target_stats(target_db, "0xAB") is None

    def test_find_target_plans(self, target_db: FakeDatabase) -> None:
        target_db.respond(store.TARGET_PLANS_BY_HASH_SQL, [{"plan_id": 4}, {"plan_id": 6}])

        assert store.find_target_plans(target_db, "0x01") == [4, 6]

    def test_find_target_query(self, target_db: FakeDatabase) -> None:
        assert store.find_target_query(target_db, "0x01") is False

        target_db.respond(store.TARGET_QUERY_BY_HASH_SQL, [{"query_id": 1}])

        assert store.find_target_query(target_db, "0x01") is True
