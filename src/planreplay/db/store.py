"""
Query Store access for the source and target databases.

Every statistics read the replay needs is one of the SQL constants below,
run through a DatabaseHandle. Hashes are converted to ``0x``-prefixed hex
text on the server (``CONVERT(varchar(18), ..., 1)``) so they compare as
plain strings on both sides of the replay.

Durations are Query Store ``last_duration`` values, in microseconds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from planreplay.db.handle import DatabaseHandle
from planreplay.exceptions import ConfigurationError, SourceUnavailable
from planreplay.models import CapturedPlan

logger = logging.getLogger(__name__)

# Plans executed within the last :hours hours. last_execution_time is
# stored in UTC; shift it to the session's offset before comparing with
# the session's local clock.
CAPTURE_PLANS_SQL = """
SELECT
    p.plan_id,
    p.query_id,
    CONVERT(varchar(18), p.query_plan_hash, 1) AS plan_hash,
    CONVERT(varchar(18), q.query_hash, 1) AS query_hash,
    p.query_plan
FROM sys.query_store_plan AS p
JOIN sys.query_store_query AS q ON q.query_id = p.query_id
WHERE SWITCHOFFSET(p.last_execution_time, DATEPART(TZOFFSET, SYSDATETIMEOFFSET()))
      >= DATEADD(HOUR, -:hours, SYSDATETIMEOFFSET())
ORDER BY p.plan_id
"""

QUERY_STORE_STATE_SQL = """
SELECT actual_state_desc
FROM sys.database_query_store_options
"""

SOURCE_DURATION_SQL = """
SELECT TOP 1 rs.last_duration
FROM sys.query_store_runtime_stats AS rs
WHERE rs.plan_id = :plan_id
ORDER BY rs.last_execution_time DESC
"""

TARGET_PLANS_BY_HASH_SQL = """
SELECT p.plan_id
FROM sys.query_store_plan AS p
WHERE CONVERT(varchar(18), p.query_plan_hash, 1) = :plan_hash
"""

TARGET_QUERY_BY_HASH_SQL = """
SELECT q.query_id
FROM sys.query_store_query AS q
WHERE CONVERT(varchar(18), q.query_hash, 1) = :query_hash
"""

TARGET_LATEST_STATS_SQL = """
SELECT TOP 1
    rs.last_duration,
    p.plan_id,
    q.query_id
FROM sys.query_store_query AS q
JOIN sys.query_store_plan AS p ON p.query_id = q.query_id
JOIN sys.query_store_runtime_stats AS rs ON rs.plan_id = p.plan_id
WHERE CONVERT(varchar(18), q.query_hash, 1) = :query_hash
ORDER BY rs.last_execution_time DESC
"""

# Query Store states in which new statistics are still being captured
_CAPTURING_STATES = frozenset({"READ_WRITE"})


@dataclass(frozen=True)
class TargetStats:
    """Most recent target-side observation for a query hash."""

    duration: int | None
    plan_id: int
    query_id: int


def capture_plans(source: DatabaseHandle, window_hours: int) -> list[CapturedPlan]:
    """
    Read every plan executed on the source within the last window_hours.

    Args:
        source: Source database handle.
        window_hours: Size of the capture window, an integer >= 1.

    Returns:
        Captured plans ordered by plan id. Empty when nothing ran in the
        window; that is a valid outcome, not an error.

    Raises:
        ConfigurationError: If window_hours is not an integer >= 1.
        SourceUnavailable: If the source cannot execute the capture query.
    """
    if isinstance(window_hours, bool) or not isinstance(window_hours, int) or window_hours < 1:
        raise ConfigurationError(
            f"window_hours must be an integer >= 1, got {window_hours!r}",
            config_key="window_hours",
        )

    try:
        rows = source.fetch_all(CAPTURE_PLANS_SQL, {"hours": window_hours})
    except SQLAlchemyError as e:
        raise SourceUnavailable(
            f"Cannot read Query Store on source: {e}",
            server=source.server,
            database=source.database,
        ) from e

    plans = [
        CapturedPlan(
            plan_id=int(row["plan_id"]),
            query_id=int(row["query_id"]),
            plan_hash=_hex(row["plan_hash"]),
            query_hash=_hex(row["query_hash"]),
            document=row["query_plan"] or "",
        )
        for row in rows
    ]

    if not plans:
        logger.info(
            "No plans executed on %s/%s in the last %d hour(s)",
            source.server, source.database, window_hours,
        )
    else:
        logger.info(
            "Captured %d plan(s) from %s/%s",
            len(plans), source.server, source.database,
        )
    return plans


def query_store_state(handle: DatabaseHandle) -> str:
    """actual_state_desc of the handle's Query Store, "OFF" when absent."""
    rows = handle.fetch_all(QUERY_STORE_STATE_SQL)
    if not rows or rows[0]["actual_state_desc"] is None:
        return "OFF"
    return str(rows[0]["actual_state_desc"]).upper()


def statistics_enabled(handle: DatabaseHandle, require_capture: bool = False) -> bool:
    """
    Whether Query Store is usable on the handle's database.

    A source only needs readable history, so any state but OFF will do.
    A target must still be capturing (READ_WRITE) for its statistics to
    reflect the replay.
    """
    state = query_store_state(handle)
    if require_capture:
        return state in _CAPTURING_STATES
    return state != "OFF"


def latest_source_duration(source: DatabaseHandle, plan_id: int) -> int | None:
    """Most recent last_duration recorded for a source plan."""
    try:
        rows = source.fetch_all(SOURCE_DURATION_SQL, {"plan_id": plan_id})
    except SQLAlchemyError as e:
        raise SourceUnavailable(
            f"Cannot read runtime stats on source: {e}",
            server=source.server,
            database=source.database,
        ) from e
    if not rows:
        return None
    return _int_or_none(rows[0]["last_duration"])


def find_target_plans(target: DatabaseHandle, plan_hash: str) -> list[int]:
    """Target plan ids whose plan-shape hash matches."""
    rows = target.fetch_all(TARGET_PLANS_BY_HASH_SQL, {"plan_hash": plan_hash})
    return [int(row["plan_id"]) for row in rows]


def find_target_query(target: DatabaseHandle, query_hash: str) -> bool:
    """Whether the target Query Store has captured the query yet."""
    rows = target.fetch_all(TARGET_QUERY_BY_HASH_SQL, {"query_hash": query_hash})
    return bool(rows)


def latest_target_stats(target: DatabaseHandle, query_hash: str) -> TargetStats | None:
    """
    Latest duration, plan id and query id on the target for a query hash.

    The same statement text may have run several times; the most recent
    execution wins.
    """
    rows = target.fetch_all(TARGET_LATEST_STATS_SQL, {"query_hash": query_hash})
    if not rows:
        return None
    row = rows[0]
    return TargetStats(
        duration=_int_or_none(row["last_duration"]),
        plan_id=int(row["plan_id"]),
        query_id=int(row["query_id"]),
    )


def _hex(value: Any) -> str:
    """Normalize a hash column to 0x-prefixed upper-case hex text."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex().upper()
    text = str(value or "")
    if text[:2].lower() == "0x":
        return "0x" + text[2:].upper()
    return text.upper()


def _int_or_none(value: Any) -> int | None:
    if value is None:
        return None
    return int(value)
