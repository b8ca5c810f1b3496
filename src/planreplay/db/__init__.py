"""
Database access for planreplay.

Provides:
- DatabaseHandle protocol and its SQLAlchemy implementation
- Query Store reads for the capture, verification and comparison phases
"""

from planreplay.db.handle import DatabaseHandle, QueryTimeout, SqlAlchemyHandle, connect
from planreplay.db.store import (
    TargetStats,
    capture_plans,
    find_target_plans,
    find_target_query,
    latest_source_duration,
    latest_target_stats,
    query_store_state,
    statistics_enabled,
)

__all__ = [
    "DatabaseHandle",
    "QueryTimeout",
    "SqlAlchemyHandle",
    "connect",
    "TargetStats",
    "capture_plans",
    "find_target_plans",
    "find_target_query",
    "latest_source_duration",
    "latest_target_stats",
    "query_store_state",
    "statistics_enabled",
]
