"""
Post-replay verification against the target's Query Store.

Provides:
- ConsistencyVerifier: detects plan drift by plan-shape hash
- PerformanceCorrelator: source vs. target duration table
- poll_until(): bounded backoff while target statistics settle
"""

from planreplay.verification.consistency import ConsistencyVerifier
from planreplay.verification.performance import (
    PerformanceCorrelator,
    statement_preview,
)
from planreplay.verification.settle import SettleResult, poll_until

__all__ = [
    "ConsistencyVerifier",
    "PerformanceCorrelator",
    "statement_preview",
    "SettleResult",
    "poll_until",
]
