"""
Package-level exception hierarchy for planreplay.

All exceptions inherit from PlanReplayError, enabling:
- Catching all planreplay errors with a single except clause
- Context fields for debugging (plan_id, artifact_id, config_key, etc.)
- Structured serialization via to_dict() for JSON error output

Hierarchy:
    PlanReplayError
    ├── ConfigurationError       – Invalid options or mode combinations
    ├── ConnectivityError        – A database handle cannot execute
    │   ├── SourceUnavailable    – Source fails during capture (fatal)
    │   └── TargetUnavailable    – Target unreachable before replay (fatal)
    ├── FeatureDisabled          – Query Store is off on a required database
    ├── MalformedDocument        – A plan document is not parseable XML
    ├── ReplayFailed             – One artifact failed to execute
    └── VerificationUnavailable  – Target stats never materialized

Fatal errors (connectivity, FeatureDisabled, ConfigurationError) propagate
to the top and end the run. The others are recorded and counted.
"""

from __future__ import annotations

from typing import Any


class PlanReplayError(Exception):
    """
    Base exception for all planreplay errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON error output."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
        }


class ConfigurationError(PlanReplayError):
    """
    Invalid run configuration.

    Attributes:
        config_key: The configuration key that caused the error (if known).
    """

    def __init__(self, message: str, config_key: str | None = None) -> None:
        self.config_key = config_key
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["config_key"] = self.config_key
        return result


# ── Connectivity ─────────────────────────────────────────────────────────


class ConnectivityError(PlanReplayError):
    """
    A database handle could not execute.

    Attributes:
        server: Server label of the failing handle (if known).
        database: Database label of the failing handle (if known).
    """

    def __init__(
        self,
        message: str,
        server: str | None = None,
        database: str | None = None,
    ) -> None:
        self.server = server
        self.database = database
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["server"] = self.server
        result["database"] = self.database
        return result


class SourceUnavailable(ConnectivityError):
    """The source database cannot execute the capture query."""
    pass


class TargetUnavailable(ConnectivityError):
    """The target database is unreachable before any artifact runs."""
    pass


class FeatureDisabled(PlanReplayError):
    """
    Query Store is not capturing on a database that needs it.

    Checked before capture begins; never raised mid-run.
    """

    def __init__(self, message: str, role: str) -> None:
        self.role = role
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["role"] = self.role
        return result


# ── Per-item errors (recorded, not fatal) ────────────────────────────────


class MalformedDocument(PlanReplayError):
    """
    A plan document cannot be interpreted as Showplan XML at all.

    Missing optional attributes never raise this; only unparseable input.

    Attributes:
        plan_id: The plan the document belongs to (if known).
        detail: Underlying parser message.
    """

    def __init__(
        self,
        message: str,
        *,
        plan_id: int | None = None,
        detail: str | None = None,
    ) -> None:
        self.plan_id = plan_id
        self.detail = detail
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["plan_id"] = self.plan_id
        result["detail"] = self.detail
        return result


class ReplayFailed(PlanReplayError):
    """
    One replay artifact failed to execute on the target.

    Attributes:
        artifact_id: Identity of the failed artifact.
        detail: Driver error text.
    """

    def __init__(self, artifact_id: str, detail: str) -> None:
        self.artifact_id = artifact_id
        self.detail = detail
        super().__init__(f"Replay of '{artifact_id}' failed: {detail}")

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["artifact_id"] = self.artifact_id
        result["detail"] = self.detail
        return result


class VerificationUnavailable(PlanReplayError):
    """
    Target statistics did not materialize within the settle window.

    The affected check is recorded as unknown.
    """

    def __init__(self, artifact_id: str, attempts: int) -> None:
        self.artifact_id = artifact_id
        self.attempts = attempts
        super().__init__(
            f"No target statistics for '{artifact_id}' after {attempts} attempt(s)"
        )

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["artifact_id"] = self.artifact_id
        result["attempts"] = self.attempts
        return result
