"""planreplay - Capture SQL Server Query Store plans and replay them on another server."""

__version__ = "0.1.0"
__license__ = "MIT"

# Exception hierarchy (import first so other modules can use it)
from planreplay.exceptions import (
    PlanReplayError,
    ConfigurationError,
    ConnectivityError,
    SourceUnavailable,
    TargetUnavailable,
    FeatureDisabled,
    MalformedDocument,
    ReplayFailed,
    VerificationUnavailable,
)

from planreplay.models import (
    CapturedPlan,
    ComparisonRecord,
    CorrelationKey,
    Parameter,
    ParsedPlan,
    ReplayArtifact,
    ReplayOutcome,
    RunContext,
    StatementKind,
    StatementRecord,
)
from planreplay.config import (
    Config,
    SettleConfig,
    get_config,
)
from planreplay.parser.showplan import parse_plan_document
from planreplay.replay.builder import build_artifacts
from planreplay.replay.executor import ReplayExecutor
from planreplay.verification.consistency import ConsistencyVerifier
from planreplay.verification.performance import PerformanceCorrelator
from planreplay.engine import ReplayReport, ReplayService

__all__ = [
    # Exception hierarchy
    "PlanReplayError",
    "ConfigurationError",
    "ConnectivityError",
    "SourceUnavailable",
    "TargetUnavailable",
    "FeatureDisabled",
    "MalformedDocument",
    "ReplayFailed",
    "VerificationUnavailable",
    # Models
    "CapturedPlan",
    "ComparisonRecord",
    "CorrelationKey",
    "Parameter",
    "ParsedPlan",
    "ReplayArtifact",
    "ReplayOutcome",
    "RunContext",
    "StatementKind",
    "StatementRecord",
    # Configuration
    "Config",
    "SettleConfig",
    "get_config",
    # Phases
    "parse_plan_document",
    "build_artifacts",
    "ReplayExecutor",
    "ConsistencyVerifier",
    "PerformanceCorrelator",
    # Orchestration
    "ReplayReport",
    "ReplayService",
    # Metadata
    "__version__",
    "__license__",
]
