"""
Replay artifacts: building, staging and execution.

Provides:
- build_artifacts(): parsed plan -> self-contained T-SQL scripts
- ArtifactStore: atomic on-disk staging of plan documents and artifacts
- ReplayExecutor: sequential, failure-isolated execution on the target
"""

from planreplay.replay.artifacts import ArtifactStore, artifact_id_for, plan_stem
from planreplay.replay.builder import build_artifacts, render_declaration, render_script
from planreplay.replay.executor import ReplayExecutor

__all__ = [
    "ArtifactStore",
    "artifact_id_for",
    "plan_stem",
    "build_artifacts",
    "render_declaration",
    "render_script",
    "ReplayExecutor",
]
