"""
On-disk staging for raw plan documents and replay artifacts.

Layout under the staging root:

    plans/   <server>_<database>_<plan>_<planhash>_<queryhash>_<stamp>.sqlplan
    replay/  <server>_<database>_<plan>_<planhash>_<queryhash>_<stamp>_<n>.sql

Plan ids are zero-padded so lexicographic order of file names (and of
artifact ids) follows plan id order. The run stamp keeps separate runs from
colliding in the same directory.

Every file is written to a temporary sibling first and renamed into place,
so a reader never sees a half-written artifact.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Iterable

from planreplay.models import (
    CapturedPlan,
    CorrelationKey,
    ReplayArtifact,
    RunContext,
)

logger = logging.getLogger(__name__)

PLAN_SUFFIX = ".sqlplan"
ARTIFACT_SUFFIX = ".sql"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9.-]+")


def safe_label(value: str) -> str:
    """Make a server or database name safe for use in a file name."""
    cleaned = _UNSAFE_CHARS.sub("-", value).strip("-")
    return cleaned or "unknown"


def plan_stem(context: RunContext, key: CorrelationKey) -> str:
    """File stem shared by a plan's document and its artifacts."""
    return "_".join([
        safe_label(context.server),
        safe_label(context.database),
        f"{key.plan_id:010d}",
        key.plan_hash,
        key.query_hash,
        context.run_stamp,
    ])


def artifact_id_for(
    context: RunContext,
    key: CorrelationKey,
    statement_index: int,
) -> str:
    """Stable identity for the statement_index-th artifact of a plan."""
    return f"{plan_stem(context, key)}_{statement_index:03d}"


def atomic_write_text(path: Path, content: str) -> None:
    """Write UTF-8 text so the final path only ever holds complete content."""
    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class ArtifactStore:
    """
    Staging directory for one or more runs.

    Usage:
        store = ArtifactStore(Path("./out"))
        store.prepare()
        store.write_plan_document(context, plan)
        store.write_artifact(artifact)
        replayable = store.load_staged(built)
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.plans_dir = self.root / "plans"
        self.replay_dir = self.root / "replay"

    def prepare(self) -> None:
        """Create the plans/ and replay/ directories if missing."""
        self.plans_dir.mkdir(parents=True, exist_ok=True)
        self.replay_dir.mkdir(parents=True, exist_ok=True)

    def write_plan_document(self, context: RunContext, plan: CapturedPlan) -> Path:
        """Export a raw plan document."""
        path = self.plans_dir / f"{plan_stem(context, plan.key)}{PLAN_SUFFIX}"
        atomic_write_text(path, plan.document)
        context.documents_exported += 1
        logger.debug("Exported plan %d to %s", plan.plan_id, path.name)
        return path

    def write_artifact(self, artifact: ReplayArtifact) -> Path:
        """Persist one replay artifact as a single atomic unit."""
        path = self.artifact_path(artifact.artifact_id)
        atomic_write_text(path, artifact.content)
        return path

    def artifact_path(self, artifact_id: str) -> Path:
        return self.replay_dir / f"{artifact_id}{ARTIFACT_SUFFIX}"

    def list_artifacts(self) -> list[Path]:
        """Artifact files in lexicographic artifact-id order."""
        if not self.replay_dir.exists():
            return []
        return sorted(
            (p for p in self.replay_dir.glob(f"*{ARTIFACT_SUFFIX}") if not p.name.startswith(".")),
            key=lambda p: p.stem,
        )

    def load_staged(self, artifacts: Iterable[ReplayArtifact]) -> list[ReplayArtifact]:
        """
        Read the given artifacts back from the replay directory.

        Returns them in the order list_artifacts() enumerates the files,
        with content taken from disk. Files from other runs are ignored; an
        artifact whose file is gone is skipped with a warning.
        """
        wanted = {a.artifact_id: a for a in artifacts}
        staged: list[ReplayArtifact] = []
        for path in self.list_artifacts():
            artifact = wanted.pop(path.stem, None)
            if artifact is None:
                continue
            content = path.read_bytes().decode("utf-8")
            staged.append(dataclasses.replace(artifact, content=content))

        for artifact_id in sorted(wanted):
            logger.warning("Artifact %s is no longer staged, skipping", artifact_id)
        return staged
