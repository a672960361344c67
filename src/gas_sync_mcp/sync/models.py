"""Pydantic models for the sync engine.

Defines the data contracts shared by every sync module:

- ``RemoteFileType``: Tagged file kind, validated at the client boundary.
- ``RemoteFile`` / ``LocalFile``: One file on each side of a sync.
- ``GitBreadcrumb`` / ``LastSync``: Parsed ``.git/config`` marker.
- ``MergeOutcome`` / ``FileMergeResult`` / ``MergeConflict`` /
  ``MergeResult``: Merge Engine output.
- ``SyncDirection`` / ``SyncResult`` / ``SyncReport``: Orchestrator output.
- ``WriteResult``: Atomic write transaction output.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class RemoteFileType(str, Enum):
    """Kind of file held by the remote store."""

    CODE = "CODE"
    MARKUP = "MARKUP"
    DATA = "DATA"


class RemoteFile(BaseModel):
    """One file of a remote script project.

    Attributes:
        name: Slash-separated logical name (no real directories, no
            extension).
        type: File kind.
        content: Source text as stored remotely (shims included).
        position: Execution order within the project.
        update_time: Last modification time reported by the remote.
    """

    name: str
    type: RemoteFileType
    content: str = ""
    position: int = 0
    update_time: datetime | None = None

    model_config = {"frozen": True}


class LocalFile(BaseModel):
    """One file of a local working tree.

    Attributes:
        relative_path: POSIX path relative to the sub-tree root.
        content: Raw file bytes.
        mod_time: Modification time (epoch seconds), if read from disk.
    """

    relative_path: str
    content: bytes
    mod_time: float | None = None

    model_config = {"frozen": True}

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")


class SyncDirection(str, Enum):
    """Which phases of a sync run."""

    SYNC = "sync"
    PULL_ONLY = "pull-only"
    PUSH_ONLY = "push-only"


class LastSync(BaseModel):
    """Metadata recorded in a breadcrumb after a successful sync."""

    timestamp: str
    direction: SyncDirection
    files_changed: int = 0

    model_config = {"frozen": True}


class GitBreadcrumb(BaseModel):
    """Parsed ``<subtree>/.git/config`` marker.

    Attributes:
        project_path: Sub-tree path inside the remote project (``""`` for
            the root).
        remote_url: URL of the ``origin`` remote, if any.
        branch: Branch checked out in the local working copy.
        local_sync_path: Configured local folder, if any.
        last_sync: Metadata from the last fully successful sync.
    """

    project_path: str = ""
    remote_url: str | None = None
    branch: str = "main"
    local_sync_path: str | None = None
    last_sync: LastSync | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Merge results
# ---------------------------------------------------------------------------


class MergeOutcome(str, Enum):
    """Terminal state of merging one file."""

    NEW_REMOTE = "new_remote"
    UNCHANGED = "unchanged"
    CLEAN = "clean"
    CONFLICT = "conflict"


class ConflictHunk(BaseModel):
    """One conflicting region, split into its marker spans."""

    local: str
    base: str | None = None
    remote: str

    model_config = {"frozen": True}


class MergeConflict(BaseModel):
    """A path whose merge left conflict markers in the working tree.

    Attributes:
        path: Path relative to the sub-tree root.
        hunks: Conflicting regions parsed from the marked-up file.
        status: Porcelain status code when detected via ``git status``.
    """

    path: str
    hunks: list[ConflictHunk] = []
    status: str | None = None

    model_config = {"frozen": True}


class FileMergeResult(BaseModel):
    """Outcome of merging one path."""

    path: str
    outcome: MergeOutcome

    model_config = {"frozen": True}


class MergeResult(BaseModel):
    """Output of one Merge Engine run over a sub-tree."""

    strategy: str
    files: list[FileMergeResult] = []
    conflicts: list[MergeConflict] = []

    model_config = {"frozen": True}

    @property
    def success(self) -> bool:
        return not self.conflicts

    def count(self, outcome: MergeOutcome) -> int:
        return sum(1 for f in self.files if f.outcome == outcome)


# ---------------------------------------------------------------------------
# Sync results
# ---------------------------------------------------------------------------


class SyncResult(BaseModel):
    """Result of syncing one sub-tree.

    Attributes:
        subtree_path: Sub-tree path inside the remote project.
        local_path: Local working copy folder.
        files_pulled: Remote files written locally without a merge.
        files_merged: Files reconciled by a clean merge.
        files_pushed: Files written to the remote store.
        conflicts: Files left with conflict markers.
        committed: Whether a local commit was created.
        strategy: Merge strategy used, ``"force"`` for force overwrite.
        success: ``False`` on conflict or any phase failure.
        error: Failure description.
        error_type: Name of the error class that ended the sync.
    """

    subtree_path: str
    local_path: str | None = None
    files_pulled: int = 0
    files_merged: int = 0
    files_pushed: int = 0
    conflicts: list[MergeConflict] = []
    committed: bool = False
    strategy: str | None = None
    success: bool = True
    error: str | None = None
    error_type: str | None = None

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for one sync invocation.

    Attributes:
        script_id: Remote project identifier.
        direction: Requested direction.
        dry_run: True when nothing was written on either side.
        results: One result per sub-tree.
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run finished.
    """

    script_id: str
    direction: SyncDirection
    dry_run: bool = False
    results: list[SyncResult] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def success(self) -> bool:
        return all(r.success for r in self.results)

    @property
    def failures(self) -> list[SyncResult]:
        return [r for r in self.results if not r.success]

    @property
    def conflicts(self) -> list[MergeConflict]:
        return [c for r in self.results for c in r.conflicts]

    def summary(self) -> str:
        """Format a one-paragraph summary of the run."""
        mode = " [dry run]" if self.dry_run else ""
        lines = [
            f"Sync of {self.script_id} ({self.direction.value}){mode}",
            f"  Sub-trees: {len(self.results)}",
            f"  Pulled:    {sum(r.files_pulled for r in self.results)}",
            f"  Merged:    {sum(r.files_merged for r in self.results)}",
            f"  Pushed:    {sum(r.files_pushed for r in self.results)}",
            f"  Conflicts: {len(self.conflicts)}",
            f"  Failures:  {len(self.failures)}",
        ]
        return "\n".join(lines)


class WriteResult(BaseModel):
    """Result of one atomic write transaction.

    Attributes:
        name: Remote file name written.
        local_path: Absolute local path written.
        commit_hash: Local commit created, or ``None`` when nothing changed.
        hook_modified: True if hooks rewrote the content before push.
        remote_update_time: Update time reported by the remote afterwards.
    """

    name: str
    local_path: str
    commit_hash: str | None = None
    hook_modified: bool = False
    remote_update_time: datetime | None = None

    model_config = {"frozen": True}
