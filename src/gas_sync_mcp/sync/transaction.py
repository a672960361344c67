"""Atomic Write Transaction: one file, validated locally, then pushed.

Phases:

1. **Local validate** -- write the file, ``git add`` it and commit only
   that path.  The commit runs the repository's own hooks; a rejected
   commit restores the previous file and aborts before anything is sent.
2. **Remote push** -- read the (possibly hook-modified) file back from
   disk, transform it and write it to the remote store.
3. **Rollback** -- if the push fails, restore the file, move HEAD back to
   where it was and reset the index entry.  If moving HEAD fails,
   ``RollbackFailureError`` names the commit and the recovery commands.

The optimistic concurrency guard runs before phase 1, against the
remote ``updateTime`` read at the start of the transaction, so a stale
write never changes either side.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from ..cache import LRUCache
from ..errors import (
    GasSyncError,
    GitCommandError,
    HookValidationError,
    RollbackFailureError,
)
from ..file_handler import resolve_under, touch_if_older, validate_relative_path, write_bytes
from .breadcrumbs import add_prefix, filter_to_subtree
from .git import DEFAULT_GIT_TIMEOUT, CommitOutcome, GitRepo
from .guard import check_in_sync, known_update_time, record_update_times
from .locks import PathLockTable
from .models import LocalFile, RemoteFile, WriteResult
from .transformer import index_by_local_path, to_remote

if TYPE_CHECKING:
    from ..core.client import RemoteStore

logger = logging.getLogger(__name__)


class _Snapshot:
    """Pre-write state of one file, enough to put it back."""

    def __init__(self, path: Path):
        self.path = path
        self.existed = path.is_file()
        self.content = path.read_bytes() if self.existed else None
        self.mtime = path.stat().st_mtime if self.existed else None

    def restore(self) -> None:
        if self.content is None:
            self.path.unlink(missing_ok=True)
            return
        write_bytes(self.path, self.content, self.mtime)


class AtomicWriteTransaction:
    """Write a single file locally and remotely, or not at all.

    Args:
        client: Remote store client.
        locks: Lock table shared with the sync engine.
        remote_times: Cache of last-known remote update times.
        git_timeout: Per-command git timeout in seconds.
    """

    def __init__(
        self,
        client: RemoteStore,
        locks: PathLockTable | None = None,
        remote_times: LRUCache | None = None,
        git_timeout: float = DEFAULT_GIT_TIMEOUT,
    ) -> None:
        self.client = client
        self.locks = locks if locks is not None else PathLockTable()
        self.remote_times = remote_times if remote_times is not None else LRUCache()
        self.git_timeout = git_timeout

    def execute(
        self,
        script_id: str,
        sync_folder: str | Path,
        relative_path: str,
        content: str | bytes,
        project_path: str = "",
        message: str | None = None,
    ) -> WriteResult:
        """Run the transaction.

        Args:
            script_id: Remote project identifier.
            sync_folder: Local working copy of the sub-tree.
            relative_path: File path relative to *sync_folder*.
            content: New file content.
            project_path: Sub-tree path inside the remote project.
            message: Commit message; defaults to ``Add <path>`` or
                ``Update <path>``.

        Raises:
            ValueError: The path is invalid or has no remote representation
                (unsupported type, or a new file with ``_`` in its path).
            StaleWriteError: The remote changed since the local copy was
                last synced.
            HookValidationError: Local hooks rejected the commit.
            RemoteFailureError: The push failed and was rolled back.
            RollbackFailureError: The push failed and the rollback failed.
        """
        rel = validate_relative_path(relative_path)
        data = content.encode("utf-8") if isinstance(content, str) else content

        folder = Path(sync_folder).expanduser().resolve()
        with self.locks.hold(folder):
            repo = GitRepo(folder, self.git_timeout)
            if not repo.is_repo():
                raise GasSyncError(
                    f"{folder} is not a git working copy",
                    remediation="Run gas_sync for this project first to create it.",
                )

            files = self.client.list(script_id)
            record_update_times(self.remote_times, script_id, files)
            existing = index_by_local_path(filter_to_subtree(files, project_path)).get(rel)
            record = to_remote(LocalFile(relative_path=rel, content=data), existing)
            if record is None:
                raise ValueError(f"No remote file name maps to {rel}")
            remote_name = add_prefix(record.name, project_path)

            target = resolve_under(folder, rel)
            check_in_sync(
                target,
                known_update_time(self.remote_times, script_id, remote_name, existing),
            )
            return self._commit_and_push(
                repo, script_id, target, rel, data, remote_name, existing, message
            )

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _commit_and_push(
        self,
        repo: GitRepo,
        script_id: str,
        target: Path,
        rel: str,
        data: bytes,
        remote_name: str,
        existing: RemoteFile | None,
        message: str | None,
    ) -> WriteResult:
        snapshot = _Snapshot(target)
        prev_head = repo.head()

        # Phase 1: local validate
        write_bytes(target, data)
        commit_message = message or (f"Update {rel}" if snapshot.existed else f"Add {rel}")
        try:
            repo.add(rel)
            outcome, result = repo.commit(commit_message, [rel])
        except GitCommandError:
            snapshot.restore()
            repo.unstage(rel, prev_head)
            logger.warning("git failed while committing %s; local change reverted", rel)
            raise
        if outcome == CommitOutcome.REJECTED:
            snapshot.restore()
            repo.unstage(rel, prev_head)
            logger.warning("Hooks rejected %s; local change reverted", rel)
            raise HookValidationError(rel, result.stderr or result.stdout)
        commit_hash = repo.head() if outcome == CommitOutcome.COMMITTED else None

        # Phase 2: remote push
        pushed = target.read_bytes()
        try:
            record = to_remote(LocalFile(relative_path=rel, content=pushed), existing)
            if record is None:
                raise ValueError(f"Hook output for {rel} is not valid UTF-8")
            updated = self.client.write(script_id, remote_name, record.content, record.type)
        except Exception as exc:
            # Phase 3: rollback
            self._rollback(repo, snapshot, rel, prev_head, commit_hash, exc)
            raise

        record_update_times(self.remote_times, script_id, updated)
        written = next((f for f in updated if f.name == remote_name), None)
        update_time = written.update_time if written else None
        if update_time is not None:
            touch_if_older(target, update_time.timestamp())

        logger.info("Wrote %s (%s) to %s", rel, commit_hash or "no commit", script_id)
        return WriteResult(
            name=remote_name,
            local_path=str(target),
            commit_hash=commit_hash,
            hook_modified=pushed != data,
            remote_update_time=update_time,
        )

    def _rollback(
        self,
        repo: GitRepo,
        snapshot: _Snapshot,
        rel: str,
        prev_head: str | None,
        commit_hash: str | None,
        cause: Exception,
    ) -> None:
        logger.warning(
            "Remote push of %s failed (%s); rolling back %s",
            rel,
            cause,
            commit_hash or "working tree",
        )
        snapshot.restore()

        if commit_hash is not None:
            reset = repo.reset_soft(prev_head)
            if not reset.ok:
                raise RollbackFailureError(
                    commit_hash,
                    str(repo.path),
                    (reset.stderr or reset.stdout).strip(),
                    first_commit=prev_head is None,
                ) from cause

        unstaged = repo.unstage(rel, prev_head)
        if unstaged.ok:
            return
        detail = (unstaged.stderr or unstaged.stdout).strip()
        if commit_hash is not None:
            raise RollbackFailureError(
                commit_hash, str(repo.path), detail, first_commit=prev_head is None
            ) from cause
        logger.warning("Could not reset index entry for %s: %s", rel, detail)
