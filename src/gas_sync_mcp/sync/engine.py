"""Sync Orchestrator: pull, merge, commit and push every linked sub-tree.

The ``SyncEngine`` fetches the remote file list once per run, then for
each linked sub-tree (see ``breadcrumbs``):

1. Resolves the local folder and takes its lock.
2. Ensures a git working copy exists (init, branch, origin remote).
3. Filters and transforms the remote files for the sub-tree.
4. Merges them into the working tree (or force-overwrites it).
5. Commits the merged state.
6. Unless pulling only, pushes every changed local file back.
7. Rewrites the breadcrumb's ``lastSync`` metadata.

Error handling is per sub-tree: a conflict, git failure or remote error
is recorded in that sub-tree's ``SyncResult`` and the run moves on to
the next one.  ``push-only`` still pulls and merges first; the engine
never pushes blind.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from ..cache import LRUCache
from ..errors import ConflictError, GitCommandError, NotLinkedError
from ..file_handler import clear_working_tree, touch_if_older
from .breadcrumbs import (
    add_prefix,
    breadcrumb_name,
    filter_to_subtree,
    list_subtrees,
    read_breadcrumb,
    resolve_local_path,
    updated_breadcrumb,
)
from .git import DEFAULT_GIT_TIMEOUT, CommitOutcome, GitRepo
from .guard import record_update_times
from .local_tree import walk_local_files, write_local_file
from .locks import PathLockTable
from .merger import create_merge_strategy, has_conflict_markers, preview_merge
from .models import (
    GitBreadcrumb,
    LastSync,
    LocalFile,
    MergeConflict,
    MergeOutcome,
    RemoteFile,
    SyncDirection,
    SyncReport,
    SyncResult,
)
from .transformer import LOCAL_BREADCRUMB_DIR, index_by_local_path, to_local, to_remote

if TYPE_CHECKING:
    from ..core.client import RemoteStore

logger = logging.getLogger(__name__)

MERGE_COMMIT_MESSAGE = "Merged changes from GAS"
FORCE_COMMIT_MESSAGE = "Force sync from GAS"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncEngine:
    """Synchronise a remote project with its local git working copies.

    Args:
        client: Remote store client.
        base_dir: Folder holding default working copies.
        merge_strategy: ``auto``, ``three-way`` or ``worktree``.
        locks: Lock table shared with other mutating operations.
        remote_times: Cache of last-known remote update times.
        git_timeout: Per-command git timeout in seconds.
        default_branch: Branch used when a breadcrumb names none.
    """

    def __init__(
        self,
        client: RemoteStore,
        base_dir: str | Path = "~/gas-repos",
        merge_strategy: str = "auto",
        locks: PathLockTable | None = None,
        remote_times: LRUCache | None = None,
        git_timeout: float = DEFAULT_GIT_TIMEOUT,
        default_branch: str = "main",
    ) -> None:
        self.client = client
        self.base_dir = base_dir
        self.merge_strategy = merge_strategy
        self.locks = locks if locks is not None else PathLockTable()
        self.remote_times = remote_times if remote_times is not None else LRUCache()
        self.git_timeout = git_timeout
        self.default_branch = default_branch

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def run(
        self,
        script_id: str,
        project_path: str | None = None,
        direction: SyncDirection = SyncDirection.SYNC,
        force_overwrite: bool = False,
        local_path: str | None = None,
        dry_run: bool = False,
    ) -> SyncReport:
        """Sync one linked sub-tree, or all of them.

        Args:
            script_id: Remote project identifier.
            project_path: Sub-tree to sync (``""`` for the root); ``None``
                syncs every linked sub-tree.
            direction: ``sync``, ``pull-only`` or ``push-only``.
            force_overwrite: Replace the local tree with the remote files
                instead of merging.  Local-only edits are lost from the
                working tree (they stay in git history).
            local_path: Local folder override; only valid when a single
                sub-tree is synced.
            dry_run: Predict the outcome without writing anything.

        Returns:
            A ``SyncReport`` with one ``SyncResult`` per sub-tree.

        Raises:
            NotLinkedError: The project, or *project_path*, has no
                breadcrumb.
            RemoteFailureError: The initial listing failed.
            ValueError: *local_path* was given for a multi-tree sync.
        """
        started_at = _now()
        direction = SyncDirection(direction)

        remote_files = self.client.list(script_id)
        record_update_times(self.remote_times, script_id, remote_files)

        if project_path is not None:
            read_breadcrumb(remote_files, script_id, project_path)
            subtrees = [project_path]
        else:
            subtrees = list_subtrees(remote_files)
            if not subtrees:
                raise NotLinkedError(script_id, "")

        if local_path and len(subtrees) > 1:
            raise ValueError(
                f"local_path applies to a single sub-tree, but {len(subtrees)} are "
                f"linked ({', '.join(repr(s) for s in subtrees)}); pass project_path too"
            )

        results: list[SyncResult] = []
        for path in subtrees:
            try:
                result = self._sync_subtree(
                    script_id,
                    remote_files,
                    path,
                    direction,
                    force_overwrite,
                    local_path,
                    dry_run,
                )
            except Exception as exc:
                logger.error("Sync of sub-tree %r failed: %s", path, exc)
                result = SyncResult(
                    subtree_path=path,
                    success=False,
                    error=str(exc),
                    error_type=type(exc).__name__,
                    conflicts=[MergeConflict(path=p) for p in getattr(exc, "paths", [])],
                )
            results.append(result)

        report = SyncReport(
            script_id=script_id,
            direction=direction,
            dry_run=dry_run,
            results=results,
            started_at=started_at,
            completed_at=_now(),
        )
        logger.info(
            "Sync of %s finished: %d sub-trees, %d failed",
            script_id,
            len(results),
            len(report.failures),
        )
        return report

    # ------------------------------------------------------------------
    # Per sub-tree
    # ------------------------------------------------------------------

    def _sync_subtree(
        self,
        script_id: str,
        remote_files: list[RemoteFile],
        path: str,
        direction: SyncDirection,
        force_overwrite: bool,
        override: str | None,
        dry_run: bool,
    ) -> SyncResult:
        breadcrumb = read_breadcrumb(remote_files, script_id, path)
        folder = resolve_local_path(breadcrumb, self.base_dir, script_id, override)
        subtree_files = filter_to_subtree(remote_files, path)
        incoming = [
            local
            for local in map(to_local, index_by_local_path(subtree_files).values())
            if local is not None
        ]

        if dry_run:
            return self._preview(folder, path, direction, incoming, subtree_files)

        with self.locks.hold(folder):
            repo = self.ensure_git_repo(folder, breadcrumb)

            if not force_overwrite:
                self._check_resolved(repo)

            # Pull and merge
            logger.info("Pulling %d files into %s", len(incoming), folder)
            if force_overwrite:
                pulled, merged, strategy = self._force_overwrite(repo, incoming), 0, "force"
            else:
                merge_strategy = create_merge_strategy(self.merge_strategy, repo)
                merge = merge_strategy.merge(repo, incoming)
                if not merge.success:
                    error = ConflictError([c.path for c in merge.conflicts], str(folder))
                    logger.warning("%s in %s", error, folder)
                    return SyncResult(
                        subtree_path=path,
                        local_path=str(folder),
                        files_pulled=merge.count(MergeOutcome.NEW_REMOTE),
                        files_merged=merge.count(MergeOutcome.CLEAN),
                        conflicts=merge.conflicts,
                        strategy=merge.strategy,
                        success=False,
                        error=str(error),
                        error_type=type(error).__name__,
                    )
                pulled = merge.count(MergeOutcome.NEW_REMOTE)
                merged = merge.count(MergeOutcome.CLEAN)
                strategy = merge.strategy

            # Commit
            committed = self._commit_all(repo, MERGE_COMMIT_MESSAGE)

            # Push
            pushed = 0
            if direction != SyncDirection.PULL_ONLY:
                pushed = self._push(repo, script_id, path, subtree_files)
                self._record_sync(
                    repo,
                    script_id,
                    remote_files,
                    path,
                    LastSync(
                        timestamp=_now(),
                        direction=direction,
                        files_changed=pulled + merged + pushed,
                    ),
                    override,
                )

        return SyncResult(
            subtree_path=path,
            local_path=str(folder),
            files_pulled=pulled,
            files_merged=merged,
            files_pushed=pushed,
            committed=committed,
            strategy=strategy,
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def ensure_git_repo(self, folder: Path, breadcrumb: GitBreadcrumb) -> GitRepo:
        """Create the working copy if needed; idempotent."""
        folder.mkdir(parents=True, exist_ok=True)
        repo = GitRepo(folder, self.git_timeout)
        if not repo.is_repo():
            logger.info("Initializing git repository in %s", folder)
            repo.init(breadcrumb.branch or self.default_branch)
            if breadcrumb.remote_url and breadcrumb.remote_url != "local":
                repo.add_remote(breadcrumb.remote_url)

        exclude = folder / ".git" / "info" / "exclude"
        exclude.parent.mkdir(parents=True, exist_ok=True)
        current = exclude.read_text(encoding="utf-8") if exclude.exists() else ""
        if LOCAL_BREADCRUMB_DIR not in current.splitlines():
            prefix = "" if not current or current.endswith("\n") else "\n"
            exclude.write_text(f"{current}{prefix}{LOCAL_BREADCRUMB_DIR}\n", encoding="utf-8")
        return repo

    def _check_resolved(self, repo: GitRepo) -> None:
        """Refuse to merge over conflicts left by an earlier run."""
        unresolved = [p for _, p in repo.unmerged_paths()]
        unresolved += [
            f.relative_path
            for f in walk_local_files(repo.path)
            if has_conflict_markers(f.content) and f.relative_path not in unresolved
        ]
        if unresolved:
            raise ConflictError(unresolved, str(repo.path))

    def _force_overwrite(self, repo: GitRepo, incoming: list[LocalFile]) -> int:
        logger.warning("Force overwrite of %s from remote", repo.path)
        clear_working_tree(repo.path)
        for local in incoming:
            write_local_file(repo.path, local)
        self._commit_all(repo, FORCE_COMMIT_MESSAGE)
        return len(incoming)

    def _commit_all(self, repo: GitRepo, message: str) -> bool:
        if not repo.has_changes():
            return False
        repo.add_all()
        outcome, result = repo.commit(message)
        if outcome == CommitOutcome.REJECTED:
            raise GitCommandError(["commit", "-m", message], result)
        return outcome == CommitOutcome.COMMITTED

    def _outgoing(
        self, folder: Path, subtree_files: list[RemoteFile]
    ) -> list[tuple[LocalFile, RemoteFile]]:
        """Local files whose remote form differs from the remote copy."""
        by_path = index_by_local_path(subtree_files)
        outgoing = []
        for local in walk_local_files(folder):
            existing = by_path.get(local.relative_path)
            if existing is not None:
                current = to_local(existing)
                if current is not None and current.content == local.content:
                    continue
            record = to_remote(local, existing)
            if record is not None:
                outgoing.append((local, record))
        return outgoing

    def _push(
        self,
        repo: GitRepo,
        script_id: str,
        path: str,
        subtree_files: list[RemoteFile],
    ) -> int:
        outgoing = self._outgoing(repo.path, subtree_files)
        marked = [local.relative_path for local, _ in outgoing if has_conflict_markers(local.content)]
        if marked:
            raise ConflictError(marked, str(repo.path))

        logger.info("Pushing %d files from %s", len(outgoing), repo.path)
        for local, record in outgoing:
            name = add_prefix(record.name, path)
            updated = self.client.write(script_id, name, record.content, record.type)
            record_update_times(self.remote_times, script_id, updated)
            written = next((f for f in updated if f.name == name), None)
            if written is not None and written.update_time is not None:
                touch_if_older(repo.path / local.relative_path, written.update_time.timestamp())
        return len(outgoing)

    def _record_sync(
        self,
        repo: GitRepo,
        script_id: str,
        remote_files: list[RemoteFile],
        path: str,
        last_sync: LastSync,
        override: str | None,
    ) -> None:
        """Write ``lastSync`` into the remote breadcrumb and its local mirror."""
        name = breadcrumb_name(path)
        existing = next(f for f in remote_files if f.name == name)
        updated = updated_breadcrumb(existing, last_sync, str(repo.path) if override else None)
        result = self.client.write(script_id, name, updated.content, updated.type)
        record_update_times(self.remote_times, script_id, result)

        written = next((f for f in result if f.name == name), updated)
        relative = written.model_copy(update={"name": name[len(path) + 1 :] if path else name})
        write_local_file(repo.path, to_local(relative))

    def _preview(
        self,
        folder: Path,
        path: str,
        direction: SyncDirection,
        incoming: list[LocalFile],
        subtree_files: list[RemoteFile],
    ) -> SyncResult:
        """Predict merge and push counts without writing anything."""
        repo = GitRepo(folder, self.git_timeout)
        if folder.is_dir() and repo.is_repo():
            outcomes = preview_merge(repo, incoming)
        else:
            outcomes = []
        by_path = {o.path: o.outcome for o in outcomes}

        pulled = sum(
            1
            for f in incoming
            if by_path.get(f.relative_path, MergeOutcome.NEW_REMOTE) == MergeOutcome.NEW_REMOTE
        )
        conflicts = [
            MergeConflict(path=p) for p, o in by_path.items() if o == MergeOutcome.CONFLICT
        ]
        pushed = 0
        if direction != SyncDirection.PULL_ONLY and not conflicts and folder.is_dir():
            pushed = len(self._outgoing(folder, subtree_files))

        return SyncResult(
            subtree_path=path,
            local_path=str(folder),
            files_pulled=pulled,
            files_merged=sum(1 for o in by_path.values() if o == MergeOutcome.CLEAN),
            files_pushed=pushed,
            conflicts=conflicts,
            strategy="preview",
        )
