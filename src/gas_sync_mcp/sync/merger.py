"""Merge Engine: reconcile remote content into a local working tree.

Two interchangeable strategies implement the ``MergeStrategy`` protocol:

* ``ThreeWayMergeStrategy`` -- one ``git merge-file`` per diverged path.
  Each remote file walks a small state machine: ``NEW_REMOTE`` (no local
  copy, written verbatim), ``UNCHANGED`` (bitwise equal, skipped) or
  diverged, which ends ``CLEAN`` (merged text written in place) or
  ``CONFLICT`` (marked-up text written in place, path reported).
* ``WorktreeMergeStrategy`` -- materialises the remote versions in a
  throwaway ``git worktree``, turns them into a single patch and applies
  it to the main tree with ``git apply --3way``.  Fewer subprocesses,
  coarser conflict granularity.

Merge base
----------
No last-synced copy of the remote is retained.  The base for a diverged
file is the local snapshot: its content at ``HEAD`` *before* the
"WIP: Save before sync" commit, or the current local content when the
file is not tracked.  When the local edits were already committed
before the sync, base equals local and the remote version wins
without a conflict; this approximation is deliberate and known.

``attempt_merge`` and ``generate_diff`` are in-memory helpers (``merge3``
and ``difflib``) used for dry-run previews and conflict reports; they
never touch the working tree.
"""

from __future__ import annotations

import difflib
import logging
import re
import shutil
import tempfile
from pathlib import Path
from typing import Protocol

from merge3 import Merge3

from ..errors import GitCommandError
from ..file_handler import resolve_under, touch_if_older, write_bytes
from .git import (
    ApplyOutcome,
    CommitOutcome,
    GitRepo,
    MergeFileOutcome,
    run_git,
)
from .local_tree import read_local_file, write_local_file
from .models import (
    ConflictHunk,
    FileMergeResult,
    LocalFile,
    MergeConflict,
    MergeOutcome,
    MergeResult,
)
from .transformer import LOCAL_BREADCRUMB_DIR

logger = logging.getLogger(__name__)

WIP_COMMIT_MESSAGE = "WIP: Save before sync"
WORKTREE_COMMIT_MESSAGE = "Remote state from GAS"

_CONFLICT_START = re.compile(r"^<{7}(?: .*)?$")
_CONFLICT_BASE = re.compile(r"^\|{7}(?: .*)?$")
_CONFLICT_MID = re.compile(r"^={7}$")
_CONFLICT_END = re.compile(r"^>{7}(?: .*)?$")


# ---------------------------------------------------------------------------
# In-memory helpers
# ---------------------------------------------------------------------------


def attempt_merge(
    base_content: str,
    local_content: str,
    remote_content: str,
) -> tuple[str, bool]:
    """Perform a three-way merge of local and remote changes against a base.

    Args:
        base_content: The common ancestor content.
        local_content: The current local file content.
        remote_content: The transformed remote content.

    Returns:
        A tuple of ``(merged_text, has_conflicts)`` where *merged_text* may
        contain ``<<<<<<< LOCAL`` / ``>>>>>>> REMOTE`` markers.
    """
    m3 = Merge3(
        base_content.splitlines(True),
        local_content.splitlines(True),
        remote_content.splitlines(True),
    )

    merged_lines = list(
        m3.merge_lines(
            name_a="LOCAL",
            name_b="REMOTE",
        )
    )

    merged_text = "".join(merged_lines)
    return merged_text, "<<<<<<< LOCAL" in merged_text


def generate_diff(
    old_content: str,
    new_content: str,
    label_old: str = "local",
    label_new: str = "remote",
) -> str:
    """Unified diff between two strings; empty when they are identical."""
    diff_lines = difflib.unified_diff(
        old_content.splitlines(True),
        new_content.splitlines(True),
        fromfile=label_old,
        tofile=label_new,
    )
    return "".join(diff_lines)


def parse_conflict_hunks(text: str) -> list[ConflictHunk]:
    """Split marked-up merge output into its conflicting regions.

    Understands both ``merge-file`` labels (``LOCAL``/``REMOTE``) and the
    ``ours``/``theirs`` labels written by ``git apply --3way``, with or
    without a ``|||||||`` base section.
    """
    hunks: list[ConflictHunk] = []
    section: str | None = None
    spans: dict[str, list[str]] = {}

    for line in text.splitlines(True):
        bare = line.rstrip("\r\n")
        if section is None:
            if _CONFLICT_START.match(bare):
                section = "local"
                spans = {"local": [], "base": [], "remote": []}
            continue
        if section == "local" and _CONFLICT_BASE.match(bare):
            section = "base"
        elif section in ("local", "base") and _CONFLICT_MID.match(bare):
            section = "remote"
        elif section == "remote" and _CONFLICT_END.match(bare):
            hunks.append(
                ConflictHunk(
                    local="".join(spans["local"]),
                    base="".join(spans["base"]) if spans["base"] else None,
                    remote="".join(spans["remote"]),
                )
            )
            section = None
        else:
            spans[section].append(line)

    return hunks


def has_conflict_markers(content: bytes | str) -> bool:
    """True if *content* holds a complete start/mid/end marker sequence."""
    text = content.decode("utf-8", errors="replace") if isinstance(content, bytes) else content
    return bool(parse_conflict_hunks(text))


def merge_file_contents(
    base: str, local: str, remote: str, timeout: float = 60
) -> tuple[MergeFileOutcome, str]:
    """Run ``git merge-file`` on three in-memory versions.

    Returns:
        ``(outcome, merged_text)``; conflicts are marked ``LOCAL`` /
        ``BASE`` / ``REMOTE``.
    """
    with tempfile.TemporaryDirectory(prefix="gas-merge-") as tmp:
        tmp_path = Path(tmp)
        paths = []
        for label, text in (("local", local), ("base", base), ("remote", remote)):
            path = tmp_path / label
            path.write_bytes(text.encode("utf-8"))
            paths.append(path)
        return GitRepo(tmp_path, timeout).merge_file(*paths)


def preview_merge(repo: GitRepo, remote_files: list[LocalFile]) -> list[FileMergeResult]:
    """Predict per-file merge outcomes without touching the working tree."""
    results: list[FileMergeResult] = []
    for remote in remote_files:
        local = read_local_file(repo.path, remote.relative_path)
        if local is None:
            outcome = MergeOutcome.NEW_REMOTE
        elif local.content == remote.content:
            outcome = MergeOutcome.UNCHANGED
        else:
            local_text = local.content.decode("utf-8", errors="replace")
            base = repo.show("HEAD", remote.relative_path)
            _, conflicted = attempt_merge(
                base if base is not None else local_text,
                local_text,
                remote.content.decode("utf-8", errors="replace"),
            )
            outcome = MergeOutcome.CONFLICT if conflicted else MergeOutcome.CLEAN
        results.append(FileMergeResult(path=remote.relative_path, outcome=outcome))
    return results


# ---------------------------------------------------------------------------
# Shared steps
# ---------------------------------------------------------------------------


def save_work_in_progress(repo: GitRepo) -> bool:
    """Commit any pending local changes before the merge touches the tree.

    Returns:
        ``False`` if a hook rejected the commit; the changes then stay in
        the working tree only.
    """
    if not repo.has_changes():
        return True
    repo.add_all()
    outcome, result = repo.commit(WIP_COMMIT_MESSAGE)
    if outcome == CommitOutcome.REJECTED:
        logger.warning(
            "WIP commit in %s was rejected: %s",
            repo.path,
            (result.stderr or result.stdout).strip(),
        )
        return False
    return True


def _snapshot_bases(
    repo: GitRepo, diverged: list[tuple[LocalFile, LocalFile]]
) -> dict[str, str]:
    """Capture pre-merge base texts for diverged files (HEAD, else local)."""
    bases: dict[str, str] = {}
    for remote, local in diverged:
        committed = repo.show("HEAD", remote.relative_path)
        bases[remote.relative_path] = (
            committed
            if committed is not None
            else local.content.decode("utf-8", errors="replace")
        )
    return bases


def _classify(
    repo: GitRepo, remote_files: list[LocalFile]
) -> tuple[list[FileMergeResult], list[LocalFile], list[tuple[LocalFile, LocalFile]]]:
    """Sort remote files into settled results, new files and diverged pairs.

    Breadcrumb mirrors under ``.git-gas/`` are remote-owned metadata and
    are overwritten rather than merged.
    """
    settled: list[FileMergeResult] = []
    new_files: list[LocalFile] = []
    diverged: list[tuple[LocalFile, LocalFile]] = []

    for remote in remote_files:
        local = read_local_file(repo.path, remote.relative_path)
        if local is None:
            new_files.append(remote)
        elif local.content == remote.content:
            touch_if_older(resolve_under(repo.path, remote.relative_path), remote.mod_time)
            settled.append(
                FileMergeResult(path=remote.relative_path, outcome=MergeOutcome.UNCHANGED)
            )
        elif remote.relative_path.startswith(LOCAL_BREADCRUMB_DIR):
            write_local_file(repo.path, remote)
            settled.append(
                FileMergeResult(path=remote.relative_path, outcome=MergeOutcome.CLEAN)
            )
        else:
            diverged.append((remote, local))

    return settled, new_files, diverged


def _write_new(repo: GitRepo, new_files: list[LocalFile]) -> list[FileMergeResult]:
    results = []
    for remote in new_files:
        write_local_file(repo.path, remote)
        results.append(
            FileMergeResult(path=remote.relative_path, outcome=MergeOutcome.NEW_REMOTE)
        )
    return results


def _conflict_for(repo: GitRepo, relative_path: str, status: str | None = None) -> MergeConflict:
    path = resolve_under(repo.path, relative_path)
    text = path.read_text(encoding="utf-8", errors="replace") if path.exists() else ""
    return MergeConflict(path=relative_path, hunks=parse_conflict_hunks(text), status=status)


# ---------------------------------------------------------------------------
# Strategy protocol
# ---------------------------------------------------------------------------


class MergeStrategy(Protocol):
    """Protocol for merge strategies.

    Implementations receive the transformed remote files for one sub-tree
    (relative to ``repo.path``) and leave the merged state in the working
    tree.  They never commit the merged result and never push.
    """

    name: str

    def merge(self, repo: GitRepo, remote_files: list[LocalFile]) -> MergeResult: ...


# ---------------------------------------------------------------------------
# Three-way strategy
# ---------------------------------------------------------------------------


class ThreeWayMergeStrategy:
    """Merge each diverged file with ``git merge-file``."""

    name = "three-way"

    def merge(self, repo: GitRepo, remote_files: list[LocalFile]) -> MergeResult:
        settled, new_files, diverged = _classify(repo, remote_files)
        bases = _snapshot_bases(repo, diverged)
        save_work_in_progress(repo)

        files = settled + _write_new(repo, new_files)
        conflicts: list[MergeConflict] = []
        for remote, _ in diverged:
            result, conflict = self.merge_one(repo, remote, bases[remote.relative_path])
            files.append(result)
            if conflict is not None:
                conflicts.append(conflict)

        logger.info(
            "Three-way merge in %s: %d new, %d clean, %d conflicts",
            repo.path,
            sum(1 for f in files if f.outcome == MergeOutcome.NEW_REMOTE),
            sum(1 for f in files if f.outcome == MergeOutcome.CLEAN),
            len(conflicts),
        )
        return MergeResult(strategy=self.name, files=files, conflicts=conflicts)

    def merge_one(
        self, repo: GitRepo, remote: LocalFile, base: str
    ) -> tuple[FileMergeResult, MergeConflict | None]:
        """Merge one diverged file in place against *base*."""
        target = resolve_under(repo.path, remote.relative_path)
        outcome, merged = merge_file_contents(
            base,
            target.read_bytes().decode("utf-8", errors="replace"),
            remote.content.decode("utf-8", errors="replace"),
            repo.timeout,
        )

        write_bytes(target, merged.encode("utf-8"))
        if outcome == MergeFileOutcome.CONFLICT:
            logger.warning("Conflict merging %s", remote.relative_path)
            return (
                FileMergeResult(path=remote.relative_path, outcome=MergeOutcome.CONFLICT),
                MergeConflict(path=remote.relative_path, hunks=parse_conflict_hunks(merged)),
            )
        return FileMergeResult(path=remote.relative_path, outcome=MergeOutcome.CLEAN), None


# ---------------------------------------------------------------------------
# Worktree strategy
# ---------------------------------------------------------------------------


class WorktreeMergeStrategy:
    """Apply the remote state as one patch built in a throwaway worktree.

    Falls back to per-file three-way merges for anything a patch cannot
    express: an unborn branch, files untracked at the base commit, a
    rejected WIP commit, or a patch that fails to apply at all.
    """

    name = "worktree"

    def __init__(self) -> None:
        self._fallback = ThreeWayMergeStrategy()

    def merge(self, repo: GitRepo, remote_files: list[LocalFile]) -> MergeResult:
        base_commit = repo.head()
        if base_commit is None:
            logger.info("No commits in %s yet, using three-way merge", repo.path)
            return self._relabel(self._fallback.merge(repo, remote_files))

        settled, new_files, diverged = _classify(repo, remote_files)
        bases = _snapshot_bases(repo, diverged)
        if not save_work_in_progress(repo):
            return self._relabel(self._fallback.merge(repo, remote_files))

        tracked: list[tuple[LocalFile, LocalFile]] = []
        untracked: list[tuple[LocalFile, LocalFile]] = []
        for pair in diverged:
            if repo.show(base_commit, pair[0].relative_path) is None:
                untracked.append(pair)
            else:
                tracked.append(pair)

        files = list(settled)
        conflicts: list[MergeConflict] = []

        if tracked:
            try:
                outcome = self._apply_remote_patch(repo, base_commit, [r for r, _ in tracked])
            except GitCommandError as exc:
                logger.warning("Patch apply failed in %s, merging per file: %s", repo.path, exc)
                untracked = diverged
            else:
                unmerged = dict((path, code) for code, path in repo.unmerged_paths())
                for remote, _ in tracked:
                    rel = remote.relative_path
                    if outcome == ApplyOutcome.CONFLICTED and rel in unmerged:
                        files.append(FileMergeResult(path=rel, outcome=MergeOutcome.CONFLICT))
                        conflicts.append(_conflict_for(repo, rel, unmerged[rel]))
                    else:
                        files.append(FileMergeResult(path=rel, outcome=MergeOutcome.CLEAN))

        for remote, _ in untracked:
            result, conflict = self._fallback.merge_one(repo, remote, bases[remote.relative_path])
            files.append(result)
            if conflict is not None:
                conflicts.append(conflict)

        files += _write_new(repo, new_files)
        logger.info(
            "Worktree merge in %s: %d files, %d conflicts",
            repo.path,
            len(files),
            len(conflicts),
        )
        return MergeResult(strategy=self.name, files=files, conflicts=conflicts)

    def _apply_remote_patch(
        self, repo: GitRepo, base_commit: str, remote_files: list[LocalFile]
    ) -> ApplyOutcome:
        """Build the base-to-remote patch in a worktree and apply it."""
        holder = Path(tempfile.mkdtemp(prefix=".gas-worktree-", dir=repo.path.parent))
        worktree = holder / "tree"
        try:
            repo.worktree_add(worktree, base_commit)
            wt_repo = GitRepo(worktree, repo.timeout)
            for remote in remote_files:
                write_bytes(resolve_under(worktree, remote.relative_path), remote.content)
            wt_repo.add_all()
            outcome, result = wt_repo.commit(WORKTREE_COMMIT_MESSAGE)
            if outcome == CommitOutcome.NOTHING_TO_COMMIT:
                return ApplyOutcome.EMPTY
            if outcome == CommitOutcome.REJECTED:
                raise GitCommandError(["commit", "-m", WORKTREE_COMMIT_MESSAGE], result)

            patch_file = holder / "remote.patch"
            patch_file.write_text(wt_repo.diff("HEAD~1", "HEAD"), encoding="utf-8")
            return repo.apply_3way(patch_file)
        finally:
            removed = repo.worktree_remove(worktree)
            if not removed.ok:
                logger.warning("Could not remove worktree %s: %s", worktree, removed.stderr.strip())
                run_git(["worktree", "prune"], repo.path, repo.timeout)
            shutil.rmtree(holder, ignore_errors=True)

    def _relabel(self, result: MergeResult) -> MergeResult:
        return result.model_copy(update={"strategy": self.name})


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_STRATEGY_MAP: dict[str, type] = {
    "three-way": ThreeWayMergeStrategy,
    "worktree": WorktreeMergeStrategy,
}


def create_merge_strategy(name: str, repo: GitRepo | None = None) -> MergeStrategy:
    """Factory: create a merge strategy by name.

    Args:
        name: ``"auto"``, ``"three-way"`` or ``"worktree"``.  ``"auto"``
            picks the worktree strategy when *repo*'s git supports
            worktrees and three-way otherwise.
        repo: Repository used for the ``"auto"`` capability probe.

    Returns:
        A ``MergeStrategy`` instance.

    Raises:
        ValueError: If *name* is not a known strategy.
    """
    if name == "auto":
        if repo is not None and repo.worktree_supported():
            return WorktreeMergeStrategy()
        return ThreeWayMergeStrategy()

    cls = _STRATEGY_MAP.get(name)
    if cls is None:
        valid = ", ".join(["auto", *sorted(_STRATEGY_MAP)])
        raise ValueError(f"Unknown merge strategy '{name}'. Valid strategies: {valid}")
    return cls()
