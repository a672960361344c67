"""Git subprocess wrapper.

Every invocation goes through ``run_git`` and comes back as a
``GitResult``.  Each command has exactly one method on ``GitRepo`` that
maps its exit code to an outcome (or raises ``GitCommandError``), so
callers never interpret raw exit codes themselves.

Timeouts and a missing ``git`` binary are reported as results with exit
codes 124 and 127 and surface as ``GitCommandError`` from the mapping
methods.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ..errors import GitCommandError

logger = logging.getLogger(__name__)

DEFAULT_GIT_TIMEOUT = 60

# Porcelain XY codes that mean "unmerged"
_UNMERGED_CODES = frozenset({"UU", "AA", "DD", "AU", "UA", "DU", "UD"})


@dataclass(frozen=True)
class GitResult:
    """Exit code and captured output of one git invocation."""

    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommitOutcome(str, Enum):
    COMMITTED = "committed"
    NOTHING_TO_COMMIT = "nothing_to_commit"
    REJECTED = "rejected"


class MergeFileOutcome(str, Enum):
    CLEAN = "clean"
    CONFLICT = "conflict"


class ApplyOutcome(str, Enum):
    APPLIED = "applied"
    CONFLICTED = "conflicted"
    EMPTY = "empty"


def run_git(
    args: list[str],
    cwd: str | Path,
    timeout: float = DEFAULT_GIT_TIMEOUT,
    input_text: str | None = None,
) -> GitResult:
    """Run ``git <args>`` in *cwd* and capture the result.

    Never raises for non-zero exits; see the outcome methods on
    ``GitRepo`` for interpretation.
    """
    try:
        proc = subprocess.run(
            ["git", *args],
            cwd=str(cwd),
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            input=input_text,
        )
        result = GitResult(proc.returncode, proc.stdout, proc.stderr)
    except subprocess.TimeoutExpired:
        result = GitResult(124, "", f"git {args[0]} timed out after {timeout}s")
    except FileNotFoundError:
        result = GitResult(127, "", "git executable not found")

    logger.debug("git %s (cwd=%s) -> %d", " ".join(args), cwd, result.exit_code)
    return result


class GitRepo:
    """Git operations on one working copy.

    Args:
        path: Working copy root.
        timeout: Per-command timeout in seconds.
    """

    def __init__(self, path: str | Path, timeout: float = DEFAULT_GIT_TIMEOUT):
        self.path = Path(path)
        self.timeout = timeout

    def run(self, *args: str, input_text: str | None = None) -> GitResult:
        return run_git(list(args), self.path, self.timeout, input_text)

    def _require(self, *args: str) -> GitResult:
        result = self.run(*args)
        if not result.ok:
            raise GitCommandError(list(args), result)
        return result

    # ------------------------------------------------------------------
    # Repository setup
    # ------------------------------------------------------------------

    def is_repo(self) -> bool:
        """True if ``path`` is itself the top level of a git repository."""
        if not self.path.is_dir():
            return False
        result = self.run("rev-parse", "--show-toplevel")
        if not result.ok:
            return False
        return Path(result.stdout.strip()).resolve() == self.path.resolve()

    def init(self, branch: str) -> None:
        self._require("init")
        self._require("symbolic-ref", "HEAD", f"refs/heads/{branch}")

    def add_remote(self, url: str) -> None:
        self._require("remote", "add", "origin", url)

    def worktree_supported(self) -> bool:
        return self.run("worktree", "list").ok

    # ------------------------------------------------------------------
    # Index and commits
    # ------------------------------------------------------------------

    def add_all(self) -> None:
        self._require("add", "-A")

    def add(self, relative_path: str) -> None:
        self._require("add", "--", relative_path)

    def head(self) -> str | None:
        """Current HEAD commit hash, or ``None`` on an unborn branch."""
        result = self.run("rev-parse", "--verify", "--quiet", "HEAD")
        return result.stdout.strip() if result.ok else None

    def show(self, ref: str, relative_path: str) -> str | None:
        """Content of *relative_path* at *ref*, or ``None`` if absent."""
        result = self.run("show", f"{ref}:{relative_path}")
        return result.stdout if result.ok else None

    def has_changes(self) -> bool:
        return bool(self.status())

    def commit(
        self, message: str, paths: list[str] | None = None
    ) -> tuple[CommitOutcome, GitResult]:
        """Commit staged changes (or only *paths*), running hooks.

        ``NOTHING_TO_COMMIT`` when the index matches HEAD; ``REJECTED``
        when git (usually a hook) refused the commit.
        """
        args = ["commit", "-m", message]
        if paths:
            args += ["--", *paths]
        result = self.run(*args)
        if result.ok:
            return CommitOutcome.COMMITTED, result
        output = (result.stdout + result.stderr).lower()
        if any(
            phrase in output
            for phrase in ("nothing to commit", "nothing added to commit", "no changes added")
        ):
            return CommitOutcome.NOTHING_TO_COMMIT, result
        if result.exit_code in (124, 127):
            raise GitCommandError(args, result)
        return CommitOutcome.REJECTED, result

    def status(self) -> list[tuple[str, str]]:
        """Parse ``status --porcelain`` into ``(XY, path)`` pairs."""
        result = self._require("status", "--porcelain", "--untracked-files=all")
        entries = []
        for line in result.stdout.splitlines():
            if len(line) < 4:
                continue
            code, path = line[:2], line[3:]
            if " -> " in path:
                path = path.split(" -> ", 1)[1]
            entries.append((code, path.strip('"')))
        return entries

    def unmerged_paths(self) -> list[tuple[str, str]]:
        return [(code, path) for code, path in self.status() if code in _UNMERGED_CODES]

    # ------------------------------------------------------------------
    # Merging
    # ------------------------------------------------------------------

    def merge_file(
        self, current: Path, base: Path, other: Path
    ) -> tuple[MergeFileOutcome, str]:
        """Three-way merge three files, returning the merged text.

        git exits with the number of conflicts (capped at 127), or a
        negative value on error.
        """
        args = [
            "merge-file",
            "-p",
            "-L", "LOCAL",
            "-L", "BASE",
            "-L", "REMOTE",
            str(current),
            str(base),
            str(other),
        ]
        result = self.run(*args)
        if result.exit_code == 0:
            return MergeFileOutcome.CLEAN, result.stdout
        if 0 < result.exit_code < 124:
            return MergeFileOutcome.CONFLICT, result.stdout
        raise GitCommandError(args, result)

    def diff(self, from_ref: str, to_ref: str) -> str:
        return self._require("diff", "--binary", from_ref, to_ref).stdout

    def apply_3way(self, patch_file: Path) -> ApplyOutcome:
        """Apply a patch with three-way fallback.

        Exit 1 with unmerged entries in the index means the patch applied
        with conflicts; exit 1 without them is a hard failure.
        """
        if patch_file.stat().st_size == 0:
            return ApplyOutcome.EMPTY
        args = ["apply", "--3way", str(patch_file)]
        result = self.run(*args)
        if result.ok:
            return ApplyOutcome.APPLIED
        if result.exit_code == 1 and self.unmerged_paths():
            return ApplyOutcome.CONFLICTED
        raise GitCommandError(args, result)

    # ------------------------------------------------------------------
    # Worktrees
    # ------------------------------------------------------------------

    def worktree_add(self, path: Path, ref: str = "HEAD") -> None:
        self._require("worktree", "add", "--detach", str(path), ref)

    def worktree_remove(self, path: Path) -> GitResult:
        return self.run("worktree", "remove", "--force", str(path))

    # ------------------------------------------------------------------
    # Rollback
    # ------------------------------------------------------------------

    def reset_soft(self, commit: str | None) -> GitResult:
        """Move HEAD back to *commit*, or to an unborn branch if ``None``."""
        if commit is None:
            return self.run("update-ref", "-d", "HEAD")
        return self.run("reset", "--soft", commit)

    def unstage(self, relative_path: str, commit: str | None) -> GitResult:
        """Reset the index entry of one path to its state at *commit*."""
        if commit is None:
            return self.run("rm", "--cached", "--quiet", "--ignore-unmatch", "--", relative_path)
        return self.run("reset", "--quiet", commit, "--", relative_path)
