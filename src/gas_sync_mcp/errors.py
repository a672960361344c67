"""Error taxonomy for sync and write operations.

Every error carries a ``remediation`` string naming the exact step a
caller (human or agent) should take next.  The MCP layer turns these into
structured tool errors via ``translate_sync_error``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .sync.git import GitResult


class GasSyncError(Exception):
    """Base class for all sync-engine errors."""

    remediation: str = "Retry the operation."

    def __init__(self, message: str, remediation: str | None = None):
        super().__init__(message)
        if remediation is not None:
            self.remediation = remediation


class NotLinkedError(GasSyncError):
    """No ``.git/config`` breadcrumb exists for the requested path."""

    def __init__(self, script_id: str, project_path: str = ""):
        self.script_id = script_id
        self.project_path = project_path
        where = f"'{project_path}'" if project_path else "the project root"
        config_name = (
            f"{project_path}/.git/config" if project_path else ".git/config"
        )
        super().__init__(
            f"No git breadcrumb found at {where} of project {script_id}",
            remediation=(
                f"Write a breadcrumb file named '{config_name}' to the "
                "project, for example:\n"
                '[remote "origin"]\n'
                "  url = https://github.com/owner/repo.git\n"
                '[branch "main"]\n'
                "  remote = origin\n"
                "  merge = refs/heads/main\n"
                "then initialize the local repository manually and re-run sync."
            ),
        )


class ConflictError(GasSyncError):
    """A merge left conflict markers in one or more files."""

    def __init__(self, paths: list[str], sync_folder: str):
        self.paths = list(paths)
        self.sync_folder = sync_folder
        super().__init__(
            f"Merge conflicts in {len(self.paths)} file(s): "
            + ", ".join(self.paths),
            remediation=(
                f"Resolve the conflict markers in {sync_folder}, commit the "
                "result with git, then re-run the sync."
            ),
        )


class RemoteFailureError(GasSyncError):
    """Network or API error while talking to the remote store."""

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(
            f"Remote {operation} failed: {detail}",
            remediation="Check credentials and connectivity, then retry.",
        )


class RollbackFailureError(GasSyncError):
    """The remote push failed and the local commit could not be reverted.

    ``first_commit`` marks a commit with no parent, which ``<hash>~1``
    cannot name; discarding it means deleting the branch ref instead.
    """

    def __init__(
        self, commit_hash: str, repo_path: str, reason: str, first_commit: bool = False
    ):
        self.commit_hash = commit_hash
        self.repo_path = repo_path
        self.reason = reason
        self.first_commit = first_commit
        discard = (
            f"  cd {repo_path} && git update-ref -d HEAD"
            if first_commit
            else f"  cd {repo_path} && git reset --hard {commit_hash}~1"
        )
        super().__init__(
            f"Remote push failed and reverting local commit {commit_hash} "
            f"in {repo_path} also failed: {reason}",
            remediation=(
                "Manual recovery required. In the repository run either:\n"
                f"  cd {repo_path} && git revert --no-edit {commit_hash}\n"
                "or, to discard the commit entirely:\n"
                f"{discard}"
            ),
        )


class StaleWriteError(GasSyncError):
    """The remote file changed after the local copy was last synced."""

    def __init__(
        self, path: str, local_mtime: float, remote_update_time: float
    ):
        self.path = path
        self.local_mtime = local_mtime
        self.remote_update_time = remote_update_time
        super().__init__(
            f"Local file {path} is older than the remote copy "
            f"(local mtime {local_mtime:.3f} < remote update "
            f"{remote_update_time:.3f})",
            remediation=(
                "Pull the remote changes first (run gas_sync with "
                "direction 'pull-only'), review them, then retry the write."
            ),
        )


class LockTimeoutError(GasSyncError):
    """Another operation holds the lock for this working copy."""

    def __init__(self, path: str, timeout: float):
        self.path = path
        self.timeout = timeout
        super().__init__(
            f"Timed out after {timeout:g}s waiting for lock on {path}",
            remediation=(
                "Another sync or write is running against this folder. "
                "Wait for it to finish, or raise GAS_LOCK_TIMEOUT."
            ),
        )


class GitCommandError(GasSyncError):
    """A git subprocess exited with an unexpected status."""

    def __init__(self, args: list[str], result: GitResult):
        self.args_list = list(args)
        self.result = result
        detail = (result.stderr or result.stdout).strip()
        super().__init__(
            f"git {' '.join(args)} failed (exit {result.exit_code}): {detail}",
            remediation="Inspect the repository state with 'git status'.",
        )


class HookValidationError(GasSyncError):
    """Local git hooks rejected a write; the local change was reverted."""

    def __init__(self, path: str, output: str):
        self.path = path
        self.output = output
        super().__init__(
            f"Git hooks rejected the change to {path}: {output.strip()}",
            remediation=(
                "Fix the issues reported by the hook and retry the write. "
                "Nothing was pushed."
            ),
        )
