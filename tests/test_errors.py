"""Tests for errors.py — messages and remediation text."""

import pytest

from gas_sync_mcp.errors import (
    ConflictError,
    GasSyncError,
    GitCommandError,
    HookValidationError,
    LockTimeoutError,
    NotLinkedError,
    RemoteFailureError,
    RollbackFailureError,
    StaleWriteError,
)
from gas_sync_mcp.sync.git import GitResult


@pytest.mark.parametrize(
    "error",
    [
        NotLinkedError("abc"),
        ConflictError(["a.js"], "/w"),
        RemoteFailureError("list", "HTTP 500"),
        RollbackFailureError("deadbeef", "/w", "locked"),
        StaleWriteError("/w/a.js", 1.0, 2.0),
        LockTimeoutError("/w", 30),
        GitCommandError(["status"], GitResult(128, "", "fatal: not a git repository")),
        HookValidationError("a.js", "lint failed\n"),
    ],
)
def test_every_error_is_a_sync_error_with_remediation(error):
    assert isinstance(error, GasSyncError)
    assert error.remediation
    assert str(error)


def test_default_remediation():
    assert GasSyncError("x").remediation == "Retry the operation."
    assert GasSyncError("x", remediation="Do y.").remediation == "Do y."


def test_not_linked_names_breadcrumb_path():
    error = NotLinkedError("abc", "libs/auth")

    assert "'libs/auth'" in str(error)
    assert "'libs/auth/.git/config'" in error.remediation


def test_not_linked_root():
    error = NotLinkedError("abc")
    assert "the project root" in str(error)
    assert "'.git/config'" in error.remediation


def test_conflict_lists_paths():
    error = ConflictError(["a.js", "lib/b.js"], "/work")

    assert str(error) == "Merge conflicts in 2 file(s): a.js, lib/b.js"
    assert error.paths == ["a.js", "lib/b.js"]
    assert "/work" in error.remediation


def test_rollback_names_recovery_commands():
    error = RollbackFailureError("deadbeef", "/work", "cannot lock ref")

    assert "deadbeef" in str(error)
    assert "git revert --no-edit deadbeef" in error.remediation
    assert "git reset --hard deadbeef~1" in error.remediation


def test_rollback_failure_of_first_commit_deletes_ref():
    error = RollbackFailureError("deadbeef", "/work", "cannot lock ref", first_commit=True)

    assert "cd /work && git update-ref -d HEAD" in error.remediation
    assert "deadbeef~1" not in error.remediation
    assert "git revert --no-edit deadbeef" in error.remediation


def test_stale_write_message():
    error = StaleWriteError("/w/a.js", 100.0, 200.5)
    assert "local mtime 100.000 < remote update 200.500" in str(error)


def test_git_command_uses_stdout_when_stderr_empty():
    error = GitCommandError(["commit"], GitResult(1, "nothing to commit", ""))
    assert str(error) == "git commit failed (exit 1): nothing to commit"
    assert error.args_list == ["commit"]


def test_lock_timeout_formats_seconds():
    assert "Timed out after 2.5s" in str(LockTimeoutError("/w", 2.5))
