"""Tests for build_error_response() and translate_sync_error()."""

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
from gas_sync_mcp.mcp.tools import build_error_response, translate_sync_error
from gas_sync_mcp.sync.git import GitResult


def _text(result) -> str:
    return result.content[0].text


def test_build_error_response():
    result = build_error_response("stale_write", "changed", "Pull first.")

    assert result.isError
    assert _text(result) == "Error (stale_write): changed\n\nAction: Pull first."


@pytest.mark.parametrize(
    "error, label",
    [
        (NotLinkedError("abc"), "not_linked"),
        (ConflictError(["a.js"], "/w"), "conflict"),
        (StaleWriteError("a.js", 1.0, 2.0), "stale_write"),
        (HookValidationError("a.js", "lint"), "hook_rejected"),
        (LockTimeoutError("/w", 1), "lock_timeout"),
        (RemoteFailureError("write", "HTTP 500"), "remote_failure"),
        (GitCommandError(["commit"], GitResult(1, "", "boom")), "git_error"),
        (RollbackFailureError("abc123", "/w", "locked"), "rollback_failed"),
        (GasSyncError("other"), "sync_error"),
    ],
)
def test_labels(error, label):
    assert _text(translate_sync_error(error)).startswith(f"Error ({label})")


def test_remediation_becomes_action():
    text = _text(translate_sync_error(RollbackFailureError("abc123", "/w", "locked")))

    assert "Action: Manual recovery required." in text
    assert "git revert --no-edit abc123" in text
