"""Error response builders for MCP tool handlers.

Structured error responses carry a corrective action so an agent can
recover without human intervention.  Sync-engine errors already know
their remediation; ``translate_sync_error`` only picks the category.
"""

import mcp.types as types

from ...errors import (
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


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_linked, conflict, stale_write,
            validation_error, server_error, ...)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("stale_write", "Main.js changed remotely", "Run gas_sync first.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


# Most specific first; RollbackFailureError must win over its siblings
_ERROR_TYPES: list[tuple[type[GasSyncError], str]] = [
    (RollbackFailureError, "rollback_failed"),
    (NotLinkedError, "not_linked"),
    (ConflictError, "conflict"),
    (StaleWriteError, "stale_write"),
    (HookValidationError, "hook_rejected"),
    (LockTimeoutError, "lock_timeout"),
    (RemoteFailureError, "remote_failure"),
    (GitCommandError, "git_error"),
]


def translate_sync_error(error: GasSyncError) -> types.CallToolResult:
    """Map a sync-engine error onto an error type and its remediation."""
    error_type = next(
        (label for cls, label in _ERROR_TYPES if isinstance(error, cls)),
        "sync_error",
    )
    return build_error_response(error_type, str(error), error.remediation)
