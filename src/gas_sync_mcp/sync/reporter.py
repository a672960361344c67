"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync operations:

- ``format_sync_report`` -- full post-sync summary, one block per sub-tree.
- ``format_conflict_help`` -- conflicted paths with hunk diffs and the
  exact steps to resolve them.
- ``format_linked_projects`` -- breadcrumb listing for status output.
- ``report_to_json`` / ``write_result_to_json`` -- structured dicts for
  MCP tool output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .merger import generate_diff

if TYPE_CHECKING:
    from .models import GitBreadcrumb, SyncReport, SyncResult, WriteResult

# Hunks shown per conflicted file before the rest is summarised
_MAX_HUNKS = 3

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def _subtree_label(path: str) -> str:
    return f"'{path}'" if path else "(root)"


def format_sync_report(report: SyncReport) -> str:
    """Format a complete sync report as human-readable text.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = f"Sync report for {report.script_id} ({report.direction.value})"
    if report.dry_run:
        header += " (DRY RUN)"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    lines.append(
        f"Synced {len(report.results)} sub-trees: "
        f"{sum(r.files_pulled for r in report.results)} pulled, "
        f"{sum(r.files_merged for r in report.results)} merged, "
        f"{sum(r.files_pushed for r in report.results)} pushed, "
        f"{len(report.conflicts)} conflicts, {len(report.failures)} failed"
    )
    lines.append("")

    for r in report.results:
        status = "ok" if r.success else "FAILED"
        lines.append(f"Sub-tree {_subtree_label(r.subtree_path)}: {status}")
        if r.local_path:
            lines.append(f"  Local folder: {r.local_path}")
        if r.strategy:
            lines.append(f"  Strategy: {r.strategy}")
        lines.append(
            f"  Pulled {r.files_pulled}, merged {r.files_merged}, "
            f"pushed {r.files_pushed}"
            + (", committed" if r.committed else "")
        )
        if r.conflicts:
            lines.append("  Conflicts:")
            for c in r.conflicts:
                lines.append(f"    {c.path}")
        if r.error and not r.conflicts:
            lines.append(f"  Error ({r.error_type}): {r.error}")
        lines.append("")

    if any(r.conflicts for r in report.results) and not report.dry_run:
        for r in report.results:
            if r.conflicts:
                lines.append(format_conflict_help(r))
                lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Conflict help
# ------------------------------------------------------------------


def format_conflict_help(result: SyncResult) -> str:
    """Describe a sub-tree's conflicts and how to resolve them.

    Each hunk is rendered as a unified diff from the local span to the
    remote span.
    """
    folder = result.local_path or "the sync folder"
    lines = [f"Merge conflicts in {_subtree_label(result.subtree_path)} ({folder}):"]

    for conflict in result.conflicts:
        suffix = f" [{conflict.status}]" if conflict.status else ""
        lines.append(f"  {conflict.path}{suffix}")
        for i, hunk in enumerate(conflict.hunks[:_MAX_HUNKS], start=1):
            diff = generate_diff(
                hunk.local,
                hunk.remote,
                label_old=f"local (hunk {i})",
                label_new=f"remote (hunk {i})",
            )
            for diff_line in diff.rstrip().splitlines():
                lines.append(f"    {diff_line}")
        if len(conflict.hunks) > _MAX_HUNKS:
            lines.append(f"    ... ({len(conflict.hunks) - _MAX_HUNKS} more hunks)")

    lines.append("")
    lines.append("To resolve:")
    lines.append(f"  1. Edit the files above in {folder} and remove the conflict markers.")
    lines.append("  2. Commit the result: git add -A && git commit")
    lines.append("  3. Re-run gas_sync. Nothing from these files was pushed.")
    return "\n".join(lines)


# ------------------------------------------------------------------
# Linked projects
# ------------------------------------------------------------------


def format_linked_projects(script_id: str, breadcrumbs: list[GitBreadcrumb]) -> str:
    """List linked sub-trees with their breadcrumb metadata."""
    if not breadcrumbs:
        return f"No git-linked sub-trees in {script_id}."

    lines = [f"Git-linked sub-trees in {script_id}:"]
    for b in breadcrumbs:
        lines.append(f"  {_subtree_label(b.project_path)}")
        lines.append(f"    Remote: {b.remote_url or '(none)'}")
        lines.append(f"    Branch: {b.branch}")
        if b.local_sync_path:
            lines.append(f"    Local path: {b.local_sync_path}")
        if b.last_sync:
            lines.append(
                f"    Last sync: {b.last_sync.timestamp} "
                f"({b.last_sync.direction.value}, {b.last_sync.files_changed} files)"
            )
        else:
            lines.append("    Last sync: never")
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Suitable for MCP ``structuredContent`` output.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "subtree_path": r.subtree_path,
            "local_path": r.local_path,
            "strategy": r.strategy,
            "files_pulled": r.files_pulled,
            "files_merged": r.files_merged,
            "files_pushed": r.files_pushed,
            "committed": r.committed,
            "success": r.success,
            "conflicts": [c.path for c in r.conflicts],
        }
        if r.error:
            entry["error"] = r.error
            entry["error_type"] = r.error_type
        results_list.append(entry)

    return {
        "script_id": report.script_id,
        "direction": report.direction.value,
        "dry_run": report.dry_run,
        "success": report.success,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "subtrees": len(report.results),
            "pulled": sum(r.files_pulled for r in report.results),
            "merged": sum(r.files_merged for r in report.results),
            "pushed": sum(r.files_pushed for r in report.results),
            "conflicts": len(report.conflicts),
            "failed": len(report.failures),
        },
        "results": results_list,
    }


def write_result_to_json(result: WriteResult) -> dict:
    return {
        "name": result.name,
        "local_path": result.local_path,
        "commit_hash": result.commit_hash,
        "hook_modified": result.hook_modified,
        "remote_update_time": (
            result.remote_update_time.isoformat() if result.remote_update_time else None
        ),
    }
