"""Bidirectional sync between Apps Script projects and local git trees.

Public API for pulling a remote project into local git working copies,
merging concurrent edits, and pushing the result back.

Architecture
------------
A remote project is a flat, position-ordered file list.  ``.git/config``
breadcrumb files inside it mark sub-trees that are each synchronised
with their own local git repository.  Every sync of a sub-tree runs
pull, merge, commit and push in that order; single-file edits use the
atomic write transaction instead.

Modules:

- ``engine``       -- ``SyncEngine``: orchestrates a full sync run.
- ``transaction``  -- ``AtomicWriteTransaction``: single-file write with
  hook validation and rollback.
- ``transformer``  -- remote file <-> local file mapping.
- ``breadcrumbs``  -- sub-tree discovery and breadcrumb metadata.
- ``ini``          -- git-config style INI codec for breadcrumbs.
- ``merger``       -- three-way and worktree merge strategies.
- ``git``          -- git subprocess wrapper with per-command outcomes.
- ``guard``        -- optimistic concurrency check before writes.
- ``locks``        -- per-working-copy lock table.
- ``models``       -- pydantic data contracts.
- ``reporter``     -- human-readable and JSON report formatting.

Usage example
-------------
::

    from gas_sync_mcp.config import load_config
    from gas_sync_mcp.core.client import ScriptApiClient
    from gas_sync_mcp.sync import SyncEngine, format_sync_report

    config = load_config()
    engine = SyncEngine(ScriptApiClient(config), base_dir=config.base_dir)

    preview = engine.run("1AbC...", dry_run=True)
    print(format_sync_report(preview))

    report = engine.run("1AbC...", direction="pull-only")
    print(format_sync_report(report))
"""

from .engine import SyncEngine
from .models import (
    GitBreadcrumb,
    LocalFile,
    MergeConflict,
    RemoteFile,
    RemoteFileType,
    SyncDirection,
    SyncReport,
    SyncResult,
    WriteResult,
)
from .reporter import (
    format_conflict_help,
    format_linked_projects,
    format_sync_report,
    report_to_json,
)
from .transaction import AtomicWriteTransaction

__all__ = [
    "AtomicWriteTransaction",
    "GitBreadcrumb",
    "LocalFile",
    "MergeConflict",
    "RemoteFile",
    "RemoteFileType",
    "SyncDirection",
    "SyncEngine",
    "SyncReport",
    "SyncResult",
    "WriteResult",
    "format_conflict_help",
    "format_linked_projects",
    "format_sync_report",
    "report_to_json",
]
