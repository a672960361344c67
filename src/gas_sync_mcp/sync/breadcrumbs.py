"""Breadcrumb Registry: which parts of a remote project are git-linked.

A breadcrumb is the remote file ``<subtree>/.git/config``.  Its presence
declares ``<subtree>`` (``""`` for the project root) and everything below
it as one independently synchronised unit.  A file belongs to exactly one
sub-tree: the one whose breadcrumb is its nearest ancestor.

Breadcrumbs are never created implicitly; asking for an unlinked path
raises ``NotLinkedError``.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ..converters.module_wrapper import unwrap_git_file, wrap_git_file
from ..errors import NotLinkedError
from .ini import deep_merge, parse_ini, serialize_ini
from .models import (
    GitBreadcrumb,
    LastSync,
    RemoteFile,
    RemoteFileType,
    SyncDirection,
)

logger = logging.getLogger(__name__)

BREADCRUMB_FILE = ".git/config"


def breadcrumb_name(project_path: str) -> str:
    """Remote file name of the breadcrumb for *project_path*."""
    return f"{project_path}/{BREADCRUMB_FILE}" if project_path else BREADCRUMB_FILE


def _breadcrumb_prefix(name: str) -> str | None:
    if name == BREADCRUMB_FILE:
        return ""
    suffix = "/" + BREADCRUMB_FILE
    if name.endswith(suffix):
        return name[: -len(suffix)]
    return None


def breadcrumb_paths(remote_files: list[RemoteFile]) -> set[str]:
    """Every sub-tree path that carries a breadcrumb."""
    paths = set()
    for f in remote_files:
        prefix = _breadcrumb_prefix(f.name)
        if prefix is not None:
            paths.add(prefix)
    return paths


def owner_of(name: str, linked: set[str]) -> str:
    """Return the sub-tree that owns remote file *name*.

    The owner is the longest linked path that is an ancestor of *name*;
    files outside every linked sub-tree belong to the root.
    """
    best = ""
    for path in linked:
        if path and name.startswith(path + "/") and len(path) > len(best):
            best = path
    return best


def list_subtrees(remote_files: list[RemoteFile]) -> list[str]:
    """List linked sub-tree paths, root first, then by depth and name."""
    return sorted(
        breadcrumb_paths(remote_files),
        key=lambda p: (p != "", p.count("/"), p),
    )


def filter_to_subtree(
    remote_files: list[RemoteFile], project_path: str
) -> list[RemoteFile]:
    """Return the files owned by *project_path*, with the prefix stripped.

    Files that belong to a deeper nested breadcrumb are excluded, as are
    files of ancestor or sibling sub-trees.  The sub-tree's own breadcrumb
    comes back as ``.git/config``.
    """
    linked = breadcrumb_paths(remote_files) | {project_path}
    result: list[RemoteFile] = []
    for f in remote_files:
        if owner_of(f.name, linked) != project_path:
            continue
        if project_path:
            name = f.name[len(project_path) + 1 :]
            result.append(f.model_copy(update={"name": name}))
        else:
            result.append(f)
    return result


def add_prefix(name: str, project_path: str) -> str:
    """Re-attach a sub-tree prefix to a sub-tree-relative name."""
    return f"{project_path}/{name}" if project_path else name


# ---------------------------------------------------------------------------
# Breadcrumb content
# ---------------------------------------------------------------------------


def parse_breadcrumb(content: str, project_path: str = "") -> GitBreadcrumb:
    """Parse breadcrumb content (wrapped or native INI)."""
    ini = parse_ini(unwrap_git_file(content))

    remote_url = ini.get("remote", {}).get("origin", {}).get("url")
    branches = [k for k, v in ini.get("branch", {}).items() if isinstance(v, dict)]
    sync = ini.get("sync", {})

    last_sync = None
    if "lastSync.timestamp" in sync:
        try:
            direction = SyncDirection(sync.get("lastSync.direction", "sync"))
        except ValueError:
            direction = SyncDirection.SYNC
        last_sync = LastSync(
            timestamp=str(sync["lastSync.timestamp"]),
            direction=direction,
            files_changed=int(sync.get("lastSync.filesChanged", 0)),
        )

    local_path = sync.get("localPath")
    return GitBreadcrumb(
        project_path=project_path,
        remote_url=str(remote_url) if remote_url else None,
        branch=branches[0] if branches else "main",
        local_sync_path=str(local_path) if local_path else None,
        last_sync=last_sync,
    )


def read_breadcrumb(
    remote_files: list[RemoteFile], script_id: str, project_path: str = ""
) -> GitBreadcrumb:
    """Find and parse the breadcrumb for *project_path*.

    Raises:
        NotLinkedError: No breadcrumb exists at that path.
    """
    name = breadcrumb_name(project_path)
    for f in remote_files:
        if f.name == name:
            return parse_breadcrumb(f.content, project_path)
    raise NotLinkedError(script_id, project_path)


def list_linked_projects(remote_files: list[RemoteFile]) -> list[GitBreadcrumb]:
    """Parse every breadcrumb in the project, in ``list_subtrees`` order."""
    by_name = {f.name: f for f in remote_files}
    return [
        parse_breadcrumb(by_name[breadcrumb_name(path)].content, path)
        for path in list_subtrees(remote_files)
    ]


def updated_breadcrumb(
    existing: RemoteFile, last_sync: LastSync, local_path: str | None = None
) -> RemoteFile:
    """Return *existing* with ``[sync]`` metadata deep-merged in."""
    current = parse_ini(unwrap_git_file(existing.content))
    sync_updates: dict[str, object] = {
        "lastSync.timestamp": last_sync.timestamp,
        "lastSync.direction": last_sync.direction.value,
        "lastSync.filesChanged": last_sync.files_changed,
    }
    if local_path:
        sync_updates["localPath"] = local_path
    merged = deep_merge(current, {"sync": sync_updates})
    return RemoteFile(
        name=existing.name,
        type=RemoteFileType.CODE,
        content=wrap_git_file(serialize_ini(merged), "config"),
        position=existing.position,
    )


def default_local_path(
    base_dir: str | Path, script_id: str, project_path: str = ""
) -> Path:
    """``<base_dir>/project-<scriptId>[-<path with / as ->]``."""
    folder = f"project-{script_id}"
    if project_path:
        folder += "-" + project_path.replace("/", "-")
    return Path(base_dir).expanduser() / folder


def resolve_local_path(
    breadcrumb: GitBreadcrumb,
    base_dir: str | Path,
    script_id: str,
    override: str | None = None,
) -> Path:
    """Pick the local folder: explicit override, breadcrumb, then default."""
    if override:
        return Path(override).expanduser().resolve()
    if breadcrumb.local_sync_path:
        return Path(breadcrumb.local_sync_path).expanduser().resolve()
    return default_local_path(base_dir, script_id, breadcrumb.project_path).resolve()
