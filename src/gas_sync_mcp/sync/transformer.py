"""Content Transformer: one remote file <-> one local file.

Rules, applied in order, first match wins:

1. ``README`` (markup) <-> ``README.md`` with HTML <-> Markdown conversion.
2. ``.git/...`` breadcrumb files <-> ``.git-gas/...`` so they stay out of
   the live working tree; content is unwrapped to native git text.
3. Dotfiles (``.gitignore`` ...) <-> the same name, wrapped in a dotfile
   module shim on the remote side only.
4. Everything else: ``_`` in the remote name <-> ``/`` locally, extension
   from the file type, and code wrapped in / unwrapped from the CommonJS
   module shim.

Both directions are pure string transformations.  Each returns ``None``
for a file with no representation on the other side so callers can skip
it without error handling.  A remote name is unsupported when its local
path would be absolute, contain an empty, ``.`` or ``..`` segment, or
not map back to the same name (``_helper``, ``a__b``, ``a_.cfg``).
Local paths with ``_`` in a segment are unsupported for new files,
since the name they produce would pull back to a different path.
"""

from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath

from ..converters.markdown_html import html_to_markdown, markdown_to_html
from ..converters.module_wrapper import (
    ModuleOptions,
    unwrap_dotfile,
    unwrap_git_file,
    unwrap_module,
    wrap_dotfile,
    wrap_git_file,
    wrap_module,
)
from .models import LocalFile, RemoteFile, RemoteFileType

logger = logging.getLogger(__name__)

README_NAME = "README"
BREADCRUMB_DIR = ".git/"
LOCAL_BREADCRUMB_DIR = ".git-gas/"

_TYPE_EXTENSIONS: dict[RemoteFileType, str] = {
    RemoteFileType.CODE: ".js",
    RemoteFileType.MARKUP: ".html",
    RemoteFileType.DATA: ".json",
}

_EXTENSION_TYPES: dict[str, RemoteFileType] = {
    ".js": RemoteFileType.CODE,
    ".gs": RemoteFileType.CODE,
    ".html": RemoteFileType.MARKUP,
    ".json": RemoteFileType.DATA,
}

# Dotfiles that are local tool noise, never project content.
_IGNORED_DOTFILES = frozenset({".DS_Store"})


def _basename(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def _is_readme(name: str, file_type: RemoteFileType) -> bool:
    return file_type == RemoteFileType.MARKUP and _basename(name) == README_NAME


def _is_safe_path(path: str) -> bool:
    """True if *path* is relative with no empty, ``.`` or ``..`` segment."""
    return not path.startswith("/") and all(
        part not in ("", ".", "..") for part in path.split("/")
    )


def _is_plain_name(name: str) -> bool:
    """True if every ``_``/``/`` separated segment is a non-empty, non-dot name."""
    return all(
        segment and not segment.startswith(".") for segment in re.split(r"[_/]", name)
    )


# ---------------------------------------------------------------------------
# Remote -> local
# ---------------------------------------------------------------------------


def local_path_for(name: str, file_type: RemoteFileType) -> str | None:
    """Return the local relative path for a remote file name.

    ``None`` when the name has no safe, reversible local path.
    """
    if _is_readme(name, file_type):
        path = f"{name}.md"
    elif name.startswith(BREADCRUMB_DIR):
        path = LOCAL_BREADCRUMB_DIR + name.removeprefix(BREADCRUMB_DIR)
    elif _basename(name).startswith("."):
        path = name
    elif _is_plain_name(name):
        path = name.replace("_", "/") + _TYPE_EXTENSIONS[file_type]
    else:
        return None
    return path if _is_safe_path(path) else None


def to_local(remote: RemoteFile) -> LocalFile | None:
    """Transform a remote file into its local representation.

    Returns:
        The local file, or ``None`` when the remote name is unsupported.
    """
    relative_path = local_path_for(remote.name, remote.type)
    if relative_path is None:
        logger.warning("Skipping remote file with unsupported name %r", remote.name)
        return None

    if _is_readme(remote.name, remote.type):
        text = html_to_markdown(remote.content)
    elif remote.name.startswith(BREADCRUMB_DIR):
        text = unwrap_git_file(remote.content)
    elif _basename(remote.name).startswith("."):
        text = unwrap_dotfile(remote.content)
    elif remote.type == RemoteFileType.CODE:
        body, _ = unwrap_module(remote.content)
        text = f"{body}\n" if body else ""
    else:
        text = remote.content

    mod_time = remote.update_time.timestamp() if remote.update_time else None
    return LocalFile(
        relative_path=relative_path,
        content=text.encode("utf-8"),
        mod_time=mod_time,
    )


# ---------------------------------------------------------------------------
# Local -> remote
# ---------------------------------------------------------------------------


def to_remote(
    local: LocalFile, existing: RemoteFile | None = None
) -> RemoteFile | None:
    """Transform a local file into a remote file record.

    Args:
        local: The local file.
        existing: Current remote version of the same file, if any.  Its
            name, eager-load flag and position are preserved.

    Returns:
        The remote record, or ``None`` when the file is unsupported
        (unknown extension, ignored dotfile, non-UTF-8 content, or a new
        file whose path has no reversible remote name).
    """
    rel = PurePosixPath(local.relative_path).as_posix()
    base = _basename(rel)

    try:
        text = local.content.decode("utf-8")
    except UnicodeDecodeError:
        logger.debug("Skipping non-UTF-8 file %s", rel)
        return None

    position = existing.position if existing else 0

    if base == f"{README_NAME}.md":
        return RemoteFile(
            name=rel.removesuffix(".md"),
            type=RemoteFileType.MARKUP,
            content=markdown_to_html(text, rel),
            position=position,
        )

    if rel.startswith(LOCAL_BREADCRUMB_DIR):
        git_path = rel.removeprefix(LOCAL_BREADCRUMB_DIR)
        return RemoteFile(
            name=BREADCRUMB_DIR + git_path,
            type=RemoteFileType.CODE,
            content=wrap_git_file(text, git_path),
            position=position,
        )

    if base.startswith("."):
        if base in _IGNORED_DOTFILES:
            return None
        return RemoteFile(
            name=rel,
            type=RemoteFileType.CODE,
            content=wrap_dotfile(text, base),
            position=position,
        )

    suffix = PurePosixPath(rel).suffix.lower()
    file_type = _EXTENSION_TYPES.get(suffix)
    if file_type is None:
        logger.debug("Skipping unsupported local file %s", rel)
        return None

    if existing is not None:
        name = existing.name
    else:
        stem = rel[: -len(suffix)]
        if "_" in stem or not _is_plain_name(stem):
            logger.warning("Skipping %s: no remote name maps back to this path", rel)
            return None
        name = stem.replace("/", "_")

    if file_type == RemoteFileType.CODE:
        load_now = None
        if existing is not None and existing.type == RemoteFileType.CODE:
            _, options = unwrap_module(existing.content)
            load_now = options.load_now
        content = wrap_module(text, name, ModuleOptions(load_now=load_now))
    else:
        content = text

    return RemoteFile(
        name=name, type=file_type, content=content, position=position
    )


# ---------------------------------------------------------------------------
# Whole listings
# ---------------------------------------------------------------------------


def index_by_local_path(remote_files: list[RemoteFile]) -> dict[str, RemoteFile]:
    """Key remote files by the local path each one maps to.

    Unsupported names are left out.  When several remote names map to one
    local path (``lib_utils`` and ``lib/utils``), the first in listing
    order keeps the path and the others are skipped with a warning, so a
    pull never writes two remote files over each other.
    """
    index: dict[str, RemoteFile] = {}
    for remote in remote_files:
        path = local_path_for(remote.name, remote.type)
        if path is None:
            logger.warning("Skipping remote file with unsupported name %r", remote.name)
            continue
        kept = index.get(path)
        if kept is not None:
            logger.warning(
                "Remote files %r and %r both map to %s; skipping %r",
                kept.name,
                remote.name,
                path,
                remote.name,
            )
            continue
        index[path] = remote
    return index
