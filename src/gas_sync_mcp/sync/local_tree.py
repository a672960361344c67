"""Read and write ``LocalFile`` records against a working tree."""

from __future__ import annotations

import os
from pathlib import Path

from ..file_handler import resolve_under, write_bytes
from .models import LocalFile

# Directory names never walked when collecting a working tree
_SKIPPED_DIRS = frozenset({"node_modules", "__pycache__"})


def read_local_file(root: Path, relative_path: str) -> LocalFile | None:
    """Read one file of a working tree, or ``None`` if it does not exist."""
    path = resolve_under(root, relative_path)
    if not path.is_file():
        return None
    return LocalFile(
        relative_path=relative_path,
        content=path.read_bytes(),
        mod_time=path.stat().st_mtime,
    )


def write_local_file(root: Path, local: LocalFile) -> Path:
    """Write *local* under *root*, carrying its ``mod_time`` onto disk.

    Raises:
        ValueError: If the path would land outside *root* or inside ``.git``.
    """
    path = resolve_under(root, local.relative_path)
    write_bytes(path, local.content, local.mod_time)
    return path


def walk_local_files(root: Path) -> list[LocalFile]:
    """Collect every file under *root*, sorted by relative path.

    Directories whose name starts with ``.`` (``.git``, ``.git-gas``,
    editor folders) are not descended into; dotfiles themselves are
    included.
    """
    files: list[LocalFile] = []
    if not root.is_dir():
        return files

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            d for d in dirnames if not d.startswith(".") and d not in _SKIPPED_DIRS
        )
        for filename in filenames:
            path = Path(dirpath) / filename
            if not path.is_file():
                continue
            files.append(
                LocalFile(
                    relative_path=path.relative_to(root).as_posix(),
                    content=path.read_bytes(),
                    mod_time=path.stat().st_mtime,
                )
            )

    files.sort(key=lambda f: f.relative_path)
    return files
