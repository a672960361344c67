"""File handler module: path validation, raw and encoding-aware I/O, tree clearing.

Provides the filesystem layer shared by the merge engine, the sync
orchestrator and the atomic write transaction.  All functions are plain
synchronous I/O; async callers wrap them with ``run_sync()``.
"""

import os
import shutil
from pathlib import Path, PurePosixPath

from charset_normalizer import from_bytes

# =============================================================================
# Path Validation
# =============================================================================


def validate_relative_path(path_str: str) -> str:
    """Validate a sub-tree relative path and normalise it to POSIX form.

    Args:
        path_str: Relative path such as ``lib/utils.js``.

    Returns:
        Normalised POSIX path.

    Raises:
        ValueError: If the path is empty, absolute, or escapes its root.
    """
    if not path_str or not path_str.strip():
        raise ValueError("Path must not be empty")
    path = PurePosixPath(path_str.replace("\\", "/"))
    if path.is_absolute():
        raise ValueError(f"Path must be relative to the sync folder: {path_str}")
    if any(part == ".." for part in path.parts):
        raise ValueError(f"Path must not contain '..': {path_str}")
    if path.parts and path.parts[0] == ".git":
        raise ValueError(f"Path must not point inside .git: {path_str}")
    return path.as_posix()


def resolve_under(root: Path, relative_path: str) -> Path:
    """Join *relative_path* onto *root*, refusing results outside *root*.

    Raises:
        ValueError: If the resolved path is not under *root*.
    """
    root_resolved = root.resolve()
    resolved = (root_resolved / validate_relative_path(relative_path)).resolve()
    if not resolved.is_relative_to(root_resolved):
        raise ValueError(
            f"Path is outside the sync folder: {resolved} not under {root_resolved}"
        )
    return resolved


# =============================================================================
# File Read/Write
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Reads raw bytes first, then uses charset-normalizer to detect encoding.
    Defaults to UTF-8 for empty files or when detection fails.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    result = from_bytes(raw).best()
    if result is None:
        encoding = "utf-8"
        content = raw.decode(encoding, errors="replace")
    else:
        encoding = result.encoding
        # ascii is a strict subset of utf-8
        if encoding == "ascii":
            encoding = "utf-8"
        content = str(result)
    return (content, encoding)


def write_bytes(path: Path, content: bytes, mod_time: float | None = None) -> int:
    """Write raw bytes, creating parent directories as needed.

    Args:
        path: Path to the output file.
        content: Bytes to write.
        mod_time: If given, both atime and mtime are set to this epoch value.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    if mod_time is not None:
        os.utime(path, (mod_time, mod_time))
    return len(content)


def touch_if_older(path: Path, mod_time: float | None) -> None:
    """Raise the mtime of *path* to *mod_time* if it is currently older."""
    if mod_time is None or not path.exists():
        return
    if path.stat().st_mtime < mod_time:
        os.utime(path, (mod_time, mod_time))


# =============================================================================
# Tree Operations
# =============================================================================


def clear_working_tree(root: Path) -> int:
    """Delete everything under *root* except ``.git``.

    Returns:
        Number of top-level entries removed.
    """
    removed = 0
    for entry in root.iterdir():
        if entry.name == ".git":
            continue
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()
        removed += 1
    return removed
