"""Detect a server install that no longer matches its source tree."""

import tomllib
from pathlib import Path


def check_version_consistency() -> tuple[bool, str]:
    """Compare ``__version__`` with the version declared in pyproject.toml.

    Returns:
        ``(is_consistent, message)``.  A missing or unreadable
        pyproject.toml (an installed wheel, for example) is reported as
        inconsistent with the reason in *message*.
    """
    from . import __version__ as runtime_version

    pyproject_path = Path(__file__).parent.parent.parent / "pyproject.toml"
    if not pyproject_path.exists():
        return False, "Cannot find pyproject.toml for version comparison"

    try:
        with open(pyproject_path, "rb") as f:
            source_version = tomllib.load(f).get("project", {}).get("version", "unknown")
    except (OSError, tomllib.TOMLDecodeError) as e:
        return False, f"Failed to read version from pyproject.toml: {e}"

    if runtime_version != source_version:
        return False, (
            f"Version mismatch detected! Runtime: {runtime_version}, "
            f"Source: {source_version}. Reinstall with: pip install -e ."
        )

    return True, f"Version verified: {runtime_version}"
