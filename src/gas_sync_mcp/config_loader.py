"""
YAML config file discovery and loading for gas_sync_mcp.

Config files are optional.  When present they are found by convention,
may pull in other files with ``!include``, and may reference environment
variables as ``${VAR}`` or ``${VAR:-default}``.

Usage:
    from gas_sync_mcp.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "GAS_SYNC_CONFIG"
PROJECT_CONFIG_DIR = ".gas_sync"

# ---------------------------------------------------------------------------
# 1. Env var interpolation
# ---------------------------------------------------------------------------

# ${VAR} or ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` in *value*.

    An unset or empty variable expands to its default, or to ``""`` when
    there is none.  A ``${`` without a closing brace is left as is.
    """

    def _expand(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) if match.group(2) is not None else ""

    return _ENV_VAR_PATTERN.sub(_expand, value)


def _interpolate_tree(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {key: _interpolate_tree(val) for key, val in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_tree(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# 2. YAML !include support
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """``SafeLoader`` with an ``!include`` tag.

    A private subclass keeps ``yaml.SafeLoader`` itself untouched.  Each
    load carries the chain of files being included so cycles are caught.
    """


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    """Load the file named by ``!include <path>`` in place of the node."""
    raw_path = Path(loader.construct_scalar(node))
    source = Path(loader.name).resolve()
    target = (raw_path if raw_path.is_absolute() else source.parent / raw_path).resolve()

    chain: list[Path] = getattr(loader, "_include_chain", [])
    if target in chain:
        cycle = " -> ".join(str(p) for p in [*chain, target])
        raise ValueError(f"Circular include detected: {cycle}")
    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} (referenced from {source})"
        )

    return load_yaml_file(target, _include_chain=[*chain, target])


ConfigLoader.add_constructor("!include", _include_constructor)


def load_yaml_file(path: Path, *, _include_chain: list[Path] | None = None) -> Any:
    """Parse one YAML file with ``!include`` support."""
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_chain = _include_chain or [path]  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# 3. Discovery and bootstrapping
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Existing config files, highest precedence first.

    Candidates, in order:
        1. The file named by ``GAS_SYNC_CONFIG``.
        2. ``.gas_sync/config.yml`` and then ``.gas_sync/config.yaml``
           in the working directory.
        3. ``~/.config/gas_sync/config.yml``.
    """
    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    project_dir = Path.cwd() / PROJECT_CONFIG_DIR
    candidates.append(project_dir / "config.yml")
    candidates.append(project_dir / "config.yaml")
    candidates.append(Path.home() / ".config" / "gas_sync" / "config.yml")

    return [p for p in candidates if p.exists()]


_STARTER_CONFIG = """\
# gas-sync-mcp configuration
#
# Every setting can also come from the environment:
#   GAS_API_URL, GAS_ACCESS_TOKEN, GAS_SYNC_BASE_DIR, GAS_MERGE_STRATEGY,
#   GAS_LOCK_TIMEOUT, GAS_GIT_TIMEOUT, GAS_DEBUG
#
# remote:
#   api_url: https://script.googleapis.com/v1
#   token: ${GAS_ACCESS_TOKEN}
#   timeout: 60
#
# sync:
#   base_dir: ~/gas-repos
#   merge_strategy: auto        # auto | three-way | worktree
#   lock_timeout: 30
#   git_timeout: 60
#   default_branch: main
#
# logging:
#   level: INFO
#   file: null
"""


def resolve_config_path() -> Path:
    """Highest-precedence existing config file, else the project default.

    Does not create anything; see ``ensure_config()``.
    """
    existing = discover_config_files()
    if existing:
        return existing[0]
    return Path.cwd() / PROJECT_CONFIG_DIR / "config.yml"


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a commented starter if none exists.

    Args:
        target: Where to write the starter file.  Defaults to
            ``resolve_config_path()``.
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or resolve_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


# ---------------------------------------------------------------------------
# 4. Merge
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Load every discovered config file and merge them.

    Files are applied from lowest to highest precedence; a top-level key
    in a higher file replaces the whole section from a lower one.
    Environment variables are interpolated after the merge.  No files
    means an empty dict.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = load_yaml_file(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has a %s at its root, expected a mapping; skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_tree(merged)
