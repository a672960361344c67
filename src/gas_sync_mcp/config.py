"""Runtime configuration for the sync server.

Reads remote API and sync settings from CLI args, environment variables,
.env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    GAS_API_URL: Apps Script API base URL (optional, default: Google's v1 endpoint)
    GAS_ACCESS_TOKEN: OAuth bearer token for the Apps Script API
    GAS_SYNC_BASE_DIR: Folder holding default local working copies (default: ~/gas-repos)
    GAS_MERGE_STRATEGY: auto | three-way | worktree (default: auto)
    GAS_LOCK_TIMEOUT: Seconds to wait for a working-copy lock, 1-600 (default: 30)
    GAS_GIT_TIMEOUT: Seconds before a git command is killed, 1-3600 (default: 60)
    GAS_DEBUG: Enable debug logging (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://script.googleapis.com/v1"
MERGE_STRATEGIES = ("auto", "three-way", "worktree")


@dataclass
class Config:
    api_url: str = DEFAULT_API_URL
    access_token: str | None = None
    request_timeout: float = 60.0
    debug: bool = False
    base_dir: str = "~/gas-repos"
    merge_strategy: str = "auto"
    lock_timeout: float = 30.0
    git_timeout: float = 60.0
    default_branch: str = "main"


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the API URL is malformed or the merge strategy is
            unknown.
    """
    config.api_url = config.api_url.strip()

    if not config.api_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid API URL '{config.api_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.api_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid API URL '{config.api_url}': URL must include a hostname"
        )

    config.api_url = config.api_url.removesuffix("/")

    if config.merge_strategy not in MERGE_STRATEGIES:
        raise ValueError(
            f"Invalid merge strategy '{config.merge_strategy}': "
            f"must be one of {', '.join(MERGE_STRATEGIES)}"
        )

    if not config.access_token:
        logger.warning(
            "No GAS_ACCESS_TOKEN configured; remote operations will fail until one is set."
        )


def _numeric_env(
    key: str, low: int, high: int, fallback: object, default: float
) -> float:
    """Resolve a bounded number: env var > YAML fallback > default."""
    raw = os.getenv(key)
    if raw is None:
        return float(fallback) if fallback is not None else default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        ) from None
    if not (low <= value <= high):
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        )
    return value


def load_config(
    api_url: str | None = None,
    access_token: str | None = None,
    base_dir: str | None = None,
    merge_strategy: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
    sync_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > YAML fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        api_url: Override API base URL.
        access_token: Override bearer token.
        base_dir: Override base folder for default working copies.
        merge_strategy: Override merge strategy name.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Values from the YAML ``remote`` section.
        sync_fallbacks: Values from the YAML ``sync`` section.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value is out of range or malformed.
    """
    fb = yaml_fallbacks or {}
    sfb = sync_fallbacks or {}

    # --- String fields: CLI > env > YAML > default ---

    final_url = api_url or os.getenv("GAS_API_URL") or fb.get("api_url") or DEFAULT_API_URL
    final_token = access_token or os.getenv("GAS_ACCESS_TOKEN") or fb.get("token")
    final_base = base_dir or os.getenv("GAS_SYNC_BASE_DIR") or sfb.get("base_dir") or "~/gas-repos"
    final_strategy = (
        merge_strategy
        or os.getenv("GAS_MERGE_STRATEGY")
        or sfb.get("merge_strategy")
        or "auto"
    )
    final_branch = sfb.get("default_branch") or "main"

    # --- Boolean fields: CLI > env > YAML > default ---

    if debug:
        final_debug = True
    else:
        env_debug = os.getenv("GAS_DEBUG")
        if env_debug is not None:
            final_debug = env_debug.lower() in ("true", "1", "yes", "on")
        else:
            final_debug = bool(fb.get("debug", False))

    # --- Numeric fields: env > YAML > default ---

    final_lock_timeout = _numeric_env(
        "GAS_LOCK_TIMEOUT", 1, 600, sfb.get("lock_timeout"), 30.0
    )
    final_git_timeout = _numeric_env(
        "GAS_GIT_TIMEOUT", 1, 3600, sfb.get("git_timeout"), 60.0
    )

    config = Config(
        api_url=final_url.strip(),
        access_token=final_token.strip() if final_token else None,
        request_timeout=float(fb.get("timeout", 60)),
        debug=final_debug,
        base_dir=final_base,
        merge_strategy=final_strategy.strip().lower(),
        lock_timeout=final_lock_timeout,
        git_timeout=final_git_timeout,
        default_branch=final_branch,
    )

    validate_config(config)

    return config
