"""Typed schema for YAML configuration files.

Pydantic models validate the dict returned by ``load_hierarchical_config()``
section by section.  ``load_config()`` then layers CLI arguments and
environment variables on top, using these sections as fallbacks.

Usage:
    from gas_sync_mcp.config_schema import build_config

    unified = build_config(load_hierarchical_config())
    config = load_config(
        yaml_fallbacks=unified.remote.model_dump(exclude_none=True),
        sync_fallbacks=unified.sync.model_dump(),
    )
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class RemoteConfig(BaseModel):
    """Apps Script API connection settings.

    All fields are optional so env vars and CLI args can supply them.
    """

    api_url: str | None = Field(default=None, description="API base URL")
    token: str | None = Field(default=None, description="OAuth bearer token")
    timeout: float = Field(
        default=60, gt=0, le=600, description="HTTP read timeout in seconds"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Local working copy and merge settings."""

    base_dir: str = Field(
        default="~/gas-repos",
        description="Folder holding default per-project working copies",
    )
    merge_strategy: Literal["auto", "three-way", "worktree"] = Field(
        default="auto", description="Merge Engine strategy"
    )
    lock_timeout: float = Field(
        default=30, ge=1, le=600, description="Seconds to wait for a folder lock"
    )
    git_timeout: float = Field(
        default=60, ge=1, le=3600, description="Seconds before a git command is killed"
    )
    default_branch: str = Field(
        default="main", description="Branch for new working copies"
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Unset means the mode default (WARNING for MCP, INFO for CLI).
        file: Optional log file path.
    """

    level: str | None = Field(default=None, description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """All config sections.  ``UnifiedConfig()`` is always valid."""

    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Validate the merged YAML dict; missing sections get defaults.

    Raises:
        pydantic.ValidationError: A section holds an invalid value.
    """
    if not raw_data:
        return UnifiedConfig()

    unknown = set(raw_data) - set(UnifiedConfig.model_fields)
    if unknown:
        logger.warning("Ignoring unknown config sections: %s", ", ".join(sorted(unknown)))

    return UnifiedConfig(
        **{k: v for k, v in raw_data.items() if k in UnifiedConfig.model_fields}
    )
