"""Tests for the unified config schema and build_config()."""

import logging

import pytest
from pydantic import ValidationError

from gas_sync_mcp.config_schema import (
    LoggingConfig,
    RemoteConfig,
    SyncConfig,
    UnifiedConfig,
    build_config,
)

# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class TestSections:
    """Tests for RemoteConfig, SyncConfig and LoggingConfig."""

    def test_defaults(self):
        config = UnifiedConfig()

        assert config.remote.api_url is None
        assert config.remote.timeout == 60
        assert config.sync.base_dir == "~/gas-repos"
        assert config.sync.merge_strategy == "auto"
        assert config.sync.default_branch == "main"
        assert config.logging.level is None

    def test_unknown_strategy_rejected(self):
        with pytest.raises(ValidationError):
            SyncConfig(merge_strategy="rebase")

    @pytest.mark.parametrize("value", [0, 601])
    def test_lock_timeout_bounds(self, value):
        with pytest.raises(ValidationError):
            SyncConfig(lock_timeout=value)

    def test_remote_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            RemoteConfig(timeout=0)

    def test_frozen(self):
        config = LoggingConfig()
        with pytest.raises(ValidationError):
            config.level = "DEBUG"

    def test_remote_dump_excludes_unset(self):
        dumped = RemoteConfig(token="t").model_dump(exclude_none=True)
        assert dumped == {"token": "t", "timeout": 60, "debug": False}


# ---------------------------------------------------------------------------
# build_config()
# ---------------------------------------------------------------------------


class TestBuildConfig:
    """Tests for build_config()."""

    def test_empty_dict(self):
        assert build_config({}) == UnifiedConfig()

    def test_partial_sections(self):
        config = build_config(
            {"sync": {"merge_strategy": "worktree", "git_timeout": 120}}
        )

        assert config.sync.merge_strategy == "worktree"
        assert config.sync.git_timeout == 120
        assert config.remote == RemoteConfig()

    def test_unknown_section_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="gas_sync_mcp.config_schema"):
            config = build_config({"trac": {"url": "x"}, "logging": {"level": "DEBUG"}})

        assert "Ignoring unknown config sections: trac" in caplog.text
        assert config.logging.level == "DEBUG"

    def test_invalid_value_raises(self):
        with pytest.raises(ValidationError):
            build_config({"remote": {"timeout": -1}})
