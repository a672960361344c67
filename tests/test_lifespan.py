"""Tests for gas_sync_mcp.mcp.lifespan — server startup/shutdown lifecycle.

Tests the server_lifespan() async context manager which:
- Loads config from env vars, .env and YAML (with optional CLI overrides)
- Builds the shared ServerContext
- Fails fast on config errors
- Prints status messages to stderr

and build_context(), which wires one lock table and one remote-times
cache into both the engine and the transaction.
"""

from unittest.mock import MagicMock, patch

import pytest

from gas_sync_mcp.config import Config
from gas_sync_mcp.mcp.lifespan import ServerContext, build_context, server_lifespan

# -------------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------------


def _make_config(**overrides):
    """Create a valid Config for testing."""
    defaults = {
        "api_url": "https://script.example.com/v1",
        "access_token": "token",
        "base_dir": "/tmp/gas-repos",
        "merge_strategy": "three-way",
        "lock_timeout": 7.0,
        "git_timeout": 11.0,
        "default_branch": "trunk",
    }
    defaults.update(overrides)
    return Config(**defaults)


def _patches(config, config_files=None):
    return (
        patch("gas_sync_mcp.mcp.lifespan.load_dotenv"),
        patch(
            "gas_sync_mcp.mcp.lifespan.discover_config_files",
            return_value=config_files or [],
        ),
        patch("gas_sync_mcp.mcp.lifespan.load_config", return_value=config),
        patch("gas_sync_mcp.mcp.lifespan._stderr_print"),
    )


# -------------------------------------------------------------------------
# build_context()
# -------------------------------------------------------------------------


class TestBuildContext:
    """Tests for build_context()."""

    def test_wires_shared_state(self):
        config = _make_config()
        context = build_context(config)

        assert isinstance(context, ServerContext)
        assert context.config is config
        assert context.engine.client is context.client
        assert context.transaction.client is context.client
        assert context.engine.locks is context.locks
        assert context.transaction.locks is context.locks
        assert context.engine.remote_times is context.remote_times
        assert context.transaction.remote_times is context.remote_times

    def test_config_values_flow_through(self):
        context = build_context(_make_config())

        assert context.locks.timeout == 7.0
        assert context.engine.git_timeout == 11.0
        assert context.transaction.git_timeout == 11.0
        assert context.engine.default_branch == "trunk"
        assert context.engine.merge_strategy == "three-way"

    def test_context_is_frozen(self):
        context = build_context(_make_config())
        with pytest.raises(AttributeError):
            context.config = _make_config()


# -------------------------------------------------------------------------
# server_lifespan() — successful startup
# -------------------------------------------------------------------------


class TestServerLifespanSuccess:
    """Tests for the happy path through server_lifespan()."""

    async def test_successful_startup(self):
        config = _make_config()
        patches = _patches(config)

        with patches[0] as mock_dotenv, patches[1], patches[2] as mock_load, patches[3]:
            async with server_lifespan() as ctx:
                context = ctx["context"]
                assert isinstance(context, ServerContext)
                assert context.config is config

        mock_dotenv.assert_called_once_with()
        mock_load.assert_called_once_with(
            api_url=None,
            access_token=None,
            base_dir=None,
            merge_strategy=None,
            debug=False,
            yaml_fallbacks=None,
            sync_fallbacks=None,
        )

    async def test_startup_with_config_overrides(self):
        config = _make_config()
        overrides = {
            "api_url": "https://other.example.com",
            "base_dir": "/srv/repos",
            "merge_strategy": "worktree",
            "debug": True,
        }
        patches = _patches(config)

        with patches[0], patches[1], patches[2] as mock_load, patches[3]:
            async with server_lifespan(config_overrides=overrides):
                pass

        kwargs = mock_load.call_args.kwargs
        assert kwargs["api_url"] == "https://other.example.com"
        assert kwargs["base_dir"] == "/srv/repos"
        assert kwargs["merge_strategy"] == "worktree"
        assert kwargs["debug"] is True
        assert kwargs["access_token"] is None

    async def test_yaml_fallbacks_passed(self, tmp_path):
        config = _make_config()
        unified = MagicMock()
        unified.remote.model_dump.return_value = {"api_url": "https://yaml.example.com"}
        unified.sync.model_dump.return_value = {"base_dir": "/yaml/repos"}
        patches = _patches(config, config_files=[tmp_path / "config.yml"])

        with (
            patches[0],
            patches[1],
            patches[2] as mock_load,
            patches[3],
            patch(
                "gas_sync_mcp.mcp.lifespan.load_hierarchical_config",
                return_value={"remote": {}},
            ),
            patch(
                "gas_sync_mcp.mcp.lifespan.build_config", return_value=unified
            ) as mock_build,
        ):
            async with server_lifespan():
                pass

        mock_build.assert_called_once_with({"remote": {}})
        unified.remote.model_dump.assert_called_once_with(exclude_none=True)
        kwargs = mock_load.call_args.kwargs
        assert kwargs["yaml_fallbacks"] == {"api_url": "https://yaml.example.com"}
        assert kwargs["sync_fallbacks"] == {"base_dir": "/yaml/repos"}

    async def test_stderr_messages(self):
        patches = _patches(_make_config())

        with patches[0], patches[1], patches[2], patches[3] as mock_print:
            async with server_lifespan():
                pass

        printed = [c.args[0] for c in mock_print.call_args_list]
        assert printed[0] == "GAS Sync MCP Server starting..."
        assert "  Working copies: /tmp/gas-repos" in printed
        assert printed[-1] == "GAS Sync MCP Server shutting down."

    async def test_no_remote_call_at_startup(self):
        patches = _patches(_make_config())

        with (
            patches[0],
            patches[1],
            patches[2],
            patches[3],
            patch("gas_sync_mcp.mcp.lifespan.ScriptApiClient") as mock_client_cls,
        ):
            async with server_lifespan():
                pass

        client = mock_client_cls.return_value
        client.list.assert_not_called()
        client.write.assert_not_called()


# -------------------------------------------------------------------------
# server_lifespan() — failures
# -------------------------------------------------------------------------


class TestServerLifespanFailure:
    """Tests for config errors during startup."""

    async def test_config_error_becomes_runtime_error(self):
        patches = _patches(_make_config())

        with (
            patches[0],
            patches[1],
            patch(
                "gas_sync_mcp.mcp.lifespan.load_config",
                side_effect=ValueError("Invalid merge strategy 'zip'"),
            ),
            patches[3] as mock_print,
        ):
            with pytest.raises(RuntimeError, match="Configuration error: Invalid merge strategy"):
                async with server_lifespan():
                    pytest.fail("lifespan should not yield")

        assert any("ERROR: Configuration error" in c.args[0] for c in mock_print.call_args_list)
