"""Tests for the version module: __version__ and check_version_consistency()."""

import re
from unittest.mock import patch

import gas_sync_mcp
from gas_sync_mcp.version import check_version_consistency


class TestVersionAttribute:
    """__version__ is properly set."""

    def test_version_format(self):
        assert re.match(r"^\d+\.\d+\.\d+$", gas_sync_mcp.__version__)


class TestCheckVersionConsistency:
    """Tests for check_version_consistency()."""

    def _run_with_pyproject(self, tmp_path, text: str | None):
        pyproject = tmp_path / "pyproject.toml"
        if text is not None:
            pyproject.write_text(text)
        with patch("gas_sync_mcp.version.Path") as mock_path_cls:
            mock_path_cls.return_value.parent.parent.parent.__truediv__.return_value = pyproject
            return check_version_consistency()

    def test_consistent(self, tmp_path):
        ok, message = self._run_with_pyproject(
            tmp_path, f'[project]\nversion = "{gas_sync_mcp.__version__}"\n'
        )
        assert ok
        assert "verified" in message

    def test_mismatch(self, tmp_path):
        ok, message = self._run_with_pyproject(tmp_path, '[project]\nversion = "9.9.9"\n')

        assert not ok
        assert "Version mismatch" in message
        assert "9.9.9" in message

    def test_missing_pyproject(self, tmp_path):
        ok, message = self._run_with_pyproject(tmp_path, None)
        assert not ok
        assert "Cannot find pyproject.toml" in message

    def test_malformed_pyproject(self, tmp_path):
        ok, message = self._run_with_pyproject(tmp_path, "[project\n")
        assert not ok
        assert "Failed to read version" in message
