"""Shared pytest fixtures for gas-sync-mcp tests."""

import os
import shutil
from datetime import datetime, timedelta, timezone

import pytest

from gas_sync_mcp.config import Config
from gas_sync_mcp.converters.module_wrapper import wrap_git_file, wrap_module
from gas_sync_mcp.errors import RemoteFailureError
from gas_sync_mcp.sync.models import RemoteFile, RemoteFileType

SCRIPT_ID = "1AbCdEfGhIjKlMnOp"

requires_git = pytest.mark.skipif(
    shutil.which("git") is None, reason="git executable not installed"
)


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live Apps Script project",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live Apps Script project"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture(autouse=True)
def git_identity(monkeypatch, tmp_path_factory):
    """Give git a fixed identity and keep the user's global config out."""
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test Author")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "author@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test Author")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "author@example.com")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", os.devnull)
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")


# ---------------------------------------------------------------------------
# Remote store fake
# ---------------------------------------------------------------------------


class FakeRemoteStore:
    """In-memory ``RemoteStore``.

    Every write stamps the file with a strictly increasing ``update_time``
    in the past, so files pulled from it are never newer than "now".
    """

    def __init__(self):
        self.projects: dict[str, list[RemoteFile]] = {}
        self.fail_writes = False
        self.fail_on: set[str] = set()
        self.writes: list[tuple[str, str]] = []
        self._clock = datetime.now(timezone.utc) - timedelta(hours=1)

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def seed(self, script_id: str, files: list[RemoteFile]) -> None:
        self.projects[script_id] = [
            f.model_copy(
                update={"position": i, "update_time": f.update_time or self._tick()}
            )
            for i, f in enumerate(files)
        ]

    def get(self, script_id: str, name: str) -> RemoteFile | None:
        return next((f for f in self.projects.get(script_id, []) if f.name == name), None)

    def touch(self, script_id: str, name: str, when: datetime) -> None:
        """Pretend someone else changed *name* remotely at *when*."""
        self.projects[script_id] = [
            f.model_copy(update={"update_time": when}) if f.name == name else f
            for f in self.projects[script_id]
        ]

    def list(self, script_id: str) -> list[RemoteFile]:
        if script_id not in self.projects:
            raise RemoteFailureError("list", f"project {script_id} not found")
        return list(self.projects[script_id])

    def write(self, script_id, name, content, file_type):
        if self.fail_writes or name in self.fail_on:
            raise RemoteFailureError("write", "HTTP 503: backend unavailable")
        files = self.projects.setdefault(script_id, [])
        record = RemoteFile(name=name, type=file_type, content=content, update_time=self._tick())
        for i, f in enumerate(files):
            if f.name == name:
                files[i] = record.model_copy(update={"position": f.position})
                break
        else:
            files.append(record.model_copy(update={"position": len(files)}))
        self.writes.append((script_id, name))
        return list(files)

    def delete(self, script_id, name):
        files = self.projects.get(script_id, [])
        if not any(f.name == name for f in files):
            raise RemoteFailureError("delete", f"{name} not found")
        self.projects[script_id] = [f for f in files if f.name != name]
        return list(self.projects[script_id])


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def breadcrumb_text(url: str = "https://github.com/owner/repo.git", branch: str = "main") -> str:
    return (
        '[remote "origin"]\n'
        f"\turl = {url}\n"
        f'[branch "{branch}"]\n'
        "\tremote = origin\n"
        f"\tmerge = refs/heads/{branch}\n"
    )


def breadcrumb(project_path: str = "", **kwargs) -> RemoteFile:
    name = f"{project_path}/.git/config" if project_path else ".git/config"
    return RemoteFile(
        name=name,
        type=RemoteFileType.CODE,
        content=wrap_git_file(breadcrumb_text(**kwargs), "config"),
    )


def code(name: str, body: str) -> RemoteFile:
    return RemoteFile(name=name, type=RemoteFileType.CODE, content=wrap_module(body, name))


@pytest.fixture
def remote():
    """Empty in-memory remote store."""
    return FakeRemoteStore()


@pytest.fixture
def mock_config(tmp_path):
    """Config pointing working copies into the test's tmp_path."""
    return Config(
        api_url="https://script.example.com/v1",
        access_token="test-token",
        base_dir=str(tmp_path / "repos"),
        merge_strategy="three-way",
    )
