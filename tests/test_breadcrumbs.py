"""Tests for sync/breadcrumbs.py — sub-tree discovery and breadcrumb metadata."""

from pathlib import Path

import pytest
from conftest import SCRIPT_ID, breadcrumb, code

from gas_sync_mcp.errors import NotLinkedError
from gas_sync_mcp.sync.breadcrumbs import (
    add_prefix,
    breadcrumb_name,
    default_local_path,
    filter_to_subtree,
    list_linked_projects,
    list_subtrees,
    owner_of,
    parse_breadcrumb,
    read_breadcrumb,
    resolve_local_path,
    updated_breadcrumb,
)
from gas_sync_mcp.sync.models import GitBreadcrumb, LastSync, SyncDirection


@pytest.fixture
def nested_files():
    return [
        breadcrumb(""),
        code("Main", "main()"),
        code("libs/shared", "shared()"),
        breadcrumb("libs/auth", url="https://github.com/owner/auth.git"),
        code("libs/auth/login", "login()"),
        breadcrumb("libs/auth/deep", url="local"),
        code("libs/auth/deep/x", "x()"),
    ]


class TestSubtrees:
    """Tests for list_subtrees(), owner_of() and filter_to_subtree()."""

    def test_root_first_then_by_depth(self, nested_files):
        assert list_subtrees(nested_files) == ["", "libs/auth", "libs/auth/deep"]

    def test_no_breadcrumbs(self):
        assert list_subtrees([code("Main", "x")]) == []

    def test_owner_is_nearest_breadcrumb(self):
        linked = {"", "libs/auth", "libs/auth/deep"}

        assert owner_of("Main", linked) == ""
        assert owner_of("libs/shared", linked) == ""
        assert owner_of("libs/auth/login", linked) == "libs/auth"
        assert owner_of("libs/auth/deep/x", linked) == "libs/auth/deep"
        # Prefix match must stop at a path separator
        assert owner_of("libs/authz/y", linked) == ""

    def test_filter_excludes_nested_subtrees(self, nested_files):
        names = [f.name for f in filter_to_subtree(nested_files, "libs/auth")]
        assert names == [".git/config", "login"]

    def test_filter_root(self, nested_files):
        names = [f.name for f in filter_to_subtree(nested_files, "")]
        assert names == [".git/config", "Main", "libs/shared"]

    def test_every_file_owned_exactly_once(self, nested_files):
        total = sum(
            len(filter_to_subtree(nested_files, path))
            for path in list_subtrees(nested_files)
        )
        assert total == len(nested_files)

    def test_add_prefix(self):
        assert add_prefix("login", "libs/auth") == "libs/auth/login"
        assert add_prefix("Main", "") == "Main"
        assert breadcrumb_name("libs/auth") == "libs/auth/.git/config"
        assert breadcrumb_name("") == ".git/config"


class TestBreadcrumbContent:
    """Tests for parse_breadcrumb(), read_breadcrumb() and updated_breadcrumb()."""

    def test_parse(self, nested_files):
        crumb = read_breadcrumb(nested_files, SCRIPT_ID, "libs/auth")

        assert crumb.project_path == "libs/auth"
        assert crumb.remote_url == "https://github.com/owner/auth.git"
        assert crumb.branch == "main"
        assert crumb.local_sync_path is None
        assert crumb.last_sync is None

    def test_parse_native_ini(self):
        crumb = parse_breadcrumb('[branch "develop"]\n\tremote = origin\n')
        assert crumb.branch == "develop"
        assert crumb.remote_url is None

    def test_missing_breadcrumb_raises(self, nested_files):
        with pytest.raises(NotLinkedError) as exc_info:
            read_breadcrumb(nested_files, SCRIPT_ID, "libs/other")

        assert "libs/other/.git/config" in exc_info.value.remediation
        assert '[remote "origin"]' in exc_info.value.remediation

    def test_update_records_last_sync(self, nested_files):
        existing = nested_files[3]
        last = LastSync(
            timestamp="2024-05-01T10:00:00+00:00",
            direction=SyncDirection.PULL_ONLY,
            files_changed=4,
        )
        updated = updated_breadcrumb(existing, last, local_path="/work/auth copy")
        crumb = parse_breadcrumb(updated.content, "libs/auth")

        assert updated.name == existing.name
        assert crumb.remote_url == "https://github.com/owner/auth.git"
        assert crumb.last_sync == last
        assert crumb.local_sync_path == "/work/auth copy"

    def test_update_without_local_path(self, nested_files):
        last = LastSync(timestamp="t", direction=SyncDirection.SYNC)
        crumb = parse_breadcrumb(updated_breadcrumb(nested_files[0], last).content)
        assert crumb.local_sync_path is None

    def test_list_linked_projects(self, nested_files):
        projects = list_linked_projects(nested_files)

        assert [p.project_path for p in projects] == ["", "libs/auth", "libs/auth/deep"]
        assert projects[2].remote_url == "local"


class TestLocalPaths:
    """Tests for default_local_path() and resolve_local_path()."""

    def test_default_root(self, tmp_path):
        assert default_local_path(tmp_path, "abc") == tmp_path / "project-abc"

    def test_default_nested(self, tmp_path):
        assert default_local_path(tmp_path, "abc", "libs/auth") == tmp_path / "project-abc-libs-auth"

    def test_override_wins(self, tmp_path):
        crumb = GitBreadcrumb(local_sync_path=str(tmp_path / "configured"))
        resolved = resolve_local_path(crumb, tmp_path, "abc", str(tmp_path / "override"))
        assert resolved == (tmp_path / "override").resolve()

    def test_breadcrumb_path_before_default(self, tmp_path):
        crumb = GitBreadcrumb(local_sync_path=str(tmp_path / "configured"))
        assert resolve_local_path(crumb, tmp_path, "abc") == (tmp_path / "configured").resolve()

    def test_default_used_last(self, tmp_path):
        crumb = GitBreadcrumb(project_path="libs")
        assert resolve_local_path(crumb, tmp_path, "abc") == Path(tmp_path / "project-abc-libs").resolve()
