"""Tests for sync/local_tree.py."""

import pytest

from gas_sync_mcp.sync.local_tree import read_local_file, walk_local_files, write_local_file
from gas_sync_mcp.sync.models import LocalFile


def test_read_missing(tmp_path):
    assert read_local_file(tmp_path, "nope.js") is None


def test_write_then_read_keeps_mod_time(tmp_path):
    local = LocalFile(relative_path="lib/a.js", content=b"a()\n", mod_time=1_600_000_000.0)

    path = write_local_file(tmp_path, local)
    back = read_local_file(tmp_path, "lib/a.js")

    assert path == (tmp_path / "lib" / "a.js").resolve()
    assert back.content == b"a()\n"
    assert back.mod_time == 1_600_000_000.0


def test_walk_skips_dot_dirs_but_keeps_dotfiles(tmp_path):
    for rel in (
        "Main.js",
        ".gitignore",
        "lib/b.js",
        "lib/a.js",
        ".git/HEAD",
        ".git-gas/config",
        ".vscode/settings.json",
        "node_modules/x/index.js",
    ):
        path = tmp_path / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("x")

    names = [f.relative_path for f in walk_local_files(tmp_path)]

    assert names == [".gitignore", "Main.js", "lib/a.js", "lib/b.js"]


def test_walk_missing_root(tmp_path):
    assert walk_local_files(tmp_path / "absent") == []


@pytest.mark.parametrize("relative_path", ["/tmp/gas/escape.js", "../outside.js", "lib/../../x.js"])
def test_write_refuses_paths_outside_root(tmp_path, relative_path):
    root = tmp_path / "root"
    root.mkdir()

    with pytest.raises(ValueError):
        write_local_file(root, LocalFile(relative_path=relative_path, content=b"x"))

    assert [p.name for p in tmp_path.iterdir()] == ["root"]


def test_read_refuses_paths_outside_root(tmp_path):
    (tmp_path / "secret.js").write_text("x")
    root = tmp_path / "root"
    root.mkdir()

    with pytest.raises(ValueError):
        read_local_file(root, "../secret.js")
