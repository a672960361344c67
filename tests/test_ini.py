"""Tests for sync/ini.py — git-config style INI codec."""

from gas_sync_mcp.sync.ini import deep_merge, parse_ini, serialize_ini

BREADCRUMB = """\
[remote "origin"]
\turl = https://github.com/owner/repo.git
[branch "main"]
\tremote = origin
\tmerge = refs/heads/main
"""


class TestParseIni:
    """Tests for parse_ini()."""

    def test_subsections_nest(self):
        assert parse_ini(BREADCRUMB) == {
            "remote": {"origin": {"url": "https://github.com/owner/repo.git"}},
            "branch": {"main": {"remote": "origin", "merge": "refs/heads/main"}},
        }

    def test_value_coercion(self):
        data = parse_ini('[sync]\n\tenabled = true\n\tcount = 3\n\tname = "a b"\n\toff = no\n')
        assert data["sync"] == {"enabled": True, "count": 3, "name": "a b", "off": False}

    def test_dotted_keys_kept_verbatim(self):
        data = parse_ini("[sync]\n\tlastSync.filesChanged = 4\n")
        assert data == {"sync": {"lastSync.filesChanged": 4}}

    def test_comments_and_inline_comments(self):
        text = "# header\n[core]\n; note\n\tbare = false ; not bare\n"
        assert parse_ini(text) == {"core": {"bare": False}}

    def test_lines_outside_sections_ignored(self):
        assert parse_ini("stray = 1\n[a]\n\tb = c\nnot a pair\n") == {"a": {"b": "c"}}

    def test_empty(self):
        assert parse_ini("") == {}


class TestSerializeIni:
    """Tests for serialize_ini()."""

    def test_round_trip(self):
        data = parse_ini(BREADCRUMB)
        assert parse_ini(serialize_ini(data)) == data

    def test_quotes_values_with_spaces_and_specials(self):
        text = serialize_ini({"sync": {"localPath": "/tmp/my dir", "note": "a=b"}})

        assert '\tlocalPath = "/tmp/my dir"' in text
        assert '\tnote = "a=b"' in text

    def test_timestamp_left_unquoted(self):
        text = serialize_ini({"sync": {"lastSync.timestamp": "2024-01-01T00:00:00+00:00"}})
        assert "\tlastSync.timestamp = 2024-01-01T00:00:00+00:00" in text

    def test_booleans(self):
        assert serialize_ini({"core": {"bare": False}}) == "[core]\n\tbare = false\n"

    def test_subsection_header_quoted(self):
        text = serialize_ini({"remote": {"origin": {"url": "x"}}})
        assert text == '[remote "origin"]\n\turl = x\n'

    def test_empty(self):
        assert serialize_ini({}) == ""


class TestDeepMerge:
    """Tests for deep_merge()."""

    def test_nested_update_keeps_siblings(self):
        base = {"remote": {"origin": {"url": "a"}}, "sync": {"localPath": "/x"}}
        merged = deep_merge(base, {"sync": {"lastSync.timestamp": "t"}})

        assert merged == {
            "remote": {"origin": {"url": "a"}},
            "sync": {"localPath": "/x", "lastSync.timestamp": "t"},
        }

    def test_does_not_mutate_inputs(self):
        base = {"sync": {"a": 1}}
        deep_merge(base, {"sync": {"b": 2}})
        assert base == {"sync": {"a": 1}}

    def test_scalar_replaces_dict(self):
        assert deep_merge({"a": {"b": 1}}, {"a": 2}) == {"a": 2}
