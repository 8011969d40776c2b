from pathlib import Path

import pytest

from contract_monitor.drift.scanner import SourceScanner, tokenize
from contract_monitor.errors import ScanIoError

FIXTURES = Path(__file__).parent / "fixtures"


def _calls(source: str, **kwargs) -> list[tuple[str, str, int]]:
    sites = SourceScanner(**kwargs).extract_call_sites(source, "app.ts")
    return [(s.method, s.path, s.line) for s in sites]


class TestTokenize:
    def test_comments_and_whitespace_are_dropped(self):
        tokens = tokenize("// fetch('/api/a')\n/* fetch('/api/b') */ x")
        assert [(t.kind, t.value) for t in tokens] == [("ident", "x")]

    def test_template_literals(self):
        static, dynamic = tokenize("`/api/a` `/api/${id}`")
        assert static.kind == "string" and static.dynamic is False
        assert dynamic.dynamic is True

    def test_escaped_quotes(self):
        [token] = tokenize(r"'it\'s'")
        assert token.kind == "string"


class TestExtractCallSites:
    def test_fetch_defaults_to_get(self):
        assert _calls("fetch('/api/notes')") == [("GET", "/api/notes", 1)]

    def test_fetch_with_method(self):
        source = "const r = await fetch(\"/api/notes\", {\n  method: 'POST',\n  body,\n});"
        assert _calls(source) == [("POST", "/api/notes", 1)]

    def test_client_verbs(self):
        source = "\n".join([
            "axios.get('/api/a');",
            "api.delete('/api/b');",
            "apiClient.put('/api/c');",
            "http.patch('/api/d');",
            "this.api.post('/api/e');",
        ])
        assert _calls(source) == [
            ("GET", "/api/a", 1),
            ("DELETE", "/api/b", 2),
            ("PUT", "/api/c", 3),
            ("PATCH", "/api/d", 4),
            ("POST", "/api/e", 5),
        ]

    def test_generic_type_argument(self):
        assert _calls("api.get<Note[]>('/api/notes')") == [("GET", "/api/notes", 1)]
        assert _calls("api.get<Map<string, Note>>('/api/notes')") == [("GET", "/api/notes", 1)]

    def test_config_object_calls(self):
        source = "request({ url: '/api/a', method: 'delete' });\naxios({ method: 'put', url: '/api/b' });"
        assert _calls(source) == [("DELETE", "/api/a", 1), ("PUT", "/api/b", 2)]

    def test_config_object_without_method(self):
        assert _calls("request({ url: '/api/a' })") == [("GET", "/api/a", 1)]

    def test_non_api_paths_are_ignored(self):
        assert _calls("fetch('/static/logo.png'); fetch('https://example.com/api/x')") == []

    def test_custom_prefix(self):
        assert _calls("fetch('/v2/notes')", api_prefix="/v2") == [("GET", "/v2/notes", 1)]

    def test_dynamic_paths_are_ignored(self):
        assert _calls("fetch(`/api/notes/${id}`); api.get(base + '/api/x'); fetch(url)") == []

    def test_static_template_literal(self):
        assert _calls("fetch(`/api/notes`)") == [("GET", "/api/notes", 1)]

    def test_query_and_fragment_are_stripped(self):
        assert _calls("fetch('/api/notes?limit=5'); fetch('/api/groups#top')") == [
            ("GET", "/api/notes", 1),
            ("GET", "/api/groups", 1),
        ]

    def test_non_client_objects_are_ignored(self):
        assert _calls("cache.get('/api/notes'); api.create('/api/x')") == []

    def test_commented_calls_are_ignored(self):
        assert _calls("// fetch('/api/a')\n/*\napi.get('/api/b')\n*/\nfetch('/api/c')") == [
            ("GET", "/api/c", 5),
        ]

    def test_file_id_is_recorded(self):
        [site] = SourceScanner().extract_call_sites("fetch('/api/x')", "src/a.js")
        assert site.file == "src/a.js"


class TestScanTree:
    def test_scan_fixture_frontend(self):
        calls = SourceScanner().scan_tree(FIXTURES / "frontend")
        assert list(calls) == [
            ("GET", "/api/notes"),
            ("PUT", "/api/notes/42"),
            ("POST", "/api/notes"),
            ("GET", "/api/notes/search"),
            ("POST", "/api/notes/1/archive"),
        ]

        sites = calls[("GET", "/api/notes")]
        assert [(Path(s.file).name, s.line) for s in sites] == [("NoteList.jsx", 7), ("notesApi.ts", 11)]
        assert calls[("PUT", "/api/notes/42")][0].line == 12
        assert calls[("POST", "/api/notes")][0].line == 14
        assert calls[("POST", "/api/notes/1/archive")][0].line == 22

    def test_skips_node_modules_and_other_extensions(self):
        calls = SourceScanner().scan_tree(FIXTURES / "frontend")
        paths = {path for _, path in calls}
        assert "/api/vendored" not in paths
        assert "/api/readme" not in paths
        assert "/api/ignored" not in paths

    def test_missing_root(self, tmp_path):
        with pytest.raises(ScanIoError):
            SourceScanner().scan_tree(tmp_path / "missing")

    def test_undecodable_file_is_skipped(self, tmp_path):
        (tmp_path / "bad.js").write_bytes(b"\xff\xfe fetch('/api/bad')")
        (tmp_path / "good.js").write_text("fetch('/api/good')")
        assert list(SourceScanner().scan_tree(tmp_path)) == [("GET", "/api/good")]
