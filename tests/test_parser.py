"""
Tests for the system map parser.
"""

import json
import sys

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from mapaudit.core.models import IssueKind, RootManifest, Severity, SystemMap
from mapaudit.parser import SystemMapParser, parse_document


def kinds(outcome):
    return [issue.kind for issue in outcome.issues]


class TestSystemMap:

    def test_valid_map(self, project, tmp_path):
        path = project("docs/users.map.json", {
            "name": "users",
            "lastUpdated": "2024-01-01",
            "components": {"UserCard": "src/UserCard.tsx"},
            "apiEndpoints": {"GET /api/users": "server/routes.ts"},
            "database": {"users": "shared/schema.ts"},
            "flows": [{"name": "signup", "steps": [{"action": "submit", "component": "UserCard", "api": "GET /api/users"}]}],
        })

        outcome = parse_document(path, tmp_path)

        assert outcome.issues == ()
        document = outcome.document
        assert isinstance(document, SystemMap)
        assert document.name == "users"
        assert document.source == "docs/users.map.json"
        assert dict(document.components) == {"UserCard": "src/UserCard.tsx"}
        assert dict(document.api_endpoints) == {"GET /api/users": "server/routes.ts"}
        assert dict(document.database) == {"users": "shared/schema.ts"}
        assert document.flows[0].steps[0].api == "GET /api/users"
        assert document.declared_entries == 3

    def test_sections_are_read_only(self, project, tmp_path):
        path = project("a.map.json", {"name": "a", "components": {"X": "x.ts"}})
        document = parse_document(path, tmp_path).document
        with pytest.raises(TypeError):
            document.components["Y"] = "y.ts"

    def test_optional_sections_may_be_absent(self, project, tmp_path):
        outcome = parse_document(project("a.map.json", {"name": "a"}), tmp_path)
        assert outcome.issues == ()
        assert len(outcome.document.components) == 0

    def test_components_as_list(self, project, tmp_path):
        path = project("a.map.json", {"name": "a", "components": ["src/Foo.ts"]})

        outcome = parse_document(path, tmp_path)

        assert kinds(outcome) == [IssueKind.STRUCTURE_INVALID]
        assert outcome.issues[0].severity == Severity.ERROR
        assert outcome.issues[0].location.pointer == "/components"
        assert isinstance(outcome.document, SystemMap)
        assert len(outcome.document.components) == 0

    def test_non_string_entry_keeps_the_rest(self, project, tmp_path):
        path = project("a.map.json", {
            "name": "a",
            "components": {"Good": "src/Good.ts", "Nested": {"path": "src/N.ts"}, "List": ["x"]},
        })

        outcome = parse_document(path, tmp_path)

        assert kinds(outcome) == [IssueKind.STRUCTURE_INVALID, IssueKind.STRUCTURE_INVALID]
        assert {i.subject for i in outcome.issues} == {"Nested", "List"}
        assert dict(outcome.document.components) == {"Good": "src/Good.ts"}

    @pytest.mark.parametrize("data", [{}, {"name": ""}, {"name": 42}, {"name": "   "}])
    def test_name_required(self, project, tmp_path, data):
        outcome = parse_document(project("a.map.json", data), tmp_path)

        assert kinds(outcome) == [IssueKind.STRUCTURE_INVALID]
        assert outcome.issues[0].location.pointer == "/name"
        assert outcome.document.name == ""

    @pytest.mark.parametrize("key", ["/api/users", "FETCH /api/users", "GET api/users", "GET /a b"])
    def test_malformed_endpoint_key(self, project, tmp_path, key):
        path = project("a.map.json", {"name": "a", "apiEndpoints": {key: "routes.ts", "GET /ok": "routes.ts"}})

        outcome = parse_document(path, tmp_path)

        assert kinds(outcome) == [IssueKind.STRUCTURE_INVALID]
        assert outcome.issues[0].subject == key
        assert list(outcome.document.api_endpoints) == ["GET /ok"]

    def test_lowercase_method_accepted(self, project, tmp_path):
        outcome = parse_document(project("a.map.json", {"name": "a", "apiEndpoints": {"get /x": "r.ts"}}), tmp_path)
        assert outcome.issues == ()

    def test_bad_flow_step(self, project, tmp_path):
        path = project("a.map.json", {
            "name": "a",
            "flows": [
                {"name": "ok", "steps": [{"action": "open"}, {"component": "X"}]},
                "not a flow",
            ],
        })

        outcome = parse_document(path, tmp_path)

        assert kinds(outcome) == [IssueKind.STRUCTURE_INVALID, IssueKind.STRUCTURE_INVALID]
        assert [i.location.pointer for i in outcome.issues] == ["/flows/0/steps/1", "/flows/1"]
        assert len(outcome.document.flows) == 1
        assert len(outcome.document.flows[0].steps) == 1


class TestDuplicateKeys:

    def test_one_warning_per_duplicated_key(self, project, tmp_path):
        path = project("a.map.json", (
            '{"name": "a", "components": {'
            '"Foo": "src/A.ts", "Foo": "src/B.ts", "Foo": "src/C.ts", "Bar": "src/Bar.ts"}}'
        ))

        outcome = parse_document(path, tmp_path)

        assert kinds(outcome) == [IssueKind.DUPLICATE_KEY]
        issue = outcome.issues[0]
        assert issue.severity == Severity.WARNING
        assert issue.location.pointer == "/components/Foo"
        assert issue.subject == "Foo"
        # Last value wins
        assert outcome.document.components["Foo"] == "src/C.ts"

    def test_duplicates_in_different_objects(self, project, tmp_path):
        path = project("a.map.json", '{"name": "a", "name": "b", "database": {"t": "x", "t": "y"}}')

        outcome = parse_document(path, tmp_path)

        assert sorted(i.location.pointer for i in outcome.issues) == ["/database/t", "/name"]
        assert outcome.document.name == "b"

    def test_pointer_escaping(self, project, tmp_path):
        path = project("a.map.json", '{"name": "a", "apiEndpoints": {"GET /x": "r.ts", "GET /x": "s.ts"}}')
        outcome = parse_document(path, tmp_path)
        assert outcome.issues[0].location.pointer == "/apiEndpoints/GET ~1x"

    @settings(max_examples=50, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(
        key=st.text(alphabet="abcXYZ_", min_size=1, max_size=8),
        repeats=st.integers(min_value=2, max_value=6),
    )
    def test_property_exactly_one_warning(self, tmp_path, key, repeats):
        entries = ", ".join(f'"{key}": "src/{i}.ts"' for i in range(repeats))
        path = tmp_path / "dup.map.json"
        path.write_text(f'{{"name": "n", "components": {{{entries}}}}}', encoding="utf-8")

        outcome = parse_document(path, tmp_path)

        duplicates = [i for i in outcome.issues if i.kind == IssueKind.DUPLICATE_KEY]
        assert len(duplicates) == 1
        assert outcome.document.components[key] == f"src/{repeats - 1}.ts"


class TestMalformedInput:

    def test_invalid_json(self, project, tmp_path):
        path = project("broken.map.json", '{"name": "a",\n  "components": {')

        outcome = parse_document(path, tmp_path)

        assert outcome.document is None
        assert kinds(outcome) == [IssueKind.PARSE_ERROR]
        assert outcome.issues[0].severity == Severity.ERROR
        assert outcome.issues[0].location.file == "broken.map.json"
        assert "line 2" in outcome.issues[0].message

    def test_not_utf8(self, project, tmp_path):
        outcome = parse_document(project("a.map.json", b'{"name": "\xff\xfe"}'), tmp_path)
        assert kinds(outcome) == [IssueKind.PARSE_ERROR]

    def test_missing_file(self, tmp_path):
        outcome = parse_document(tmp_path / "gone.map.json", tmp_path)
        assert kinds(outcome) == [IssueKind.FILE_UNREADABLE]
        assert outcome.document is None

    @pytest.mark.skipif(not hasattr(sys, "get_int_max_str_digits"), reason="no integer digit limit")
    def test_oversized_integer(self, project, tmp_path):
        path = project("big.map.json", '{"name": "a", "x": ' + "1" * 5000 + "}")

        outcome = parse_document(path, tmp_path)

        assert outcome.document is None
        assert kinds(outcome) == [IssueKind.PARSE_ERROR]
        assert "big.map.json" in outcome.issues[0].message

    def test_lone_surrogate_key(self, project, tmp_path):
        path = project("odd.map.json", r'{"name": "a", "components": {"\ud800": "missing.ts"}}')

        outcome = parse_document(path, tmp_path)

        assert dict(outcome.document.components) == {"\ud800": "missing.ts"}
        assert outcome.issues == ()

    @pytest.mark.parametrize("content", ["[]", "42", '"text"', "null"])
    def test_top_level_not_object(self, project, tmp_path, content):
        outcome = parse_document(project("a.map.json", content), tmp_path)
        assert kinds(outcome) == [IssueKind.STRUCTURE_INVALID]
        assert outcome.has_errors

    @settings(max_examples=100, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(content=st.text(max_size=200))
    def test_property_arbitrary_text_never_raises(self, tmp_path, content):
        path = tmp_path / "fuzz.map.json"
        path.write_text(content, encoding="utf-8")

        outcome = parse_document(path, tmp_path)

        if outcome.document is None:
            assert outcome.has_errors

    @settings(max_examples=100, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(data=st.recursive(
        st.none() | st.booleans() | st.integers() | st.text(max_size=10),
        lambda children: st.lists(children, max_size=4) | st.dictionaries(
            st.sampled_from(["name", "components", "apiEndpoints", "database", "flows", "x"]),
            children,
            max_size=4,
        ),
        max_leaves=20,
    ))
    def test_property_arbitrary_json_never_raises(self, tmp_path, data):
        path = tmp_path / "fuzz.map.json"
        path.write_text(json.dumps(data), encoding="utf-8")

        outcome = parse_document(path, tmp_path)

        if not isinstance(data, dict):
            assert outcome.has_errors
        elif not isinstance(data.get("name"), str) or not data["name"].strip():
            assert outcome.has_errors


class TestRootManifest:

    def test_manifest(self, project, tmp_path):
        path = project("root.map.json", {
            "appName": "Coach",
            "version": "1.0",
            "domains": {"users": {"description": "Accounts", "path": "users/users.map.json"}},
        })

        outcome = parse_document(path, tmp_path)

        assert outcome.issues == ()
        manifest = outcome.document
        assert isinstance(manifest, RootManifest)
        assert manifest.app_name == "Coach"
        assert manifest.domains["users"].path == "users/users.map.json"

    def test_detected_by_domains_key(self, project, tmp_path):
        path = project("app.map.json", {"appName": "A", "version": "1", "domains": {}})
        assert isinstance(parse_document(path, tmp_path).document, RootManifest)

    def test_partial_manifest(self, project, tmp_path):
        path = project("root.map.json", {
            "appName": "Coach",
            "domains": {
                "users": {"description": "Accounts", "path": "users.map.json"},
                "broken": {"description": "No path"},
                "terse": {"path": "terse.map.json"},
            },
        })

        outcome = parse_document(path, tmp_path)

        pointers = [i.location.pointer for i in outcome.issues]
        assert pointers == ["/version", "/domains/broken", "/domains/terse/description"]
        assert set(outcome.document.domains) == {"users", "terse"}


class TestParserCache:

    def test_cache_reuses_outcome(self, project, tmp_path):
        path = project("a.map.json", {"name": "a"})
        parser = SystemMapParser(tmp_path, cache_enabled=True)

        assert parser.parse(path) is parser.parse(path)

    def test_cache_invalidated_on_change(self, project, tmp_path):
        path = project("a.map.json", {"name": "a"})
        parser = SystemMapParser(tmp_path, cache_enabled=True)
        first = parser.parse(path)

        project("a.map.json", {"name": "renamed"})
        second = parser.parse(path)

        assert second.document.name == "renamed"
        assert first is not second

    def test_cache_disabled(self, project, tmp_path):
        path = project("a.map.json", {"name": "a"})
        parser = SystemMapParser(tmp_path, cache_enabled=False)
        assert parser.parse(path) is not parser.parse(path)
