"""
Tests for the system map validators.
"""

from typing import Dict

import pytest
from hypothesis import given, settings, strategies as st

from mapaudit.config import AuditConfig, ValidationSettings
from mapaudit.core.base_validator import BaseValidator
from mapaudit.core.models import (
    DomainEntry,
    FlowStep,
    IssueKind,
    RootManifest,
    Severity,
    SystemMap,
    UserFlow,
    freeze_mapping,
)
from mapaudit.index import IndexBuilder
from mapaudit.validators import build_validators
from mapaudit.validators.api import ApiValidator, find_orphaned_endpoints, handler_matches
from mapaudit.validators.component import ComponentValidator
from mapaudit.validators.flow import FlowValidator
from mapaudit.validators.reference import ReferenceValidator, check_unique_names, validate_manifest


def make_map(name="users", source="docs/users.map.json", **sections) -> SystemMap:
    return SystemMap(
        name=name,
        source=source,
        components=freeze_mapping(sections.get("components")),
        api_endpoints=freeze_mapping(sections.get("api_endpoints")),
        database=freeze_mapping(sections.get("database")),
        flows=tuple(sections.get("flows", ())),
        domain=sections.get("domain"),
    )


def make_index(config, files: Dict[str, str]):
    builder = IndexBuilder(config)
    for rel, content in files.items():
        builder.add_file(rel, content)
    return builder.freeze()


@pytest.fixture
def config():
    return AuditConfig()


class TestComponentValidator:

    def test_existing_components_pass(self, config):
        index = make_index(config, {"client/src/components/Card.tsx": ""})
        system_map = make_map(components={"Card": "components/Card.tsx"})

        assert ComponentValidator().validate(system_map, index, config) == []

    def test_missing_component(self, config):
        index = make_index(config, {})
        system_map = make_map(components={"Foo": "src/Foo.ts"})

        issues = ComponentValidator().validate(system_map, index, config)

        assert len(issues) == 1
        issue = issues[0]
        assert issue.kind == IssueKind.COMPONENT_NOT_FOUND
        assert issue.severity == Severity.ERROR
        assert issue.subject == "Foo"
        assert issue.location.file == "docs/users.map.json"
        assert issue.location.pointer == "/components/Foo"

    def test_missing_component_suggests_same_name_elsewhere(self, config):
        index = make_index(config, {"legacy/widgets/Foo.ts": ""})
        system_map = make_map(components={"Foo": "src/Foo.ts"})

        issue = ComponentValidator().validate(system_map, index, config)[0]

        assert issue.kind == IssueKind.COMPONENT_NOT_FOUND
        assert "legacy/widgets/Foo.ts" in issue.suggestion

    def test_extension_mismatch(self, config):
        index = make_index(config, {"src/Foo.tsx": ""})
        system_map = make_map(components={"Foo": "src/Foo.jsx"})

        issues = ComponentValidator().validate(system_map, index, config)

        assert [(i.kind, i.severity) for i in issues] == [(IssueKind.EXTENSION_MISMATCH, Severity.WARNING)]
        assert "src/Foo.tsx" in issues[0].suggestion

    def test_directory_with_index_file(self, config):
        index = make_index(config, {"client/src/components/filemanager/index.ts": ""})
        system_map = make_map(components={"FileManager": "components/filemanager"})

        assert ComponentValidator().validate(system_map, index, config) == []

    def test_unconfigured_extension_is_a_warning(self, config):
        index = make_index(config, {"src/Foo.vue": ""})
        system_map = make_map(components={"Foo": "src/Foo.vue"})

        issues = ComponentValidator().validate(system_map, index, config)

        assert [i.kind for i in issues] == [IssueKind.EXTENSION_MISMATCH]

    @settings(max_examples=50, deadline=None)
    @given(names=st.lists(
        st.text(alphabet="abcdefghXYZ", min_size=1, max_size=8),
        min_size=1, max_size=6, unique=True,
    ))
    def test_property_resolving_components_have_no_errors(self, names):
        config = AuditConfig()
        files = {f"src/components/{n}.tsx": "" for n in names}
        index = make_index(config, files)
        system_map = make_map(components={n: f"components/{n}.tsx" for n in names})

        issues = ComponentValidator().validate(system_map, index, config)

        assert not [i for i in issues if i.severity == Severity.ERROR]


class TestApiValidator:

    ROUTES = {
        "server/routes.ts": (
            "router.get('/api/users/:id', getUser);\n"
            "router.post('/api/users', createUser);\n"
            "app.all('/api/health', health);\n"
        ),
        "server/billing.py": '@app.get("/api/invoices/{invoice_id}")\n',
    }

    def test_path_parameter_endpoint_matches(self, config):
        index = make_index(config, self.ROUTES)
        system_map = make_map(api_endpoints={"GET /api/users/:id": "routes.ts"})

        assert ApiValidator().validate(system_map, index, config) == []

    def test_parameter_syntax_is_structural(self, config):
        index = make_index(config, self.ROUTES)
        system_map = make_map(api_endpoints={
            "GET /api/invoices/:id": "server/billing.py",
            "GET /api/users/{userId}": "server/routes.ts",
        })

        assert ApiValidator().validate(system_map, index, config) == []

    def test_instantiated_value_does_not_match_template(self, config):
        index = make_index(config, self.ROUTES)
        system_map = make_map(api_endpoints={"GET /api/users/42": "server/routes.ts"})

        issues = ApiValidator().validate(system_map, index, config)

        assert [i.kind for i in issues] == [IssueKind.ENDPOINT_NOT_HANDLED]

    def test_endpoint_not_handled_suggests_other_verbs(self, config):
        index = make_index(config, self.ROUTES)
        system_map = make_map(api_endpoints={"DELETE /api/users": "server/routes.ts"})

        issues = ApiValidator().validate(system_map, index, config)

        assert len(issues) == 1
        issue = issues[0]
        assert issue.kind == IssueKind.ENDPOINT_NOT_HANDLED
        assert issue.severity == Severity.ERROR
        assert issue.subject == "DELETE /api/users"
        assert "POST" in issue.suggestion

    def test_all_registration_handles_any_verb(self, config):
        index = make_index(config, self.ROUTES)
        system_map = make_map(api_endpoints={"OPTIONS /api/health": "server/routes.ts"})

        assert ApiValidator().validate(system_map, index, config) == []

    def test_orphaned_endpoints(self, config):
        index = make_index(config, self.ROUTES)
        maps = [
            make_map(api_endpoints={"GET /api/users/{user_id}": "server/routes.ts"}),
            make_map(name="ops", source="docs/ops.map.json", api_endpoints={"HEAD /api/health": "server/routes.ts"}),
        ]

        issues = find_orphaned_endpoints(maps, index)

        assert [(i.subject, i.severity) for i in issues] == [
            ("GET /api/invoices/:param", Severity.INFO),
            ("POST /api/users", Severity.INFO),
        ]
        assert {i.kind for i in issues} == {IssueKind.ORPHANED_ENDPOINT}
        assert issues[0].location.file == "server/billing.py"
        assert "server/routes.ts" in issues[1].message

    def test_no_orphans_when_every_route_is_declared(self, config):
        index = make_index(config, self.ROUTES)
        system_map = make_map(api_endpoints={
            "GET /api/users/:id": "server/routes.ts",
            "POST /api/users": "server/routes.ts",
            "GET /api/health": "server/routes.ts",
            "GET /api/invoices/<int:invoice_id>": "server/billing.py",
        })

        assert find_orphaned_endpoints([system_map], index) == []

    def test_handler_mismatch(self, config):
        index = make_index(config, self.ROUTES)
        system_map = make_map(api_endpoints={"POST /api/users": "server/users.ts"})

        issues = ApiValidator().validate(system_map, index, config)

        assert [(i.kind, i.severity) for i in issues] == [(IssueKind.HANDLER_MISMATCH, Severity.WARNING)]
        assert "server/routes.ts" in issues[0].message

    @pytest.mark.parametrize("declared,registered,expected", [
        ("server/routes.ts", "server/routes.ts", True),
        ("routes.ts", "server/routes.ts", True),
        ("./server/routes.ts", "server/routes.ts", True),
        ("server/routes", "server/routes.ts", True),
        ("api/users.ts", "server/api/users.ts", True),
        ("routes.ts", "server/users.ts", False),
        ("", "server/routes.ts", False),
    ])
    def test_handler_matches(self, config, declared, registered, expected):
        assert handler_matches(declared, registered, config.scanning.source_roots) is expected


class TestReferenceValidator:

    def test_name_mismatch(self, config):
        index = make_index(config, {})
        system_map = make_map(name="authentication", domain="auth")

        issues = ReferenceValidator().validate(system_map, index, config)

        assert [(i.kind, i.severity) for i in issues] == [(IssueKind.NAME_MISMATCH, Severity.WARNING)]
        assert issues[0].location.pointer == "/name"

    def test_name_matches_domain(self, config):
        system_map = make_map(name="auth", domain="auth")
        assert ReferenceValidator().validate(system_map, make_index(config, {}), config) == []

    def test_schema_not_found(self, config):
        system_map = make_map(database={"users": "shared/schema.ts"})

        issues = ReferenceValidator().validate(system_map, make_index(config, {}), config)

        assert [(i.kind, i.severity) for i in issues] == [(IssueKind.SCHEMA_NOT_FOUND, Severity.ERROR)]
        assert issues[0].subject == "users"

    def test_table_defined(self, config):
        index = make_index(config, {"shared/schema.ts": 'export const users = pgTable("users", {});'})
        system_map = make_map(database={"Users": "shared/schema.ts"})

        assert ReferenceValidator().validate(system_map, index, config) == []

    def test_table_not_defined(self, config):
        index = make_index(config, {
            "shared/schema.ts": 'export const users = pgTable("users", {});',
            "migrations/001.sql": "CREATE TABLE orders (id int);",
        })
        system_map = make_map(database={"orders": "shared/schema.ts"})

        issues = ReferenceValidator().validate(system_map, index, config)

        assert [(i.kind, i.severity) for i in issues] == [(IssueKind.TABLE_NOT_DEFINED, Severity.WARNING)]
        assert "migrations/001.sql" in issues[0].suggestion

    def test_map_size_info(self):
        config = AuditConfig(validation=ValidationSettings(map_size_guideline=2))
        index = make_index(config, {"src/a.ts": "", "src/b.ts": "", "src/c.ts": ""})
        system_map = make_map(components={"A": "src/a.ts", "B": "src/b.ts", "C": "src/c.ts"})

        issues = ReferenceValidator().validate(system_map, index, config)

        assert [(i.kind, i.severity) for i in issues] == [(IssueKind.MAP_SIZE, Severity.INFO)]


class TestManifestChecks:

    def make_manifest(self, domains, source="root.map.json"):
        return RootManifest(
            app_name="Coach",
            version="1.0",
            source=source,
            domains=freeze_mapping({k: DomainEntry(description=k, path=v) for k, v in domains.items()}),
        )

    def test_all_domains_resolve(self, project, tmp_path):
        project("users/users.map.json", {"name": "users"})
        manifest = self.make_manifest({"users": "users/users.map.json"})

        assert validate_manifest(manifest, tmp_path, {"users/users.map.json"}) == []

    def test_paths_relative_to_manifest(self, project, tmp_path):
        project("docs/users.map.json", {"name": "users"})
        manifest = self.make_manifest({"users": "./users.map.json"}, source="docs/root.map.json")

        assert validate_manifest(manifest, tmp_path, {"docs/users.map.json"}) == []

    def test_dangling_reference(self, tmp_path):
        manifest = self.make_manifest({"billing": "billing/billing.map.json"})

        issues = validate_manifest(manifest, tmp_path, set())

        assert [(i.kind, i.severity) for i in issues] == [(IssueKind.DANGLING_REFERENCE, Severity.ERROR)]
        assert issues[0].location.pointer == "/domains/billing/path"
        assert issues[0].subject == "billing"

    def test_undiscovered_target_is_a_warning(self, project, tmp_path):
        project("billing/billing.json", {"name": "billing"})
        manifest = self.make_manifest({"billing": "billing/billing.json"})

        issues = validate_manifest(manifest, tmp_path, set())

        assert [(i.kind, i.severity) for i in issues] == [(IssueKind.DANGLING_REFERENCE, Severity.WARNING)]

    def test_duplicate_names(self):
        maps = [
            make_map(name="users", source="a.map.json"),
            make_map(name="orders", source="b.map.json"),
            make_map(name="users", source="c.map.json"),
        ]

        issues = check_unique_names(maps)

        assert [(i.kind, i.location.file) for i in issues] == [(IssueKind.DUPLICATE_NAME, "c.map.json")]
        assert "a.map.json" in issues[0].message


class TestFlowValidator:

    def test_resolving_flow(self, config):
        index = make_index(config, {"server/routes.ts": "router.get('/api/users/:id', h);"})
        system_map = make_map(
            components={"Card": "src/Card.tsx"},
            api_endpoints={"POST /api/users": "routes.ts"},
            flows=[UserFlow(name="signup", steps=(
                FlowStep(action="open", component="Card"),
                FlowStep(action="submit", api="POST /api/users"),
                FlowStep(action="view", api="GET /api/users/{id}"),
            ))],
        )

        assert FlowValidator().validate(system_map, index, config) == []

    def test_unresolved_references(self, config):
        index = make_index(config, {})
        system_map = make_map(flows=[UserFlow(name="signup", steps=(
            FlowStep(action="open", component="Ghost"),
            FlowStep(action="submit", api="POST /api/nowhere"),
            FlowStep(action="weird", api="nonsense"),
        ))])

        issues = FlowValidator().validate(system_map, index, config)

        assert [(i.kind, i.severity) for i in issues] == [
            (IssueKind.FLOW_REFERENCE_UNRESOLVED, Severity.WARNING),
            (IssueKind.ENDPOINT_NOT_HANDLED, Severity.ERROR),
            (IssueKind.FLOW_REFERENCE_UNRESOLVED, Severity.WARNING),
        ]
        assert issues[0].location.pointer == "/flows/0/steps/0/component"
        assert issues[1].location.pointer == "/flows/0/steps/1/api"


class ExplodingValidator(BaseValidator):

    def _check(self, system_map, index, config):
        raise ValueError("boom")


class TestBaseValidator:

    def test_exception_becomes_issue(self, config):
        system_map = make_map()

        issues = ExplodingValidator().validate(system_map, make_index(config, {}), config)

        assert len(issues) == 1
        assert issues[0].kind == IssueKind.VALIDATOR_FAILURE
        assert issues[0].severity == Severity.ERROR
        assert "boom" in issues[0].message
        assert issues[0].location.file == system_map.source

    def test_validators_do_not_modify_inputs(self, config):
        index = make_index(config, {"src/Foo.ts": ""})
        system_map = make_map(components={"Foo": "src/Foo.ts", "Bar": "src/Bar.ts"})
        before = (dict(system_map.components), index.files)

        for validator in build_validators(config):
            validator.validate(system_map, index, config)

        assert (dict(system_map.components), index.files) == before

    def test_build_validators_respects_settings(self):
        config = AuditConfig(validation=ValidationSettings(apis=False, flows=False))
        names = [v.name for v in build_validators(config)]
        assert names == ["ComponentValidator", "ReferenceValidator"]
