"""
Core data models for the system map auditor.
"""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union


class Severity(Enum):
    """How serious an issue is. Only ERROR blocks a passing audit."""
    ERROR = "error"      # Declared thing is missing: file, handler, schema
    WARNING = "warning"  # Naming or convention mismatch
    INFO = "info"        # Purely informational notice

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.ERROR: 3,
    Severity.WARNING: 2,
    Severity.INFO: 1,
}


class IssueKind(Enum):
    """Closed set of issue kinds."""
    # Parsing
    PARSE_ERROR = "parse-error"
    FILE_UNREADABLE = "file-unreadable"
    STRUCTURE_INVALID = "structure-invalid"
    DUPLICATE_KEY = "duplicate-key"
    # Components
    COMPONENT_NOT_FOUND = "component-not-found"
    EXTENSION_MISMATCH = "extension-mismatch"
    # API
    ENDPOINT_NOT_HANDLED = "endpoint-not-handled"
    HANDLER_MISMATCH = "handler-mismatch"
    ORPHANED_ENDPOINT = "orphaned-endpoint"
    # Database
    SCHEMA_NOT_FOUND = "schema-not-found"
    TABLE_NOT_DEFINED = "table-not-defined"
    # References
    NAME_MISMATCH = "name-mismatch"
    DUPLICATE_NAME = "duplicate-name"
    DANGLING_REFERENCE = "dangling-reference"
    FLOW_REFERENCE_UNRESOLVED = "flow-reference-unresolved"
    MAP_SIZE = "map-size"
    # Run level
    SCAN_SKIPPED = "scan-skipped"
    NO_SYSTEM_MAPS_FOUND = "no-system-maps-found"
    AUDIT_TIMEOUT = "audit-timeout"
    VALIDATOR_FAILURE = "validator-failure"


def json_pointer(*parts: str) -> str:
    """Build an RFC 6901 pointer, e.g. json_pointer("components", "Foo") -> "/components/Foo"."""
    escaped = [str(p).replace("~", "~0").replace("/", "~1") for p in parts]
    return "".join("/" + p for p in escaped)


@dataclass(frozen=True)
class IssueLocation:
    """Where an issue was found: project-relative file plus optional pointer into it."""

    file: str = ""
    pointer: str = ""

    def __str__(self) -> str:
        if self.pointer:
            return f"{self.file}#{self.pointer}"
        return self.file


@dataclass(frozen=True)
class ValidationIssue:
    """One discrete finding. Never mutated after creation."""

    kind: IssueKind
    severity: Severity
    location: IssueLocation
    message: str
    suggestion: Optional[str] = None
    subject: Optional[str] = None

    @property
    def id(self) -> str:
        """Content-derived identifier, stable across runs."""
        raw = "|".join([
            self.kind.value,
            self.severity.value,
            self.location.file,
            self.location.pointer,
            self.message,
        ])
        return hashlib.sha1(raw.encode("utf-8", "surrogatepass")).hexdigest()[:12]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dict."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "severity": self.severity.value,
            "file": self.location.file,
            "pointer": self.location.pointer,
            "subject": self.subject,
            "message": self.message,
            "suggestion": self.suggestion,
        }

    def to_markdown(self, show_suggestion: bool = True) -> str:
        """Render as a markdown list entry."""
        md = f"- **[{self.severity.value.upper()}] {self.kind.value}**: {self.message}"
        if self.location.pointer:
            md += f" (`{self.location.pointer}`)"
        if show_suggestion and self.suggestion:
            md += f"\n  - Suggestion: {self.suggestion}"
        return md


def new_issue(
    kind: IssueKind,
    severity: Severity,
    message: str,
    file: str = "",
    pointer: str = "",
    suggestion: Optional[str] = None,
    subject: Optional[str] = None,
) -> ValidationIssue:
    """Convenience constructor used by the parser, index and aggregator."""
    return ValidationIssue(
        kind=kind,
        severity=severity,
        location=IssueLocation(file=file, pointer=pointer),
        message=message,
        suggestion=suggestion,
        subject=subject,
    )


def freeze_mapping(values: Optional[Mapping[str, Any]] = None) -> Mapping[str, Any]:
    """Read-only view over a private copy of ``values``."""
    return MappingProxyType(dict(values or {}))


# === System map documents ===

@dataclass(frozen=True)
class FlowStep:
    """One step of a user flow."""

    action: str
    component: Optional[str] = None
    api: Optional[str] = None


@dataclass(frozen=True)
class UserFlow:
    """Named sequence of steps through components and endpoints."""

    name: str
    steps: Tuple[FlowStep, ...] = ()


@dataclass(frozen=True)
class SystemMap:
    """
    One parsed system map document.

    components:     logical component name -> declared file path
    api_endpoints:  "METHOD /path" -> declared handler file reference
    database:       table name -> declared schema file reference
    """

    name: str
    source: str
    last_updated: Optional[str] = None
    components: Mapping[str, str] = field(default_factory=freeze_mapping)
    api_endpoints: Mapping[str, str] = field(default_factory=freeze_mapping)
    database: Mapping[str, str] = field(default_factory=freeze_mapping)
    flows: Tuple[UserFlow, ...] = ()
    # RootManifest key this map is registered under, assigned by the pipeline
    domain: Optional[str] = None

    @property
    def declared_entries(self) -> int:
        return len(self.components) + len(self.api_endpoints) + len(self.database)


@dataclass(frozen=True)
class DomainEntry:
    """RootManifest entry pointing at one domain's system map."""

    description: str
    path: str


@dataclass(frozen=True)
class RootManifest:
    """Top-level document listing the application's domains."""

    app_name: str
    version: str
    source: str
    domains: Mapping[str, DomainEntry] = field(default_factory=freeze_mapping)


Document = Union[SystemMap, RootManifest]


@dataclass(frozen=True)
class ParseOutcome:
    """Best-effort parse result: whatever parsed, plus every problem found."""

    document: Optional[Document]
    issues: Tuple[ValidationIssue, ...] = ()

    @property
    def has_errors(self) -> bool:
        return any(i.severity == Severity.ERROR for i in self.issues)


# === Audit result ===

@dataclass(frozen=True)
class AuditResult:
    """Aggregated, ordered output of one audit run."""

    issues: Tuple[ValidationIssue, ...]
    counts: Mapping[str, int]
    duration_seconds: float
    passed: bool
    maps_discovered: int = 0
    maps_validated: int = 0
    files_indexed: int = 0
    routes_indexed: int = 0
    timed_out: bool = False
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def total_issues(self) -> int:
        return len(self.issues)

    def issues_with(self, severity: Severity) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == severity]

    def issues_by_file(self) -> Dict[str, List[ValidationIssue]]:
        """Group issues by source file, keeping result order."""
        grouped: Dict[str, List[ValidationIssue]] = {}
        for issue in self.issues:
            grouped.setdefault(issue.location.file, []).append(issue)
        return grouped

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dict."""
        return {
            "passed": self.passed,
            "timestamp": self.timestamp.isoformat(),
            "duration_seconds": self.duration_seconds,
            "counts": dict(self.counts),
            "total_issues": self.total_issues,
            "maps_discovered": self.maps_discovered,
            "maps_validated": self.maps_validated,
            "files_indexed": self.files_indexed,
            "routes_indexed": self.routes_indexed,
            "timed_out": self.timed_out,
            "issues": [issue.to_dict() for issue in self.issues],
        }


def count_by_severity(issues: Iterable[ValidationIssue]) -> Dict[str, int]:
    counts = {severity.value: 0 for severity in Severity}
    for issue in issues:
        counts[issue.severity.value] += 1
    return counts
