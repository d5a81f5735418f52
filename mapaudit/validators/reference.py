"""
Reference validator: cross-file referential integrity.

Covers what a single parse cannot see: domain names against the root manifest,
database schema references, map size, manifest targets and name collisions
between maps.
"""

import posixpath
from pathlib import Path
from typing import Collection, Dict, List, Sequence

from ..config import AuditConfig
from ..core.base_validator import BaseValidator
from ..core.files import normalize_declared_path
from ..core.models import (
    IssueKind,
    RootManifest,
    Severity,
    SystemMap,
    ValidationIssue,
    json_pointer,
    new_issue,
)
from ..index import CodebaseIndex


class ReferenceValidator(BaseValidator):
    """Per-map reference checks plus manifest and cross-map helpers."""

    def _check(self, system_map: SystemMap, index: CodebaseIndex, config: AuditConfig) -> List[ValidationIssue]:
        issues = []

        if system_map.domain is not None and system_map.name and system_map.name != system_map.domain:
            issues.append(self.create_issue(
                system_map,
                kind=IssueKind.NAME_MISMATCH,
                severity=Severity.WARNING,
                message=(
                    f"System map name '{system_map.name}' does not match the domain key "
                    f"'{system_map.domain}' it is registered under"
                ),
                pointer=json_pointer("name"),
                suggestion=f"Rename the map to '{system_map.domain}' or update the root manifest",
                subject=system_map.name,
            ))

        issues.extend(self._check_database(system_map, index, config))

        guideline = config.validation.map_size_guideline
        if system_map.declared_entries > guideline:
            issues.append(self.create_issue(
                system_map,
                kind=IssueKind.MAP_SIZE,
                severity=Severity.INFO,
                message=(
                    f"System map declares {system_map.declared_entries} entries, "
                    f"above the guideline of {guideline}"
                ),
                suggestion="Consider splitting the domain into feature maps",
                subject=system_map.name or None,
            ))

        return issues

    def _check_database(self, system_map: SystemMap, index: CodebaseIndex, config: AuditConfig) -> List[ValidationIssue]:
        issues = []
        roots = config.scanning.source_roots

        for table, declared in system_map.database.items():
            pointer = json_pointer("database", table)
            schema = index.resolve_any(declared, roots)
            if schema is None:
                issues.append(self.create_issue(
                    system_map,
                    kind=IssueKind.SCHEMA_NOT_FOUND,
                    severity=Severity.ERROR,
                    message=f"Schema file for table '{table}' not found: {declared}",
                    pointer=pointer,
                    suggestion="Point the table at the file that defines its schema",
                    subject=table,
                ))
                continue

            # Only scanned source files carry table definitions
            if schema in index.files and table.lower() not in index.tables_in(schema):
                issues.append(self.create_issue(
                    system_map,
                    kind=IssueKind.TABLE_NOT_DEFINED,
                    severity=Severity.WARNING,
                    message=f"Table '{table}' is not defined in {schema}",
                    pointer=pointer,
                    suggestion=_table_suggestion(table, index),
                    subject=table,
                ))

        return issues


def _table_suggestion(table: str, index: CodebaseIndex) -> str:
    defined_in = sorted(index.tables.get(table.lower(), ()))
    if defined_in:
        return f"'{table}' is defined in {', '.join(defined_in)}"
    return f"Add a definition for '{table}' or fix the table name"


def manifest_target(manifest: RootManifest, declared: str) -> str:
    """Project-relative path of a domain entry, resolved against the manifest's directory."""
    base = posixpath.dirname(manifest.source)
    normalized = normalize_declared_path(declared)
    if not normalized:
        return ""
    return posixpath.normpath(posixpath.join(base, normalized)) if base else normalized


def validate_manifest(
    manifest: RootManifest,
    project_root: Path,
    discovered: Collection[str],
) -> List[ValidationIssue]:
    """
    Check that every domain entry points at a discovered system map.

    Args:
        manifest: Parsed root manifest
        project_root: Audited project root
        discovered: Project-relative paths of discovered map files

    Returns:
        dangling-reference issues; ERROR when the file is missing, WARNING when it
        exists but discovery did not pick it up
    """
    issues = []
    for domain, entry in manifest.domains.items():
        pointer = json_pointer("domains", domain, "path")
        target = manifest_target(manifest, entry.path)

        if not target or not (Path(project_root) / target).is_file():
            issues.append(new_issue(
                kind=IssueKind.DANGLING_REFERENCE,
                severity=Severity.ERROR,
                message=f"Domain '{domain}' points at a missing file: {entry.path}",
                file=manifest.source,
                pointer=pointer,
                suggestion="Create the system map or fix the path in the root manifest",
                subject=domain,
            ))
        elif target not in discovered:
            issues.append(new_issue(
                kind=IssueKind.DANGLING_REFERENCE,
                severity=Severity.WARNING,
                message=f"Domain '{domain}' points at {target}, which was not discovered as a system map",
                file=manifest.source,
                pointer=pointer,
                suggestion="Use a system map suffix for the file or adjust the scanning patterns",
                subject=domain,
            ))
    return issues


def domain_assignments(manifests: Sequence[RootManifest]) -> Dict[str, str]:
    """Map file path -> domain key, first manifest wins."""
    assignments: Dict[str, str] = {}
    for manifest in manifests:
        for domain, entry in manifest.domains.items():
            target = manifest_target(manifest, entry.path)
            if target:
                assignments.setdefault(target, domain)
    return assignments


def check_unique_names(maps: Sequence[SystemMap]) -> List[ValidationIssue]:
    """Flag every map whose name was already used by an earlier map."""
    issues = []
    first_seen: Dict[str, str] = {}
    for system_map in maps:
        if not system_map.name:
            continue
        if system_map.name in first_seen:
            issues.append(new_issue(
                kind=IssueKind.DUPLICATE_NAME,
                severity=Severity.WARNING,
                message=f"System map name '{system_map.name}' is also used by {first_seen[system_map.name]}",
                file=system_map.source,
                pointer=json_pointer("name"),
                suggestion="Give every domain map a unique name",
                subject=system_map.name,
            ))
        else:
            first_seen[system_map.name] = system_map.source
    return issues
