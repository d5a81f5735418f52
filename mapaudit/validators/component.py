"""
Component validator: every declared component path must exist in the codebase.
"""

from typing import List

from ..config import AuditConfig
from ..core.base_validator import BaseValidator
from ..core.models import IssueKind, Severity, SystemMap, ValidationIssue, json_pointer
from ..index import CodebaseIndex


class ComponentValidator(BaseValidator):
    """Checks the ``components`` section of a system map."""

    def _check(self, system_map: SystemMap, index: CodebaseIndex, config: AuditConfig) -> List[ValidationIssue]:
        issues = []
        roots = config.scanning.source_roots

        for name, declared in system_map.components.items():
            pointer = json_pointer("components", name)

            if index.resolve(declared, roots) is not None:
                continue

            # File exists but outside the configured extensions, or with a sibling extension
            other = index.resolve_any(declared, roots)
            siblings = index.same_stem(declared, roots)
            if other is not None or siblings:
                actual = other or siblings[0]
                issues.append(self.create_issue(
                    system_map,
                    kind=IssueKind.EXTENSION_MISMATCH,
                    severity=Severity.WARNING,
                    message=f"Component '{name}' declares '{declared}' but the file found is '{actual}'",
                    pointer=pointer,
                    suggestion=f"Update the path to '{actual}'",
                    subject=name,
                ))
                continue

            elsewhere = index.find_by_basename(declared)
            if elsewhere:
                suggestion = f"Did you mean {', '.join(elsewhere)}?"
            else:
                suggestion = f"Create '{declared}' or remove '{name}' from the system map"
            issues.append(self.create_issue(
                system_map,
                kind=IssueKind.COMPONENT_NOT_FOUND,
                severity=Severity.ERROR,
                message=f"Component '{name}' file not found: {declared}",
                pointer=pointer,
                suggestion=suggestion,
                subject=name,
            ))

        return issues
