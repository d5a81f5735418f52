"""
Flow validator: steps of a user flow must reference known components and endpoints.
"""

from typing import List

from ..config import AuditConfig
from ..core.base_validator import BaseValidator
from ..core.models import IssueKind, Severity, SystemMap, ValidationIssue, json_pointer
from ..core.routes import endpoint_key, split_endpoint_key
from ..index import CodebaseIndex


class FlowValidator(BaseValidator):
    """Checks the ``flows`` section of a system map."""

    def _check(self, system_map: SystemMap, index: CodebaseIndex, config: AuditConfig) -> List[ValidationIssue]:
        issues = []
        declared_endpoints = set()
        for key in system_map.api_endpoints:
            parsed = split_endpoint_key(key)
            if parsed is not None:
                declared_endpoints.add(endpoint_key(*parsed))

        for i, flow in enumerate(system_map.flows):
            for j, step in enumerate(flow.steps):
                step_pointer = json_pointer("flows", str(i), "steps", str(j))

                if step.component is not None and step.component not in system_map.components:
                    issues.append(self.create_issue(
                        system_map,
                        kind=IssueKind.FLOW_REFERENCE_UNRESOLVED,
                        severity=Severity.WARNING,
                        message=(
                            f"Flow '{flow.name}' step '{step.action}' references undeclared "
                            f"component '{step.component}'"
                        ),
                        pointer=step_pointer + json_pointer("component"),
                        suggestion=f"Declare '{step.component}' under components",
                        subject=step.component,
                    ))

                if step.api is None:
                    continue
                parsed = split_endpoint_key(step.api)
                if parsed is None:
                    issues.append(self.create_issue(
                        system_map,
                        kind=IssueKind.FLOW_REFERENCE_UNRESOLVED,
                        severity=Severity.WARNING,
                        message=f"Flow '{flow.name}' step '{step.action}' has malformed endpoint '{step.api}'",
                        pointer=step_pointer + json_pointer("api"),
                        suggestion='Reference endpoints as "METHOD /path"',
                        subject=step.api,
                    ))
                    continue
                if endpoint_key(*parsed) in declared_endpoints or index.find_route(*parsed):
                    continue
                issues.append(self.create_issue(
                    system_map,
                    kind=IssueKind.ENDPOINT_NOT_HANDLED,
                    severity=Severity.ERROR,
                    message=(
                        f"Flow '{flow.name}' step '{step.action}' calls '{step.api}', "
                        f"which is neither declared nor handled"
                    ),
                    pointer=step_pointer + json_pointer("api"),
                    suggestion="Declare the endpoint under apiEndpoints and implement its handler",
                    subject=step.api,
                ))

        return issues
