"""
API validator: every declared endpoint must be registered by some route handler.

Declared and registered paths are compared structurally, so "/users/:id",
"/users/{user_id}" and "/users/<int:id>" are the same endpoint.
"""

import posixpath
from typing import FrozenSet, List, Sequence, Set

from ..config import AuditConfig
from ..core.base_validator import BaseValidator
from ..core.files import candidate_paths, normalize_declared_path
from ..core.models import IssueKind, Severity, SystemMap, ValidationIssue, json_pointer, new_issue
from ..core.routes import ANY_METHOD, endpoint_key, split_endpoint_key
from ..index import CodebaseIndex


def handler_matches(declared: str, registered: str, source_roots: Sequence[str]) -> bool:
    """
    Is the declared handler reference consistent with a file that registers the route?

    Matches when the paths are equal after source-root resolution, when the
    registered path ends with the declared one, or when the declared reference
    has no extension and equals the registered file's stem.
    """
    declared_norm = normalize_declared_path(declared)
    if not declared_norm:
        return False
    registered_stem = posixpath.splitext(registered)[0]
    has_ext = bool(posixpath.splitext(posixpath.basename(declared_norm))[1])

    for candidate in candidate_paths(declared, source_roots):
        if candidate == registered:
            return True
        if not has_ext and candidate == registered_stem:
            return True

    if registered.endswith("/" + declared_norm):
        return True
    if not has_ext and registered_stem.endswith("/" + declared_norm):
        return True
    return False


class ApiValidator(BaseValidator):
    """Checks the ``apiEndpoints`` section of a system map."""

    def _check(self, system_map: SystemMap, index: CodebaseIndex, config: AuditConfig) -> List[ValidationIssue]:
        issues = []
        roots = config.scanning.source_roots

        for key, handler in system_map.api_endpoints.items():
            pointer = json_pointer("apiEndpoints", key)
            parsed = split_endpoint_key(key)
            if parsed is None:
                # Rejected by the parser already
                continue
            method, path = parsed

            registered = index.find_route(method, path)
            if not registered:
                issues.append(self._not_handled(system_map, key, method, path, index, pointer))
                continue

            if not any(handler_matches(handler, f, roots) for f in registered):
                issues.append(self._handler_mismatch(system_map, key, handler, registered, pointer))

        return issues

    def _not_handled(self, system_map, key, method, path, index: CodebaseIndex, pointer) -> ValidationIssue:
        other_methods = [m for m in index.methods_for(path) if m != method]
        if other_methods:
            suggestion = (
                f"{path} is registered for {', '.join(other_methods)}; "
                f"check the HTTP method or add a {method} handler"
            )
        else:
            suggestion = f"Implement a {method} handler for {path} or remove the endpoint from the system map"
        return self.create_issue(
            system_map,
            kind=IssueKind.ENDPOINT_NOT_HANDLED,
            severity=Severity.ERROR,
            message=f"Endpoint '{key}' has no route handler in the codebase",
            pointer=pointer,
            suggestion=suggestion,
            subject=key,
        )

    def _handler_mismatch(self, system_map, key, handler, registered: FrozenSet[str], pointer) -> ValidationIssue:
        files = sorted(registered)
        return self.create_issue(
            system_map,
            kind=IssueKind.HANDLER_MISMATCH,
            severity=Severity.WARNING,
            message=f"Endpoint '{key}' declares handler '{handler}' but is registered in {', '.join(files)}",
            pointer=pointer,
            suggestion=f"Update the handler reference to '{files[0]}'",
            subject=key,
        )


def find_orphaned_endpoints(maps: Sequence[SystemMap], index: CodebaseIndex) -> List[ValidationIssue]:
    """
    Routes registered in the codebase that no system map declares.

    An ALL registration counts as declared when any verb is declared for its path.
    """
    declared: Set[str] = set()
    declared_paths: Set[str] = set()
    for system_map in maps:
        for key in system_map.api_endpoints:
            parsed = split_endpoint_key(key)
            if parsed is None:
                continue
            route = endpoint_key(*parsed)
            declared.add(route)
            declared_paths.add(route.split(" ", 1)[1])

    issues = []
    for route in sorted(index.routes):
        method, path = route.split(" ", 1)
        if method == ANY_METHOD:
            if path in declared_paths:
                continue
        elif route in declared:
            continue
        files = sorted(index.routes[route])
        issues.append(new_issue(
            kind=IssueKind.ORPHANED_ENDPOINT,
            severity=Severity.INFO,
            message=f"Route '{route}' is registered in {', '.join(files)} but no system map declares it",
            file=files[0],
            suggestion="Declare it in the apiEndpoints section of the map that owns it, or remove the route",
            subject=route,
        ))
    return issues
