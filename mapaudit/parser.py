"""
Parser for system map documents.

Turns a JSON file into a SystemMap or RootManifest. Malformed input never raises:
read failures, syntax errors and shape mismatches become error-severity issues and
the parser returns whatever part of the document was valid.

Duplicate keys are detected at the JSON syntax layer. The last value wins, and one
warning is emitted per duplicated key so the lost value does not go unnoticed.
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .core.files import relative_posix
from .core.models import (
    DomainEntry,
    FlowStep,
    IssueKind,
    ParseOutcome,
    RootManifest,
    Severity,
    SystemMap,
    UserFlow,
    ValidationIssue,
    freeze_mapping,
    json_pointer,
    new_issue,
)
from .core.routes import HTTP_METHODS, split_endpoint_key
from .discovery import ROOT_MANIFEST_NAME

logger = logging.getLogger(__name__)


class _JsonObject(dict):
    """JSON object that remembers which keys occurred more than once."""

    duplicates: Tuple[str, ...] = ()


def _object_pairs_hook(pairs: List[Tuple[str, Any]]) -> _JsonObject:
    obj = _JsonObject()
    seen = set()
    duplicates: List[str] = []
    for key, value in pairs:
        if key in seen and key not in duplicates:
            duplicates.append(key)
        seen.add(key)
        obj[key] = value
    obj.duplicates = tuple(duplicates)
    return obj


class _IssueCollector:
    """Accumulates issues for one document."""

    def __init__(self, source: str):
        self.source = source
        self.issues: List[ValidationIssue] = []

    def add(
        self,
        kind: IssueKind,
        severity: Severity,
        message: str,
        pointer: str = "",
        suggestion: Optional[str] = None,
        subject: Optional[str] = None,
    ) -> None:
        self.issues.append(new_issue(
            kind=kind,
            severity=severity,
            message=message,
            file=self.source,
            pointer=pointer,
            suggestion=suggestion,
            subject=subject,
        ))

    def structure(self, message: str, pointer: str, suggestion: str, subject: Optional[str] = None) -> None:
        self.add(IssueKind.STRUCTURE_INVALID, Severity.ERROR, message, pointer, suggestion, subject)


class SystemMapParser:
    """
    Parses system map files, optionally caching outcomes per file version.

    Safe to call from several threads at once.
    """

    def __init__(self, project_root: Path, cache_enabled: bool = True):
        self.project_root = Path(project_root)
        self.cache_enabled = cache_enabled
        self._cache: Dict[Path, Tuple[Tuple[int, int], ParseOutcome]] = {}
        self._lock = threading.Lock()

    def parse(self, path: Path) -> ParseOutcome:
        """
        Parse one document.

        Args:
            path: System map or root manifest file

        Returns:
            ParseOutcome with the best-effort document and every issue found
        """
        path = Path(path)
        version = self._file_version(path)
        if self.cache_enabled and version is not None:
            with self._lock:
                cached = self._cache.get(path)
            if cached is not None and cached[0] == version:
                logger.debug(f"Parse cache hit: {path}")
                return cached[1]

        outcome = parse_document(path, self.project_root)

        if self.cache_enabled and version is not None:
            with self._lock:
                self._cache[path] = (version, outcome)
        return outcome

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    @staticmethod
    def _file_version(path: Path) -> Optional[Tuple[int, int]]:
        try:
            stat = path.stat()
        except OSError:
            return None
        return (stat.st_mtime_ns, stat.st_size)


def parse_document(path: Path, project_root: Path) -> ParseOutcome:
    """Parse one document without caching."""
    path = Path(path)
    source = _source_name(path, Path(project_root))
    collector = _IssueCollector(source)

    try:
        raw = path.read_bytes()
    except OSError as e:
        collector.add(
            IssueKind.FILE_UNREADABLE, Severity.ERROR,
            f"Cannot read system map {source}: {e.strerror or e}",
            suggestion="Check that the file exists and is readable",
        )
        return ParseOutcome(document=None, issues=tuple(collector.issues))

    try:
        text = raw.decode("utf-8-sig")
        data = json.loads(text, object_pairs_hook=_object_pairs_hook)
    except UnicodeDecodeError as e:
        collector.add(
            IssueKind.PARSE_ERROR, Severity.ERROR,
            f"System map {source} is not valid UTF-8 (byte {e.start})",
            suggestion="Save the file as UTF-8 encoded JSON",
        )
        return ParseOutcome(document=None, issues=tuple(collector.issues))
    except json.JSONDecodeError as e:
        collector.add(
            IssueKind.PARSE_ERROR, Severity.ERROR,
            f"Invalid JSON in {source} at line {e.lineno}, column {e.colno}: {e.msg}",
            suggestion="Validate the JSON syntax of the system map",
        )
        return ParseOutcome(document=None, issues=tuple(collector.issues))
    except ValueError as e:
        # e.g. integer literals beyond sys.get_int_max_str_digits()
        collector.add(
            IssueKind.PARSE_ERROR, Severity.ERROR,
            f"System map {source} contains a value that cannot be decoded: {e}",
            suggestion="Quote oversized numbers as strings",
        )
        return ParseOutcome(document=None, issues=tuple(collector.issues))
    except RecursionError:
        collector.add(
            IssueKind.PARSE_ERROR, Severity.ERROR,
            f"System map {source} is nested too deeply to parse",
        )
        return ParseOutcome(document=None, issues=tuple(collector.issues))

    _report_duplicates(data, collector)

    if not isinstance(data, dict):
        collector.structure(
            f"Top level of {source} must be a JSON object, found {_type_name(data)}",
            pointer="",
            suggestion="Wrap the system map in a JSON object",
        )
        return ParseOutcome(document=None, issues=tuple(collector.issues))

    if "domains" in data or path.name == ROOT_MANIFEST_NAME:
        document = _build_root_manifest(data, collector)
    else:
        document = _build_system_map(data, collector)

    if collector.issues:
        logger.debug(f"Parsed {source} with {len(collector.issues)} issue(s)")
    return ParseOutcome(document=document, issues=tuple(collector.issues))


# === Duplicate keys ===

def _report_duplicates(data: Any, collector: _IssueCollector) -> None:
    # Iterative walk; documents nested close to the recursion limit still parse
    stack = [(data, "")]
    while stack:
        value, pointer = stack.pop()
        if isinstance(value, dict):
            for key in getattr(value, "duplicates", ()):
                collector.add(
                    IssueKind.DUPLICATE_KEY, Severity.WARNING,
                    f"Key '{key}' appears more than once; the last value is used",
                    pointer=pointer + json_pointer(key),
                    suggestion=f"Remove or rename the duplicate '{key}' entries",
                    subject=key,
                )
            children = [(child, pointer + json_pointer(key)) for key, child in value.items()]
        elif isinstance(value, list):
            children = [(child, pointer + json_pointer(str(i))) for i, child in enumerate(value)]
        else:
            continue
        stack.extend(reversed(children))


# === SystemMap ===

def _build_system_map(data: Mapping[str, Any], collector: _IssueCollector) -> SystemMap:
    name = data.get("name")
    if "name" not in data:
        collector.structure(
            'System map is missing required field "name"',
            pointer=json_pointer("name"),
            suggestion='Add a "name" field identifying the domain',
        )
        name = ""
    elif not isinstance(name, str) or not name.strip():
        collector.structure(
            f'"name" must be a non-empty string, found {_type_name(name)}',
            pointer=json_pointer("name"),
            suggestion='Set "name" to the domain name',
        )
        name = ""

    last_updated = data.get("lastUpdated")
    if last_updated is not None and not isinstance(last_updated, str):
        collector.structure(
            f'"lastUpdated" must be a string, found {_type_name(last_updated)}',
            pointer=json_pointer("lastUpdated"),
            suggestion="Use an ISO-8601 date string",
        )
        last_updated = None

    return SystemMap(
        name=name,
        source=collector.source,
        last_updated=last_updated,
        components=_string_mapping(data, "components", collector),
        api_endpoints=_endpoint_mapping(data, collector),
        database=_string_mapping(data, "database", collector),
        flows=_flows(data, collector),
    )


def _section(data: Mapping[str, Any], section: str, collector: _IssueCollector) -> Optional[Mapping[str, Any]]:
    if section not in data:
        return None
    value = data[section]
    if not isinstance(value, dict):
        collector.structure(
            f'"{section}" must be an object mapping names to paths, found {_type_name(value)}',
            pointer=json_pointer(section),
            suggestion=f'Declare "{section}" as {{"name": "path"}}',
        )
        return None
    return value


def _string_mapping(data: Mapping[str, Any], section: str, collector: _IssueCollector) -> Mapping[str, str]:
    raw = _section(data, section, collector)
    if raw is None:
        return freeze_mapping()

    result: Dict[str, str] = {}
    for key, value in raw.items():
        if not isinstance(value, str):
            collector.structure(
                f'Entry "{key}" in "{section}" must be a string path, found {_type_name(value)}',
                pointer=json_pointer(section, key),
                suggestion="Replace the value with the file path as a string",
                subject=key,
            )
            continue
        result[key] = value
    return freeze_mapping(result)


def _endpoint_mapping(data: Mapping[str, Any], collector: _IssueCollector) -> Mapping[str, str]:
    endpoints = _string_mapping(data, "apiEndpoints", collector)
    result: Dict[str, str] = {}
    for key, handler in endpoints.items():
        if split_endpoint_key(key) is None:
            collector.structure(
                f'Endpoint key "{key}" is not of the form "METHOD /path"',
                pointer=json_pointer("apiEndpoints", key),
                suggestion=f"Use one of {', '.join(HTTP_METHODS)} followed by a path starting with '/'",
                subject=key,
            )
            continue
        result[key] = handler
    return freeze_mapping(result)


def _flows(data: Mapping[str, Any], collector: _IssueCollector) -> Tuple[UserFlow, ...]:
    if "flows" not in data:
        return ()
    raw = data["flows"]
    if not isinstance(raw, list):
        collector.structure(
            f'"flows" must be a list, found {_type_name(raw)}',
            pointer=json_pointer("flows"),
            suggestion='Declare "flows" as a list of {"name", "steps"} objects',
        )
        return ()

    flows = []
    for i, item in enumerate(raw):
        pointer = json_pointer("flows", str(i))
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            collector.structure(
                f"Flow at index {i} must be an object with a string \"name\"",
                pointer=pointer,
                suggestion='Give every flow a "name" and a "steps" list',
            )
            continue
        steps_raw = item.get("steps", [])
        if not isinstance(steps_raw, list):
            collector.structure(
                f'Flow "{item["name"]}" has non-list "steps"',
                pointer=pointer + json_pointer("steps"),
                suggestion='Declare "steps" as a list',
                subject=item["name"],
            )
            continue
        steps = []
        for j, step in enumerate(steps_raw):
            parsed = _flow_step(step, pointer + json_pointer("steps", str(j)), item["name"], collector)
            if parsed is not None:
                steps.append(parsed)
        flows.append(UserFlow(name=item["name"], steps=tuple(steps)))
    return tuple(flows)


def _flow_step(step: Any, pointer: str, flow_name: str, collector: _IssueCollector) -> Optional[FlowStep]:
    if not isinstance(step, dict) or not isinstance(step.get("action"), str):
        collector.structure(
            f'Step in flow "{flow_name}" must be an object with a string "action"',
            pointer=pointer,
            suggestion='Describe each step as {"action": ..., "component": ..., "api": ...}',
            subject=flow_name,
        )
        return None
    for optional in ("component", "api"):
        value = step.get(optional)
        if value is not None and not isinstance(value, str):
            collector.structure(
                f'Step "{step["action"]}" in flow "{flow_name}" has non-string "{optional}"',
                pointer=pointer + json_pointer(optional),
                suggestion=f'Reference the {optional} by name',
                subject=flow_name,
            )
            return None
    return FlowStep(action=step["action"], component=step.get("component"), api=step.get("api"))


# === RootManifest ===

def _build_root_manifest(data: Mapping[str, Any], collector: _IssueCollector) -> RootManifest:
    values = {}
    for field_name in ("appName", "version"):
        value = data.get(field_name)
        if not isinstance(value, str) or not value.strip():
            collector.structure(
                f'Root manifest field "{field_name}" must be a non-empty string, found {_type_name(value)}',
                pointer=json_pointer(field_name),
                suggestion=f'Add "{field_name}" to the root manifest',
            )
            value = ""
        values[field_name] = value

    domains: Dict[str, DomainEntry] = {}
    raw_domains = data.get("domains")
    if not isinstance(raw_domains, dict):
        collector.structure(
            f'"domains" must be an object, found {_type_name(raw_domains)}',
            pointer=json_pointer("domains"),
            suggestion='Declare "domains" as {"name": {"description": ..., "path": ...}}',
        )
        raw_domains = {}

    for domain, entry in raw_domains.items():
        pointer = json_pointer("domains", domain)
        if not isinstance(entry, dict) or not isinstance(entry.get("path"), str):
            collector.structure(
                f'Domain "{domain}" must be an object with a string "path"',
                pointer=pointer,
                suggestion="Point the domain at its system map file",
                subject=domain,
            )
            continue
        description = entry.get("description")
        if not isinstance(description, str):
            collector.structure(
                f'Domain "{domain}" must have a string "description"',
                pointer=pointer + json_pointer("description"),
                suggestion="Describe the domain in one sentence",
                subject=domain,
            )
            description = ""
        domains[domain] = DomainEntry(description=description, path=entry["path"])

    return RootManifest(
        app_name=values["appName"],
        version=values["version"],
        source=collector.source,
        domains=freeze_mapping(domains),
    )


# === Helpers ===

def _source_name(path: Path, project_root: Path) -> str:
    # Lexical, so maps reached through a symlinked directory keep their in-tree name
    absolute = Path(os.path.abspath(path))
    rel = relative_posix(absolute, Path(os.path.abspath(project_root)))
    if rel.startswith("../") or rel == "..":
        return absolute.as_posix()
    return rel


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__
