"""
Codebase index: what exists in the audited project.

The index is built once per run by an IndexBuilder and then frozen into a
CodebaseIndex that validators share read-only. Route and table detection is
syntactic (regex over source text); routes assembled at runtime are not seen.
"""

import logging
import os
import posixpath
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .config import AuditConfig
from .core.files import candidate_paths, matches_any, walk_files
from .core.models import IssueKind, Severity, ValidationIssue, freeze_mapping, new_issue
from .core.routes import ANY_METHOD, HTTP_METHODS, canonical_path, endpoint_key
from .exceptions import IndexBuildError

logger = logging.getLogger(__name__)

# Bytes inspected when deciding whether a file is binary
BINARY_SNIFF_BYTES = 8192

_VERBS = "get|post|put|delete|patch|options|head"

# app.get('/users/:id', ...), router.all("/health", ...), server.post(`/x`, ...)
EXPRESS_ROUTE = re.compile(
    r"""\b(?:app|router|server)\.(""" + _VERBS + r"""|all)\s*\(\s*(['"`])(/[^'"`\s]*)\2"""
)

# @app.get("/users/{id}"), @router.delete('/items/{item_id}')
DECORATOR_ROUTE = re.compile(
    r"""@[A-Za-z_][\w.]*\.(""" + _VERBS + r""")\s*\(\s*(['"])(/[^'"\s]*)\2"""
)

# @app.route("/users/<int:id>", methods=["GET", "POST"])
FLASK_ROUTE = re.compile(
    r"""@[A-Za-z_][\w.]*\.route\s*\(\s*(['"])(/[^'"\s]*)\1([^)]*)\)"""
)
FLASK_METHODS = re.compile(r"""methods\s*=\s*[\[(]([^\])]*)[\])]""")

# pgTable("users", ...), mysqlTable('orders', ...), sqliteTable(`notes`, ...)
DRIZZLE_TABLE = re.compile(r"""\b(?:pgTable|mysqlTable|sqliteTable)\s*\(\s*(['"`])(\w+)\1""")

# CREATE TABLE IF NOT EXISTS public."users" (
SQL_TABLE = re.compile(
    r"""\bCREATE\s+TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?(?:[`"\[]?\w+[`"\]]?\.)?[`"\[]?(\w+)""",
    re.IGNORECASE,
)

# __tablename__ = "users"
SQLALCHEMY_TABLE = re.compile(r"""__tablename__\s*=\s*(['"])(\w+)\1""")


def _stem(rel_path: str) -> str:
    return posixpath.splitext(rel_path)[0]


def _has_extension(rel_path: str) -> bool:
    return bool(posixpath.splitext(posixpath.basename(rel_path))[1])


@dataclass(frozen=True)
class CodebaseIndex:
    """
    Immutable snapshot of the audited project.

    files:        project-relative paths with a configured source extension
    other_files:  every other non-excluded file
    routes:       canonical "METHOD /path" -> files registering it
    tables:       lower-cased table name -> files defining it
    """

    files: FrozenSet[str] = frozenset()
    other_files: FrozenSet[str] = frozenset()
    routes: Mapping[str, FrozenSet[str]] = field(default_factory=freeze_mapping)
    tables: Mapping[str, FrozenSet[str]] = field(default_factory=freeze_mapping)
    scan_issues: Tuple[ValidationIssue, ...] = ()
    complete: bool = True
    stems: Mapping[str, FrozenSet[str]] = field(default_factory=freeze_mapping)
    file_tables: Mapping[str, FrozenSet[str]] = field(default_factory=freeze_mapping)

    @property
    def route_count(self) -> int:
        return len(self.routes)

    def contains(self, rel_path: str) -> bool:
        return rel_path in self.files or rel_path in self.other_files

    def resolve(self, declared: str, source_roots: Sequence[str]) -> Optional[str]:
        """
        Find the indexed source file a declared path refers to.

        Each source root is tried as a prefix. A declared path without an extension
        also matches a source file with the same stem ("hooks/useAuth" -> "hooks/useAuth.ts"),
        or a directory's index file ("components/files" -> "components/files/index.tsx").
        """
        candidates = candidate_paths(declared, source_roots)
        for candidate in candidates:
            if candidate in self.files:
                return candidate
        for candidate in candidates:
            if _has_extension(candidate):
                continue
            for stem in (candidate, f"{candidate}/index"):
                matches = self.stems.get(stem)
                if matches:
                    return sorted(matches)[0]
        return None

    def resolve_any(self, declared: str, source_roots: Sequence[str]) -> Optional[str]:
        """Like resolve(), but also accepts files outside the configured extensions."""
        resolved = self.resolve(declared, source_roots)
        if resolved is not None:
            return resolved
        for candidate in candidate_paths(declared, source_roots):
            if candidate in self.other_files:
                return candidate
        return None

    def same_stem(self, declared: str, source_roots: Sequence[str]) -> List[str]:
        """Source files sharing the declared path's stem but not its extension."""
        found: List[str] = []
        for candidate in candidate_paths(declared, source_roots):
            for path in sorted(self.stems.get(_stem(candidate), ())):
                if path != candidate and path not in found:
                    found.append(path)
        return found

    def find_by_basename(self, declared: str, limit: int = 3) -> List[str]:
        """Indexed files elsewhere in the tree with the same file name (or stem)."""
        name = posixpath.basename(declared.replace("\\", "/").rstrip("/"))
        if not name:
            return []
        match_stem = not _has_extension(name)
        found = []
        for path in sorted(self.files):
            base = posixpath.basename(path)
            if base == name or (match_stem and _stem(base) == name):
                found.append(path)
                if len(found) >= limit:
                    break
        return found

    def find_route(self, method: str, path: str) -> FrozenSet[str]:
        """Files registering the route, including ALL registrations for the path."""
        exact = self.routes.get(endpoint_key(method, path), frozenset())
        wildcard = self.routes.get(endpoint_key(ANY_METHOD, path), frozenset())
        return exact | wildcard

    def methods_for(self, path: str) -> List[str]:
        """Verbs registered for a path, in HTTP_METHODS order."""
        canonical = canonical_path(path)
        order = HTTP_METHODS + (ANY_METHOD,)
        return [m for m in order if f"{m} {canonical}" in self.routes]

    def tables_in(self, rel_path: str) -> FrozenSet[str]:
        return self.file_tables.get(rel_path, frozenset())


class IndexBuilder:
    """
    Collects files, routes and tables, then hands off a frozen CodebaseIndex.

    After freeze() the builder refuses further mutation.
    """

    def __init__(self, config: AuditConfig):
        self.config = config
        self._extensions = {ext.lower() for ext in config.scanning.file_extensions}
        self._files: Set[str] = set()
        self._other_files: Set[str] = set()
        self._routes: Dict[str, Set[str]] = {}
        self._tables: Dict[str, Set[str]] = {}
        self._scan_issues: List[ValidationIssue] = []
        self._complete = True
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _ensure_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("IndexBuilder is frozen; build a new one to re-index")

    def is_source_file(self, rel_path: str) -> bool:
        return posixpath.splitext(rel_path)[1].lower() in self._extensions

    def add_file(self, rel_path: str, content: Optional[str] = None) -> None:
        """Record a file; scan its content for routes and tables if given."""
        self._ensure_mutable()
        if not self.is_source_file(rel_path):
            self._other_files.add(rel_path)
            return
        self._files.add(rel_path)
        if content is not None:
            for method, path in scan_routes(content):
                self.add_route(method, path, rel_path)
            for table in scan_tables(content):
                self.add_table(table, rel_path)

    def add_route(self, method: str, path: str, rel_path: str) -> None:
        self._ensure_mutable()
        self._routes.setdefault(endpoint_key(method, path), set()).add(rel_path)

    def add_table(self, name: str, rel_path: str) -> None:
        self._ensure_mutable()
        self._tables.setdefault(name.lower(), set()).add(rel_path)

    def add_scan_issue(self, issue: ValidationIssue) -> None:
        self._ensure_mutable()
        self._scan_issues.append(issue)

    def scan(self, root: Path, should_stop: Optional[Callable[[], bool]] = None) -> "IndexBuilder":
        """
        Walk ``root`` and index every non-excluded file.

        Raises:
            IndexBuildError: the root itself cannot be listed
        """
        self._ensure_mutable()
        root = Path(root)
        try:
            with os.scandir(root):
                pass
        except OSError as e:
            raise IndexBuildError(f"Cannot walk project root: {e}", path=root) from e

        scanning = self.config.scanning
        for path, rel in walk_files(root, scanning.exclude_patterns, should_stop=should_stop):
            if scanning.include_patterns and not matches_any(rel, scanning.include_patterns):
                continue
            if not self.is_source_file(rel):
                self.add_file(rel)
                continue
            self.add_file(rel, self._read_source(path, rel))

        if should_stop is not None and should_stop():
            self._complete = False
        return self

    def _read_source(self, path: Path, rel: str) -> Optional[str]:
        max_size = self.config.scanning.max_file_size
        try:
            size = path.stat().st_size
            if size > max_size:
                self._skip(rel, Severity.INFO, f"File is larger than {max_size} bytes; content not scanned")
                return None
            raw = path.read_bytes()
        except OSError as e:
            self._skip(rel, Severity.WARNING, f"Cannot read file: {e.strerror or e}")
            return None

        if b"\x00" in raw[:BINARY_SNIFF_BYTES]:
            self._skip(rel, Severity.WARNING, "Binary content; not scanned")
            return None
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            self._skip(rel, Severity.WARNING, "File is not valid UTF-8; not scanned")
            return None

    def _skip(self, rel: str, severity: Severity, message: str) -> None:
        logger.debug(f"Scan skipped {rel}: {message}")
        self.add_scan_issue(new_issue(
            kind=IssueKind.SCAN_SKIPPED,
            severity=severity,
            message=message,
            file=rel,
            suggestion="Add the path to scanning.excludePatterns if it is not source code",
        ))

    def freeze(self) -> CodebaseIndex:
        """Hand off the immutable index; the builder cannot be used afterwards."""
        self._ensure_mutable()
        self._frozen = True

        stems: Dict[str, Set[str]] = {}
        for rel in self._files:
            stems.setdefault(_stem(rel), set()).add(rel)

        file_tables: Dict[str, Set[str]] = {}
        for table, paths in self._tables.items():
            for rel in paths:
                file_tables.setdefault(rel, set()).add(table)

        return CodebaseIndex(
            files=frozenset(self._files),
            other_files=frozenset(self._other_files),
            routes=_freeze_sets(self._routes),
            tables=_freeze_sets(self._tables),
            scan_issues=tuple(sorted(self._scan_issues, key=lambda i: i.location.file)),
            complete=self._complete,
            stems=_freeze_sets(stems),
            file_tables=_freeze_sets(file_tables),
        )


def _freeze_sets(values: Mapping[str, Iterable[str]]) -> Mapping[str, FrozenSet[str]]:
    return freeze_mapping({key: frozenset(paths) for key, paths in values.items()})


# === Scanners ===

def scan_routes(content: str) -> List[Tuple[str, str]]:
    """(METHOD, path) pairs registered in a source file."""
    routes: List[Tuple[str, str]] = []
    for match in EXPRESS_ROUTE.finditer(content):
        routes.append((match.group(1).upper(), match.group(3)))
    for match in DECORATOR_ROUTE.finditer(content):
        routes.append((match.group(1).upper(), match.group(3)))
    for match in FLASK_ROUTE.finditer(content):
        path, rest = match.group(2), match.group(3)
        methods_match = FLASK_METHODS.search(rest)
        if methods_match:
            methods = re.findall(r"""['"](\w+)['"]""", methods_match.group(1))
        else:
            methods = ["GET"]
        for method in methods:
            routes.append((method.upper(), path))
    return routes


def scan_tables(content: str) -> List[str]:
    """Table names defined in a source file."""
    tables: List[str] = []
    for match in DRIZZLE_TABLE.finditer(content):
        tables.append(match.group(2))
    for match in SQL_TABLE.finditer(content):
        tables.append(match.group(1))
    for match in SQLALCHEMY_TABLE.finditer(content):
        tables.append(match.group(2))
    return tables


def build_index(
    project_root: Path,
    config: AuditConfig,
    should_stop: Optional[Callable[[], bool]] = None,
) -> CodebaseIndex:
    """
    Build and freeze the index for ``project_root``.

    Raises:
        IndexBuildError: the project root cannot be walked
    """
    logger.info(f"Indexing codebase under {project_root}...")
    start_time = time.perf_counter()

    index = IndexBuilder(config).scan(Path(project_root), should_stop=should_stop).freeze()

    duration_ms = (time.perf_counter() - start_time) * 1000
    logger.info(
        f"Index built: {len(index.files)} source files, "
        f"{len(index.other_files)} other files, "
        f"{index.route_count} routes, "
        f"{len(index.tables)} tables, "
        f"duration={duration_ms:.2f}ms"
    )
    if not index.complete:
        logger.warning("Index build was stopped before the walk finished")
    return index
