"""
Audit orchestrator: runs the pipeline with bounded concurrency and a time budget.

Features:
- Index build overlaps discovery and parsing
- Validation of independent maps in parallel over the frozen index
- Cooperative timeout and external cancellation with partial results
- Deterministic result order regardless of completion order
"""

import asyncio
import logging
import os
import threading
import time
from dataclasses import replace
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from .aggregator import aggregate
from .config import AuditConfig
from .core.base_validator import BaseValidator
from .core.models import (
    AuditResult,
    IssueKind,
    ParseOutcome,
    RootManifest,
    Severity,
    SystemMap,
    ValidationIssue,
    new_issue,
)
from .discovery import discover_system_maps
from .exceptions import ProjectRootError
from .index import CodebaseIndex, build_index
from .parser import SystemMapParser
from .validators import build_validators
from .validators.api import find_orphaned_endpoints
from .validators.reference import check_unique_names, domain_assignments, validate_manifest

logger = logging.getLogger(__name__)

EXIT_PASSED = 0
EXIT_FAILED = 1
EXIT_INFRASTRUCTURE_FAILURE = 2


def exit_code_for(result: AuditResult) -> int:
    return EXIT_PASSED if result.passed else EXIT_FAILED


def check_project_root(project_root: Union[str, Path]) -> Path:
    """
    Return the absolute project root.

    Raises:
        ProjectRootError: missing, not a directory, or not readable
    """
    root = Path(os.path.abspath(project_root))
    if not root.exists():
        raise ProjectRootError(f"Project root does not exist: {root}", path=root)
    if not root.is_dir():
        raise ProjectRootError(f"Project root is not a directory: {root}", path=root)
    if not os.access(root, os.R_OK | os.X_OK):
        raise ProjectRootError(f"Project root is not readable: {root}", path=root)
    return root


class AuditOrchestrator:
    """
    Runs one audit per call to run().

    The parse cache lives on the orchestrator, so repeated runs over an unchanged
    project reuse parsed maps when performance.cacheEnabled is set.
    """

    def __init__(self, config: AuditConfig, cancel_event: Optional[threading.Event] = None):
        """
        Args:
            config: Resolved configuration
            cancel_event: Set from any thread to stop the run early
        """
        self.config = config
        self.cancel_event = cancel_event or threading.Event()
        self.validators: List[BaseValidator] = build_validators(config)
        self._parsers = {}
        self._deadline_hit = threading.Event()

    def should_stop(self) -> bool:
        return self._deadline_hit.is_set() or self.cancel_event.is_set()

    def _parser_for(self, root: Path) -> SystemMapParser:
        if root not in self._parsers:
            self._parsers[root] = SystemMapParser(root, cache_enabled=self.config.performance.cache_enabled)
        return self._parsers[root]

    async def run(self, project_root: Union[str, Path]) -> AuditResult:
        """
        Audit ``project_root``.

        Returns:
            AuditResult, partial when the time budget ran out or the run was cancelled

        Raises:
            ProjectRootError: the project root is unusable
            IndexBuildError: the codebase could not be indexed at all
        """
        root = check_project_root(project_root)
        performance = self.config.performance
        logger.info(
            f"Starting audit of {root} "
            f"(workers={self.config.worker_count}, max_time={performance.max_execution_time}s)"
        )
        start_time = time.perf_counter()

        self._deadline_hit = threading.Event()
        loop = asyncio.get_running_loop()
        deadline = loop.call_later(performance.max_execution_time, self._on_deadline)
        try:
            batches, stats = await self._pipeline(root)
        finally:
            deadline.cancel()

        duration = time.perf_counter() - start_time
        if self.should_stop():
            batches.append([self._stopped_issue(duration, stats)])

        result = aggregate(
            batches,
            duration_seconds=duration,
            maps_discovered=stats["discovered"],
            maps_validated=stats["validated"],
            files_indexed=stats["files"],
            routes_indexed=stats["routes"],
            timed_out=self.should_stop(),
        )
        logger.info(
            f"Audit finished: passed={result.passed}, "
            f"issues={result.total_issues}, "
            f"duration={duration:.2f}s"
        )
        return result

    def _on_deadline(self) -> None:
        logger.warning(
            f"Time budget of {self.config.performance.max_execution_time}s exhausted; "
            f"no new validation will start"
        )
        self._deadline_hit.set()

    async def _pipeline(self, root: Path) -> Tuple[List[List[ValidationIssue]], dict]:
        semaphore = asyncio.Semaphore(self.config.worker_count)
        parser = self._parser_for(root)

        # Index build runs alongside discovery and parsing; validators wait for it
        index_task = asyncio.create_task(
            asyncio.to_thread(build_index, root, self.config, self.should_stop)
        )

        parse_tasks = []
        try:
            async for path in self._discover(root):
                parse_tasks.append(asyncio.create_task(self._parse(parser, path, semaphore)))
            outcomes: List[ParseOutcome] = list(await asyncio.gather(*parse_tasks))
            index: CodebaseIndex = await index_task
        except BaseException:
            index_task.cancel()
            for task in parse_tasks:
                task.cancel()
            raise

        batches: List[List[ValidationIssue]] = [list(index.scan_issues)]
        for outcome in outcomes:
            batches.append(list(outcome.issues))

        manifests = [o.document for o in outcomes if isinstance(o.document, RootManifest)]
        maps = [o.document for o in outcomes if isinstance(o.document, SystemMap)]
        discovered = {o.document.source for o in outcomes if o.document is not None}

        if self.config.validation.references:
            for manifest in manifests:
                batches.append(validate_manifest(manifest, root, discovered))
            assignments = domain_assignments(manifests)
            maps = [replace(m, domain=assignments.get(m.source)) for m in maps]
            batches.append(check_unique_names(maps))

        results = await asyncio.gather(*(self._validate(m, index, semaphore) for m in maps))
        validated = 0
        for issues in results:
            if issues is not None:
                validated += 1
                batches.append(issues)

        if self._check_orphans(maps, index):
            batches.append(find_orphaned_endpoints(maps, index))

        stats = {
            "discovered": len(outcomes),
            "validated": validated,
            "pending": len(maps) - validated,
            "files": len(index.files),
            "routes": index.route_count,
        }
        return batches, stats

    async def _discover(self, root: Path):
        """Pull discovered paths one at a time off the event loop."""
        paths: Iterator[Path] = discover_system_maps(root, self.config, should_stop=self.should_stop)
        while True:
            path = await asyncio.to_thread(next, paths, None)
            if path is None:
                return
            yield path

    async def _parse(self, parser: SystemMapParser, path: Path, semaphore: asyncio.Semaphore) -> ParseOutcome:
        async with semaphore:
            return await asyncio.to_thread(parser.parse, path)

    async def _validate(
        self,
        system_map: SystemMap,
        index: CodebaseIndex,
        semaphore: asyncio.Semaphore,
    ) -> Optional[List[ValidationIssue]]:
        """Validate one map; None when the run was stopped before it started."""
        async with semaphore:
            if self.should_stop():
                logger.debug(f"Skipping validation of {system_map.source}: audit stopped")
                return None
            return await asyncio.to_thread(self._run_validators, system_map, index)

    def _run_validators(self, system_map: SystemMap, index: CodebaseIndex) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        for validator in self.validators:
            issues.extend(validator.validate(system_map, index, self.config))
        return issues

    def _check_orphans(self, maps: List[SystemMap], index: CodebaseIndex) -> bool:
        """Orphan pass: needs a complete index and a run that was not stopped."""
        validation = self.config.validation
        if not (validation.apis and validation.orphaned_endpoints):
            return False
        return bool(maps) and index.complete and not self.should_stop()

    def _stopped_issue(self, duration: float, stats: dict) -> ValidationIssue:
        if self.cancel_event.is_set():
            reason = f"Audit cancelled after {duration:.1f}s"
        else:
            reason = (
                f"Audit exceeded the time budget of "
                f"{self.config.performance.max_execution_time:g}s"
            )
        return new_issue(
            kind=IssueKind.AUDIT_TIMEOUT,
            severity=Severity.WARNING,
            message=f"{reason}; {stats['pending']} system map(s) were not validated",
            suggestion="Raise performance.maxExecutionTime or narrow the scanning patterns",
        )


async def run_audit_async(
    project_root: Union[str, Path],
    config: AuditConfig,
    cancel_event: Optional[threading.Event] = None,
) -> AuditResult:
    """Convenience coroutine for a single audit."""
    return await AuditOrchestrator(config, cancel_event=cancel_event).run(project_root)


def run_audit(
    project_root: Union[str, Path],
    config: Optional[AuditConfig] = None,
    cancel_event: Optional[threading.Event] = None,
) -> AuditResult:
    """Blocking entry point for a single audit."""
    return asyncio.run(run_audit_async(project_root, config or AuditConfig(), cancel_event))
