"""
Aggregator: merges every issue of a run into one ordered AuditResult.
"""

import logging
from typing import Iterable, List, Optional

from .core.models import (
    AuditResult,
    IssueKind,
    Severity,
    ValidationIssue,
    count_by_severity,
    freeze_mapping,
    new_issue,
)

logger = logging.getLogger(__name__)


def _sort_key(issue: ValidationIssue):
    return (-issue.severity.rank, issue.location.file)


def aggregate(
    batches: Iterable[Optional[Iterable[ValidationIssue]]],
    duration_seconds: float = 0.0,
    maps_discovered: int = 0,
    maps_validated: int = 0,
    files_indexed: int = 0,
    routes_indexed: int = 0,
    timed_out: bool = False,
) -> AuditResult:
    """
    Build the AuditResult.

    Issues are ordered by severity (errors first), then source file, then the
    order they were emitted in. Batches must be passed in a deterministic order
    (discovery order) for the result to be deterministic; the sort is stable.

    Args:
        batches: Issue lists from the parser, the index and the validators
        duration_seconds: Wall-clock duration of the run
        maps_discovered: Number of map files discovery produced
        timed_out: The run stopped early; an empty discovery is not reported then

    Returns:
        AuditResult; passed is True when there is no error-severity issue
    """
    issues: List[ValidationIssue] = []
    for batch in batches:
        if batch:
            issues.extend(batch)

    if maps_discovered == 0 and not timed_out:
        issues.append(new_issue(
            kind=IssueKind.NO_SYSTEM_MAPS_FOUND,
            severity=Severity.WARNING,
            message="No system map files were found",
            suggestion="Add *.map.json files or adjust scanning.mapSuffixes / excludePatterns",
        ))

    ordered = tuple(sorted(issues, key=_sort_key))
    counts = count_by_severity(ordered)
    passed = counts[Severity.ERROR.value] == 0

    logger.info(
        f"Aggregated {len(ordered)} issues "
        f"(errors={counts['error']}, warnings={counts['warning']}, info={counts['info']}), "
        f"passed={passed}"
    )

    return AuditResult(
        issues=ordered,
        counts=freeze_mapping(counts),
        duration_seconds=max(0.0, duration_seconds),
        passed=passed,
        maps_discovered=maps_discovered,
        maps_validated=maps_validated,
        files_indexed=files_indexed,
        routes_indexed=routes_indexed,
        timed_out=timed_out,
    )
