"""
Base class for system map validators.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, List, Optional

from .models import IssueKind, Severity, SystemMap, ValidationIssue, new_issue

if TYPE_CHECKING:
    from ..config import AuditConfig
    from ..index import CodebaseIndex


class BaseValidator(ABC):
    """
    Base class for all validators.

    Provides:
    - The validate() template method
    - Start/finish logging with duration
    - Conversion of unexpected exceptions into a validator-failure issue

    Validators are stateless between calls: every call returns a fresh list and
    reads the map, the index and the config without modifying them.
    """

    def __init__(self, name: Optional[str] = None):
        self.name = name or type(self).__name__
        self.logger = logging.getLogger(f"mapaudit.{self.name}")

    def validate(
        self,
        system_map: SystemMap,
        index: "CodebaseIndex",
        config: "AuditConfig",
    ) -> List[ValidationIssue]:
        """
        Run the check with error handling.

        Returns:
            Issues found in ``system_map``
        """
        self.logger.debug(f"Starting {self.name} on {system_map.source}...")
        start_time = time.perf_counter()

        try:
            issues = self._check(system_map, index, config)
        except Exception as e:
            self.logger.error(f"{self.name} failed on {system_map.source}: {e}", exc_info=True)
            return [new_issue(
                kind=IssueKind.VALIDATOR_FAILURE,
                severity=Severity.ERROR,
                message=f"{self.name} failed: {type(e).__name__}: {e}",
                file=system_map.source,
                suggestion=f"Fix the error in {self.name} or the system map being audited",
            )]

        duration_ms = (time.perf_counter() - start_time) * 1000
        self.logger.debug(
            f"Completed {self.name} on {system_map.source}: "
            f"found {len(issues)} issues, "
            f"duration={duration_ms:.2f}ms"
        )
        return issues

    @abstractmethod
    def _check(
        self,
        system_map: SystemMap,
        index: "CodebaseIndex",
        config: "AuditConfig",
    ) -> List[ValidationIssue]:
        """Perform the check (implemented by subclasses)."""

    def create_issue(
        self,
        system_map: SystemMap,
        kind: IssueKind,
        severity: Severity,
        message: str,
        pointer: str = "",
        suggestion: Optional[str] = None,
        subject: Optional[str] = None,
    ) -> ValidationIssue:
        """
        Convenience constructor for an issue located in ``system_map``.

        Args:
            system_map: Map the issue belongs to
            kind: Issue kind
            severity: Severity
            message: Human readable description
            pointer: JSON pointer into the map
            suggestion: Remediation hint
            subject: Declared name or key the issue is about

        Returns:
            ValidationIssue instance
        """
        return new_issue(
            kind=kind,
            severity=severity,
            message=message,
            file=system_map.source,
            pointer=pointer,
            suggestion=suggestion,
            subject=subject,
        )
