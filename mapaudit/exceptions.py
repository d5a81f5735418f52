"""
Exceptions for the system map auditor.

Only infrastructure faults propagate out of the pipeline. Everything that goes
wrong inside a single map, source file or validator is turned into a
ValidationIssue at the layer where it happens.
"""

from pathlib import Path
from typing import Optional


class AuditError(RuntimeError):
    """Base class for errors raised by mapaudit."""


class ConfigError(AuditError):
    """Raised when configuration cannot be loaded or holds invalid values."""


class InfrastructureError(AuditError):
    """The audit could not meaningfully execute."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class ProjectRootError(InfrastructureError):
    """Project root is missing, not a directory or not readable."""


class IndexBuildError(InfrastructureError):
    """The codebase index could not be built at all."""
