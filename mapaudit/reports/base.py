"""
Shared reporter contract.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..config import AuditConfig
from ..core.models import AuditResult


def printable(text: str) -> str:
    """Escape lone surrogates (valid JSON, invalid UTF-8) so the report can be written."""
    return text.encode("utf-8", "backslashreplace").decode("utf-8")


@dataclass(frozen=True)
class ReportOptions:
    """Presentation switches; none of them change which issues exist."""

    verbose: bool = False
    show_suggestions: bool = True
    color: bool = False
    ci: bool = False
    width: int = 100

    @classmethod
    def from_config(cls, config: AuditConfig, **overrides) -> "ReportOptions":
        values = {
            "verbose": config.reporting.verbose,
            "show_suggestions": config.reporting.show_suggestions,
        }
        values.update(overrides)
        return cls(**values)


class BaseReporter(ABC):
    """A reporter is a pure projection of an AuditResult into text."""

    name = "base"

    @abstractmethod
    def render(self, result: AuditResult, options: Optional[ReportOptions] = None) -> str:
        """Render ``result``; must not modify it."""
