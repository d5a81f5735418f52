"""
Reporters for audit results.

Contains:
- ConsoleReporter - rich terminal output
- StructuredReporter - JSON for machines and CI
- DocumentReporter - Markdown document
"""

from typing import Dict, Type

from .base import BaseReporter, ReportOptions
from .console import ConsoleReporter
from .document import DocumentReporter
from .structured import StructuredReporter

REPORTERS: Dict[str, Type[BaseReporter]] = {
    "console": ConsoleReporter,
    "structured": StructuredReporter,
    "document": DocumentReporter,
}


def get_reporter(format: str) -> BaseReporter:
    """
    Reporter for a reporting.format value.

    Raises:
        ValueError: unknown format
    """
    try:
        return REPORTERS[format]()
    except KeyError:
        raise ValueError(f"Unknown report format: {format!r} (expected one of: {', '.join(REPORTERS)})") from None


__all__ = [
    "BaseReporter",
    "ConsoleReporter",
    "DocumentReporter",
    "REPORTERS",
    "ReportOptions",
    "StructuredReporter",
    "get_reporter",
]
