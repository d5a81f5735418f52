"""
Structured (JSON) reporter for machines and CI.
"""

import json
from typing import Any, Dict, Optional

from ..core.models import AuditResult, Severity
from .base import BaseReporter, ReportOptions, printable


class StructuredReporter(BaseReporter):
    """
    JSON report.

    The full report carries every issue regardless of verbosity. With ``ci=True``
    a compact summary is emitted instead: pass/fail, counts and the error list.
    """

    name = "structured"

    def render(self, result: AuditResult, options: Optional[ReportOptions] = None) -> str:
        options = options or ReportOptions()
        if options.ci:
            payload = self._ci_summary(result)
        else:
            payload = result.to_dict()
            if not options.show_suggestions:
                for issue in payload["issues"]:
                    issue.pop("suggestion", None)
        return printable(json.dumps(payload, indent=2, ensure_ascii=False))

    @staticmethod
    def _ci_summary(result: AuditResult) -> Dict[str, Any]:
        return {
            "passed": result.passed,
            "counts": dict(result.counts),
            "duration_seconds": round(result.duration_seconds, 3),
            "timed_out": result.timed_out,
            "errors": [
                {
                    "kind": issue.kind.value,
                    "file": issue.location.file,
                    "pointer": issue.location.pointer,
                    "message": issue.message,
                }
                for issue in result.issues_with(Severity.ERROR)
            ],
        }
