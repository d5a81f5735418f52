"""
Document (Markdown) reporter.

Groups issues by source file for reading; the grouping is presentation only.
"""

from collections import Counter
from typing import Dict, List, Optional

from ..core.models import AuditResult, IssueKind, Severity
from .base import BaseReporter, ReportOptions, printable

SEVERITY_EMOJI = {
    Severity.ERROR: "🔴",
    Severity.WARNING: "🟡",
    Severity.INFO: "🔵",
}

# Follow-up advice per issue kind, used for the Recommendations section
RECOMMENDATIONS: Dict[IssueKind, str] = {
    IssueKind.PARSE_ERROR: "Fix the JSON syntax of the affected system maps",
    IssueKind.STRUCTURE_INVALID: "Bring the affected maps back to the documented shape",
    IssueKind.COMPONENT_NOT_FOUND: "Update component paths after moves and renames",
    IssueKind.ENDPOINT_NOT_HANDLED: "Implement or remove endpoints that have no route handler",
    IssueKind.ORPHANED_ENDPOINT: "Document registered routes in the system map that owns them",
    IssueKind.SCHEMA_NOT_FOUND: "Point database tables at their schema files",
    IssueKind.DANGLING_REFERENCE: "Repair root manifest entries that point nowhere",
    IssueKind.DUPLICATE_KEY: "Remove duplicate keys; only the last value is used",
    IssueKind.NAME_MISMATCH: "Keep map names in sync with their domain keys",
}


class DocumentReporter(BaseReporter):
    """Markdown report with a summary, issues per file and recommendations."""

    name = "document"

    def render(self, result: AuditResult, options: Optional[ReportOptions] = None) -> str:
        options = options or ReportOptions()
        lines: List[str] = []

        lines.append("# System Map Audit Report")
        lines.append("")
        lines.append(f"**Date:** {result.timestamp.strftime('%Y-%m-%d %H:%M:%S')}")
        lines.append(f"**Status:** {'✅ PASSED' if result.passed else '❌ FAILED'}")
        lines.append("")

        lines.append("## Summary")
        lines.append("")
        lines.append(f"- **Maps validated:** {result.maps_validated} of {result.maps_discovered}")
        lines.append(f"- **Files indexed:** {result.files_indexed}")
        lines.append(f"- **Routes indexed:** {result.routes_indexed}")
        lines.append(f"- **Total issues:** {result.total_issues}")
        for severity in Severity:
            count = result.counts.get(severity.value, 0)
            lines.append(f"- {SEVERITY_EMOJI[severity]} **{severity.value.capitalize()}:** {count}")
        if result.timed_out:
            lines.append("- ⚠️ The audit stopped early; results are partial")
        lines.append("")

        if result.issues:
            lines.append("## Issues")
            lines.append("")
            for source, issues in result.issues_by_file().items():
                lines.append(f"### {source or '(project)'}")
                lines.append("")
                for issue in issues:
                    lines.append(issue.to_markdown(show_suggestion=options.show_suggestions))
                lines.append("")

        recommendations = self._recommendations(result)
        if recommendations:
            lines.append("## Recommendations")
            lines.append("")
            for i, text in enumerate(recommendations, 1):
                lines.append(f"{i}. {text}")
            lines.append("")

        lines.append("---")
        lines.append(f"*Report generated in {result.duration_seconds:.2f} seconds*")
        return printable("\n".join(lines) + "\n")

    @staticmethod
    def _recommendations(result: AuditResult) -> List[str]:
        counts = Counter(issue.kind for issue in result.issues)
        recommendations = []
        for kind, advice in RECOMMENDATIONS.items():
            if counts.get(kind):
                recommendations.append(f"**{advice}** ({counts[kind]} issue(s))")
        return recommendations
