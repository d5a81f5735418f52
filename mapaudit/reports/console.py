"""
Console reporter built on rich.
"""

import io
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..core.models import AuditResult, Severity
from .base import BaseReporter, ReportOptions, printable

SEVERITY_STYLE = {
    Severity.ERROR: "bold red",
    Severity.WARNING: "yellow",
    Severity.INFO: "cyan",
}


class ConsoleReporter(BaseReporter):
    """Human readable terminal report. INFO issues are shown only when verbose."""

    name = "console"

    def render(self, result: AuditResult, options: Optional[ReportOptions] = None) -> str:
        options = options or ReportOptions()
        console = Console(
            file=io.StringIO(),
            record=True,
            width=options.width,
            force_terminal=options.color,
            color_system="standard" if options.color else None,
        )

        status = "[bold green]PASSED[/]" if result.passed else "[bold red]FAILED[/]"
        console.print(Panel(
            f"System map audit: {status}\n"
            f"Maps: {result.maps_validated}/{result.maps_discovered} validated | "
            f"Files indexed: {result.files_indexed} | "
            f"Routes: {result.routes_indexed} | "
            f"Duration: {result.duration_seconds:.2f}s",
            title="mapaudit",
        ))

        summary = Table(title="Summary")
        summary.add_column("Severity")
        summary.add_column("Count", justify="right")
        for severity in Severity:
            summary.add_row(
                f"[{SEVERITY_STYLE[severity]}]{severity.value}[/]",
                str(result.counts.get(severity.value, 0)),
            )
        console.print(summary)

        shown = [i for i in result.issues if options.verbose or i.severity != Severity.INFO]
        hidden = len(result.issues) - len(shown)

        if shown:
            table = Table(title="Issues", show_lines=True)
            table.add_column("Severity")
            table.add_column("Kind")
            table.add_column("Location")
            table.add_column("Message")
            if options.show_suggestions:
                table.add_column("Suggestion")
            for issue in shown:
                row = [
                    f"[{SEVERITY_STYLE[issue.severity]}]{issue.severity.value}[/]",
                    issue.kind.value,
                    escape(str(issue.location)),
                    escape(issue.message),
                ]
                if options.show_suggestions:
                    row.append(escape(issue.suggestion or ""))
                table.add_row(*row)
            console.print(table)
        else:
            console.print("No issues to show.")

        if hidden:
            console.print(f"[dim]{hidden} info issue(s) hidden; use --verbose to show them[/]")
        if result.timed_out:
            console.print("[yellow]The audit stopped early; results are partial.[/]")

        return printable(console.export_text(styles=options.color))
