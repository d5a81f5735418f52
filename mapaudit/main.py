"""
Command line interface for the system map auditor.

Usage:
    mapaudit                                  # audit the current directory
    mapaudit path/to/project -f structured    # JSON report
    mapaudit . -f document -o audit.md        # Markdown report to a file
    mapaudit . --max-time 2m --workers 4

Exit codes: 0 passed, 1 error-severity issues found, 2 the audit could not run.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console

from . import __version__
from .config import REPORT_FORMATS, load_config
from .exceptions import ConfigError, InfrastructureError
from .orchestrator import EXIT_INFRASTRUCTURE_FAILURE, exit_code_for, run_audit
from .reports import ReportOptions, get_reporter

app = typer.Typer(
    name="mapaudit",
    help="Check system map documents against the real codebase",
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Configure logging on stderr."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def _version_callback(value: bool):
    if value:
        console.print(f"mapaudit {__version__}")
        raise typer.Exit()


def build_overrides(
    format: Optional[str] = None,
    verbose: bool = False,
    no_suggestions: bool = False,
    max_time: Optional[str] = None,
    workers: Optional[int] = None,
    sequential: bool = False,
) -> Dict[str, Any]:
    """Translate command line flags into the highest-precedence config layer."""
    overrides: Dict[str, Dict[str, Any]] = {}
    if format is not None:
        overrides.setdefault("reporting", {})["format"] = format
    if verbose:
        overrides.setdefault("reporting", {})["verbose"] = True
    if no_suggestions:
        overrides.setdefault("reporting", {})["showSuggestions"] = False
    if max_time is not None:
        overrides.setdefault("performance", {})["maxExecutionTime"] = max_time
    if workers is not None:
        overrides.setdefault("performance", {})["maxWorkers"] = workers
    if sequential:
        overrides.setdefault("performance", {})["parallel"] = False
    return overrides


@app.command()
def audit(
    project_root: Path = typer.Argument(Path("."), help="Root of the project to audit"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file (default: mapaudit.config.json in the project root)"),
    format: Optional[str] = typer.Option(None, "--format", "-f", help=f"Report format: {', '.join(REPORT_FORMATS)}"),
    output_file: Optional[Path] = typer.Option(None, "--output-file", "-o", help="Write the report to a file instead of stdout"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging and info-level issues"),
    no_suggestions: bool = typer.Option(False, "--no-suggestions", help="Hide remediation hints"),
    max_time: Optional[str] = typer.Option(None, "--max-time", help='Time budget, e.g. "30s", "2m" or milliseconds'),
    workers: Optional[int] = typer.Option(None, "--workers", help="Maximum parallel validations"),
    sequential: bool = typer.Option(False, "--sequential", help="Validate one map at a time"),
    ci: bool = typer.Option(False, "--ci", help="Compact summary (structured format only)"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True, help="Show the version and exit"),
):
    """🔍 Audit system maps under PROJECT_ROOT."""
    setup_logging(verbose)

    load_dotenv(project_root / ".env")

    try:
        config = load_config(
            project_root,
            config_path=config_file,
            overrides=build_overrides(format, verbose, no_suggestions, max_time, workers, sequential),
        )
    except ConfigError as e:
        err_console.print(f"[red]❌ Configuration error: {e}[/]")
        raise typer.Exit(EXIT_INFRASTRUCTURE_FAILURE)

    try:
        result = run_audit(project_root, config)
    except InfrastructureError as e:
        err_console.print(f"[red]❌ Audit could not run: {e}[/]")
        raise typer.Exit(EXIT_INFRASTRUCTURE_FAILURE)
    except KeyboardInterrupt:
        err_console.print("[yellow]⚠️  Audit interrupted by user[/]")
        raise typer.Exit(EXIT_INFRASTRUCTURE_FAILURE)

    reporter = get_reporter(config.reporting.format)
    options = ReportOptions.from_config(
        config,
        color=output_file is None and console.is_terminal,
        ci=ci,
    )
    text = reporter.render(result, options)

    if output_file is not None:
        output_file.parent.mkdir(parents=True, exist_ok=True)
        output_file.write_text(text, encoding="utf-8")
        err_console.print(f"Report written to {output_file}")
    else:
        typer.echo(text)

    raise typer.Exit(exit_code_for(result))


if __name__ == "__main__":
    app()
