"""
One formatting pass: History Scanner -> File Selector -> Formatter Invoker
-> Result Reporter.

Every pass re-derives its inputs from the repository's history and file
content. Nothing is kept between passes, so re-running after a no-op merge
is always safe.
"""

import logging
import uuid
from pathlib import Path
from typing import Optional

from .core.config import Settings
from .core.logging_config import run_id_var
from .history import scan_history
from .invoker import FormatterInvoker
from .reporter import Report, build_report
from .selector import SelectionCriteria, mark_eligibility, select, validate_criteria

logger = logging.getLogger("gradual_format.pipeline")


def criteria_from_settings(settings: Settings) -> SelectionCriteria:
    return SelectionCriteria(
        count=settings.number_of_files,
        ignore_patterns=tuple(settings.get_ignore_patterns()),
        include_patterns=tuple(settings.get_include_patterns()),
    )


def invoker_from_settings(settings: Settings) -> FormatterInvoker:
    return FormatterInvoker(
        command=settings.get_formatter_argv(),
        repo_path=settings.repo_path,
        timeout=settings.formatter_timeout,
        error_pattern=settings.formatter_error_pattern,
    )


def run_pass(
    repo_path: Path,
    criteria: SelectionCriteria,
    invoker: FormatterInvoker,
    run_id: Optional[str] = None,
) -> Report:
    """Run a single synchronous pass over *repo_path*.

    Raises:
        ConfigurationError: Invalid criteria or not a git working tree.
            Raised before the formatter is touched.
        ToolInvocationFailure: The formatter could not run. No report.
    """
    run_id_var.set(run_id or uuid.uuid4().hex[:12])

    # Fail on bad configuration before scanning anything
    validate_criteria(criteria)

    scan = scan_history(repo_path)
    diagnostics = [f"History degraded: {scan.reason}"] if scan.degraded else []

    tracked = mark_eligibility(scan.recency, criteria)
    selection = select(tracked, criteria)

    outcomes = invoker.invoke(selection)
    report = build_report(selection, outcomes, diagnostics)

    logger.info(
        "[Pipeline] Pass finished: %s modified, %s failed, complete=%s",
        report.number_of_modified_files, len(report.failed_files), report.complete,
        extra={"status": report.status.value},
    )
    return report


def run_from_settings(settings: Settings) -> Report:
    """Build criteria and invoker from *settings* and run one pass."""
    return run_pass(settings.repo_path, criteria_from_settings(settings), invoker_from_settings(settings))
