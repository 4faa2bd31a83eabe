"""Aggregate per-file outcomes into the report handed to the calling workflow.

The report is deterministic: modified and failed files are sorted by path,
so the order in which the formatter produced outcomes never shows up in the
output.
"""

import dataclasses
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from .exceptions import GradualFormatError
from .invoker import FileStatus, FormatOutcome
from .selector import Selection

logger = logging.getLogger("gradual_format.reporter")


class RunStatus(str, Enum):
    SUCCESS = "Success"
    FATAL = "Fatal"


@dataclasses.dataclass(frozen=True)
class Report:
    """Outcome of one formatting pass."""
    modified_files: tuple[str, ...] = ()
    failed_files: dict[str, str] = dataclasses.field(default_factory=dict)
    complete: bool = False
    status: RunStatus = RunStatus.SUCCESS
    diagnostics: tuple[str, ...] = ()
    error: Optional[dict[str, Any]] = None

    @property
    def number_of_modified_files(self) -> int:
        return len(self.modified_files)

    @property
    def ok(self) -> bool:
        return self.status == RunStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.status.value,
            "complete": self.complete,
            "numberOfModifiedFiles": self.number_of_modified_files,
            "modifiedFileNames": list(self.modified_files),
            "failedFiles": dict(self.failed_files),
            "diagnostics": list(self.diagnostics),
        }
        if self.error:
            data["error"] = self.error
        return data


def build_report(
    selection: Selection,
    outcomes: Mapping[str, FormatOutcome],
    diagnostics: Iterable[str] = (),
) -> Report:
    """Build a successful report from a selection and its outcomes.

    Outcomes for paths outside the selection are dropped. Selected paths
    with no outcome count as unchanged. A batch where every file failed is
    still a success: nothing was mutated.
    """
    selected = set(selection.paths)
    modified = []
    failed = {}

    for path, outcome in outcomes.items():
        if path not in selected:
            logger.warning("[Reporter] Ignoring outcome for unselected path %s", path)
            continue
        if outcome.status == FileStatus.MODIFIED:
            modified.append(path)
        elif outcome.status == FileStatus.FAILED:
            failed[path] = outcome.reason or "unknown error"

    return Report(
        modified_files=tuple(sorted(modified)),
        failed_files=dict(sorted(failed.items())),
        complete=selection.complete,
        status=RunStatus.SUCCESS,
        diagnostics=tuple(diagnostics),
    )


def fatal_report(error: GradualFormatError) -> Report:
    """Report for a run that aborted. Carries no files."""
    return Report(
        complete=False,
        status=RunStatus.FATAL,
        diagnostics=(error.message,),
        error=error.to_dict(),
    )


def render_outputs(report: Report) -> dict[str, str]:
    """The values the PR-automation step reads, as strings."""
    return {
        "numberOfModifiedFiles": str(report.number_of_modified_files),
        "modifiedFileNames": json.dumps(list(report.modified_files)),
        "complete": "true" if report.complete else "false",
        "status": report.status.value,
    }


def write_outputs(report: Report, output_file: Path) -> None:
    """Append outputs as ``key=value`` lines (GitHub Actions ``$GITHUB_OUTPUT`` format)."""
    lines = [f"{key}={value}\n" for key, value in render_outputs(report).items()]
    with open(output_file, "a", encoding="utf-8") as fh:
        fh.writelines(lines)
    logger.info("[Reporter] Wrote %s outputs to %s", len(lines), output_file)


def render_summary(report: Report) -> str:
    """Format the report as markdown for a commit message or PR body."""
    if not report.ok:
        message = report.error.get("message", "unknown error") if report.error else "unknown error"
        return f"Formatting pass failed: {message}"

    n = report.number_of_modified_files
    if n:
        lines = [f"Formatted {n} file(s):\n"]
        lines.extend(f"- `{path}`" for path in report.modified_files)
    else:
        lines = ["No files needed formatting."]

    if report.failed_files:
        lines.append("")
        lines.append(f"Could not format {len(report.failed_files)} file(s):\n")
        lines.extend(f"- `{path}`: {reason}" for path, reason in report.failed_files.items())

    if report.diagnostics:
        lines.append("")
        lines.extend(f"> {d}" for d in report.diagnostics)

    lines.append("")
    if report.complete:
        lines.append("All eligible files have now been formatted.")
    else:
        lines.append("More files remain; the next pass will continue.")
    return "\n".join(lines)
