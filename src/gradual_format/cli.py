"""
gradual-format command line entry point.

Formats a bounded batch of the least recently modified files in a git
repository and reports what changed, so a CI workflow can commit the batch,
open a pull request, and trigger the next pass.

Usage:
    gradual-format --count 20
    gradual-format --repo path/to/repo --ignore '*_pb2.py' --ignore 're:^migrations/'
    NUMBER_OF_FILES=0 gradual-format --json     # probe for convergence
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from .core.config import Settings, load_settings
from .core.logging_config import setup_logging
from .exceptions import ConfigurationError, GradualFormatError
from .pipeline import criteria_from_settings, invoker_from_settings, run_pass
from .reporter import Report, fatal_report, render_summary, write_outputs
from .selector import SelectionCriteria

logger = logging.getLogger("gradual_format")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gradual-format",
        description="Incrementally format a repository, oldest files first",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Settings not given on the command line are read from the environment
(NUMBER_OF_FILES, IGNORE_FILES_REGEX, INCLUDE_FILES, FORMATTER_COMMAND, ...)
or a .env file.

Exit codes:
  0  success, including when no file needed formatting
  1  the formatter could not be run
  2  invalid configuration
        """,
    )
    parser.add_argument("--repo", default=None, help="Repository root (default: .)")
    parser.add_argument(
        "--count", "-n",
        type=int,
        default=None,
        help="Number of files to format in this pass (default: 50)",
    )
    parser.add_argument(
        "--ignore",
        action="append",
        default=None,
        metavar="PATTERN",
        help="Ignore pattern, glob or 're:' regex (repeatable)",
    )
    parser.add_argument(
        "--include",
        action="append",
        default=None,
        metavar="PATTERN",
        help="Only consider files matching this pattern (repeatable, default: *.py)",
    )
    parser.add_argument("--formatter", default=None, help="Formatter command (default: 'black --quiet')")
    parser.add_argument("--timeout", type=float, default=None, help="Formatter timeout in seconds")
    parser.add_argument(
        "--output-file",
        default=None,
        help="Append outputs as key=value lines here (default: $GITHUB_OUTPUT)",
    )
    parser.add_argument("--json", action="store_true", help="Print the full report as JSON")
    parser.add_argument("--summary", action="store_true", help="Print a markdown summary")
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO)")
    parser.add_argument("--log-format", default=None, choices=["text", "json"], help="Log format")
    return parser


def _criteria(settings: Settings, args: argparse.Namespace) -> SelectionCriteria:
    criteria = criteria_from_settings(settings)
    # Repeated flags keep patterns containing commas intact
    if args.ignore is not None:
        criteria = SelectionCriteria(criteria.count, tuple(args.ignore), criteria.include_patterns)
    if args.include is not None:
        criteria = SelectionCriteria(criteria.count, criteria.ignore_patterns, tuple(args.include))
    return criteria


def _publish(report: Report, settings: Optional[Settings], args: argparse.Namespace) -> None:
    output_file = settings.output_file if settings else (
        args.output_file or os.getenv("OUTPUT_FILE") or os.getenv("GITHUB_OUTPUT")
    )
    if output_file:
        write_outputs(report, Path(output_file))
    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    elif args.summary:
        print(render_summary(report))


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run one pass. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    setup_logging()

    settings: Optional[Settings] = None
    try:
        settings = load_settings(
            repo_path=args.repo,
            number_of_files=args.count,
            formatter_command=args.formatter,
            formatter_timeout=args.timeout,
            output_file=args.output_file,
            log_level=args.log_level,
            log_format=args.log_format,
        )
        setup_logging(settings.log_level, settings.log_format)
        criteria = _criteria(settings, args)
        report = run_pass(settings.repo_path, criteria, invoker_from_settings(settings))
    except GradualFormatError as e:
        kind = "Configuration error" if isinstance(e, ConfigurationError) else "Formatter failure"
        logger.error("[CLI] %s: %s", kind, e.message, extra={"error_code": e.error_code.value})
        print(f"[Error] {kind}: {e.message}", file=sys.stderr)
        _publish(fatal_report(e), settings, args)
        return e.exit_code

    if report.failed_files:
        print(f"[Warning] {len(report.failed_files)} file(s) could not be formatted:", file=sys.stderr)
        for path, reason in report.failed_files.items():
            print(f"  - {path}: {reason}", file=sys.stderr)

    _publish(report, settings, args)
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
