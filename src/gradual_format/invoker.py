"""
Batch formatter invocation with content-fingerprint change detection.

Runs the external formatter once over every selected file, then compares
SHA-256 fingerprints taken before and after the run to tell which files the
formatter actually rewrote. Per-file failures reported by the formatter are
recovered; failures to run the formatter at all abort the pass.
"""

import dataclasses
import hashlib
import logging
import posixpath
import re
import subprocess
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

from .core.config import DEFAULT_ERROR_PATTERN
from .exceptions import ErrorCode, PerFileFormatError, ToolInvocationFailure
from .selector import Selection

logger = logging.getLogger("gradual_format.invoker")

# Bytes of formatter output kept in error details.
_OUTPUT_TAIL = 2000


class FileStatus(str, Enum):
    MODIFIED = "Modified"
    UNCHANGED = "Unchanged"
    FAILED = "Failed"


@dataclasses.dataclass(frozen=True)
class FormatOutcome:
    """What happened to one file in the batch."""
    status: FileStatus
    reason: str = ""

    @classmethod
    def modified(cls) -> "FormatOutcome":
        return cls(FileStatus.MODIFIED)

    @classmethod
    def unchanged(cls) -> "FormatOutcome":
        return cls(FileStatus.UNCHANGED)

    @classmethod
    def failed(cls, reason: str) -> "FormatOutcome":
        return cls(FileStatus.FAILED, reason)

    @classmethod
    def from_error(cls, error: PerFileFormatError) -> "FormatOutcome":
        return cls.failed(error.reason)


def read_file(path: Path) -> Optional[bytes]:
    """A file's bytes, or None if it cannot be read."""
    try:
        return path.read_bytes()
    except OSError:
        logger.debug("Could not read file: %s", path)
        return None


def digest(content: Optional[bytes]) -> Optional[str]:
    return hashlib.sha256(content).hexdigest() if content is not None else None


def fingerprint_file(path: Path) -> Optional[str]:
    """SHA-256 hex digest of a file's bytes, or None if it cannot be read."""
    return digest(read_file(path))


def compute_fingerprints(repo_path: Path, paths: Iterable[str]) -> dict[str, Optional[str]]:
    """Fingerprint each relative path under *repo_path* independently."""
    return {p: fingerprint_file(repo_path / p) for p in paths}


def _tail(text: str) -> str:
    return text[-_OUTPUT_TAIL:] if text else ""


class FormatterInvoker:
    """Runs the formatter over a batch and classifies each file.

    Args:
        command: Formatter argv prefix, e.g. ``["black", "--quiet"]``.
            Selected paths are appended as the final arguments.
        repo_path: Working directory; selected paths are relative to it.
        timeout: Seconds before the formatter is treated as hung.
        error_pattern: Regex with ``path`` and ``reason`` groups that matches
            a per-file failure line in the formatter's output.
    """

    def __init__(
        self,
        command: Sequence[str],
        repo_path: Path,
        timeout: float = 600.0,
        error_pattern: str = DEFAULT_ERROR_PATTERN,
    ) -> None:
        if not command:
            raise ValueError("Formatter command must not be empty")
        self.command = list(command)
        self.repo_path = repo_path
        self.timeout = timeout
        self._error_re = re.compile(error_pattern, re.MULTILINE)

    def invoke(self, selection: Union[Selection, Sequence[str]]) -> dict[str, FormatOutcome]:
        """Format the whole batch in one process and classify every file.

        Returns:
            Mapping of path to FormatOutcome, one entry per selected path.

        Raises:
            ToolInvocationFailure: The formatter could not run, crashed,
                or hung. Files it rewrote are restored to their original
                bytes first, and no partial outcome is returned.
        """
        paths = selection.paths if isinstance(selection, Selection) else list(selection)
        if not paths:
            logger.info("[Formatter] Empty batch, formatter not started")
            return {}

        outcomes: dict[str, FormatOutcome] = {}
        originals = {p: read_file(self.repo_path / p) for p in paths}
        before = {p: digest(content) for p, content in originals.items()}

        batch = []
        for path in paths:
            if before[path] is None:
                outcomes[path] = FormatOutcome.failed("file could not be read before formatting")
            else:
                batch.append(path)

        if not batch:
            return outcomes

        try:
            result = self._run(batch)
            output = "\n".join(part for part in (result.stderr, result.stdout) if part)
            failures = self.parse_failures(output, batch)

            if result.returncode != 0 and not failures:
                raise ToolInvocationFailure(
                    f"Formatter exited with code {result.returncode} without reporting "
                    f"a per-file error",
                    ErrorCode.FORMATTER_CRASHED,
                    details={"returncode": result.returncode, "output": _tail(output)},
                )
        except ToolInvocationFailure as e:
            # A fatal run must leave the working tree as it found it
            restored = self.restore(originals, batch, before)
            if restored:
                e.details["restored_files"] = restored
            raise

        after = compute_fingerprints(self.repo_path, batch)
        for path in batch:
            if path in failures:
                error = failures[path]
                logger.warning("[Formatter] %s", error.message)
                outcomes[path] = FormatOutcome.from_error(error)
            elif after[path] is None:
                outcomes[path] = FormatOutcome.failed("file missing or unreadable after formatting")
            elif after[path] != before[path]:
                outcomes[path] = FormatOutcome.modified()
            else:
                outcomes[path] = FormatOutcome.unchanged()

        logger.info(
            "[Formatter] Batch of %s: %s modified, %s failed",
            len(paths),
            sum(1 for o in outcomes.values() if o.status == FileStatus.MODIFIED),
            sum(1 for o in outcomes.values() if o.status == FileStatus.FAILED),
        )
        return outcomes

    def restore(
        self,
        originals: dict[str, Optional[bytes]],
        batch: Iterable[str],
        before: dict[str, Optional[str]],
    ) -> list[str]:
        """Write back the original bytes of every batch file the formatter changed.

        Returns:
            Sorted paths that were rewritten to their original content.
        """
        restored = []
        for path in batch:
            original = originals.get(path)
            if original is None or fingerprint_file(self.repo_path / path) == before.get(path):
                continue
            try:
                (self.repo_path / path).write_bytes(original)
            except OSError as e:
                logger.error("[Formatter] Could not restore %s: %s", path, e)
                continue
            restored.append(path)

        if restored:
            logger.warning("[Formatter] Restored %s file(s) changed by the failed run", len(restored))
        return sorted(restored)

    def parse_failures(self, output: str, selected: Iterable[str]) -> dict[str, PerFileFormatError]:
        """Find per-file failures for *selected* paths in formatter output.

        Lines naming a path outside the batch are ignored.
        """
        wanted = set(selected)
        failures: dict[str, PerFileFormatError] = {}
        for match in self._error_re.finditer(output):
            path = self._normalize(match.group("path").strip())
            if path in wanted and path not in failures:
                failures[path] = PerFileFormatError(path, match.group("reason").strip())
        return failures

    def _normalize(self, reported: str) -> str:
        """Map a path as printed by the formatter back to a repo-relative one."""
        candidate = Path(reported)
        if candidate.is_absolute():
            try:
                candidate = candidate.resolve().relative_to(self.repo_path.resolve())
            except ValueError:
                return reported
        return posixpath.normpath(candidate.as_posix())

    def _run(self, batch: list[str]) -> subprocess.CompletedProcess:
        argv = self.command + batch
        logger.info("[Formatter] Running %s on %s file(s)", self.command[0], len(batch))
        logger.debug("[Formatter] argv: %s", argv)
        try:
            result = subprocess.run(
                argv,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                errors="surrogateescape",
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise ToolInvocationFailure(
                f"Formatter not found: {self.command[0]}",
                ErrorCode.FORMATTER_NOT_FOUND,
                details={"command": self.command},
            ) from e
        except PermissionError as e:
            raise ToolInvocationFailure(
                f"Formatter is not executable: {self.command[0]}",
                ErrorCode.FORMATTER_NOT_FOUND,
                details={"command": self.command},
            ) from e
        except subprocess.TimeoutExpired as e:
            raise ToolInvocationFailure(
                f"Formatter did not finish within {self.timeout:g}s",
                ErrorCode.FORMATTER_TIMEOUT,
                details={"command": self.command, "timeout": self.timeout},
            ) from e
        except OSError as e:
            raise ToolInvocationFailure(
                f"Formatter could not be started: {e}",
                ErrorCode.FORMATTER_NOT_FOUND,
                details={"command": self.command},
            ) from e

        if result.returncode < 0:
            raise ToolInvocationFailure(
                f"Formatter was killed by signal {-result.returncode}",
                ErrorCode.FORMATTER_CRASHED,
                details={"returncode": result.returncode, "output": _tail(result.stderr)},
            )
        return result
