"""
Git history scanning utilities.

Derives a logical "last modified" ordering over tracked files from the
repository's commit history, so the least recently touched files can be
formatted first.

Git output is read as bytes with NUL-separated paths and decoded with
``os.fsdecode``, so any path git can track (quotes, tabs, newlines,
non-UTF-8 bytes) round-trips unchanged to the filesystem and the formatter.
"""

import dataclasses
import logging
import os
import subprocess
from pathlib import Path
from typing import Union

from .exceptions import ConfigurationError, ErrorCode, HistoryUnavailable

logger = logging.getLogger("gradual_format.history")

# Status letters from `git log --name-status` that count as a modification.
# Adds (A) do not: a file only ever added keeps the earliest recency.
_MODIFY_STATUSES = frozenset("MT")

# Starts every commit header in `git log --format=%x01%H`; never a status letter.
_COMMIT_MARKER = "\x01"


@dataclasses.dataclass(frozen=True)
class HistoryScan:
    """Result of scanning the repository history."""
    recency: dict[str, int]            # path -> ordinal of last modifying commit
    degraded: bool = False
    reason: str = ""                   # why the ordering is best-effort, if degraded


def _run_git(repo_path: Path, *args: str) -> subprocess.CompletedProcess:
    """Run a git command in *repo_path* and return the completed process.

    stdout and stderr are bytes; decode paths with ``os.fsdecode``.

    Raises:
        FileNotFoundError: git is not installed.
        subprocess.CalledProcessError: git exited non-zero.
    """
    env = dict(os.environ)
    # Prevent pagers from blocking on output
    env["GIT_PAGER"] = "cat"
    env["PAGER"] = "cat"
    return subprocess.run(
        ["git", "-c", "core.quotepath=off", *args],
        cwd=repo_path,
        capture_output=True,
        check=True,
        env=env,
    )


def _stderr_text(error: subprocess.CalledProcessError) -> str:
    stderr: Union[bytes, str, None] = error.stderr
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    return (stderr or "").strip()


def list_tracked_files(repo_path: Path) -> list[str]:
    """
    List files tracked by git that exist in the working tree.

    Args:
        repo_path: Path to the git repository

    Returns:
        Sorted repository-relative POSIX paths

    Raises:
        ConfigurationError: If *repo_path* is not a git working tree
    """
    try:
        result = _run_git(repo_path, "ls-files", "-z")
    except FileNotFoundError as e:
        raise ConfigurationError(
            f"git is not available: {e}", ErrorCode.NOT_A_REPOSITORY, field="repo_path"
        ) from e
    except subprocess.CalledProcessError as e:
        raise ConfigurationError(
            f"{repo_path} is not a git working tree: {_stderr_text(e)}",
            ErrorCode.NOT_A_REPOSITORY,
            field="repo_path",
        ) from e

    tracked = []
    for raw in result.stdout.split(b"\0"):
        if not raw:
            continue
        rel = os.fsdecode(raw)
        full = repo_path / rel
        # Deleted-but-unstaged files and symlinks are never handed to the formatter
        if full.is_symlink() or not full.is_file():
            logger.debug("[History] Skipping %r (not a regular file)", rel)
            continue
        tracked.append(rel)
    return sorted(tracked)


def is_shallow_repository(repo_path: Path) -> bool:
    """Return True if the clone is shallow (history truncated)."""
    try:
        result = _run_git(repo_path, "rev-parse", "--is-shallow-repository")
    except (FileNotFoundError, subprocess.CalledProcessError) as e:
        logger.debug("[History] Could not determine shallowness: %s", e)
        return False
    return result.stdout.strip() == b"true"


def parse_name_status_log(output: str) -> dict[str, int]:
    """
    Turn oldest-first ``git log -z --name-status`` output into a recency map.

    Commits are numbered 1..N in the order they appear. A path's recency is
    the number of the last commit that modified it; paths that were only
    added keep recency 0. Deleted paths are dropped so a re-added file
    starts fresh.

    Fields are NUL-separated: a status field is followed by its path field.
    A commit header (``\\x01<sha>`` plus newlines) shares a field with the
    first status after it, and headers of commits without file changes can
    pile up in one field.

    Args:
        output: Decoded output of
            ``git log -z --reverse --no-renames --name-status --format=%x01%H``

    Returns:
        Mapping of path to recency
    """
    recency: dict[str, int] = {}
    ordinal = 0
    status = None

    for field in output.split("\0"):
        if status is not None:
            # Path fields are taken verbatim
            kind, status = status[:1], None
            if kind == "D":
                recency.pop(field, None)
            elif kind in _MODIFY_STATUSES:
                recency[field] = ordinal
            else:
                recency.setdefault(field, 0)
            continue

        if _COMMIT_MARKER in field:
            ordinal += field.count(_COMMIT_MARKER)
            _, _, field = field.rpartition(_COMMIT_MARKER)
            _, _, field = field.partition("\n")   # drop the sha

        field = field.strip("\n")
        if field:
            status = field

    return recency


def read_modification_order(repo_path: Path) -> dict[str, int]:
    """
    Read the whole available history and build the recency map.

    Raises:
        HistoryUnavailable: If git cannot produce a log (e.g. no commits)
    """
    try:
        result = _run_git(
            repo_path,
            "log",
            "-z",
            "--reverse",
            "--no-renames",
            "--name-status",
            "--format=%x01%H",
        )
    except FileNotFoundError as e:
        raise HistoryUnavailable(f"git is not available: {e}") from e
    except subprocess.CalledProcessError as e:
        raise HistoryUnavailable(_stderr_text(e) or f"git log exited {e.returncode}") from e

    return parse_name_status_log(os.fsdecode(result.stdout))


def scan_history(repo_path: Path) -> HistoryScan:
    """
    Produce a recency for every tracked file.

    Shallow or missing history never fails the scan: the result is marked
    degraded and files without history default to recency 0. Only the
    quality of the ordering suffers.

    Args:
        repo_path: Path to the git repository

    Returns:
        HistoryScan covering every tracked regular file
    """
    tracked = list_tracked_files(repo_path)
    reasons: list[str] = []

    if is_shallow_repository(repo_path):
        reasons.append("shallow clone, ordering uses truncated history")

    try:
        order = read_modification_order(repo_path)
    except HistoryUnavailable as e:
        logger.warning("[History] %s", e.message)
        reasons.append(e.message)
        order = {}

    recency = {path: order.get(path, 0) for path in tracked}
    logger.info("[History] Scanned %s tracked files (%s with modifications)",
                len(recency), sum(1 for v in recency.values() if v > 0))

    if reasons:
        reason = "; ".join(reasons)
        logger.warning("[History] Ordering is degraded: %s", reason)
        return HistoryScan(recency=recency, degraded=True, reason=reason)

    return HistoryScan(recency=recency)
