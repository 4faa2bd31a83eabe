"""File selection: filter ignored files and pick the least recently modified.

Pure functions, no git and no filesystem access. Patterns are compiled once
into ``re.Pattern`` objects and reused for every path.
"""

import dataclasses
import fnmatch
import logging
import posixpath
import re
from typing import Iterable, Mapping, Sequence

from .exceptions import ConfigurationError, ErrorCode, InvalidPatternError

logger = logging.getLogger("gradual_format.selector")

# Prefix marking a pattern as a regular expression instead of a glob.
REGEX_PREFIX = "re:"


@dataclasses.dataclass(frozen=True)
class TrackedFile:
    """A tracked file and its logical last-modified position."""
    path: str
    recency: int = 0
    eligible: bool = True


@dataclasses.dataclass(frozen=True)
class SelectionCriteria:
    """What to select in one pass."""
    count: int
    ignore_patterns: tuple[str, ...] = ()
    include_patterns: tuple[str, ...] = ()      # empty = consider every file


@dataclasses.dataclass(frozen=True)
class Selection:
    """Files chosen for this pass, oldest first."""
    files: tuple[TrackedFile, ...]
    complete: bool
    eligible_count: int = 0

    @property
    def paths(self) -> list[str]:
        return [f.path for f in self.files]

    def __len__(self) -> int:
        return len(self.files)


@dataclasses.dataclass(frozen=True)
class _CompiledPattern:
    source: str
    regex: re.Pattern
    is_glob: bool

    def matches(self, path: str) -> bool:
        if self.is_glob:
            return bool(
                self.regex.match(path)
                or self.regex.match(posixpath.basename(path))
            )
        return bool(self.regex.search(path))


def compile_patterns(patterns: Iterable[str]) -> tuple[_CompiledPattern, ...]:
    """Compile glob / ``re:`` patterns.

    Globs follow fnmatch semantics (``*`` also crosses ``/``) and are tried
    against both the full path and the base name. ``re:`` patterns are
    searched anywhere in the full path.

    Raises:
        InvalidPatternError: If a pattern does not compile.
    """
    compiled = []
    for raw in patterns:
        pattern = raw.strip()
        if not pattern:
            continue
        if pattern.startswith(REGEX_PREFIX):
            expr, is_glob = pattern[len(REGEX_PREFIX):], False
            if not expr:
                raise InvalidPatternError(pattern, "empty regular expression")
        else:
            expr, is_glob = fnmatch.translate(pattern), True
        try:
            compiled.append(_CompiledPattern(pattern, re.compile(expr), is_glob))
        except re.error as e:
            raise InvalidPatternError(pattern, str(e)) from e
    return tuple(compiled)


def validate_criteria(criteria: SelectionCriteria) -> None:
    """Reject a negative count or malformed patterns.

    Raises:
        ConfigurationError: If the criteria cannot be used.
    """
    if not isinstance(criteria.count, int) or isinstance(criteria.count, bool):
        raise ConfigurationError(
            f"Number of files must be an integer, got {criteria.count!r}",
            ErrorCode.INVALID_COUNT,
            field="count",
        )
    if criteria.count < 0:
        raise ConfigurationError(
            f"Number of files must be >= 0, got {criteria.count}",
            ErrorCode.INVALID_COUNT,
            field="count",
        )
    compile_patterns(criteria.ignore_patterns)
    compile_patterns(criteria.include_patterns)


def _matches_any(path: str, patterns: Sequence[_CompiledPattern]) -> bool:
    return any(p.matches(path) for p in patterns)


def mark_eligibility(
    recency: Mapping[str, int],
    criteria: SelectionCriteria,
) -> list[TrackedFile]:
    """Build TrackedFile entries with ``eligible`` derived from the patterns.

    Files excluded by include patterns are dropped entirely; files matching an
    ignore pattern are kept but marked ineligible.
    """
    ignores = compile_patterns(criteria.ignore_patterns)
    includes = compile_patterns(criteria.include_patterns)

    tracked = []
    for path in sorted(recency):
        if includes and not _matches_any(path, includes):
            continue
        tracked.append(TrackedFile(
            path=path,
            recency=recency[path],
            eligible=not _matches_any(path, ignores),
        ))
    return tracked


def select(tracked_files: Iterable[TrackedFile], criteria: SelectionCriteria) -> Selection:
    """Pick up to ``criteria.count`` eligible files, least recently modified first.

    Ties in recency are broken by path so repeated runs on the same
    repository state always choose the same batch.

    Raises:
        ConfigurationError: For a negative count or a malformed pattern.
    """
    validate_criteria(criteria)
    ignores = compile_patterns(criteria.ignore_patterns)
    includes = compile_patterns(criteria.include_patterns)

    eligible = [
        f for f in tracked_files
        if f.eligible
        and not _matches_any(f.path, ignores)
        and (not includes or _matches_any(f.path, includes))
    ]
    eligible.sort(key=lambda f: (f.recency, f.path))

    chosen = tuple(eligible[:criteria.count])
    complete = len(eligible) <= criteria.count

    logger.info(
        "[Selector] Selected %s of %s eligible files (complete=%s)",
        len(chosen), len(eligible), complete,
    )
    return Selection(files=chosen, complete=complete, eligible_count=len(eligible))
