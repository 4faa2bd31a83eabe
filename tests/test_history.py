"""Tests for history scanning.

Parsing is tested on literal ``git log`` output; the scanner itself runs
against real throwaway repositories.
"""

import os
import subprocess
from unittest.mock import patch

import pytest

from gradual_format.exceptions import ConfigurationError, ErrorCode, HistoryUnavailable
from gradual_format.history import (
    HistoryScan,
    list_tracked_files,
    parse_name_status_log,
    scan_history,
)


# ---------------------------------------------------------------------------
# parse_name_status_log
# ---------------------------------------------------------------------------


def _log(*commits: list[tuple[str, str]]) -> str:
    """Build ``git log -z --name-status --format=%x01%H`` output."""
    chunks = []
    for i, changes in enumerate(commits, 1):
        fields = "".join(f"{status}\0{path}\0" for status, path in changes)
        chunks.append(f"\x01c{i}\n\n{fields}" if changes else f"\x01c{i}\n")
    return "\0".join(chunks)


class TestParseNameStatusLog:
    def test_adds_only_get_zero(self):
        log = _log([("A", "a.py"), ("A", "b.py")])
        assert parse_name_status_log(log) == {"a.py": 0, "b.py": 0}

    def test_last_modifying_commit_wins(self):
        log = _log(
            [("A", "a.py"), ("A", "b.py"), ("A", "c.py")],
            [("M", "c.py")],
            [("M", "a.py")],
            [("M", "c.py")],
        )
        assert parse_name_status_log(log) == {"a.py": 3, "b.py": 0, "c.py": 4}

    def test_delete_then_readd_starts_fresh(self):
        log = _log([("A", "a.py")], [("M", "a.py")], [("D", "a.py")], [("A", "a.py")])
        assert parse_name_status_log(log) == {"a.py": 0}

    def test_type_change_counts_as_modification(self):
        log = _log([("A", "x")], [("T", "x")])
        assert parse_name_status_log(log) == {"x": 2}

    def test_empty_commits_still_advance_the_counter(self):
        log = _log([("A", "a.py")], [], [("M", "a.py")])
        assert parse_name_status_log(log) == {"a.py": 3}

    def test_header_terminated_by_nul(self):
        log = "\x01c1\0A\0a.py\0\0\x01c2\0M\0a.py\0"
        assert parse_name_status_log(log) == {"a.py": 2}

    def test_paths_are_taken_verbatim(self):
        odd = ['dir name/my file.py', 'q"a.py', 'back\\slash.py', 'tab\there.py', 'new\nline.py']
        log = _log([("A", p) for p in odd], [("M", p) for p in odd])
        assert parse_name_status_log(log) == {p: 2 for p in odd}

    def test_path_that_looks_like_a_status(self):
        log = _log([("A", "M")], [("M", "M")])
        assert parse_name_status_log(log) == {"M": 2}

    def test_empty_output(self):
        assert parse_name_status_log("") == {}


# ---------------------------------------------------------------------------
# scan_history against real repositories
# ---------------------------------------------------------------------------


class TestScanHistory:
    def test_orders_by_last_modification(self, git_repo):
        git_repo.commit("initial", {"a.py": "a\n", "b.py": "b\n", "c.py": "c\n"})
        git_repo.commit("touch c", {"c.py": "c2\n"})
        git_repo.commit("touch a", {"a.py": "a2\n"})

        scan = scan_history(git_repo.path)

        assert scan.degraded is False
        assert scan.recency == {"a.py": 3, "b.py": 0, "c.py": 2}

    def test_files_added_later_but_never_modified_are_oldest(self, git_repo):
        git_repo.commit("initial", {"old.py": "x\n"})
        git_repo.commit("edit", {"old.py": "y\n"})
        git_repo.commit("add new", {"new.py": "z\n"})

        scan = scan_history(git_repo.path)

        assert scan.recency["new.py"] == 0
        assert scan.recency["old.py"] == 2

    def test_untracked_and_deleted_files_are_excluded(self, git_repo):
        git_repo.commit("initial", {"keep.py": "1\n", "gone.py": "2\n"})
        (git_repo.path / "gone.py").unlink()
        git_repo.write("untracked.py", "3\n")

        assert list_tracked_files(git_repo.path) == ["keep.py"]
        assert set(scan_history(git_repo.path).recency) == {"keep.py"}

    def test_nested_paths_are_posix_relative(self, git_repo):
        git_repo.commit("initial", {"pkg/sub/mod.py": "x\n"})
        assert list_tracked_files(git_repo.path) == ["pkg/sub/mod.py"]

    def test_paths_git_would_quote(self, git_repo):
        git_repo.commit("initial", {'q"a.py': "1\n", "back\\slash.py": "1\n", "plain.py": "1\n"})
        git_repo.commit("edit", {'q"a.py': "2\n", "back\\slash.py": "2\n"})

        scan = scan_history(git_repo.path)

        assert scan.recency == {'q"a.py': 2, "back\\slash.py": 2, "plain.py": 0}

    def test_non_utf8_file_name_round_trips(self, git_repo):
        raw_name = b"caf\xe9.py"
        try:
            with open(os.path.join(os.fsencode(git_repo.path), raw_name), "wb") as fh:
                fh.write(b"1\n")
        except OSError:
            pytest.skip("filesystem rejects non-UTF-8 file names")
        git_repo.commit("initial")
        with open(os.path.join(os.fsencode(git_repo.path), raw_name), "wb") as fh:
            fh.write(b"2\n")
        git_repo.commit("edit")

        scan = scan_history(git_repo.path)

        name = os.fsdecode(raw_name)
        assert scan.recency == {name: 2}
        assert (git_repo.path / name).read_bytes() == b"2\n"

    def test_no_commits_is_degraded_not_fatal(self, git_repo):
        git_repo.write("staged.py", "x\n")
        git_repo.git("add", "staged.py")

        scan = scan_history(git_repo.path)

        assert scan.degraded is True
        assert scan.recency == {"staged.py": 0}
        assert scan.reason

    def test_shallow_clone_is_degraded(self, git_repo):
        git_repo.commit("initial", {"a.py": "x\n"})
        with patch("gradual_format.history.is_shallow_repository", return_value=True):
            scan = scan_history(git_repo.path)
        assert scan.degraded is True
        assert "shallow" in scan.reason
        assert scan.recency == {"a.py": 0}

    def test_log_failure_falls_back_to_zero_recency(self, git_repo):
        git_repo.commit("initial", {"a.py": "x\n"})
        git_repo.commit("edit", {"a.py": "y\n"})
        with patch(
            "gradual_format.history.read_modification_order",
            side_effect=HistoryUnavailable("boom"),
        ):
            scan = scan_history(git_repo.path)
        assert scan == HistoryScan(recency={"a.py": 0}, degraded=True, reason="Revision history unavailable: boom")

    def test_not_a_repository_is_configuration_error(self, tmp_path):
        plain = tmp_path / "plain"
        plain.mkdir()
        # Stop git from discovering a repository in a parent directory
        with patch.dict("os.environ", {"GIT_CEILING_DIRECTORIES": str(tmp_path)}):
            with pytest.raises(ConfigurationError) as exc_info:
                scan_history(plain)
        assert exc_info.value.error_code == ErrorCode.NOT_A_REPOSITORY

    def test_missing_git_is_configuration_error(self, tmp_path):
        with patch("gradual_format.history.subprocess.run", side_effect=FileNotFoundError("git")):
            with pytest.raises(ConfigurationError):
                list_tracked_files(tmp_path)

    def test_git_error_is_configuration_error(self, tmp_path):
        error = subprocess.CalledProcessError(128, ["git"], stderr="fatal: not a git repository")
        with patch("gradual_format.history.subprocess.run", side_effect=error):
            with pytest.raises(ConfigurationError) as exc_info:
                list_tracked_files(tmp_path)
        assert "not a git repository" in exc_info.value.message
