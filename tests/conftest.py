"""Shared test fixtures for the gradual-format test suite.

Repository tests build real git repositories under ``tmp_path`` with the
``git`` binary and are skipped when git is not installed. The formatter is
replaced by a small Python script that strips trailing whitespace and
reports black-style errors for files containing ``SYNTAX ERROR``. Flags
make it crash, hang, or exit non-zero after rewriting files.
"""

import os
import shutil
import subprocess
import sys
import textwrap
from pathlib import Path

import pytest

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")

_GIT_ENV = {
    "GIT_AUTHOR_NAME": "Test Author",
    "GIT_AUTHOR_EMAIL": "author@example.com",
    "GIT_COMMITTER_NAME": "Test Author",
    "GIT_COMMITTER_EMAIL": "author@example.com",
}

FAKE_FORMATTER = textwrap.dedent('''
    import sys
    import time

    failed = False
    after_write = None
    for path in sys.argv[1:]:
        if path in ("--exit-after-write", "--sleep-after-write"):
            after_write = path
            continue
        if path == "--sleep":
            time.sleep(30)
            continue
        if path == "--crash":
            print("Traceback: internal formatter error", file=sys.stderr)
            sys.exit(3)
        with open(path, encoding="utf-8") as fh:
            text = fh.read()
        if "SYNTAX ERROR" in text:
            print(f"error: cannot format {path}: Cannot parse: 1:0: SYNTAX ERROR", file=sys.stderr)
            failed = True
            continue
        cleaned = "\\n".join(line.rstrip() for line in text.split("\\n"))
        if cleaned != text:
            with open(path, "w", encoding="utf-8") as fh:
                fh.write(cleaned)
    if after_write == "--exit-after-write":
        sys.exit(1)
    if after_write == "--sleep-after-write":
        time.sleep(30)
    sys.exit(123 if failed else 0)
''')


class GitRepo:
    """A throwaway git repository for history and pipeline tests."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.git("init", "-q")

    def git(self, *args: str) -> str:
        result = subprocess.run(
            ["git", "-c", "commit.gpgsign=false", *args],
            cwd=self.path,
            capture_output=True,
            text=True,
            check=True,
            env={**os.environ, **_GIT_ENV},
        )
        return result.stdout

    def write(self, rel: str, content: str) -> Path:
        target = self.path / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        return target

    def read(self, rel: str) -> str:
        return (self.path / rel).read_text(encoding="utf-8")

    def commit(self, message: str, files: dict[str, str] | None = None) -> None:
        for rel, content in (files or {}).items():
            self.write(rel, content)
        self.git("add", "-A")
        self.git("commit", "-q", "--allow-empty", "-m", message)


@pytest.fixture
def git_repo(tmp_path):
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    repo_dir = tmp_path / "repo"
    repo_dir.mkdir()
    return GitRepo(repo_dir)


@pytest.fixture
def formatter_command(tmp_path) -> list[str]:
    script = tmp_path / "fake_formatter.py"
    script.write_text(FAKE_FORMATTER, encoding="utf-8")
    return [sys.executable, str(script)]


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep workflow variables from the host out of settings-based tests."""
    for var in (
        "GITHUB_OUTPUT", "OUTPUT_FILE", "NUMBER_OF_FILES", "IGNORE_FILES_REGEX",
        "INCLUDE_FILES", "FORMATTER_COMMAND", "FORMATTER_TIMEOUT", "REPO_PATH",
        "LOG_LEVEL", "LOG_FORMAT",
    ):
        monkeypatch.delenv(var, raising=False)
