"""Invocation configuration with validation."""

import re
import shlex
from pathlib import Path
from typing import List

from pydantic import AliasChoices, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from ..exceptions import ConfigurationError

# Matches black's "error: cannot format path/to/file.py: Cannot parse: 1:4: ..."
DEFAULT_ERROR_PATTERN = r"^error: cannot format (?P<path>.+?): (?P<reason>.+)$"


def split_patterns(raw: str) -> List[str]:
    """Split a comma-separated pattern string, dropping blank entries."""
    return [p.strip() for p in raw.split(",") if p.strip()]


class Settings(BaseSettings):
    """
    Settings for one formatting pass.

    Read from environment variables (or a .env file) so the calling
    workflow can configure the run without touching the command line.
    CLI flags are applied on top via ``load_settings(**overrides)``.
    """

    # Selection
    number_of_files: int = Field(
        default=50,
        description="Batch size: how many least-recently-modified files to format"
    )
    ignore_files_regex: str = Field(
        default="",
        description="Comma-separated ignore patterns (glob, or 're:' prefixed regex)"
    )
    include_files: str = Field(
        default="*.py",
        description="Comma-separated patterns a file must match to be considered (empty = all)"
    )

    # Formatter
    formatter_command: str = Field(
        default="black --quiet",
        description="Formatter command; selected paths are appended as arguments"
    )
    formatter_timeout: float = Field(
        default=600.0,
        description="Seconds before a running formatter is considered hung"
    )
    formatter_error_pattern: str = Field(
        default=DEFAULT_ERROR_PATTERN,
        description="Regex with 'path' and 'reason' groups matching per-file errors"
    )

    # Repository and outputs
    repo_path: Path = Field(
        default=Path("."),
        description="Root of the git working tree to format"
    )
    # GITHUB_OUTPUT is set by GitHub Actions; any key=value consumer works.
    output_file: str = Field(
        default="",
        validation_alias=AliasChoices("output_file", "OUTPUT_FILE", "GITHUB_OUTPUT"),
        description="File the run outputs are appended to (empty = don't write)"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="text",
        description="Log output format: 'json' for structured, 'text' for human-readable"
    )

    def get_ignore_patterns(self) -> List[str]:
        """Get ignore patterns as a list."""
        return split_patterns(self.ignore_files_regex)

    def get_include_patterns(self) -> List[str]:
        """Get include patterns as a list."""
        return split_patterns(self.include_files)

    def get_formatter_argv(self) -> List[str]:
        """Split the formatter command the way a POSIX shell would."""
        return shlex.split(self.formatter_command)

    @field_validator('formatter_command')
    @classmethod
    def validate_formatter_command(cls, v: str) -> str:
        try:
            argv = shlex.split(v)
        except ValueError as e:
            raise ValueError(f"Cannot parse formatter command: {e}")
        if not argv:
            raise ValueError("Formatter command must not be empty")
        return v

    @field_validator('formatter_timeout')
    @classmethod
    def validate_formatter_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Formatter timeout must be positive")
        return v

    @field_validator('formatter_error_pattern')
    @classmethod
    def validate_error_pattern(cls, v: str) -> str:
        try:
            compiled = re.compile(v, re.MULTILINE)
        except re.error as e:
            raise ValueError(f"Invalid formatter error pattern: {e}")
        missing = {"path", "reason"} - set(compiled.groupindex)
        if missing:
            raise ValueError(
                f"Formatter error pattern is missing named groups: {sorted(missing)}"
            )
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard Python logging levels."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in ('json', 'text'):
            raise ValueError("Log format must be 'json' or 'text'")
        return v_lower

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


def load_settings(**overrides) -> Settings:
    """Build Settings from the environment plus explicit overrides.

    ``None`` overrides are ignored so unset CLI flags fall through to the
    environment.

    Raises:
        ConfigurationError: If any setting fails validation.
    """
    values = {k: v for k, v in overrides.items() if v is not None}
    try:
        return Settings(**values)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ConfigurationError(
            f"Invalid configuration: {first.get('msg', str(e))}",
            field=field,
        ) from e
