"""Incrementally format a repository, least recently modified files first."""

__version__ = "0.1.0"
