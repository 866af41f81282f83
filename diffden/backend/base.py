"""
Storage-backend capability used by the snapshot store.

A backend owns one repository directory and exposes the handful of
version-control operations the store needs. All operations are addressed
by a file name relative to the repository and a revision id.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path


class BackendError(Exception):
    """A backend operation failed (bad revision, missing file, tool error)."""


@dataclass(frozen=True)
class LogEntry:
    """One commit as reported by a backend, with structured line stats."""

    revision: str
    timestamp: datetime
    message: str
    insertions: int = 0
    deletions: int = 0


class StorageBackend(ABC):
    """Append-only, content-addressed history for one repository directory."""

    def __init__(self, repo_path: Path):
        self.repo_path = repo_path

    @abstractmethod
    def ensure_repo(self) -> None:
        """Create and initialise the repository if it does not exist yet."""

    @abstractmethod
    def write_file(self, name: str, data: bytes) -> None:
        """Replace the working copy of `name` with `data`."""

    @abstractmethod
    def stage(self, name: str) -> None:
        """Stage the working copy of `name` for the next commit."""

    @abstractmethod
    def has_staged_changes(self, name: str | None = None) -> bool:
        """True if the staged content differs from the last commit."""

    @abstractmethod
    def commit(self, message: str, name: str) -> str:
        """
        Record the staged content of `name` only. Returns the new revision id.

        Other staged paths stay staged and are not part of the commit.
        """

    @abstractmethod
    def log(self, name: str | None = None) -> list[LogEntry]:
        """History newest first, optionally restricted to commits touching `name`."""

    @abstractmethod
    def diff(self, revision: str, name: str | None = None) -> str:
        """Unified diff introduced by `revision` (against the empty state for a root)."""

    @abstractmethod
    def show(self, revision: str, name: str) -> bytes:
        """Content of `name` as recorded at `revision`."""
