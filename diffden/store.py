"""
Snapshot store: per-project, append-only history of watched files.

Each project gets its own backend repository under ``<home>/repos/<slug>``.
A commit copies the current bytes of one watched file into that repository
and records them only if they differ from the last recorded version, so a
commit call advances history by exactly zero or one entries.

Read operations never raise for an unavailable history. They return an
empty list or a sentinel string instead, so a view can stay navigable when
one file's history is broken.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .backend import BackendError, GitBackend, LogEntry, StorageBackend

logger = logging.getLogger(__name__)

NO_DIFF = "(no diff available)"
NO_CONTENT = "(content not available)"

BackendFactory = Callable[[Path], StorageBackend]


def commit_message(file_name: str) -> str:
    return f"[{file_name}] auto-snapshot"


@dataclass(frozen=True)
class Snapshot:
    """One immutable recorded version."""

    revision: str
    timestamp: datetime
    message: str
    lines_added: int = 0
    lines_removed: int = 0

    @property
    def short_revision(self) -> str:
        return self.revision[:7]

    @classmethod
    def from_log_entry(cls, entry: LogEntry) -> "Snapshot":
        return cls(
            revision=entry.revision,
            timestamp=entry.timestamp,
            message=entry.message,
            lines_added=entry.insertions,
            lines_removed=entry.deletions,
        )

    def to_dict(self) -> dict:
        return {
            "revision": self.revision,
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "lines_added": self.lines_added,
            "lines_removed": self.lines_removed,
        }


class SnapshotStore:
    """
    File-scoped, error-tolerant facade over one backend per project.

    Stage and commit for a project run under that project's lock because
    the backend index is shared by every file in the repository. Different
    projects never contend.
    """

    def __init__(self, repos_dir: Path, backend_factory: BackendFactory = GitBackend):
        """
        Args:
            repos_dir: Directory holding one repository per project slug
            backend_factory: Builds a backend for a repository path
        """
        self.repos_dir = repos_dir
        self.backend_factory = backend_factory
        self._backends: dict[str, StorageBackend] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def repo_path(self, slug: str) -> Path:
        return self.repos_dir / slug

    def backend(self, slug: str) -> StorageBackend:
        """
        Return the (initialised) backend for a project.

        Raises:
            BackendError: if the repository cannot be created
        """
        with self._registry_lock:
            backend = self._backends.get(slug)
            if backend is None:
                backend = self.backend_factory(self.repo_path(slug))
                backend.ensure_repo()
                self._backends[slug] = backend
                self._locks[slug] = threading.Lock()
            return backend

    def _project_lock(self, slug: str) -> threading.Lock:
        with self._registry_lock:
            return self._locks[slug]

    def commit(self, slug: str, source_file_path: str | Path) -> str | None:
        """
        Record the current content of a watched file.

        Returns:
            The new revision id, or None if the source is missing or
            its content matches the last recorded version

        Raises:
            BackendError: if the source cannot be read, or the backend fails
                while staging or committing
        """
        source = Path(source_file_path)
        file_name = source.name
        try:
            data = source.read_bytes()
        except FileNotFoundError:
            logger.debug(f"Skipping snapshot of {source}: file does not exist")
            return None
        except IsADirectoryError:
            logger.debug(f"Skipping snapshot of {source}: not a file")
            return None
        except OSError as e:
            raise BackendError(f"Cannot read {source}: {e}") from e

        backend = self.backend(slug)
        with self._project_lock(slug):
            backend.write_file(file_name, data)
            backend.stage(file_name)
            if not backend.has_staged_changes(file_name):
                return None
            revision = backend.commit(commit_message(file_name), file_name)

        logger.info(f"Snapshot {revision[:7]} of {slug}/{file_name}")
        return revision

    def log(self, slug: str, file_name: str | None = None) -> list[Snapshot]:
        """History newest first; empty if none is available."""
        try:
            entries = self.backend(slug).log(file_name)
        except BackendError as e:
            logger.debug(f"No history for {slug}/{file_name or '*'}: {e}")
            return []
        return [Snapshot.from_log_entry(entry) for entry in entries]

    def diff(self, slug: str, revision: str, file_name: str | None = None) -> str:
        """Unified diff introduced by `revision`, or NO_DIFF."""
        try:
            text = self.backend(slug).diff(revision, file_name)
        except BackendError as e:
            logger.debug(f"Diff of {revision} in {slug} unavailable: {e}")
            return NO_DIFF
        return text or NO_DIFF

    def content_bytes(self, slug: str, revision: str, file_name: str) -> bytes | None:
        try:
            return self.backend(slug).show(revision, file_name)
        except BackendError as e:
            logger.debug(f"Content of {file_name}@{revision} in {slug} unavailable: {e}")
            return None

    def content(self, slug: str, revision: str, file_name: str) -> str:
        """File text at `revision`, or NO_CONTENT."""
        data = self.content_bytes(slug, revision, file_name)
        if data is None:
            return NO_CONTENT
        return data.decode("utf-8", errors="replace")

    def restore(
        self,
        slug: str,
        revision: str,
        file_name: str,
        destination: str | Path,
    ) -> bool:
        """Overwrite `destination` with the content recorded at `revision`."""
        data = self.content_bytes(slug, revision, file_name)
        if data is None:
            return False
        try:
            Path(destination).write_bytes(data)
        except OSError as e:
            logger.warning(f"Restore of {file_name}@{revision[:7]} to {destination} failed: {e}")
            return False
        logger.info(f"Restored {slug}/{file_name} to {revision[:7]}")
        return True

    def snapshot_count(self, slug: str, file_name: str | None = None) -> int:
        return len(self.log(slug, file_name))

    def latest_snapshot(self, slug: str, file_name: str | None = None) -> Snapshot | None:
        history = self.log(slug, file_name)
        return history[0] if history else None

    def resolve_revision(
        self,
        slug: str,
        prefix: str,
        file_name: str | None = None,
    ) -> str | None:
        """Expand a unique revision prefix against the file's history."""
        matches = [s.revision for s in self.log(slug, file_name) if s.revision.startswith(prefix)]
        if len(matches) == 1 and prefix:
            return matches[0]
        return None
