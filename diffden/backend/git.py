"""
Git-backed storage: one plain git repository per project.

Every operation shells out to the ``git`` executable with the repository
as the working directory. There is deliberately no timeout: a hung git
call only stalls the key that issued it.
"""

from __future__ import annotations

import logging
import subprocess
from datetime import datetime
from pathlib import Path

from .base import BackendError, LogEntry, StorageBackend

logger = logging.getLogger(__name__)

# Object id of the empty tree; diffing a root commit against it shows
# the whole file as additions.
EMPTY_TREE = "4b825dc642cb6eb9a060e54bf899d8b2da2e7862"

COMMITTER_NAME = "diffden"
COMMITTER_EMAIL = "diffden@local"

_RECORD_SEP = "\x1e"
_FIELD_SEP = "\x1f"


class GitBackend(StorageBackend):
    """StorageBackend driven through the git command line."""

    def __init__(self, repo_path: Path, git_executable: str = "git"):
        super().__init__(repo_path)
        self.git_executable = git_executable

    def _run(self, *args: str) -> bytes:
        cmd = [
            self.git_executable,
            "-c", "core.quotepath=off",
            "-c", "commit.gpgsign=false",
            *args,
        ]
        try:
            result = subprocess.run(
                cmd,
                cwd=self.repo_path,
                capture_output=True,
            )
        except OSError as e:
            raise BackendError(f"Cannot run git: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise BackendError(f"git {args[0]} failed ({result.returncode}): {stderr}")
        return result.stdout

    def _run_text(self, *args: str) -> str:
        return self._run(*args).decode("utf-8", errors="replace")

    def ensure_repo(self) -> None:
        try:
            self.repo_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BackendError(f"Cannot create {self.repo_path}: {e}") from e
        if not (self.repo_path / ".git").exists():
            logger.info(f"Initialising history repository at {self.repo_path}")
            self._run("init", "--quiet")
        # Also repairs a repository whose identity setup failed after init.
        if not self._has_identity():
            self._run("config", "user.name", COMMITTER_NAME)
            self._run("config", "user.email", COMMITTER_EMAIL)

    def _has_identity(self) -> bool:
        try:
            name = self._run_text("config", "--local", "user.name").strip()
            email = self._run_text("config", "--local", "user.email").strip()
        except BackendError:
            # git config exits 1 when the key is unset.
            return False
        return bool(name and email)

    def write_file(self, name: str, data: bytes) -> None:
        try:
            (self.repo_path / name).write_bytes(data)
        except OSError as e:
            raise BackendError(f"Cannot write {name} into {self.repo_path}: {e}") from e

    def stage(self, name: str) -> None:
        self._run("add", "--", name)

    def has_staged_changes(self, name: str | None = None) -> bool:
        args = ["status", "--porcelain=v1", "--untracked-files=no"]
        if name:
            args += ["--", name]
        for line in self._run_text(*args).splitlines():
            # Column 1 is the index state; " " means unchanged in the index.
            if line and line[0] not in (" ", "?", "!"):
                return True
        return False

    def commit(self, message: str, name: str) -> str:
        # A pathspec commits only this file, whatever else is in the index.
        self._run("commit", "--quiet", "--no-verify", "-m", message, "--only", "--", name)
        return self._run_text("rev-parse", "HEAD").strip()

    def log(self, name: str | None = None) -> list[LogEntry]:
        args = [
            "log",
            f"--format={_RECORD_SEP}%H{_FIELD_SEP}%aI{_FIELD_SEP}%s",
            "--numstat",
        ]
        if name:
            args += ["--follow", "--", name]
        return parse_log_output(self._run_text(*args))

    def _parent(self, revision: str) -> str | None:
        parts = self._run_text("rev-list", "--parents", "-n", "1", revision).split()
        if not parts:
            raise BackendError(f"Unknown revision {revision}")
        return parts[1] if len(parts) > 1 else None

    def diff(self, revision: str, name: str | None = None) -> str:
        parent = self._parent(revision)
        base = parent if parent is not None else EMPTY_TREE
        args = ["diff", "--no-color", "--no-ext-diff", base, revision]
        if name:
            args += ["--", name]
        return self._run_text(*args)

    def show(self, revision: str, name: str) -> bytes:
        return self._run("show", f"{revision}:{name}")


def parse_log_output(output: str) -> list[LogEntry]:
    """
    Parse ``git log --format=<RS>%H<US>%aI<US>%s --numstat`` output.

    Each record is a header line followed by zero or more numstat lines
    (``added<TAB>deleted<TAB>path``). Binary files report ``-`` and count
    as zero lines.
    """
    entries: list[LogEntry] = []
    for record in output.split(_RECORD_SEP):
        record = record.strip("\n")
        if not record:
            continue
        header, _, stats = record.partition("\n")
        fields = header.split(_FIELD_SEP)
        if len(fields) != 3:
            continue
        revision, date_str, message = fields

        insertions = 0
        deletions = 0
        for line in stats.splitlines():
            cols = line.split("\t")
            if len(cols) < 3:
                continue
            if cols[0].isdigit():
                insertions += int(cols[0])
            if cols[1].isdigit():
                deletions += int(cols[1])

        entries.append(
            LogEntry(
                revision=revision,
                timestamp=datetime.fromisoformat(date_str),
                message=message,
                insertions=insertions,
                deletions=deletions,
            )
        )
    return entries
