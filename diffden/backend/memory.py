"""
In-memory storage backend.

Implements the same contract as GitBackend without touching git: a
working copy, an index, and a linear list of commits each holding a full
tree. Revision ids are sha1 digests over parent, message, and tree, so
they are content-addressed like git's.
"""

from __future__ import annotations

import difflib
import hashlib
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from .base import BackendError, LogEntry, StorageBackend


@dataclass
class _Commit:
    revision: str
    parent: str | None
    timestamp: datetime
    message: str
    tree: dict[str, bytes] = field(default_factory=dict)


def _lines(data: bytes) -> list[str]:
    return data.decode("utf-8", errors="replace").splitlines(keepends=True)


def _line_stats(old: bytes | None, new: bytes | None) -> tuple[int, int]:
    added = removed = 0
    for line in difflib.unified_diff(_lines(old or b""), _lines(new or b""), n=0):
        if line.startswith("+++") or line.startswith("---"):
            continue
        if line.startswith("+"):
            added += 1
        elif line.startswith("-"):
            removed += 1
    return added, removed


def _unified(name: str, old: bytes | None, new: bytes | None) -> str:
    fromfile = f"a/{name}" if old is not None else "/dev/null"
    tofile = f"b/{name}" if new is not None else "/dev/null"
    body = list(difflib.unified_diff(_lines(old or b""), _lines(new or b""), fromfile, tofile))
    if not body:
        return ""
    out = [f"diff --git a/{name} b/{name}\n"]
    for line in body:
        out.append(line if line.endswith("\n") else line + "\n\\ No newline at end of file\n")
    return "".join(out)


class MemoryBackend(StorageBackend):
    """Thread-safe in-memory StorageBackend."""

    def __init__(self, repo_path: Path):
        super().__init__(repo_path)
        self.initialised = False
        self.worktree: dict[str, bytes] = {}
        self.index: dict[str, bytes] = {}
        self.commits: list[_Commit] = []
        self._lock = threading.Lock()

    def _head_tree(self) -> dict[str, bytes]:
        return self.commits[-1].tree if self.commits else {}

    def _find(self, revision: str) -> _Commit:
        matches = [c for c in self.commits if c.revision.startswith(revision)]
        if len(matches) != 1 or not revision:
            raise BackendError(f"Unknown revision {revision}")
        return matches[0]

    def _parent_tree(self, commit: _Commit) -> dict[str, bytes]:
        if commit.parent is None:
            return {}
        return self._find(commit.parent).tree

    def ensure_repo(self) -> None:
        self.initialised = True

    def write_file(self, name: str, data: bytes) -> None:
        with self._lock:
            self.worktree[name] = bytes(data)

    def stage(self, name: str) -> None:
        with self._lock:
            if name not in self.worktree:
                raise BackendError(f"pathspec '{name}' did not match any files")
            self.index[name] = self.worktree[name]

    def has_staged_changes(self, name: str | None = None) -> bool:
        with self._lock:
            head = self._head_tree()
            if name is not None:
                return self.index.get(name) != head.get(name)
            return self.index != head

    def commit(self, message: str, name: str) -> str:
        with self._lock:
            if not self.initialised:
                raise BackendError("not a repository")
            head = self._head_tree()
            if name not in self.index and name not in head:
                raise BackendError(f"pathspec '{name}' did not match any file(s) known to git")
            if self.index.get(name) == head.get(name):
                raise BackendError("nothing to commit")

            tree = dict(head)
            if name in self.index:
                tree[name] = self.index[name]
            else:
                del tree[name]

            parent = self.commits[-1].revision if self.commits else None
            digest = hashlib.sha1()
            digest.update((parent or "").encode("utf-8"))
            digest.update(message.encode("utf-8"))
            digest.update(str(len(self.commits)).encode("utf-8"))
            for path in sorted(tree):
                digest.update(path.encode("utf-8") + b"\0" + tree[path])
            commit = _Commit(
                revision=digest.hexdigest(),
                parent=parent,
                timestamp=datetime.now(timezone.utc),
                message=message,
                tree=tree,
            )
            self.commits.append(commit)
            return commit.revision

    def log(self, name: str | None = None) -> list[LogEntry]:
        with self._lock:
            if not self.commits:
                raise BackendError("does not have any commits yet")
            entries = []
            for commit in reversed(self.commits):
                before = self._parent_tree(commit)
                names = sorted(set(before) | set(commit.tree))
                touched = [n for n in names if before.get(n) != commit.tree.get(n)]
                if name is not None:
                    if name not in touched:
                        continue
                    touched = [name]
                added = removed = 0
                for n in touched:
                    a, r = _line_stats(before.get(n), commit.tree.get(n))
                    added += a
                    removed += r
                entries.append(
                    LogEntry(
                        revision=commit.revision,
                        timestamp=commit.timestamp,
                        message=commit.message,
                        insertions=added,
                        deletions=removed,
                    )
                )
            return entries

    def diff(self, revision: str, name: str | None = None) -> str:
        with self._lock:
            commit = self._find(revision)
            before = self._parent_tree(commit)
            names = [name] if name is not None else sorted(set(before) | set(commit.tree))
            return "".join(_unified(n, before.get(n), commit.tree.get(n)) for n in names)

    def show(self, revision: str, name: str) -> bytes:
        with self._lock:
            commit = self._find(revision)
            if name not in commit.tree:
                raise BackendError(f"path '{name}' does not exist in '{revision}'")
            return commit.tree[name]
