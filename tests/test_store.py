"""
Tests for the snapshot store over the in-memory backend.

Validates:
- Commit only on real change, never more than one entry per call
- Missing sources are a quiet no-op
- History ordering and per-file line stats
- Diff against predecessor, and against the empty state for a root
- Sentinels instead of exceptions for unavailable history
- Restore round trips
"""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from diffden.backend import BackendError, MemoryBackend
from diffden.store import NO_CONTENT, NO_DIFF, SnapshotStore, commit_message


@pytest.fixture
def note(project_dir: Path) -> Path:
    path = project_dir / "note.md"
    path.write_text("line 1\n", encoding="utf-8")
    return path


def test_commit_records_new_content(store: SnapshotStore, note: Path):
    revision = store.commit("notes", note)

    assert revision is not None
    history = store.log("notes", "note.md")
    assert [s.revision for s in history] == [revision]
    assert history[0].message == commit_message("note.md") == "[note.md] auto-snapshot"


def test_commit_without_change_returns_none(store: SnapshotStore, note: Path):
    assert store.commit("notes", note) is not None
    assert store.commit("notes", note) is None
    assert store.snapshot_count("notes", "note.md") == 1


def test_commit_missing_source_returns_none(store: SnapshotStore, project_dir: Path):
    assert store.commit("notes", project_dir / "ghost.md") is None
    assert store.log("notes") == []


def test_log_is_newest_first_with_line_stats(store: SnapshotStore, note: Path):
    first = store.commit("notes", note)
    note.write_text("line 1\nline 2\n", encoding="utf-8")
    second = store.commit("notes", note)
    note.write_text("line 2\n", encoding="utf-8")
    third = store.commit("notes", note)

    history = store.log("notes", "note.md")

    assert [s.revision for s in history] == [third, second, first]
    assert (history[0].lines_added, history[0].lines_removed) == (0, 1)
    assert (history[1].lines_added, history[1].lines_removed) == (1, 0)
    assert (history[2].lines_added, history[2].lines_removed) == (1, 0)
    assert history[0].timestamp >= history[1].timestamp >= history[2].timestamp


def test_project_log_merges_file_histories_in_order(store: SnapshotStore, project_dir: Path):
    a = project_dir / "a.md"
    b = project_dir / "b.md"
    a.write_text("a\n")
    b.write_text("b\n")

    r1 = store.commit("notes", a)
    r2 = store.commit("notes", b)
    a.write_text("a\na\n")
    r3 = store.commit("notes", a)

    combined = [s.revision for s in store.log("notes")]
    only_a = [s.revision for s in store.log("notes", "a.md")]
    only_b = [s.revision for s in store.log("notes", "b.md")]

    assert combined == [r3, r2, r1]
    assert only_a == [r3, r1]
    assert only_b == [r2]
    # Each per-file history is a subsequence of the combined one.
    for subset in (only_a, only_b):
        assert [r for r in combined if r in subset] == subset


def test_diff_of_first_revision_shows_whole_file_as_additions(store: SnapshotStore, note: Path):
    note.write_text("alpha\nbeta\n", encoding="utf-8")
    revision = store.commit("notes", note)

    text = store.diff("notes", revision, "note.md")

    assert "+alpha" in text
    assert "+beta" in text
    assert "\n-alpha" not in text


def test_diff_of_later_revision_shows_only_delta(store: SnapshotStore, note: Path):
    store.commit("notes", note)
    note.write_text("line 1\nline 2\n", encoding="utf-8")
    revision = store.commit("notes", note)

    text = store.diff("notes", revision, "note.md")
    added = [l for l in text.splitlines() if l.startswith("+") and not l.startswith("+++")]
    removed = [l for l in text.splitlines() if l.startswith("-") and not l.startswith("---")]

    assert added == ["+line 2"]
    assert removed == []


def test_diff_and_content_sentinels(store: SnapshotStore, note: Path):
    store.commit("notes", note)

    assert store.diff("notes", "deadbeef", "note.md") == NO_DIFF
    assert store.content("notes", "deadbeef", "note.md") == NO_CONTENT
    assert store.diff("empty-project", "deadbeef") == NO_DIFF


def test_content_at_revision(store: SnapshotStore, note: Path):
    first = store.commit("notes", note)
    note.write_text("changed\n", encoding="utf-8")
    store.commit("notes", note)

    assert store.content("notes", first, "note.md") == "line 1\n"


def test_restore_then_commit_without_edit_yields_none(store: SnapshotStore, note: Path):
    first = store.commit("notes", note)
    note.write_text("line 1\nline 2\n", encoding="utf-8")
    store.commit("notes", note)

    assert store.restore("notes", first, "note.md", note) is True
    assert note.read_text(encoding="utf-8") == "line 1\n"

    # Restored content differs from the latest snapshot: recorded once.
    assert store.commit("notes", note) is not None
    assert store.commit("notes", note) is None

    latest = store.latest_snapshot("notes", "note.md")
    assert store.restore("notes", latest.revision, "note.md", note) is True
    assert store.commit("notes", note) is None


def test_restore_failures_return_false(store: SnapshotStore, note: Path, project_dir: Path):
    revision = store.commit("notes", note)

    assert store.restore("notes", "deadbeef", "note.md", note) is False
    assert store.restore("notes", revision, "note.md", project_dir / "missing" / "note.md") is False
    assert note.read_text(encoding="utf-8") == "line 1\n"


def test_restore_is_binary_safe(store: SnapshotStore, project_dir: Path):
    blob = project_dir / "blob.bin"
    blob.write_bytes(b"\x00\xff\x10binary")
    revision = store.commit("notes", blob)
    blob.write_bytes(b"other")

    assert store.restore("notes", revision, "blob.bin", blob)
    assert blob.read_bytes() == b"\x00\xff\x10binary"


def test_latest_snapshot_and_count(store: SnapshotStore, note: Path):
    assert store.latest_snapshot("notes", "note.md") is None
    assert store.snapshot_count("notes") == 0

    store.commit("notes", note)
    note.write_text("two\n")
    latest = store.commit("notes", note)

    assert store.latest_snapshot("notes", "note.md").revision == latest
    assert store.snapshot_count("notes", "note.md") == 2


def test_resolve_revision_prefix(store: SnapshotStore, note: Path):
    revision = store.commit("notes", note)

    assert store.resolve_revision("notes", revision[:8], "note.md") == revision
    assert store.resolve_revision("notes", "zzzz", "note.md") is None
    assert store.resolve_revision("notes", "", "note.md") is None


def test_projects_have_separate_histories(store: SnapshotStore, note: Path):
    store.commit("notes", note)
    store.commit("other", note)

    assert store.repo_path("notes") != store.repo_path("other")
    assert store.snapshot_count("notes") == 1
    assert store.snapshot_count("other") == 1


def test_backend_failure_during_commit_propagates(tmp_path: Path, note: Path):
    class BrokenBackend(MemoryBackend):
        def commit(self, message: str, name: str) -> str:
            raise BackendError("disk full")

    broken = SnapshotStore(tmp_path / "repos", backend_factory=BrokenBackend)

    with pytest.raises(BackendError, match="disk full"):
        broken.commit("notes", note)
    assert broken.log("notes") == []


def test_concurrent_commits_to_different_files(store: SnapshotStore, project_dir: Path):
    paths = []
    for i in range(4):
        path = project_dir / f"f{i}.md"
        path.write_text(f"file {i}\n")
        paths.append(path)

    results: list[str | None] = []
    lock = threading.Lock()

    def commit(path: Path) -> None:
        revision = store.commit("notes", path)
        with lock:
            results.append(revision)

    threads = [threading.Thread(target=commit, args=(p,)) for p in paths]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert all(r is not None for r in results)
    assert store.snapshot_count("notes") == 4
    for path in paths:
        assert store.snapshot_count("notes", path.name) == 1


def test_failed_commit_does_not_leak_into_another_file(tmp_path: Path, project_dir: Path):
    class FailOnceBackend(MemoryBackend):
        failing = {"a.md"}

        def commit(self, message: str, name: str) -> str:
            if name in FailOnceBackend.failing:
                FailOnceBackend.failing.discard(name)
                raise BackendError("transient failure")
            return super().commit(message, name)

    flaky = SnapshotStore(tmp_path / "repos", backend_factory=FailOnceBackend)
    a = project_dir / "a.md"
    b = project_dir / "b.md"
    a.write_text("a\n", encoding="utf-8")
    b.write_text("b\n", encoding="utf-8")

    with pytest.raises(BackendError):
        flaky.commit("notes", a)
    b_revision = flaky.commit("notes", b)

    assert flaky.log("notes", "a.md") == []
    assert flaky.content("notes", b_revision, "a.md") == NO_CONTENT

    retry = flaky.commit("notes", a)
    assert retry is not None
    assert [s.message for s in flaky.log("notes", "a.md")] == ["[a.md] auto-snapshot"]
    assert [s.message for s in flaky.log("notes")] == ["[a.md] auto-snapshot", "[b.md] auto-snapshot"]


def test_unreadable_source_raises_backend_error(store: SnapshotStore, note: Path, monkeypatch):
    read_bytes = Path.read_bytes

    def deny(self: Path) -> bytes:
        if self == note:
            raise PermissionError(13, "Permission denied", str(self))
        return read_bytes(self)

    monkeypatch.setattr(Path, "read_bytes", deny)

    with pytest.raises(BackendError, match="Cannot read"):
        store.commit("notes", note)
    assert store.log("notes") == []
