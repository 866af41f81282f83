"""Pytest configuration and fixtures."""

from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path

import pytest

from diffden.app import DiffDen
from diffden.backend import MemoryBackend
from diffden.store import SnapshotStore


class FakeObserver:
    """Stands in for a watchdog Observer; tests dispatch events by hand."""

    def __init__(self) -> None:
        self.handler = None
        self.path: str | None = None
        self.started = False
        self.stopped = False

    def schedule(self, handler, path: str, recursive: bool = False) -> None:
        self.handler = handler
        self.path = path

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def join(self, timeout: float | None = None) -> None:
        pass


class ObserverRecorder:
    """Observer factory that remembers every observer it built."""

    def __init__(self) -> None:
        self.observers: list[FakeObserver] = []

    def __call__(self) -> FakeObserver:
        observer = FakeObserver()
        self.observers.append(observer)
        return observer

    def for_path(self, directory: Path) -> list[FakeObserver]:
        return [o for o in self.observers if o.path == str(directory)]


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """Empty data home."""
    return tmp_path / "home"


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A directory holding files to track."""
    directory = tmp_path / "notes"
    directory.mkdir()
    return directory


@pytest.fixture
def store(tmp_path: Path) -> SnapshotStore:
    """Snapshot store over in-memory backends."""
    return SnapshotStore(tmp_path / "repos", backend_factory=MemoryBackend)


@pytest.fixture
def observers() -> ObserverRecorder:
    return ObserverRecorder()


@pytest.fixture
def app(home: Path, observers: ObserverRecorder) -> DiffDen:
    """Loaded orchestrator with in-memory history and fake observers."""
    den = DiffDen(
        home,
        debounce_seconds=0.05,
        backend_factory=MemoryBackend,
        observer_factory=observers,
    )
    den.load()
    yield den
    den.shutdown()


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """Poll a predicate until it holds or the timeout expires."""

    def _wait(predicate: Callable[[], bool], timeout: float = 3.0, interval: float = 0.01) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return _wait
