"""
The long-lived orchestrator that keeps registry, store, and watches in step.

DiffDen owns one ProjectRegistry, one SnapshotStore, and one WatcherManager.
All registry changes go through it so that every registered file has at
most one active watch and no watch outlives its registry entry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from watchdog.observers import Observer

from .backend import GitBackend
from .notify import NotificationCallback
from .paths import default_home, repos_dir
from .registry import ProjectConfig, ProjectRegistry
from .store import BackendFactory, SnapshotStore
from .watcher import DEBOUNCE_SECONDS, ObserverFactory, WatcherManager, WatchError

logger = logging.getLogger(__name__)


@dataclass
class TrackResult:
    """Outcome of DiffDen.track()."""

    project: ProjectConfig
    file_name: str
    initial_revision: str | None
    watching: bool


class DiffDen:
    """Wires the registry to the store and the watcher."""

    def __init__(
        self,
        home: Path | None = None,
        *,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        backend_factory: BackendFactory = GitBackend,
        observer_factory: ObserverFactory = Observer,
    ):
        self.home = home if home is not None else default_home()
        self.registry = ProjectRegistry(self.home)
        self.store = SnapshotStore(repos_dir(self.home), backend_factory=backend_factory)
        self.watcher = WatcherManager(
            self.store,
            debounce_seconds=debounce_seconds,
            observer_factory=observer_factory,
        )
        self._registry_stamp: tuple[int, int, int] | None = None

    def load(self) -> None:
        """Load the registry. RegistryError propagates: it is fatal."""
        self.registry.load()
        self._registry_stamp = self._stamp()

    def _stamp(self) -> tuple[int, int, int] | None:
        # The registry is replaced by rename, so the inode changes on every save.
        try:
            st = self.registry.config_path.stat()
        except FileNotFoundError:
            return None
        return (st.st_ino, st.st_size, st.st_mtime_ns)

    def registry_changed(self) -> bool:
        """True if config.json was rewritten since the last load()."""
        return self._stamp() != self._registry_stamp

    def reload(self) -> list[str]:
        """
        Re-read the registry and bring the watches in line with it.

        Returns:
            Error messages for watches that could not be established

        Raises:
            RegistryError: if the registry can no longer be read
        """
        self.load()
        logger.info(f"Registry reloaded from {self.registry.config_path}")
        return self.sync_watches()

    def on_snapshot(self, callback: NotificationCallback | None) -> None:
        self.watcher.register_notification_callback(callback)

    def track(self, file_path: str | Path, *, watch: bool = False) -> TrackResult:
        """
        Register a file, record its current content, and optionally watch it.

        Raises:
            RegistryError: if the registry cannot be written
            WatchError: if `watch` is set and the watch cannot be established
        """
        abs_path = Path(file_path).expanduser().resolve()
        project = self.registry.add_file(abs_path)
        self._registry_stamp = self._stamp()
        revision = self.store.commit(project.slug, abs_path)
        if watch:
            self.watcher.start_watching(project)
        return TrackResult(
            project=project,
            file_name=abs_path.name,
            initial_revision=revision,
            watching=self.watcher.is_watching(project.slug, abs_path.name),
        )

    def untrack(self, file_path: str | Path) -> ProjectConfig | None:
        """Stop the file's watch, then drop it from the registry."""
        project, file_name = self.registry.locate(file_path)
        if project is not None:
            self.watcher.stop_watching(project.slug, file_name)
        removed = self.registry.remove_file(file_path)
        self._registry_stamp = self._stamp()
        return removed

    def start(self) -> list[str]:
        """
        Start watches for every registered file.

        Returns:
            Error messages for watches that could not be established
        """
        errors = []
        for project in list(self.registry.projects):
            try:
                self.watcher.start_watching(project)
            except WatchError as e:
                logger.warning(str(e))
                errors.append(str(e))
        return errors

    def sync_watches(self) -> list[str]:
        """Stop watches for unregistered files and start missing ones."""
        registered = self.registry.watched_keys()
        for slug, file_name in self.watcher.active_keys() - registered:
            self.watcher.stop_watching(slug, file_name)
        return self.start()

    def shutdown(self) -> None:
        self.watcher.stop_all()

    def resolve_file(self, file_path: str | Path) -> tuple[ProjectConfig, str] | None:
        """Registered (project, file name) for a path, or None."""
        project, file_name = self.registry.locate(file_path)
        if project is None or file_name not in project.files:
            return None
        return project, file_name
