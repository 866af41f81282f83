"""
Change watcher: turns bursts of file writes into single snapshots.

Each watched (project slug, file name) key owns:
- a watchdog observer on the file's directory, filtered to that file
- one debounce timer that every raw change event cancels and re-arms
- a commit lock, so settles for one key never overlap

Per key the lifecycle is: unwatched -> active (pending <-> settled) -> stopped.
A stopped watch performs no further commits, even when its timer was
already running when stop() was called.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path

from watchdog.events import (
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .notify import NotificationCallback, NotificationChannel, SnapshotNotice
from .registry import ProjectConfig
from .store import SnapshotStore

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.5

WatchKey = tuple[str, str]
ObserverFactory = Callable[[], Observer]


class WatchError(Exception):
    """A filesystem watch could not be established."""


class _WatchedFileHandler(FileSystemEventHandler):
    """Forwards events for one file path to its FileWatch."""

    def __init__(self, watch: "FileWatch"):
        super().__init__()
        self.watch = watch

    def _is_target(self, path: str | bytes) -> bool:
        return os.path.normpath(os.fsdecode(path)) == self.watch.path_str

    def on_modified(self, event: FileModifiedEvent) -> None:
        if not event.is_directory and self._is_target(event.src_path):
            self.watch.on_change()

    def on_created(self, event: FileCreatedEvent) -> None:
        if not event.is_directory and self._is_target(event.src_path):
            self.watch.on_change()

    def on_moved(self, event: FileMovedEvent) -> None:
        if event.is_directory:
            return
        # Editors that save via rename land the new content on dest_path.
        if self._is_target(event.dest_path):
            self.watch.on_change()
        elif self._is_target(event.src_path):
            logger.info(f"{self.watch.file_path} was moved away; waiting for it to reappear")

    def on_deleted(self, event: FileDeletedEvent) -> None:
        if not event.is_directory and self._is_target(event.src_path):
            logger.info(f"{self.watch.file_path} was deleted; waiting for it to reappear")


class FileWatch:
    """Runtime watch state for one (slug, file name) key."""

    def __init__(
        self,
        slug: str,
        file_name: str,
        file_path: Path,
        store: SnapshotStore,
        channel: NotificationChannel,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        observer_factory: ObserverFactory = Observer,
    ):
        self.slug = slug
        self.file_name = file_name
        self.file_path = file_path
        self.path_str = os.path.normpath(str(file_path))
        self.store = store
        self.channel = channel
        self.debounce_seconds = debounce_seconds
        self.observer_factory = observer_factory

        self._observer: Observer | None = None
        self._timer: threading.Timer | None = None
        self._generation = 0
        self._stopped = False
        self._started = False
        self._state_lock = threading.Lock()
        # Re-entrant so a notification callback may stop its own watch.
        self._commit_lock = threading.RLock()

    @property
    def key(self) -> WatchKey:
        return (self.slug, self.file_name)

    @property
    def active(self) -> bool:
        return self._started and not self._stopped

    @property
    def pending(self) -> bool:
        """True while a debounce timer is armed and has not settled."""
        with self._state_lock:
            return self._timer is not None

    def start(self) -> None:
        """
        Establish the OS-level watch.

        Raises:
            WatchError: if the directory is missing or cannot be watched
        """
        directory = self.file_path.parent
        if not directory.is_dir():
            raise WatchError(f"Cannot watch {self.file_path}: directory {directory} does not exist")

        observer = self.observer_factory()
        try:
            observer.schedule(_WatchedFileHandler(self), str(directory), recursive=False)
            observer.start()
        except OSError as e:
            raise WatchError(f"Cannot watch {self.file_path}: {e}") from e

        self._observer = observer
        self._started = True
        logger.info(f"Watching {self.file_path} (debounce {self.debounce_seconds}s)")

    def on_change(self) -> None:
        """Raw change event: cancel any armed timer and arm a fresh one."""
        with self._state_lock:
            if self._stopped:
                return
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            timer = threading.Timer(self.debounce_seconds, self._settle, args=(self._generation,))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _settle(self, generation: int) -> None:
        with self._commit_lock:
            with self._state_lock:
                # A newer event re-armed the timer, or the watch was stopped.
                if self._stopped or generation != self._generation:
                    return
                self._timer = None

            try:
                revision = self.store.commit(self.slug, self.file_path)
            except Exception as e:
                logger.error(f"Snapshot of {self.slug}/{self.file_name} failed: {e}")
                return

            if revision is None:
                logger.debug(f"No change to record for {self.slug}/{self.file_name}")
                return
            self.channel.publish(SnapshotNotice(self.slug, self.file_name, revision))

    def stop(self) -> None:
        """Cancel any pending settle and release the OS watch."""
        # Waits for an in-flight commit; nothing commits after this block.
        with self._commit_lock:
            with self._state_lock:
                self._stopped = True
                if self._timer is not None:
                    self._timer.cancel()
                    self._timer = None

        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            observer.join()
        logger.info(f"Stopped watching {self.file_path}")


class WatcherManager:
    """
    Owns every active FileWatch, at most one per key.

    The manager does not read the registry itself; the orchestrator tells
    it which projects to start and which keys to stop.
    """

    def __init__(
        self,
        store: SnapshotStore,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        channel: NotificationChannel | None = None,
        observer_factory: ObserverFactory = Observer,
    ):
        self.store = store
        self.debounce_seconds = debounce_seconds
        self.notifications = channel if channel is not None else NotificationChannel()
        self.observer_factory = observer_factory
        self._watches: dict[WatchKey, FileWatch] = {}
        self._lock = threading.Lock()

    def register_notification_callback(self, callback: NotificationCallback | None) -> None:
        self.notifications.register_callback(callback)

    def start_watching(self, project: ProjectConfig) -> list[str]:
        """
        Start a watch for every file of `project` that is not watched yet.

        Returns:
            File names for which a new watch was started

        Raises:
            WatchError: if any watch could not be established (the others
                are still started)
        """
        started: list[str] = []
        failures: list[str] = []
        for file_name in project.files:
            key = (project.slug, file_name)
            with self._lock:
                if key in self._watches:
                    continue
                watch = FileWatch(
                    slug=project.slug,
                    file_name=file_name,
                    file_path=project.file_path(file_name),
                    store=self.store,
                    channel=self.notifications,
                    debounce_seconds=self.debounce_seconds,
                    observer_factory=self.observer_factory,
                )
                try:
                    watch.start()
                except WatchError as e:
                    failures.append(str(e))
                    continue
                self._watches[key] = watch
            started.append(file_name)

        if failures:
            raise WatchError("; ".join(failures))
        return started

    def stop_watching(self, slug: str, file_name: str | None = None) -> list[str]:
        """
        Stop one watch of a project, or all of them when no file is given.

        Returns:
            File names whose watches were stopped
        """
        with self._lock:
            keys = [
                key
                for key in self._watches
                if key[0] == slug and (file_name is None or key[1] == file_name)
            ]
            watches = [self._watches.pop(key) for key in keys]

        for watch in watches:
            watch.stop()
        return [watch.file_name for watch in watches]

    def stop_all(self) -> None:
        with self._lock:
            watches = list(self._watches.values())
            self._watches.clear()
        for watch in watches:
            watch.stop()

    def is_watching(self, slug: str, file_name: str) -> bool:
        with self._lock:
            return (slug, file_name) in self._watches

    def get(self, slug: str, file_name: str) -> FileWatch | None:
        with self._lock:
            return self._watches.get((slug, file_name))

    def active_keys(self) -> set[WatchKey]:
        with self._lock:
            return set(self._watches)
