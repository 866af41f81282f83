"""
Project registry: which files are tracked, and where their originals live.

The registry is persisted as JSON in ``<home>/config.json`` and is the only
durable state besides the history repositories. Every mutation is flushed
to disk before the mutating call returns.

A corrupt or unwritable registry raises RegistryError. Callers must let it
propagate: silently dropping the registry would silently drop watch coverage.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .paths import (
    config_path,
    owner_marker_path,
    project_dir_from_file,
    project_slug,
    repos_dir,
)

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """The registry file could not be read, parsed, or written."""


@dataclass
class ProjectConfig:
    """One watched directory and the basenames tracked inside it."""

    slug: str
    dir: str
    files: list[str] = field(default_factory=list)

    @property
    def path(self) -> Path:
        return Path(self.dir)

    def file_path(self, file_name: str) -> Path:
        return Path(self.dir) / file_name

    def to_dict(self) -> dict[str, Any]:
        return {"slug": self.slug, "dir": self.dir, "files": list(self.files)}

    @classmethod
    def from_dict(cls, data: dict) -> "ProjectConfig":
        slug = data["slug"]
        directory = data["dir"]
        files = data.get("files", [])
        if not isinstance(slug, str) or not isinstance(directory, str):
            raise ValueError("project slug and dir must be strings")
        if not isinstance(files, list) or not all(isinstance(f, str) for f in files):
            raise ValueError(f"project {slug!r}: files must be a list of strings")
        return cls(slug=slug, dir=directory, files=list(files))


@dataclass
class AppConfig:
    """Top-level registry document."""

    projects: list[ProjectConfig] = field(default_factory=list)
    editor: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "projects": [p.to_dict() for p in self.projects],
            "editor": self.editor,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AppConfig":
        if not isinstance(data, dict):
            raise ValueError("registry root must be an object")
        projects = data.get("projects", [])
        if not isinstance(projects, list):
            raise ValueError("'projects' must be a list")
        editor = data.get("editor")
        if editor is not None and not isinstance(editor, str):
            raise ValueError("'editor' must be a string")
        return cls(
            projects=[ProjectConfig.from_dict(p) for p in projects],
            editor=editor,
        )


class ProjectRegistry:
    """
    Durable mapping of project directory -> watched file basenames.

    Single writer, synchronous. The registry never talks to the watcher or
    the snapshot store; the orchestrator reconciles them.
    """

    def __init__(self, home: Path):
        """
        Args:
            home: Data home directory (contains config.json and repos/)
        """
        self.home = home
        self.config_path = config_path(home)
        self.config = AppConfig()

    def _ensure_dirs(self) -> None:
        self.home.mkdir(parents=True, exist_ok=True)
        repos_dir(self.home).mkdir(parents=True, exist_ok=True)

    def load(self) -> AppConfig:
        """
        Load the registry from disk, creating an empty one if absent.

        Raises:
            RegistryError: if the file exists but cannot be read or parsed
        """
        try:
            self._ensure_dirs()
        except OSError as e:
            raise RegistryError(f"Cannot create data directory {self.home}: {e}") from e

        if not self.config_path.exists():
            self.config = AppConfig()
            self.save()
            return self.config

        try:
            raw = self.config_path.read_text(encoding="utf-8")
        except OSError as e:
            raise RegistryError(f"Cannot read registry {self.config_path}: {e}") from e

        try:
            self.config = AppConfig.from_dict(json.loads(raw))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise RegistryError(f"Corrupt registry {self.config_path}: {e}") from e

        return self.config

    def save(self) -> None:
        """
        Flush the registry to disk.

        Written to a temp file and renamed into place so a crash mid-write
        never leaves a truncated registry behind.

        Raises:
            RegistryError: if the file cannot be written
        """
        serialized = json.dumps(self.config.to_dict(), indent=2)
        temp_path = self.config_path.with_suffix(".tmp")
        try:
            self._ensure_dirs()
            temp_path.write_text(serialized + "\n", encoding="utf-8")
            temp_path.replace(self.config_path)
        except OSError as e:
            raise RegistryError(f"Cannot write registry {self.config_path}: {e}") from e

    @property
    def projects(self) -> list[ProjectConfig]:
        return self.config.projects

    def get_project(self, slug: str) -> ProjectConfig | None:
        for project in self.config.projects:
            if project.slug == slug:
                return project
        return None

    def find_project_for_dir(self, directory: Path) -> ProjectConfig | None:
        target = str(directory)
        for project in self.config.projects:
            if project.dir == target:
                return project
        return None

    def locate(self, file_path: str | Path) -> tuple[ProjectConfig | None, str]:
        """Return (project or None, basename) for a file path."""
        abs_path = Path(file_path).expanduser().resolve()
        return self.find_project_for_dir(abs_path.parent), abs_path.name

    def slug_owner(self, slug: str) -> str | None:
        """
        Directory that owns the history stored under `slug`.

        Returns None when the slug is free. A history repository without an
        owner marker is reported as owned by "" so it is never reused.
        """
        project = self.get_project(slug)
        if project is not None:
            return project.dir

        marker = owner_marker_path(self.home, slug)
        try:
            return marker.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise RegistryError(f"Cannot read {marker}: {e}") from e

        if (repos_dir(self.home) / slug).exists():
            return ""
        return None

    def _new_slug(self, directory: Path) -> str:
        """
        Pick a slug whose history is free or already belongs to `directory`.

        Histories outlive their projects, so a slug once used by another
        directory is never handed out again.
        """
        base = project_slug(directory)
        digest = hashlib.sha256(str(directory).encode("utf-8")).hexdigest()
        for slug in (base, f"{base}-{digest[:6]}", f"{base}-{digest[:12]}", f"{base}-{digest}"):
            owner = self.slug_owner(slug)
            if owner is None or owner == str(directory):
                return slug
        raise RegistryError(f"No free project slug for {directory}")

    def _claim_slug(self, slug: str, directory: Path) -> None:
        marker = owner_marker_path(self.home, slug)
        try:
            self._ensure_dirs()
            marker.write_text(f"{directory}\n", encoding="utf-8")
        except OSError as e:
            raise RegistryError(f"Cannot write {marker}: {e}") from e

    def add_file(self, file_path: str | Path) -> ProjectConfig:
        """
        Track a file. Idempotent.

        Returns:
            The project the file belongs to
        """
        abs_path = Path(file_path).expanduser().resolve()
        directory = project_dir_from_file(abs_path)
        file_name = abs_path.name

        project = self.find_project_for_dir(directory)
        if project is None:
            project = ProjectConfig(slug=self._new_slug(directory), dir=str(directory))
            self._claim_slug(project.slug, directory)
            self.config.projects.append(project)
            logger.info(f"Registered project {project.slug} -> {directory}")

        if file_name not in project.files:
            project.files.append(file_name)

        self.save()
        return project

    def remove_file(self, file_path: str | Path) -> ProjectConfig | None:
        """
        Stop tracking a file. Drops the project when its last file goes.

        Returns:
            The project the file belonged to, or None if it was not tracked
        """
        project, file_name = self.locate(file_path)
        if project is not None:
            project.files = [f for f in project.files if f != file_name]
            if not project.files:
                self.config.projects = [p for p in self.config.projects if p is not project]
                logger.info(f"Dropped project {project.slug} (no files left)")

        self.save()
        return project

    def watched_keys(self) -> set[tuple[str, str]]:
        """All (slug, file name) pairs currently registered."""
        return {(p.slug, f) for p in self.config.projects for f in p.files}
